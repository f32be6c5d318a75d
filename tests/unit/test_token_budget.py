from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from helena_agent.agent.token_budget import (
    EVICTED_TOOL_RESULT,
    estimate_messages_tokens,
    estimate_tokens,
    get_context_window,
    truncate_messages,
)
from helena_agent.config import TokenBudgetConfig


def test_estimate_tokens_uses_chars_per_token() -> None:
    assert estimate_tokens("a" * 35) == 10
    assert estimate_tokens("a" * 36) == 11
    assert estimate_tokens({"key": "value"}) > 0


def test_context_window_lookup_and_default() -> None:
    assert get_context_window("gpt-4o-mini") == 128_000
    assert get_context_window("openai/gpt-4o") == 128_000
    assert get_context_window("qwen3.5:35b") == 32_768
    assert get_context_window("lfm2:latest") == 32_768
    assert get_context_window("unbekannt") == TokenBudgetConfig().default_context_window


def test_truncate_is_noop_under_budget() -> None:
    messages = [SystemMessage(content="system"), HumanMessage(content="hallo")]
    assert truncate_messages(messages, 10_000) is messages


def test_truncate_evicts_tool_results_first_and_keeps_protected() -> None:
    config = TokenBudgetConfig(protected_tail_messages=2)
    big = "x" * 700
    messages = [
        SystemMessage(content="system"),
        HumanMessage(content="erste Frage"),
        AIMessage(content=big),
        ToolMessage(content=big, tool_call_id="c1"),
        ToolMessage(content=big, tool_call_id="c2"),
        AIMessage(content="vorletzte"),
        HumanMessage(content="letzte"),
    ]

    reduced = truncate_messages(messages, 400, threshold=1.0, config=config)

    assert reduced[0].content == "system"
    assert reduced[1].content == "erste Frage"
    assert reduced[-2].content == "vorletzte"
    assert reduced[-1].content == "letzte"
    assert not any(isinstance(message, ToolMessage) for message in reduced)
    assert estimate_messages_tokens(reduced, config) <= 400


def test_truncate_stays_over_budget_when_only_protected_remain() -> None:
    config = TokenBudgetConfig(protected_tail_messages=1)
    messages = [SystemMessage(content="s" * 2000), HumanMessage(content="q" * 2000)]

    reduced = truncate_messages(messages, 100, threshold=1.0, config=config)

    assert len(reduced) == 2
    assert estimate_messages_tokens(reduced, config) > 100


def _calls(call_ids: list[str]) -> list[dict]:
    return [{"name": "read_akte", "args": {}, "id": call_id, "type": "tool_call"} for call_id in call_ids]


def _answered_pairs(messages) -> tuple[set[str], set[str]]:
    called = {call["id"] for message in messages if isinstance(message, AIMessage) for call in message.tool_calls}
    answered = {message.tool_call_id for message in messages if isinstance(message, ToolMessage)}
    return called, answered


def test_truncate_evicts_tool_call_turn_as_a_whole() -> None:
    messages = [
        SystemMessage(content="system"),
        HumanMessage(content="erste Frage"),
        AIMessage(content="", tool_calls=_calls(["a"])),
        ToolMessage(content="x" * 4000, tool_call_id="a"),
        AIMessage(content="", tool_calls=_calls(["b"])),
        ToolMessage(content="kurz", tool_call_id="b"),
        HumanMessage(content="weiter"),
    ]

    reduced = truncate_messages(messages, 1000)

    called, answered = _answered_pairs(reduced)
    assert called == answered == {"b"}
    assert [message.type for message in reduced] == ["system", "human", "ai", "tool", "human"]


def test_truncate_stubs_result_when_its_turn_is_protected() -> None:
    config = TokenBudgetConfig(protected_tail_messages=1)
    messages = [
        SystemMessage(content="system"),
        HumanMessage(content="erste Frage"),
        AIMessage(content="", tool_calls=_calls(["a", "b"])),
        ToolMessage(content="x" * 3500, tool_call_id="a"),
        ToolMessage(content="kurz", tool_call_id="b"),
    ]

    reduced = truncate_messages(messages, 400, threshold=1.0, config=config)

    assert len(reduced) == 5
    assert reduced[3].content == EVICTED_TOOL_RESULT
    assert reduced[3].tool_call_id == "a"
    assert reduced[4].content == "kurz"
    called, answered = _answered_pairs(reduced)
    assert called == answered == {"a", "b"}
