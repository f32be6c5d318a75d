import dataclasses
from typing import Any

import pytest
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

from helena_agent.agent.cancellation import CancellationToken
from helena_agent.agent.orchestrator import (
    ABORT_TEXT,
    CAP_REACHED_TEXT,
    ERROR_TEXT,
    TIMEOUT_TEXT,
    AgentRunRequest,
    run_agent,
)
from helena_agent.agent.registry import ToolContext, ToolRegistry
from helena_agent.agent.roles import UserRole
from helena_agent.agent.stall import FORCE_MESSAGE
from helena_agent.agent.tools import register_helena_tools
from helena_agent.config import AgentConfig, TokenBudgetConfig
from helena_agent.obs.tracing import InMemoryAuditLog, InMemoryUsageTracker


def _tool_call(name: str, args: dict[str, Any] | None = None, call_id: str = "call-1") -> AIMessage:
    return AIMessage(
        content="",
        tool_calls=[{"name": name, "args": args or {}, "id": call_id, "type": "tool_call"}],
        usage_metadata={"input_tokens": 20, "output_tokens": 5, "total_tokens": 25},
    )


def _answer(text: str) -> AIMessage:
    return AIMessage(
        content=text,
        response_metadata={"finish_reason": "stop"},
        usage_metadata={"input_tokens": 30, "output_tokens": 10, "total_tokens": 40},
    )


def _forced(messages: list[BaseMessage]) -> bool:
    return any(isinstance(message, HumanMessage) and message.content == FORCE_MESSAGE for message in messages)


def _request(model, cases, drafts, *, cancellation=None, repair=False, on_step=None) -> AgentRunRequest:
    registry = ToolRegistry(audit_log=InMemoryAuditLog())
    register_helena_tools(registry)
    return AgentRunRequest(
        model=model,
        model_name="qwen3.5:35b",
        tools=registry.filtered(UserRole.ANWALT),
        tool_context=ToolContext(
            user_id="anwalt-1",
            user_role=UserRole.ANWALT,
            akte_id="akte-1",
            cases=cases,
            drafts=drafts,
        ),
        system_prompt="Du bist Helena.",
        messages=[HumanMessage(content="Wer ist der Gegner?")],
        cancellation=cancellation,
        repair_tool_calls=repair,
        on_step=on_step,
    )


@pytest.mark.asyncio
async def test_tool_round_then_answer(chat_model, cases, drafts) -> None:
    model = chat_model([_tool_call("read_akte"), _answer("Gegner ist die Beispiel GmbH.")])
    updates = []
    tracker = InMemoryUsageTracker()

    result = await run_agent(_request(model, cases, drafts, on_step=updates.append), usage_tracker=tracker)

    assert result.finish_reason == "stop"
    assert result.text == "Gegner ist die Beispiel GmbH."
    assert [step.type for step in result.steps] == ["toolCall", "toolResult", "thought"]
    assert "Beispiel GmbH" in result.steps[1].content
    assert result.total_tokens.total == 65
    assert "read_akte" in model.bound_tools
    assert [update.tool_name for update in updates] == ["read_akte", None]
    assert updates[0].max_steps == 5
    assert tracker.records[0].funktion == "helena-agent"
    assert tracker.records[0].tokens_in == 50


@pytest.mark.asyncio
async def test_repeated_call_forces_answer_once(chat_model, cases, drafts) -> None:
    def _turn(messages: list[BaseMessage]) -> AIMessage:
        if _forced(messages):
            return _answer("Zusammenfassung der Akte.")
        return _tool_call("read_akte", {"akte_id": "akte-1"}, call_id=f"call-{len(messages)}")

    model = chat_model([_turn])

    result = await run_agent(_request(model, cases, drafts))

    assert result.stalled is True
    assert result.finish_reason == "stop"
    assert result.text == "Zusammenfassung der Akte."
    assert sum(1 for message in result.messages if _forced([message])) == 1
    assert len(model.seen) == 3


@pytest.mark.asyncio
async def test_three_identical_results_stall_even_with_new_params(chat_model, cases, drafts) -> None:
    def _turn(messages: list[BaseMessage]) -> AIMessage:
        if _forced(messages):
            return _answer("Keine Quellen verfuegbar.")
        step = len([message for message in messages if isinstance(message, AIMessage)])
        return _tool_call("search_gesetze", {"query": f"frage {step}"}, call_id=f"call-{step}")

    model = chat_model([_turn])

    result = await run_agent(_request(model, cases, drafts))

    assert result.stalled is True
    assert len(model.seen) == 4
    assert [step.type for step in result.steps].count("error") == 3
    assert sum(1 for message in result.messages if _forced([message])) == 1


@pytest.mark.asyncio
async def test_ignored_force_message_ends_as_stall(chat_model, cases, drafts) -> None:
    model = chat_model([_tool_call("read_akte")])

    result = await run_agent(_request(model, cases, drafts))

    assert result.finish_reason == "stall"
    assert result.text.startswith(CAP_REACHED_TEXT)
    assert len(model.seen) == 5
    assert sum(1 for message in result.messages if _forced([message])) == 1


@pytest.mark.asyncio
async def test_step_cap_without_stall_is_length(chat_model, cases, drafts) -> None:
    def _turn(messages: list[BaseMessage]) -> AIMessage:
        step = len([message for message in messages if isinstance(message, AIMessage)])
        return _tool_call("search_gesetze", {"query": f"frage {step}"}, call_id=f"call-{step}")

    model = chat_model([_turn])

    result = await run_agent(_request(model, cases, drafts), config=AgentConfig(inline_max_steps=2))

    assert result.finish_reason == "length"
    assert result.stalled is False
    assert result.text == CAP_REACHED_TEXT


@pytest.mark.asyncio
async def test_wall_clock_timeout(chat_model, cases, drafts) -> None:
    model = chat_model([_answer("zu spaet")], delay=1.0)

    result = await run_agent(_request(model, cases, drafts), config=AgentConfig(inline_timeout_seconds=0.05))

    assert result.finish_reason == "timeout"
    assert result.text == TIMEOUT_TEXT


@pytest.mark.asyncio
async def test_user_cancellation_keeps_partial_thoughts(chat_model, cases, drafts) -> None:
    token = CancellationToken()

    def _turn(messages: list[BaseMessage]) -> AIMessage:
        token.cancel()
        return AIMessage(
            content="Ich lese zuerst die Akte.",
            tool_calls=[{"name": "read_akte", "args": {}, "id": "call-1", "type": "tool_call"}],
        )

    model = chat_model([_turn])

    result = await run_agent(_request(model, cases, drafts, cancellation=token))

    assert result.finish_reason == "abort"
    assert result.text.startswith(ABORT_TEXT)
    assert "Ich lese zuerst die Akte." in result.text


@pytest.mark.asyncio
async def test_model_failure_becomes_error_result(chat_model, cases, drafts) -> None:
    model = chat_model([RuntimeError("connection reset")])

    result = await run_agent(_request(model, cases, drafts))

    assert result.finish_reason == "error"
    assert result.text == ERROR_TEXT
    assert result.steps[-1].type == "error"
    assert result.steps[-1].content == "connection reset"


@pytest.mark.asyncio
async def test_malformed_call_is_repaired_when_enabled(chat_model, cases, drafts) -> None:
    malformed = AIMessage(
        content="",
        invalid_tool_calls=[
            {
                "name": "read_akte",
                "args": "{akte_id: 'akte-1',}",
                "id": "call-1",
                "error": "Expecting property name",
                "type": "invalid_tool_call",
            }
        ],
    )
    repaired = await run_agent(
        _request(chat_model([malformed, _answer("fertig")]), cases, drafts, repair=True)
    )
    dropped = await run_agent(_request(chat_model([malformed, _answer("fertig")]), cases, drafts))

    assert repaired.steps[0].type == "toolCall"
    assert repaired.steps[0].tool_params == {"akte_id": "akte-1"}
    assert repaired.text == "fertig"
    assert all(step.type != "toolCall" for step in dropped.steps)


@pytest.mark.asyncio
async def test_unknown_tool_is_reported_to_model(chat_model, cases, drafts) -> None:
    model = chat_model([_tool_call("delete_akte"), _answer("Das kann ich nicht.")])

    result = await run_agent(_request(model, cases, drafts))

    assert result.steps[1].type == "error"
    assert "Unbekanntes Tool: delete_akte" in result.steps[1].content
    assert result.text == "Das kann ich nicht."


@pytest.mark.asyncio
async def test_truncation_keeps_tool_calls_paired_with_results(chat_model, cases, drafts) -> None:
    def _round(name: str, call_id: str) -> AIMessage:
        return AIMessage(
            content=f"Ich pruefe {name}. " + "x" * 1200,
            tool_calls=[{"name": name, "args": {}, "id": call_id, "type": "tool_call"}],
        )

    model = chat_model(
        [
            _round("read_akte", "call-1"),
            _round("read_fristen", "call-2"),
            _round("read_dokumente", "call-3"),
            _answer("Alles gelesen."),
        ]
    )
    request = dataclasses.replace(_request(model, cases, drafts), model_name="test-model")

    result = await run_agent(request, token_config=TokenBudgetConfig(default_context_window=1024))

    assert result.truncated is True
    assert result.text == "Alles gelesen."
    last_prompt = model.seen[-1]
    called = {call["id"] for message in last_prompt if isinstance(message, AIMessage) for call in message.tool_calls}
    answered = {message.tool_call_id for message in last_prompt if isinstance(message, ToolMessage)}
    assert called == answered
    assert "call-1" not in called
