"""Token estimation and context-window aware message eviction."""

from __future__ import annotations

import json
import math
from typing import Any

from langchain_core.messages import BaseMessage

from helena_agent.config import TokenBudgetConfig

CONTEXT_WINDOWS: dict[str, int] = {
    "qwen3.5:35b": 32_768,
    "gpt-4o": 128_000,
    "claude-sonnet-4-20250514": 200_000,
}

_DEFAULT_CONFIG = TokenBudgetConfig()

# Eviction order: tool results, then assistant turns, then everything else.
_EVICTION_PRIORITY = {"tool": 0, "ai": 1}

EVICTED_TOOL_RESULT = "[entfernt]"


def estimate_tokens(value: Any, config: TokenBudgetConfig | None = None) -> int:
    cfg = config or _DEFAULT_CONFIG
    text = value if isinstance(value, str) else json.dumps(value, default=str, ensure_ascii=False)
    return math.ceil(len(text) / cfg.chars_per_token)


def message_text(message: BaseMessage) -> str:
    """Flatten message content (string or content parts) into plain text."""
    content = message.content
    if isinstance(content, str):
        parts = [content]
    else:
        parts = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict):
                for key in ("text", "toolName", "name", "result"):
                    if key in item:
                        value = item[key]
                        parts.append(value if isinstance(value, str) else json.dumps(value, default=str))
            else:
                parts.append(str(item))

    tool_calls = getattr(message, "tool_calls", None)
    if tool_calls:
        parts.append(json.dumps(tool_calls, default=str, ensure_ascii=False))
    return " ".join(part for part in parts if part)


def estimate_messages_tokens(
    messages: list[BaseMessage], config: TokenBudgetConfig | None = None
) -> int:
    cfg = config or _DEFAULT_CONFIG
    return sum(
        estimate_tokens(message_text(message), cfg) + cfg.message_overhead_tokens
        for message in messages
    )


def get_context_window(model_name: str, config: TokenBudgetConfig | None = None) -> int:
    cfg = config or _DEFAULT_CONFIG
    lowered = model_name.lower()
    for known, window in CONTEXT_WINDOWS.items():
        if known in lowered:
            return window
    if "lfm" in lowered:
        return 32_768
    return cfg.default_context_window


def truncate_messages(
    messages: list[BaseMessage],
    context_window: int,
    threshold: float | None = None,
    config: TokenBudgetConfig | None = None,
) -> list[BaseMessage]:
    """Evict the oldest unprotected messages until under budget.

    Protected: every system message, the first user message, and the last
    `protected_tail_messages` messages. A tool-calling turn goes as a whole;
    when part of it is protected, its tool results keep their place with the
    content replaced by `EVICTED_TOOL_RESULT`. If the protected set alone
    exceeds the budget the result stays over budget.
    """

    cfg = config or _DEFAULT_CONFIG
    budget = context_window * (threshold if threshold is not None else cfg.truncation_threshold)
    costs = [
        estimate_tokens(message_text(message), cfg) + cfg.message_overhead_tokens
        for message in messages
    ]
    total = sum(costs)
    if total <= budget:
        return messages

    protected: set[int] = set()
    first_user_seen = False
    for index, message in enumerate(messages):
        if message.type == "system":
            protected.add(index)
        elif message.type == "human" and not first_user_seen:
            protected.add(index)
            first_user_seen = True
    tail_start = max(0, len(messages) - cfg.protected_tail_messages)
    protected.update(range(tail_start, len(messages)))

    candidates = sorted(
        (index for index in range(len(messages)) if index not in protected),
        key=lambda index: (_EVICTION_PRIORITY.get(messages[index].type, 2), index),
    )
    turns = _tool_turns(messages)
    stub_cost = estimate_tokens(EVICTED_TOOL_RESULT, cfg) + cfg.message_overhead_tokens

    evicted: set[int] = set()
    stubbed: set[int] = set()
    for index in candidates:
        if total <= budget:
            break
        if index in evicted or index in stubbed:
            continue
        turn = turns.get(index, (index,))
        if protected.isdisjoint(turn):
            for member in turn:
                if member not in evicted:
                    evicted.add(member)
                    total -= costs[member]
        elif messages[index].type == "tool" and costs[index] > stub_cost:
            # The calling turn must stay, so only the result body goes.
            stubbed.add(index)
            total -= costs[index] - stub_cost
            costs[index] = stub_cost

    return [
        message.model_copy(update={"content": EVICTED_TOOL_RESULT}) if index in stubbed else message
        for index, message in enumerate(messages)
        if index not in evicted
    ]


def _tool_turns(messages: list[BaseMessage]) -> dict[int, tuple[int, ...]]:
    """Map every index of a tool-calling turn to all indices of that turn.

    A turn is the assistant message carrying the calls plus the tool messages
    answering them. Providers reject a call without its result and vice versa,
    so a turn is evicted as a whole.
    """
    owners: dict[str, int] = {}
    members: dict[int, list[int]] = {}
    for index, message in enumerate(messages):
        if message.type == "ai" and getattr(message, "tool_calls", None):
            members[index] = [index]
            for call in message.tool_calls:
                if call.get("id"):
                    owners[call["id"]] = index
        elif message.type == "tool":
            parent = owners.get(getattr(message, "tool_call_id", ""))
            if parent is not None:
                members[parent].append(index)

    turns: dict[int, tuple[int, ...]] = {}
    for group in members.values():
        for index in group:
            turns[index] = tuple(group)
    return turns
