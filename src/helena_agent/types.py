"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

AgentMode = Literal["inline", "background"]
StepType = Literal["thought", "toolCall", "toolResult", "error"]
FinishReason = Literal[
    "stop", "length", "tool-calls", "stall", "abort", "timeout", "error"
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class TokenUsage:
    """Aggregated prompt/completion token counts."""

    prompt: int = 0
    completion: int = 0

    @property
    def total(self) -> int:
        return self.prompt + self.completion

    def add(self, prompt: int, completion: int) -> None:
        self.prompt += prompt
        self.completion += completion

    def merged(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt=self.prompt + other.prompt,
            completion=self.completion + other.completion,
        )


@dataclass(slots=True)
class AgentStep:
    """One entry of the append-only run trace."""

    type: StepType
    content: str
    tool_name: str | None = None
    tool_params: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class StepUpdate:
    """Progress payload emitted after every model round."""

    step_number: int
    max_steps: int
    tool_name: str | None
    tool_params: dict[str, Any] | None
    summary: str
    token_estimate: int


@dataclass(slots=True)
class AgentRunResult:
    """Terminal result of one orchestrator run."""

    text: str
    steps: list[AgentStep]
    total_tokens: TokenUsage
    finish_reason: FinishReason
    stalled: bool = False
    truncated: bool = False
    messages: list[Any] = field(default_factory=list)


@dataclass(slots=True)
class ToolResult:
    """Uniform tool return value: data, error and provenance."""

    data: Any = None
    error: str | None = None
    source: dict[str, Any] | None = None

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        if self.source is not None:
            payload["source"] = self.source
        return payload


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
    cache_hit: bool = False
