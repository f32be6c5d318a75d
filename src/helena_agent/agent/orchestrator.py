"""Bounded ReAct loop over a tool-calling chat model.

One run alternates model rounds and tool fan-out until the model answers, the
step cap or wall-clock limit is hit, or the caller cancels. The loop never
raises: every exit path yields an `AgentRunResult` with a finish reason.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from helena_agent.agent.cancellation import TIMEOUT, CancellationToken, OperationCancelled
from helena_agent.agent.guard import repair_tool_call, scan_for_embedded_tool_calls
from helena_agent.agent.registry import ToolContext, ToolRegistry, serialize_tool_result
from helena_agent.agent.stall import FORCE_MESSAGE, StallDetector, hash_result, stable_params_key
from helena_agent.agent.token_budget import estimate_messages_tokens, get_context_window, truncate_messages
from helena_agent.config import AgentConfig, TokenBudgetConfig
from helena_agent.obs.tracing import UsageTracker
from helena_agent.types import AgentMode, AgentRunResult, AgentStep, FinishReason, StepUpdate, TokenUsage, ToolResult

logger = logging.getLogger(__name__)

CAP_REACHED_TEXT = (
    "Ich habe die maximale Anzahl an Arbeitsschritten erreicht, bevor ich eine abschliessende "
    "Antwort geben konnte."
)
ABORT_TEXT = "Die Anfrage wurde abgebrochen."
TIMEOUT_TEXT = "Die Zeit fuer diese Anfrage ist abgelaufen."
ERROR_TEXT = "Bei der Bearbeitung ist ein Fehler aufgetreten."

_FINISH_REASONS: dict[str, FinishReason] = {
    "stop": "stop",
    "length": "length",
    "tool_calls": "tool-calls",
}


@dataclass(slots=True, frozen=True)
class AgentRunRequest:
    """Immutable input of one orchestrator run."""

    model: BaseChatModel
    model_name: str
    tools: ToolRegistry
    tool_context: ToolContext
    system_prompt: str
    messages: list[BaseMessage] = field(default_factory=list)
    mode: AgentMode = "inline"
    cancellation: CancellationToken | None = None
    repair_tool_calls: bool = False
    on_step: Callable[[StepUpdate], None] | None = None
    provider: str = "ollama"
    funktion: str = "helena-agent"


async def run_agent(
    request: AgentRunRequest,
    *,
    config: AgentConfig | None = None,
    token_config: TokenBudgetConfig | None = None,
    usage_tracker: UsageTracker | None = None,
) -> AgentRunResult:
    cfg = config or AgentConfig()
    tokens_cfg = token_config or TokenBudgetConfig()
    max_steps = cfg.max_steps(request.mode)
    context_window = get_context_window(request.model_name, tokens_cfg)

    external = request.cancellation or CancellationToken()
    scope = external.linked()
    ctx = dataclasses.replace(request.tool_context, cancellation=scope)
    loop = asyncio.get_running_loop()
    timer = loop.call_later(cfg.timeout_seconds(request.mode), scope.cancel, TIMEOUT)

    messages: list[BaseMessage] = [SystemMessage(content=request.system_prompt), *request.messages]
    steps: list[AgentStep] = []
    usage = TokenUsage()
    stall = StallDetector()
    stalled = False
    truncated = False
    text = ""
    finish: FinishReason = "stop"

    logger.info(
        "Agent run started (mode=%s, model=%s, tools=%d, max_steps=%d)",
        request.mode,
        request.model_name,
        len(request.tools.names()),
        max_steps,
    )

    try:
        tools = request.tools.as_langchain_tools(ctx)
        bound = request.model.bind_tools(tools) if tools else request.model

        for step_number in range(1, max_steps + 1):
            response = await scope.guard(bound.ainvoke(messages))
            _add_usage(usage, response)
            round_text = _content_text(response)
            calls = _collect_tool_calls(response, repair=request.repair_tool_calls)
            if round_text:
                steps.append(AgentStep(type="thought", content=round_text))

            if not calls:
                messages.append(response)
                text = round_text
                finish = _finish_reason(response)
                _notify(
                    request,
                    StepUpdate(
                        step_number=step_number,
                        max_steps=max_steps,
                        tool_name=None,
                        tool_params=None,
                        summary=round_text[: cfg.step_summary_chars],
                        token_estimate=estimate_messages_tokens(messages, tokens_cfg),
                    ),
                )
                break

            messages.append(AIMessage(content=response.content, tool_calls=calls))
            results = await asyncio.gather(
                *(scope.guard(_execute_call(request.tools, call, ctx)) for call in calls)
            )

            last_payload = ""
            for call, result in zip(calls, results):
                payload = serialize_tool_result(result)
                last_payload = payload
                steps.append(
                    AgentStep(
                        type="toolCall",
                        content=f"{call['name']}({stable_params_key(call['args'])})",
                        tool_name=call["name"],
                        tool_params=call["args"],
                    )
                )
                steps.append(
                    AgentStep(
                        type="error" if result.error else "toolResult",
                        content=payload[: cfg.tool_result_step_chars],
                        tool_name=call["name"],
                    )
                )
                messages.append(ToolMessage(content=payload, tool_call_id=call["id"], name=call["name"]))
                stall.record(call["name"], call["args"], hash_result(payload))

            token_estimate = estimate_messages_tokens(messages, tokens_cfg)
            if token_estimate > context_window * tokens_cfg.truncation_threshold:
                reduced = truncate_messages(messages, context_window, config=tokens_cfg)
                reduced_estimate = estimate_messages_tokens(reduced, tokens_cfg)
                if reduced_estimate < token_estimate:
                    logger.info(
                        "Reduced context from %d to %d estimated tokens", token_estimate, reduced_estimate
                    )
                    messages = reduced
                    truncated = True
                    token_estimate = reduced_estimate

            _notify(
                request,
                StepUpdate(
                    step_number=step_number,
                    max_steps=max_steps,
                    tool_name=calls[0]["name"],
                    tool_params=calls[0]["args"],
                    summary=(round_text or last_payload)[: cfg.step_summary_chars],
                    token_estimate=token_estimate,
                ),
            )

            if not stalled and stall.is_stalled():
                stalled = True
                logger.warning("Stall detected after %d tool calls; forcing a final answer", len(stall))
                messages.append(HumanMessage(content=FORCE_MESSAGE))
        else:
            finish = "stall" if stalled else "length"
            text = _with_thoughts(CAP_REACHED_TEXT, steps)

        if not text:
            text = _with_thoughts(CAP_REACHED_TEXT, steps)
    except OperationCancelled as exc:
        finish = "timeout" if exc.reason == TIMEOUT else "abort"
        text = _with_thoughts(TIMEOUT_TEXT if finish == "timeout" else ABORT_TEXT, steps)
        logger.info("Agent run ended early: %s", finish)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.exception("Agent run failed")
        finish = "error"
        steps.append(AgentStep(type="error", content=str(exc)))
        text = _with_thoughts(ERROR_TEXT, steps)
    finally:
        timer.cancel()
        external.detach(scope)

    if finish == "stop" and text:
        scan_for_embedded_tool_calls(text)

    await _track_usage(usage_tracker, request, usage)
    logger.info(
        "Agent run finished (reason=%s, steps=%d, tokens=%d, stalled=%s)",
        finish,
        len(steps),
        usage.total,
        stalled,
    )
    return AgentRunResult(
        text=text,
        steps=steps,
        total_tokens=usage,
        finish_reason=finish,
        stalled=stalled,
        truncated=truncated,
        messages=messages,
    )


async def _execute_call(registry: ToolRegistry, call: dict[str, Any], ctx: ToolContext) -> ToolResult:
    if call["name"] not in registry:
        return ToolResult(error=f"Unbekanntes Tool: {call['name']}")
    return await registry.execute(call["name"], call["args"], ctx)


def _collect_tool_calls(response: BaseMessage, *, repair: bool) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []
    for call in getattr(response, "tool_calls", None) or []:
        calls.append(
            {
                "name": call["name"],
                "args": dict(call.get("args") or {}),
                "id": call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                "type": "tool_call",
            }
        )

    for invalid in getattr(response, "invalid_tool_calls", None) or []:
        name = invalid.get("name")
        args = repair_tool_call(invalid.get("args")) if repair and name else None
        if args is None:
            logger.warning("Dropping malformed tool call %s: %s", name, invalid.get("error"))
            continue
        calls.append(
            {
                "name": name,
                "args": args,
                "id": invalid.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                "type": "tool_call",
            }
        )
    return calls


def _content_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content.strip()
    parts = [
        item if isinstance(item, str) else str(item.get("text", ""))
        for item in content
        if isinstance(item, str) or (isinstance(item, dict) and item.get("type") == "text")
    ]
    return "".join(parts).strip()


def _finish_reason(response: BaseMessage) -> FinishReason:
    raw = (getattr(response, "response_metadata", None) or {}).get("finish_reason") or "stop"
    return _FINISH_REASONS.get(str(raw), "stop")


def _add_usage(usage: TokenUsage, response: BaseMessage) -> None:
    metadata = getattr(response, "usage_metadata", None) or {}
    usage.add(int(metadata.get("input_tokens", 0)), int(metadata.get("output_tokens", 0)))


def _with_thoughts(lead: str, steps: list[AgentStep]) -> str:
    thoughts = [step.content for step in steps if step.type == "thought" and step.content]
    if not thoughts:
        return lead
    return lead + "\n\nBisherige Erkenntnisse:\n\n" + "\n\n".join(thoughts)


def _notify(request: AgentRunRequest, update: StepUpdate) -> None:
    if request.on_step is None:
        return
    try:
        request.on_step(update)
    except Exception:
        logger.exception("Progress callback failed")


async def _track_usage(tracker: UsageTracker | None, request: AgentRunRequest, usage: TokenUsage) -> None:
    if tracker is None:
        return
    try:
        await tracker.record(
            user_id=request.tool_context.user_id,
            akte_id=request.tool_context.akte_id,
            funktion=request.funktion,
            provider=request.provider,
            model=request.model_name,
            tokens_in=usage.prompt,
            tokens_out=usage.completion,
        )
    except Exception:
        logger.exception("Usage tracking failed")
