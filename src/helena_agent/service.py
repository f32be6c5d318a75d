"""Public entry point: rate limiting, routing and dispatch of one user message."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage

from helena_agent.agent.cancellation import CancellationToken
from helena_agent.agent.classifier import (
    ModelSelection,
    Tier,
    classify_complexity,
    escalate_tier,
    get_model_for_tier,
)
from helena_agent.agent.orchestrator import ERROR_TEXT, AgentRunRequest, run_agent
from helena_agent.agent.prompts import build_system_prompt
from helena_agent.agent.registry import ToolContext, ToolRegistry
from helena_agent.agent.roles import UserRole
from helena_agent.cases import CaseRepository, InMemoryAlertStore
from helena_agent.config import HelenaSettings, SettingsProvider
from helena_agent.limits.rate_limiter import RateLimiter
from helena_agent.obs.tracing import UsageTracker
from helena_agent.retrieval.sources import LegalSourceIndex
from helena_agent.schriftsatz.answers import classify_answer_intent, extract_slot_values
from helena_agent.schriftsatz.drafts import DraftService
from helena_agent.schriftsatz.pending import PendingPipelineState, SqlitePendingPipelineStore
from helena_agent.schriftsatz.pipeline import (
    PipelineAborted,
    PipelineRequest,
    PipelineResult,
    is_schriftsatz_intent,
    run_schriftsatz_pipeline,
)
from helena_agent.schriftsatz.registry import get_klageart_definition
from helena_agent.schriftsatz.slots import fill_remaining_with_placeholders
from helena_agent.types import AgentMode, AgentRunResult, AgentStep, FinishReason, StepUpdate, TokenUsage

logger = logging.getLogger(__name__)

BACKGROUND_OFFER = (
    "\n\n---\nIch habe das Schrittlimit fuer schnelle Antworten erreicht. "
    "Soll ich die Anfrage im Hintergrund ausfuehrlich weiterbearbeiten?"
)
PIPELINE_CANCELLED = "Schriftsatz-Erstellung abgebrochen."
RETRY_MESSAGE = (
    "Der vorherige Versuch war nicht erfolgreich. Bitte versuche es erneut mit einer "
    "anderen Herangehensweise."
)
PIPELINE_STAGES = 6

ModelFactory = Callable[[ModelSelection], BaseChatModel]


@dataclass(slots=True)
class HelenaRequest:
    user_id: str
    user_role: UserRole | str
    message: str
    akte_id: str | None = None
    history: list[BaseMessage] = field(default_factory=list)
    mode_override: AgentMode | None = None
    on_step: Callable[[StepUpdate], None] | None = None
    cancellation: CancellationToken | None = None
    memory: dict[str, Any] | None = None
    user_name: str | None = None


@dataclass(slots=True)
class HelenaResponse:
    text: str
    mode: AgentMode
    tier: Tier
    steps: list[AgentStep] = field(default_factory=list)
    total_tokens: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: FinishReason = "stop"
    cap_reached: bool = False
    continue_in_background: bool = False
    rate_limited: bool = False
    draft_id: str | None = None


@dataclass(slots=True)
class HelenaDependencies:
    """Long-lived collaborators shared by all requests."""

    registry: ToolRegistry
    cases: CaseRepository
    drafts: DraftService
    rate_limiter: RateLimiter
    settings_provider: SettingsProvider
    model_factory: ModelFactory
    settings: HelenaSettings = field(default_factory=HelenaSettings)
    sources: LegalSourceIndex | None = None
    pending: SqlitePendingPipelineStore | None = None
    usage_tracker: UsageTracker | None = None
    alerts: InMemoryAlertStore | None = None
    today: Callable[[], date] = date.today


async def run_helena_agent(request: HelenaRequest, deps: HelenaDependencies) -> HelenaResponse:
    """Answer one user message.

    Order: rate limit, complexity classification (a mode override keeps the
    classified tier), pending clarification or Schriftsatz routing, then the
    generic tool loop, the inline cap offer and at most one tier escalation on
    stall. Failures past the rate limit become an `error` response.
    """
    limit = await deps.rate_limiter.check(request.user_id)
    if not limit.allowed:
        return HelenaResponse(text=limit.message or "", mode="inline", tier=1, rate_limited=True)

    complexity = classify_complexity(request.message)
    mode: AgentMode = request.mode_override or complexity.mode
    tier: Tier = complexity.tier
    logger.info("Classified request: mode=%s tier=%s (%s)", mode, tier, complexity.reason)

    try:
        return await _dispatch(request, deps, mode, tier)
    except Exception:
        logger.exception("Helena request failed (mode=%s, tier=%s)", mode, tier)
        return HelenaResponse(text=ERROR_TEXT, mode=mode, tier=tier, finish_reason="error")


async def _dispatch(
    request: HelenaRequest, deps: HelenaDependencies, mode: AgentMode, tier: Tier
) -> HelenaResponse:
    if request.akte_id and deps.pending is not None:
        resumed = await _resume_pending(request, deps)
        if resumed is not None:
            return resumed

    if request.akte_id and tier == 3 and is_schriftsatz_intent(request.message):
        return await _run_pipeline(
            request,
            deps,
            PipelineRequest(message=request.message, user_id=request.user_id, akte_id=request.akte_id),
            round_number=1,
        )

    result = await _run_tool_loop(request, deps, mode, tier)

    cap_reached = result.finish_reason in ("length", "tool-calls", "stall")
    continue_in_background = cap_reached and mode == "inline"
    response = HelenaResponse(
        text=result.text + BACKGROUND_OFFER if continue_in_background else result.text,
        mode=mode,
        tier=tier,
        steps=list(result.steps),
        total_tokens=result.total_tokens,
        finish_reason=result.finish_reason,
        cap_reached=cap_reached,
        continue_in_background=continue_in_background,
    )
    if not _should_escalate(request, result, tier):
        return response
    return await _escalate(request, deps, response, result)


def _should_escalate(request: HelenaRequest, result: AgentRunResult, tier: Tier) -> bool:
    if not result.stalled or tier >= 3:
        return False
    if result.finish_reason in ("abort", "timeout"):
        return False
    return request.cancellation is None or not request.cancellation.cancelled


async def _escalate(
    request: HelenaRequest, deps: HelenaDependencies, response: HelenaResponse, result: AgentRunResult
) -> HelenaResponse:
    """Retry a stalled run once with the next tier.

    The escalated answer replaces the original only when the retry does not
    stall as well. Steps and token usage of both runs are always reported.
    """
    escalated = escalate_tier(response.tier)
    logger.info("Stall detected, escalating from tier %s to %s", response.tier, escalated)
    try:
        retry = await _run_tool_loop(
            request, deps, response.mode, escalated, extra_messages=[HumanMessage(content=RETRY_MESSAGE)]
        )
    except Exception:
        logger.exception("Tier escalation to %s failed; keeping tier %s result", escalated, response.tier)
        return response

    response.steps = [*result.steps, *retry.steps]
    response.total_tokens = result.total_tokens.merged(retry.total_tokens)
    if retry.stalled:
        logger.warning("Escalated run stalled as well; keeping tier %s result", response.tier)
        return response

    response.text = retry.text
    response.tier = escalated
    response.finish_reason = retry.finish_reason
    response.cap_reached = False
    response.continue_in_background = False
    return response


async def _run_tool_loop(
    request: HelenaRequest,
    deps: HelenaDependencies,
    mode: AgentMode,
    tier: int,
    *,
    extra_messages: list[BaseMessage] | None = None,
) -> AgentRunResult:
    selection = get_model_for_tier(tier, deps.settings_provider, deps.settings.models)
    model = deps.model_factory(selection)
    registry = deps.registry.filtered(request.user_role)
    ctx = ToolContext(
        user_id=request.user_id,
        user_role=request.user_role,
        akte_id=request.akte_id,
        cases=deps.cases,
        drafts=deps.drafts,
        sources=deps.sources,
        alerts=deps.alerts,
        helena_user_id=deps.drafts.helena_user_id,
    )
    prompt = build_system_prompt(
        registry.names(),
        akte_id=request.akte_id,
        user_name=request.user_name,
        memory=request.memory,
    )
    return await run_agent(
        AgentRunRequest(
            model=model,
            model_name=selection.model_name,
            tools=registry,
            tool_context=ctx,
            system_prompt=prompt,
            messages=[*request.history, HumanMessage(content=request.message), *(extra_messages or [])],
            mode=mode,
            cancellation=request.cancellation,
            repair_tool_calls=selection.provider == "ollama",
            on_step=request.on_step,
            provider=selection.provider,
        ),
        config=deps.settings.agent,
        token_config=deps.settings.tokens,
        usage_tracker=deps.usage_tracker,
    )


def _pipeline_model(deps: HelenaDependencies) -> tuple[BaseChatModel, ModelSelection]:
    selection = get_model_for_tier(3, deps.settings_provider, deps.settings.models)
    return deps.model_factory(selection), selection


async def _resume_pending(request: HelenaRequest, deps: HelenaDependencies) -> HelenaResponse | None:
    """Continue a Schriftsatz that is waiting for an answer, if any.

    Returns None when there is nothing pending or the message is unrelated,
    in which case the caller handles the message as a fresh request.
    """
    if deps.pending is None or request.akte_id is None:
        return None
    state = deps.pending.load(request.user_id, request.akte_id)
    if state is None:
        return None

    model, _ = _pipeline_model(deps)
    try:
        answer = await classify_answer_intent(
            request.message, state.rueckfrage, model, cancellation=request.cancellation
        )
    except Exception:
        logger.exception("Could not classify reply to pending Schriftsatz; treating as unrelated")
        deps.pending.clear(request.user_id, request.akte_id)
        return None

    if answer.typ == "cancel":
        deps.pending.clear(request.user_id, request.akte_id)
        return HelenaResponse(text=PIPELINE_CANCELLED, mode="background", tier=3)
    if answer.typ == "unrelated":
        deps.pending.clear(request.user_id, request.akte_id)
        return None

    slots = await _merge_answer(request, deps, state, model, answer.corrected_slot_key)
    round_number = state.round + 1
    definition = get_klageart_definition(state.intent.klageart)
    if round_number >= deps.pending.max_rounds:
        logger.info("Clarification round limit reached; continuing with placeholders")
        slots = fill_remaining_with_placeholders(definition, slots)

    return await _run_pipeline(
        request,
        deps,
        PipelineRequest(
            message=state.original_message,
            user_id=request.user_id,
            akte_id=request.akte_id,
            user_slots=slots,
            intent=state.intent,
        ),
        round_number=round_number,
    )


async def _merge_answer(
    request: HelenaRequest,
    deps: HelenaDependencies,
    state: PendingPipelineState,
    model: BaseChatModel,
    corrected_slot_key: str | None,
) -> dict[str, Any]:
    definition = get_klageart_definition(state.intent.klageart)
    expected = [slot for slot in definition.required_slots if state.slots.get(slot.key) is None]
    if corrected_slot_key:
        corrected = [slot for slot in definition.all_slots if slot.key == corrected_slot_key]
        expected = corrected + [slot for slot in expected if slot.key != corrected_slot_key]
    try:
        values = await extract_slot_values(
            request.message, expected, model, cancellation=request.cancellation
        )
    except Exception:
        logger.exception("Slot extraction failed; keeping previous slot values")
        values = {}
    return {**state.slots, **values}


async def _run_pipeline(
    request: HelenaRequest,
    deps: HelenaDependencies,
    pipeline_request: PipelineRequest,
    *,
    round_number: int,
) -> HelenaResponse:
    model, selection = _pipeline_model(deps)
    steps: list[AgentStep] = []
    stage_counter = 0

    def on_stage(stage: str, detail: str) -> None:
        nonlocal stage_counter
        stage_counter += 1
        steps.append(AgentStep(type="thought", content=f"{stage}: {detail}"))
        if request.on_step is None:
            return
        try:
            request.on_step(
                StepUpdate(
                    step_number=stage_counter,
                    max_steps=PIPELINE_STAGES,
                    tool_name=f"schriftsatz:{stage}",
                    tool_params=None,
                    summary=detail,
                    token_estimate=0,
                )
            )
        except Exception:
            logger.exception("Progress callback failed")

    try:
        result = await run_schriftsatz_pipeline(
            pipeline_request,
            model=model,
            cases=deps.cases,
            drafts=deps.drafts,
            sources=deps.sources,
            config=deps.settings.pipeline,
            cancellation=request.cancellation,
            on_stage=on_stage,
            today=deps.today(),
        )
    except PipelineAborted as exc:
        logger.info("Schriftsatz pipeline aborted in %s", exc.stage)
        finish: FinishReason = "timeout" if exc.reason == "timeout" else "abort"
        return HelenaResponse(
            text=PIPELINE_CANCELLED, mode="background", tier=3, steps=steps, finish_reason=finish
        )

    await _track_pipeline_usage(request, deps, selection, result.token_usage)
    _update_pending(request, deps, pipeline_request, result, round_number)
    return HelenaResponse(
        text=_pipeline_text(result),
        mode="background",
        tier=3,
        steps=steps,
        total_tokens=result.token_usage,
        finish_reason="error" if result.status == "error" else "stop",
        draft_id=result.draft_id,
    )


def _update_pending(
    request: HelenaRequest,
    deps: HelenaDependencies,
    pipeline_request: PipelineRequest,
    result: PipelineResult,
    round_number: int,
) -> None:
    if deps.pending is None:
        return
    try:
        if result.status == "needs_input" and result.intent is not None and result.slots:
            deps.pending.save(
                request.user_id,
                pipeline_request.akte_id,
                result.intent,
                result.slots,
                result.rueckfrage or "",
                round_number,
                pipeline_request.message,
            )
        else:
            deps.pending.clear(request.user_id, pipeline_request.akte_id)
    except Exception:
        # The pipeline result is already final; a lost pending row only costs the resume.
        logger.exception("Could not update pending Schriftsatz state")


def _pipeline_text(result: PipelineResult) -> str:
    if result.status == "needs_input":
        return result.rueckfrage or ""
    if result.status == "error":
        details = "; ".join(warnung.text for warnung in result.warnungen)
        return f"Der Schriftsatz konnte nicht erstellt werden. {details}".strip()

    schriftsatz = result.schriftsatz
    lines = ["Ich habe einen Schriftsatz-Entwurf erstellt. Er wartet auf Ihre Pruefung und Freigabe."]
    if schriftsatz is not None and schriftsatz.unresolved_platzhalter:
        lines.append(
            "Offene Platzhalter: " + ", ".join(schriftsatz.unresolved_platzhalter)
        )
    relevant = [warnung for warnung in result.warnungen if warnung.schwere != "INFO"]
    if relevant:
        lines.append("")
        lines.append("Pruefhinweise:")
        lines.extend(f"- {warnung.schwere}: {warnung.text}" for warnung in relevant)
    return "\n".join(lines)


async def _track_pipeline_usage(
    request: HelenaRequest, deps: HelenaDependencies, selection: ModelSelection, usage: TokenUsage
) -> None:
    if deps.usage_tracker is None or usage.total == 0:
        return
    try:
        await deps.usage_tracker.record(
            user_id=request.user_id,
            akte_id=request.akte_id,
            funktion="schriftsatz-pipeline",
            provider=selection.provider,
            model=selection.model_name,
            tokens_in=usage.prompt,
            tokens_out=usage.completion,
        )
    except Exception:
        logger.exception("Usage tracking failed")
