"""Six-stage Schriftsatz drafting pipeline.

intent -> slots -> assembly -> placeholders -> validation -> draft

Each stage may stop the run with `needs_input` or `error`. Any exception
raised inside a stage is converted into an `error` result carrying a single
FORM/KRITISCH warning; cancellation between or during stages raises
`PipelineAborted` so that the caller can report a partial answer.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Literal

from langchain_core.language_models import BaseChatModel

from helena_agent.agent.cancellation import CancellationToken, OperationCancelled
from helena_agent.cases import CaseRepository
from helena_agent.config import PipelineConfig
from helena_agent.retrieval.sources import LegalSourceIndex
from helena_agent.schriftsatz.assembler import SchriftsatzAssembler
from helena_agent.schriftsatz.drafts import DraftKind, DraftService, SchriftsatzPayload
from helena_agent.schriftsatz.intent import build_akte_context, recognize_intent
from helena_agent.schriftsatz.placeholders import resolve_schriftsatz
from helena_agent.schriftsatz.registry import get_klageart_definition
from helena_agent.schriftsatz.render import render_schriftsatz_markdown
from helena_agent.schriftsatz.schemas import (
    ErvWarnung,
    IntentResult,
    RetrievalBeleg,
    Schriftsatz,
    SlotValues,
)
from helena_agent.schriftsatz.slots import fill_slots, prefill_slots_from_akte
from helena_agent.schriftsatz.validator import has_kritisch, validate_erv
from helena_agent.types import TokenUsage

logger = logging.getLogger(__name__)

PipelineStatus = Literal["complete", "needs_input", "error"]
StageCallback = Callable[[str, str], None]

CLARIFY_INTENT = (
    "Ich konnte nicht eindeutig erkennen, welcher Schriftsatz erstellt werden soll. "
    "Um welche Art von Schriftsatz handelt es sich (z.B. Kuendigungsschutzklage, Lohnklage, "
    "Klageerwiderung, Berufung, einstweilige Verfuegung oder Abmahnung) und in welchem "
    "Verfahrensstadium befindet sich die Sache?"
)

_FILING_TERMS = (
    "schriftsatz",
    "klage",
    "klageschrift",
    "klageerwiderung",
    "berufung",
    "einstweilige verfuegung",
    "einstweilige verfügung",
    "abmahnung",
    "antrag auf",
)
_DRAFT_VERBS = re.compile(r"\b(erstell|entw[iu]rf|schreib|verfass|formulier|aufsetz|fertig|bereite)")


class PipelineAborted(RuntimeError):
    """Cancellation observed between or during pipeline stages."""

    def __init__(self, stage: str, reason: str) -> None:
        super().__init__(f"Pipeline aborted during {stage}: {reason}")
        self.stage = stage
        self.reason = reason


@dataclass(slots=True)
class PipelineRequest:
    message: str
    user_id: str
    akte_id: str
    user_slots: SlotValues = field(default_factory=dict)
    intent: IntentResult | None = None


@dataclass(slots=True)
class PipelineResult:
    status: PipelineStatus
    schriftsatz: Schriftsatz | None = None
    rueckfrage: str | None = None
    intent: IntentResult | None = None
    slots: SlotValues = field(default_factory=dict)
    draft_id: str | None = None
    warnungen: list[ErvWarnung] = field(default_factory=list)
    retrieval_belege: list[RetrievalBeleg] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)


def is_schriftsatz_intent(message: str) -> bool:
    """True when the message asks to draft a filing."""
    text = message.lower()
    if not any(term in text for term in _FILING_TERMS):
        return False
    return _DRAFT_VERBS.search(text) is not None


class SchriftsatzPipeline:
    def __init__(
        self,
        *,
        model: BaseChatModel,
        cases: CaseRepository,
        drafts: DraftService,
        sources: LegalSourceIndex | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.model = model
        self.cases = cases
        self.drafts = drafts
        self.config = config or PipelineConfig()
        self.assembler = SchriftsatzAssembler(model, sources, config=self.config)

    async def run(
        self,
        request: PipelineRequest,
        *,
        cancellation: CancellationToken | None = None,
        on_stage: StageCallback | None = None,
        today: date | None = None,
    ) -> PipelineResult:
        token = cancellation or CancellationToken()
        usage = TokenUsage()
        stage = "intent"

        def enter(name: str, detail: str) -> None:
            nonlocal stage
            stage = name
            if token.cancelled:
                raise PipelineAborted(name, token.reason or "user-cancel")
            logger.info("Schriftsatz pipeline stage %s: %s", name, detail)
            if on_stage is not None:
                on_stage(name, detail)

        try:
            akte = self.cases.get_akte(request.akte_id)
            if akte is None:
                raise ValueError(f"Akte {request.akte_id} nicht gefunden")

            enter("intent", "Anfrage wird klassifiziert")
            intent = request.intent
            if intent is None:
                recognition = await recognize_intent(
                    request.message,
                    self.model,
                    akte_context=build_akte_context(akte),
                    cancellation=token,
                )
                usage = usage.merged(recognition.token_usage)
                intent = recognition.intent
                if intent.confidence < self.config.min_intent_confidence:
                    return PipelineResult(
                        status="needs_input",
                        rueckfrage=CLARIFY_INTENT,
                        intent=intent,
                        token_usage=usage,
                    )

            definition = get_klageart_definition(intent.klageart)
            enter("slots", definition.label)
            filled = fill_slots(
                definition,
                prefill_slots_from_akte(akte, intent),
                request.user_slots,
                today=today,
            )
            if filled.missing_required:
                return PipelineResult(
                    status="needs_input",
                    rueckfrage=filled.rueckfrage,
                    intent=intent,
                    slots=filled.slots,
                    token_usage=usage,
                )

            enter("assembly", f"{len(definition.sections)} Abschnitte")
            assembled = await self.assembler.assemble(
                intent, definition, filled.slots, cancellation=token, today=today
            )
            usage = usage.merged(assembled.token_usage)

            enter("platzhalter", "Platzhalter werden aufgeloest")
            schriftsatz = resolve_schriftsatz(assembled.schriftsatz, filled.slots)

            enter("validation", "ERV-Pruefung")
            warnungen = validate_erv(schriftsatz, definition, filled.slots, today=today)
            schriftsatz.vollstaendig = not schriftsatz.unresolved_platzhalter and not has_kritisch(warnungen)
            schriftsatz.warnungen = [f"{warnung.schwere}: {warnung.text}" for warnung in warnungen]
            if filled.rueckfrage:
                schriftsatz.warnungen.insert(0, filled.rueckfrage)

            enter("draft", "Entwurf wird gespeichert")
            draft = await self.drafts.create_draft(
                akte_id=akte.id,
                kind=DraftKind.DOKUMENT,
                titel=f"Schriftsatz: {definition.label} -- {intent.stadium}",
                inhalt=render_schriftsatz_markdown(schriftsatz, warnungen),
                payload=SchriftsatzPayload(
                    klageart=definition.id,
                    stadium=intent.stadium,
                    rechtsgebiet=intent.rechtsgebiet,
                    schriftsatz=schriftsatz,
                    warnungen=warnungen,
                ),
                triggered_by=request.user_id,
                owner_id=akte.owner_id,
            )
        except PipelineAborted:
            raise
        except OperationCancelled as exc:
            raise PipelineAborted(stage, exc.reason) from exc
        except Exception as exc:
            logger.exception("Schriftsatz pipeline failed in stage %s", stage)
            return PipelineResult(
                status="error",
                warnungen=[
                    ErvWarnung(typ="FORM", schwere="KRITISCH", text=f"Pipeline-Fehler ({stage}): {exc}")
                ],
                token_usage=usage,
            )

        return PipelineResult(
            status="complete",
            schriftsatz=schriftsatz,
            intent=intent,
            slots=filled.slots,
            draft_id=draft.id,
            warnungen=warnungen,
            retrieval_belege=schriftsatz.retrieval_belege,
            token_usage=usage,
        )


async def run_schriftsatz_pipeline(
    request: PipelineRequest,
    *,
    model: BaseChatModel,
    cases: CaseRepository,
    drafts: DraftService,
    sources: LegalSourceIndex | None = None,
    config: PipelineConfig | None = None,
    cancellation: CancellationToken | None = None,
    on_stage: StageCallback | None = None,
    today: date | None = None,
) -> PipelineResult:
    pipeline = SchriftsatzPipeline(model=model, cases=cases, drafts=drafts, sources=sources, config=config)
    return await pipeline.run(request, cancellation=cancellation, on_stage=on_stage, today=today)
