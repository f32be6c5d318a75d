"""Filing intent recognition enriched with case context."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from helena_agent.agent.cancellation import CancellationToken
from helena_agent.cases import Akte, format_party_name
from helena_agent.schriftsatz.registry import list_klagearten
from helena_agent.schriftsatz.schemas import IntentResult
from helena_agent.types import TokenUsage

logger = logging.getLogger(__name__)

MAX_CONTEXT_DOKUMENTE = 20

INTENT_SYSTEM_PROMPT = """Du bist ein juristischer Klassifikator fuer eine deutsche Anwaltskanzlei.
Analysiere die Anfrage des Anwalts und bestimme, welcher Schriftsatz erstellt werden soll.

Bestimme:
- rechtsgebiet: das Rechtsgebiet (ARBEITSRECHT, FAMILIENRECHT, VERKEHRSRECHT, MIETRECHT, STRAFRECHT, ERBRECHT, SOZIALRECHT, INKASSO, HANDELSRECHT, VERWALTUNGSRECHT, SONSTIGES)
- klageart: eine der folgenden IDs: {klagearten}
- stadium: ERSTINSTANZ, BERUFUNG, REVISION, BESCHWERDE, EV (einstweilige Verfuegung) oder AUSSERGERICHTLICH
- rolle: KLAEGER, wenn der Mandant die Klage erhebt, sonst BEKLAGTER
- gerichtszweig: ARBG, LG, AG, OLG, LAG, BGH, BAG, VG, SG oder FG
- gericht: das konkrete Gericht, falls aus Anfrage oder Akte ableitbar
- confidence: deine Sicherheit zwischen 0 und 1
- begruendung: kurze Begruendung auf Deutsch

Bei Kuendigungen durch den Arbeitgeber ist die Klageart kschg_klage, bei ausstehendem Lohn lohnklage.
Wenn keine passende Klageart existiert, verwende generic und eine niedrigere confidence."""


@dataclass(slots=True)
class AkteContext:
    akte_id: str
    sachgebiet: str | None
    kurzrubrum: str | None
    beteiligte: list[tuple[str, str]] = field(default_factory=list)
    gegenstandswert: float | None = None
    dokumente: list[tuple[str, list[str]]] = field(default_factory=list)

    def as_prompt(self) -> str:
        beteiligte = ", ".join(f"{rolle}: {name}" for rolle, name in self.beteiligte) or "keine"
        wert = f"{self.gegenstandswert} EUR" if self.gegenstandswert is not None else "unbekannt"
        dokumente = "; ".join(
            f"{name} [{', '.join(tags)}]" if tags else name for name, tags in self.dokumente
        ) or "keine"
        return (
            "\n\nAkte-Kontext:\n"
            f"- Sachgebiet: {self.sachgebiet or 'unbekannt'}\n"
            f"- Kurzrubrum: {self.kurzrubrum or 'unbekannt'}\n"
            f"- Beteiligte: {beteiligte}\n"
            f"- Gegenstandswert: {wert}\n"
            f"- Dokumente: {dokumente}"
        )


@dataclass(slots=True)
class IntentRecognition:
    intent: IntentResult
    token_usage: TokenUsage = field(default_factory=TokenUsage)


def build_akte_context(akte: Akte) -> AkteContext:
    return AkteContext(
        akte_id=akte.id,
        sachgebiet=akte.sachgebiet,
        kurzrubrum=akte.kurzrubrum,
        beteiligte=[(entry.rolle, format_party_name(entry.kontakt)) for entry in akte.beteiligte],
        gegenstandswert=akte.gegenstandswert,
        dokumente=[(dokument.name, list(dokument.tags)) for dokument in akte.dokumente[:MAX_CONTEXT_DOKUMENTE]],
    )


async def recognize_intent(
    message: str,
    model: BaseChatModel,
    *,
    akte_context: AkteContext | None = None,
    cancellation: CancellationToken | None = None,
) -> IntentRecognition:
    token = cancellation or CancellationToken()
    klagearten = ", ".join(definition.id for definition in list_klagearten())
    prompt = INTENT_SYSTEM_PROMPT.format(klagearten=klagearten)
    if akte_context is not None:
        prompt += akte_context.as_prompt()

    structured = model.with_structured_output(IntentResult, include_raw=True)
    output = await token.guard(
        structured.ainvoke([SystemMessage(content=prompt), HumanMessage(content=message)])
    )
    parsed = output.get("parsed")
    if parsed is None:
        raise ValueError(f"Intent konnte nicht erkannt werden: {output.get('parsing_error')}")

    metadata = getattr(output.get("raw"), "usage_metadata", None) or {}
    usage = TokenUsage(
        prompt=int(metadata.get("input_tokens", 0)),
        completion=int(metadata.get("output_tokens", 0)),
    )
    logger.info(
        "Recognized intent %s/%s (confidence %.2f)", parsed.rechtsgebiet, parsed.klageart, parsed.confidence
    )
    return IntentRecognition(intent=parsed, token_usage=usage)
