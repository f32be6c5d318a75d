"""Section-wise Schriftsatz assembly with retrieval-augmented generation.

Rubrum, Kosten, Formales and Anlagen are built deterministically from slot
values. Antraege, Sachverhalt, rechtliche Wuerdigung, Beweisangebote and
Forderung are generated through structured-output LLM calls, each grounded in
the legal sources its section configures. Every retrieved chunk that made it
into a prompt is recorded as a `RetrievalBeleg`.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel

from helena_agent.agent.cancellation import CancellationToken
from helena_agent.config import PipelineConfig
from helena_agent.retrieval.sources import LegalSourceIndex
from helena_agent.retrieval.types import LegalChunk, Quelle
from helena_agent.schriftsatz.dates import format_date
from helena_agent.schriftsatz.placeholders import is_placeholder
from helena_agent.schriftsatz.registry import KlageartDefinition, SectionConfig
from helena_agent.schriftsatz.schemas import (
    Anlage,
    Beweisangebot,
    BeweisangeboteOutput,
    Formales,
    IntentResult,
    Kosten,
    Party,
    RetrievalBeleg,
    Rubrum,
    Schriftsatz,
    SchriftsatzMetadata,
    SectionText,
    SlotValues,
)
from helena_agent.types import TokenUsage

logger = logging.getLogger(__name__)

NO_SOURCES_TEXT = "Keine relevanten Quellen gefunden."
AUSZUG_CHARS = 200

SECTION_PROMPTS: dict[str, str] = {
    "rubrum": (
        "Erstelle das Rubrum eines Schriftsatzes mit Gericht, Parteien, Aktenzeichen und "
        "Streitgegenstand."
    ),
    "antraege": (
        "Formuliere die Antraege des Schriftsatzes. Jeder Antrag muss bestimmt und "
        "vollstreckungsfaehig sein (SS 253 Abs. 2 Nr. 2 ZPO). Gib jeden Antrag in einer eigenen "
        "Zeile aus, nummeriert mit 1., 2., 3. Verwende nur Informationen aus den bekannten "
        "Angaben; fehlende Angaben bleiben als Platzhalter im Format {{SCHLUESSEL}} stehen."
    ),
    "sachverhalt": (
        "Schildere den Sachverhalt sachlich und chronologisch aus Sicht des Mandanten. "
        "Erfinde keine Tatsachen. Wo Angaben fehlen, setze {{ERGAENZUNG_SACHVERHALT}} ein, "
        "damit der Anwalt den Sachverhalt ergaenzen kann."
    ),
    "rechtliche_wuerdigung": (
        "Verfasse die rechtliche Wuerdigung. Stuetze dich ausschliesslich auf die angegebenen "
        "Quellen und zitiere Normen und Entscheidungen mit ihrer Fundstelle. Wenn die Quellen "
        "nicht ausreichen, setze {{ERGAENZUNG}} ein statt Rechtsprechung zu erfinden."
    ),
    "beweisangebote": (
        "Ordne den wesentlichen Tatsachenbehauptungen Beweismittel zu (Urkunden, Zeugen, "
        "Parteivernehmung, Sachverstaendigengutachten). Nummeriere Anlagen der Klaegerseite mit "
        "K1, K2, ... und der Beklagtenseite mit B1, B2, ..."
    ),
    "kosten": "Fasse Streitwert und voraussichtliche Gerichtskosten zusammen.",
    "forderung": (
        "Formuliere die Aufforderung an den Empfaenger mit konkreter Fristsetzung und den "
        "Konsequenzen bei Fristversaeumnis."
    ),
}

_ANTRAG_NUMBER = re.compile(r"^\d+\.\s*")
_QUERY_TOKEN = re.compile(r"\{\{([A-Z_]+)\}\}")

# Simple court fee steps under Anlage 2 GKG: (upper bound, step width, fee per step).
_GKG_BASE_FEE = 38.0
_GKG_STEPS: tuple[tuple[float, float, float], ...] = (
    (2_000, 500, 20),
    (10_000, 1_000, 21),
    (25_000, 3_000, 29),
    (50_000, 5_000, 38),
    (200_000, 15_000, 132),
    (500_000, 30_000, 198),
    (float("inf"), 50_000, 198),
)


@dataclass(slots=True)
class RetrievedContext:
    text: str
    belege: list[RetrievalBeleg] = field(default_factory=list)


@dataclass(slots=True)
class AssemblyResult:
    schriftsatz: Schriftsatz
    token_usage: TokenUsage = field(default_factory=TokenUsage)


class SchriftsatzAssembler:
    """Builds a `Schriftsatz` from intent, definition and slot values."""

    def __init__(
        self,
        model: BaseChatModel,
        sources: LegalSourceIndex | None = None,
        *,
        config: PipelineConfig | None = None,
    ) -> None:
        self.model = model
        self.sources = sources
        self.config = config or PipelineConfig()

    async def assemble(
        self,
        intent: IntentResult,
        definition: KlageartDefinition,
        slots: SlotValues,
        *,
        cancellation: CancellationToken | None = None,
        today: date | None = None,
    ) -> AssemblyResult:
        token = cancellation or CancellationToken()
        usage = TokenUsage()
        belege: list[RetrievalBeleg] = []

        rubrum = build_rubrum(intent, definition, slots)
        kosten = build_kosten(definition, slots)
        formales = build_formales(slots, today=today)

        generated: dict[str, Any] = {}
        for section in definition.sections:
            if not section.generate_via_llm or section.id not in SECTION_PROMPTS:
                continue
            token.raise_if_cancelled()
            context = await self.retrieve_context(section, intent, slots, cancellation=token)
            belege.extend(context.belege)
            generated[section.id] = await self._generate(
                section, intent, definition, slots, context, usage, token
            )
            logger.debug("Generated section %s for %s", section.id, definition.id)

        beweisangebote: list[Beweisangebot] = generated.get("beweisangebote", [])
        schriftsatz = Schriftsatz(
            metadata=SchriftsatzMetadata(
                klageart=definition.id,
                rechtsgebiet=intent.rechtsgebiet,
                stadium=intent.stadium,
                rolle=intent.rolle,
                gerichtszweig=intent.gerichtszweig,
                gericht=rubrum.gericht,
            ),
            rubrum=rubrum,
            antraege=generated.get("antraege", []),
            sachverhalt=generated.get("sachverhalt", ""),
            rechtliche_wuerdigung=generated.get("rechtliche_wuerdigung", ""),
            beweisangebote=beweisangebote,
            anlagen=build_anlagen(beweisangebote, intent),
            kosten=kosten,
            formales=formales,
            forderung=generated.get("forderung"),
            retrieval_belege=belege,
        )
        return AssemblyResult(schriftsatz=schriftsatz, token_usage=usage)

    async def retrieve_context(
        self,
        section: SectionConfig,
        intent: IntentResult,
        slots: SlotValues,
        *,
        cancellation: CancellationToken | None = None,
    ) -> RetrievedContext:
        """Query every configured source in parallel and cap the merged context."""
        if self.sources is None or not section.rag_sources or not section.rag_query:
            return RetrievedContext(text=NO_SOURCES_TEXT)

        token = cancellation or CancellationToken()
        query = build_query(section.rag_query, slots, intent)
        embedding = await token.guard(self.sources.embed_query(query))
        batches = await asyncio.gather(
            *(
                token.guard(self.sources.search(quelle, embedding, self._limit(quelle)))
                for quelle in section.rag_sources
            )
        )
        chunks = sorted(
            (chunk for batch in batches for chunk in batch),
            key=lambda chunk: chunk.score,
            reverse=True,
        )
        return cap_context(chunks, self.config.max_rag_context_chars)

    def _limit(self, quelle: Quelle) -> int:
        if quelle == "gesetz":
            return self.config.gesetz_limit
        if quelle == "urteil":
            return self.config.urteil_limit
        return self.config.muster_limit

    async def _generate(
        self,
        section: SectionConfig,
        intent: IntentResult,
        definition: KlageartDefinition,
        slots: SlotValues,
        context: RetrievedContext,
        usage: TokenUsage,
        token: CancellationToken,
    ) -> Any:
        schema: type[BaseModel] = BeweisangeboteOutput if section.id == "beweisangebote" else SectionText
        messages = [
            SystemMessage(
                content=(
                    f"{SECTION_PROMPTS[section.id]}\n\n"
                    f"Du schreibst fuer eine {definition.label} ({intent.rechtsgebiet})."
                )
            ),
            HumanMessage(
                content=(
                    f"Relevante Quellen:\n{context.text}\n\n"
                    f"Bekannte Informationen:\n{_known_facts(slots)}"
                )
            ),
        ]
        structured = self.model.with_structured_output(schema, include_raw=True)
        output = await token.guard(structured.ainvoke(messages))
        raw = output.get("raw")
        metadata = getattr(raw, "usage_metadata", None) or {}
        usage.add(int(metadata.get("input_tokens", 0)), int(metadata.get("output_tokens", 0)))

        parsed = output.get("parsed")
        if parsed is None:
            raise ValueError(
                f"Abschnitt {section.label} konnte nicht erzeugt werden: {output.get('parsing_error')}"
            )
        if isinstance(parsed, BeweisangeboteOutput):
            return parsed.beweisangebote
        text = parsed.text.strip()
        if section.id == "antraege":
            return split_antraege(text)
        return text


def build_query(template: str, slots: SlotValues, intent: IntentResult) -> str:
    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        value = slots.get(key)
        if value is not None and not is_placeholder(value):
            return str(value)
        intent_value = getattr(intent, key.lower(), None)
        if intent_value:
            return str(intent_value)
        return key

    return _QUERY_TOKEN.sub(_replace, template)


def cap_context(chunks: list[LegalChunk], max_chars: int) -> RetrievedContext:
    """Concatenate score-ordered chunks up to `max_chars`.

    The chunk that crosses the limit is truncated when more than 100
    characters of room remain, otherwise dropped.
    """
    parts: list[str] = []
    belege: list[RetrievalBeleg] = []
    total = 0
    for chunk in chunks:
        block = f"[{chunk.referenz}]\n{chunk.content}"
        if total + len(block) > max_chars:
            remaining = max_chars - total
            if remaining > 100:
                parts.append(block[:remaining] + "...")
                belege.append(_beleg(chunk))
            break
        parts.append(block)
        belege.append(_beleg(chunk))
        total += len(block)
    if not parts:
        return RetrievedContext(text=NO_SOURCES_TEXT)
    return RetrievedContext(text="\n\n".join(parts), belege=belege)


def _beleg(chunk: LegalChunk) -> RetrievalBeleg:
    return RetrievalBeleg(
        quelle=chunk.quelle,
        chunk_id=chunk.id,
        referenz=chunk.referenz,
        score=chunk.score,
        auszug=chunk.content[:AUSZUG_CHARS],
    )


def split_antraege(text: str) -> list[str]:
    return [
        _ANTRAG_NUMBER.sub("", line.strip())
        for line in text.splitlines()
        if line.strip()
    ]


def _known_facts(slots: SlotValues) -> str:
    lines = [f"{key}: {value}" for key, value in slots.items() if value is not None and value != ""]
    return "\n".join(lines) if lines else "Keine"


def _first_slot(slots: SlotValues, *keys: str) -> str | None:
    for key in keys:
        value = slots.get(key)
        if value is not None and value != "":
            return str(value)
    return None


def build_rubrum(intent: IntentResult, definition: KlageartDefinition, slots: SlotValues) -> Rubrum:
    klaeger_name = _first_slot(
        slots, "KLAEGER_NAME", "ANTRAGSTELLER_NAME", "BERUFUNGSKLAEGER", "ABSENDER", "PARTEI_A_NAME"
    )
    klaeger_adresse = _first_slot(
        slots,
        "KLAEGER_ADRESSE",
        "ANTRAGSTELLER_ADRESSE",
        "BERUFUNGSKLAEGER_ADRESSE",
        "ABSENDER_ADRESSE",
        "PARTEI_A_ADRESSE",
    )
    beklagter_name = _first_slot(
        slots, "BEKLAGTER_NAME", "ANTRAGSGEGNER_NAME", "BERUFUNGSBEKLAGTER", "EMPFAENGER", "PARTEI_B_NAME"
    )
    beklagter_adresse = _first_slot(
        slots,
        "BEKLAGTER_ADRESSE",
        "ANTRAGSGEGNER_ADRESSE",
        "BERUFUNGSBEKLAGTER_ADRESSE",
        "EMPFAENGER_ADRESSE",
        "PARTEI_B_ADRESSE",
    )
    eilverfahren = intent.stadium == "EV"
    return Rubrum(
        gericht=_first_slot(slots, "GERICHT") or intent.gericht or "{{GERICHT}}",
        aktenzeichen=_first_slot(slots, "AKTENZEICHEN", "AZ"),
        klaeger=Party(
            name=klaeger_name or "{{KLAEGER_NAME}}",
            anschrift=klaeger_adresse or "{{KLAEGER_ADRESSE}}",
            rolle="ANTRAGSTELLER" if eilverfahren else "KLAEGER",
        ),
        beklagter=Party(
            name=beklagter_name or "{{BEKLAGTER_NAME}}",
            anschrift=beklagter_adresse or "{{BEKLAGTER_ADRESSE}}",
            rolle="ANTRAGSGEGNER" if eilverfahren else "BEKLAGTER",
        ),
        wegen=_first_slot(slots, "BETREFF") or definition.label or "{{BETREFF}}",
        streitwert=_rubrum_streitwert(definition, slots),
    )


def _rubrum_streitwert(definition: KlageartDefinition, slots: SlotValues) -> float | None:
    explicit = to_number(slots.get("STREITWERT"))
    if explicit is None:
        explicit = to_number(slots.get("STREITWERT_EUR"))
    if explicit is not None:
        return explicit
    if definition.id == "kschg_klage":
        gehalt = to_number(slots.get("BRUTTOGEHALT"))
        return gehalt * 3 if gehalt is not None else None
    if definition.id == "lohnklage":
        return to_number(slots.get("AUSSTEHENDE_SUMME"))
    return None


def calculate_streitwert(definition: KlageartDefinition, slots: SlotValues) -> float | None:
    regel = definition.streitwert_regel
    if regel.typ == "VIERTELJAHRESGEHALT":
        gehalt = to_number(slots.get("BRUTTOGEHALT"))
        if gehalt is None:
            return None
        return gehalt * (regel.faktor or 3)
    if regel.typ == "FESTBETRAG":
        return regel.festbetrag
    if regel.typ == "SUMME":
        summe = to_number(slots.get("AUSSTEHENDE_SUMME"))
        return summe if summe is not None else to_number(slots.get("STREITWERT"))
    streitwert = to_number(slots.get("STREITWERT"))
    return streitwert if streitwert is not None else to_number(slots.get("STREITWERT_EUR"))


def gkg_einfache_gebuehr(streitwert: float) -> float:
    """Simple court fee (1.0) for a given Streitwert."""
    fee = _GKG_BASE_FEE
    lower = 500.0
    for upper, width, step_fee in _GKG_STEPS:
        if streitwert <= lower:
            break
        span = min(streitwert, upper) - lower
        steps = -(-span // width)
        fee += steps * step_fee
        lower = upper
    return fee


def build_kosten(definition: KlageartDefinition, slots: SlotValues) -> Kosten:
    streitwert = calculate_streitwert(definition, slots)
    hinweise: list[str] = []
    gerichtskosten: float | None = None
    if streitwert is not None and streitwert > 0:
        gerichtskosten = gkg_einfache_gebuehr(streitwert) * 3
        hinweise.append(f"Streitwert: {format_euro(streitwert)} EUR")
        hinweise.append(f"Gerichtskosten (3-fache Gebuehr): {format_euro(gerichtskosten)} EUR")
    else:
        hinweise.append("Streitwert noch nicht bestimmt")
    if definition.rechtsgebiet == "ARBEITSRECHT":
        hinweise.append("Kein Gebuehrenvorschuss beim Arbeitsgericht erforderlich")
        hinweise.append("Kosten erster Instanz: Jede Partei traegt eigene Anwaltskosten (SS 12a ArbGG)")
    return Kosten(streitwert=streitwert, gerichtskosten=gerichtskosten, hinweise=hinweise)


def build_formales(slots: SlotValues, *, today: date | None = None) -> Formales:
    return Formales(
        datum=_first_slot(slots, "DATUM") or format_date(today or date.today()),
        unterschrift=_first_slot(slots, "RA_NAME") or "{{RA_NAME}}",
        hinweise=["Abschriften fuer Gegenseite beifuegen", "Ggf. beglaubigte Vollmacht beilegen"],
    )


def build_anlagen(beweisangebote: list[Beweisangebot], intent: IntentResult) -> list[Anlage]:
    prefix = "K" if intent.rolle == "KLAEGER" else "B"
    return [
        Anlage(nummer=angebot.anlagen_nummer or f"{prefix}{index + 1}", bezeichnung=angebot.beweismittel)
        for index, angebot in enumerate(beweisangebote)
    ]


def to_number(value: object) -> float | None:
    """Parse slot amounts such as `4500`, `4.500,00 EUR` or `3500.50`."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str) or is_placeholder(value):
        return None
    text = value.replace("EUR", "").replace("€", "").replace(" ", "").strip()
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    elif re.fullmatch(r"\d{1,3}(\.\d{3})+", text):
        text = text.replace(".", "")
    try:
        return float(text)
    except ValueError:
        return None


def format_euro(amount: float) -> str:
    """German number format with two decimals, e.g. `13.500,00`."""
    return f"{amount:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
