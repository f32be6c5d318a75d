"""Interpretation of user replies to a pending Rueckfrage."""

from __future__ import annotations

import logging
import re
from typing import Literal

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from helena_agent.agent.cancellation import CancellationToken
from helena_agent.schriftsatz.assembler import to_number
from helena_agent.schriftsatz.dates import format_date, parse_date_string
from helena_agent.schriftsatz.registry import SlotDefinition
from helena_agent.schriftsatz.schemas import SlotValue, SlotValues

logger = logging.getLogger(__name__)

AnswerTyp = Literal["answer", "correction", "cancel", "unrelated"]

CANCEL_KEYWORDS = ("abbrechen", "stop", "vergiss es", "cancel", "nein danke")
UNKNOWN_PHRASES = ("weiss ich noch nicht", "weiß ich noch nicht", "weiss ich nicht", "weiß ich nicht")

_CLASSIFY_PROMPT = """Du bist Teil eines Assistenten, der einen Schriftsatz erstellt und dem Nutzer eine Rueckfrage gestellt hat.
Ordne die Antwort des Nutzers genau einer Kategorie zu:
- answer: beantwortet die Rueckfrage
- correction: korrigiert eine frueher gemachte Angabe (gib corrected_slot_key an)
- cancel: moechte die Schriftsatz-Erstellung abbrechen
- unrelated: hat mit der Rueckfrage nichts zu tun"""

_EXTRACT_PROMPT = """Extrahiere aus der Antwort des Nutzers die Werte fuer die angegebenen Felder.
Gib Datumsangaben im Format TT.MM.JJJJ und Betraege als Zahl ohne Waehrung an.
Lass Felder weg, zu denen die Antwort nichts enthaelt."""


class AnswerClassification(BaseModel):
    typ: AnswerTyp
    corrected_slot_key: str | None = Field(default=None, description="Feld, das korrigiert wird")


class ExtractedSlot(BaseModel):
    key: str
    value: str


class ExtractedSlots(BaseModel):
    values: list[ExtractedSlot] = Field(default_factory=list)


def is_cancel_message(message: str) -> bool:
    text = re.sub(r"[^\w\s]", "", message).strip().lower()
    return any(text == keyword or text.startswith(f"{keyword} ") for keyword in CANCEL_KEYWORDS)


def is_unknown_answer(message: str) -> bool:
    text = message.strip().lower()
    return any(phrase in text for phrase in UNKNOWN_PHRASES)


async def classify_answer_intent(
    message: str,
    rueckfrage: str,
    model: BaseChatModel,
    *,
    cancellation: CancellationToken | None = None,
) -> AnswerClassification:
    if is_cancel_message(message):
        return AnswerClassification(typ="cancel")
    if is_unknown_answer(message):
        return AnswerClassification(typ="answer")

    token = cancellation or CancellationToken()
    structured = model.with_structured_output(AnswerClassification)
    return await token.guard(
        structured.ainvoke(
            [
                SystemMessage(content=_CLASSIFY_PROMPT),
                HumanMessage(content=f"Rueckfrage:\n{rueckfrage}\n\nAntwort des Nutzers:\n{message}"),
            ]
        )
    )


async def extract_slot_values(
    message: str,
    expected: list[SlotDefinition],
    model: BaseChatModel,
    *,
    cancellation: CancellationToken | None = None,
) -> SlotValues:
    """Map a reply onto the expected slots.

    "weiss ich noch nicht" turns the first expected slot into an explicit
    `{{KEY}}` placeholder so that drafting can continue.
    """
    if not expected:
        return {}
    if is_unknown_answer(message):
        key = expected[0].key
        return {key: "{{" + key + "}}"}

    token = cancellation or CancellationToken()
    fields = "\n".join(f"- {slot.key}: {slot.label} ({slot.type})" for slot in expected)
    structured = model.with_structured_output(ExtractedSlots)
    extracted: ExtractedSlots = await token.guard(
        structured.ainvoke(
            [
                SystemMessage(content=_EXTRACT_PROMPT),
                HumanMessage(content=f"Felder:\n{fields}\n\nAntwort des Nutzers:\n{message}"),
            ]
        )
    )

    by_key = {slot.key: slot for slot in expected}
    values: SlotValues = {}
    for item in extracted.values:
        slot = by_key.get(item.key)
        if slot is None:
            logger.debug("Ignoring unexpected slot %s in reply", item.key)
            continue
        normalized = normalize_slot_value(slot, item.value)
        if normalized is not None:
            values[slot.key] = normalized
    return values


def normalize_slot_value(slot: SlotDefinition, raw: str) -> SlotValue:
    text = raw.strip()
    if not text:
        return None
    if is_unknown_answer(text):
        return "{{" + slot.key + "}}"
    if slot.type == "date":
        parsed = parse_date_string(text)
        return format_date(parsed) if parsed else text
    if slot.type in ("currency", "number"):
        number = to_number(text)
        return number if number is not None else text
    if slot.type == "boolean":
        return text.lower() in ("ja", "yes", "true", "1")
    return text
