"""Slot prefill from the case file, merge of user answers and Rueckfragen."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from helena_agent.cases import Akte, format_address, format_party_name
from helena_agent.schriftsatz.dates import add_days, days_until, format_date, parse_date_string
from helena_agent.schriftsatz.placeholders import is_placeholder
from helena_agent.schriftsatz.registry import KlageartDefinition, SlotDefinition
from helena_agent.schriftsatz.schemas import IntentResult, SlotValues

logger = logging.getLogger(__name__)

KSCHG_FRIST_DAYS = 21

ESCAPE_HATCH = (
    "\n\n_Falls Sie diese Information gerade nicht zur Hand haben, koennen Sie "
    '"weiss ich noch nicht" antworten. Der Entwurf wird dann mit einem Platzhalter erstellt._'
)

_FORMAT_HINTS = {
    "date": " (Bitte im Format TT.MM.JJJJ angeben)",
    "currency": " (Betrag in EUR)",
    "number": " (Zahl)",
}

_QUESTIONS = {
    "KUENDIGUNGSDATUM": "Wann wurde die Kuendigung ausgesprochen?",
    "ZUGANG_DATUM": "Wann ist die Kuendigung zugegangen (wann wurde sie erhalten)?",
    "EINTRITTSDATUM": "Seit wann besteht das Arbeitsverhaeltnis?",
    "BRUTTOGEHALT": "Wie hoch ist das monatliche Bruttogehalt?",
    "BERUFSBEZEICHNUNG": "Welche Taetigkeit bzw. Berufsbezeichnung hat der Arbeitnehmer?",
    "KUENDIGUNGSART": "Handelt es sich um eine ordentliche oder ausserordentliche Kuendigung?",
    "ZEITRAUM_VON": "Ab wann ist der Lohn ausstehend?",
    "ZEITRAUM_BIS": "Bis wann ist der Lohn ausstehend?",
    "MONATSBETRAG": "Wie hoch ist der monatliche Bruttobetrag?",
    "ZAHLUNGSGRUND": "Auf welcher Grundlage besteht der Zahlungsanspruch (Arbeitsvertrag, Tarifvertrag)?",
    "VERFUEGUNGSANSPRUCH": "Welcher Anspruch soll durch die einstweilige Verfuegung gesichert werden?",
    "VERFUEGUNGSGRUND": "Warum ist die Sache eilbeduerftig?",
    "KLAGE_DATUM": "Von wann ist die Klageschrift, auf die erwidert werden soll?",
    "URTEIL_DATUM": "Von wann ist das angefochtene Urteil?",
    "URTEIL_AZ": "Welches Aktenzeichen hat das angefochtene Urteil?",
    "BERUFUNGSGRUENDE": "Was sind die wesentlichen Berufungsgruende?",
    "VERSTOSS": "Worin besteht der Verstoss, der abgemahnt werden soll?",
    "FRIST": "Bis wann soll die Gegenseite reagieren?",
    "BETREFF": "Worum geht es in dem Schriftsatz?",
}

# Slot keys filled by the client (mandant) and the opposing party (gegner).
_MANDANT_ALIASES = (
    ("KLAEGER_NAME", "KLAEGER_ADRESSE"),
    ("PARTEI_A_NAME", "PARTEI_A_ADRESSE"),
    ("ANTRAGSTELLER_NAME", "ANTRAGSTELLER_ADRESSE"),
    ("BERUFUNGSKLAEGER", "BERUFUNGSKLAEGER_ADRESSE"),
    ("ABSENDER", "ABSENDER_ADRESSE"),
)
_GEGNER_ALIASES = (
    ("BEKLAGTER_NAME", "BEKLAGTER_ADRESSE"),
    ("PARTEI_B_NAME", "PARTEI_B_ADRESSE"),
    ("ANTRAGSGEGNER_NAME", "ANTRAGSGEGNER_ADRESSE"),
    ("BERUFUNGSBEKLAGTER", "BERUFUNGSBEKLAGTER_ADRESSE"),
    ("EMPFAENGER", "EMPFAENGER_ADRESSE"),
)


@dataclass(slots=True)
class SlotFillResult:
    slots: SlotValues
    missing_required: list[SlotDefinition] = field(default_factory=list)
    has_placeholders: bool = False
    vollstaendig: bool = False
    rueckfrage: str | None = None


def prefill_slots_from_akte(akte: Akte | None, intent: IntentResult) -> SlotValues:
    """Derive slot values from the case file.

    The client (MANDANT) fills the claimant-side aliases when the intent
    classifies them as KLAEGER, and the defendant-side aliases otherwise. The
    opposing party (GEGNER) takes the other side.
    """
    slots: SlotValues = {}
    if akte is None:
        return slots

    mandant = akte.beteiligter("MANDANT")
    gegner = akte.beteiligter("GEGNER")
    if intent.rolle == "KLAEGER":
        mandant_keys, gegner_keys = _MANDANT_ALIASES, _GEGNER_ALIASES
    else:
        mandant_keys, gegner_keys = _GEGNER_ALIASES, _MANDANT_ALIASES

    for beteiligter, aliases in ((mandant, mandant_keys), (gegner, gegner_keys)):
        if beteiligter is None:
            continue
        name = format_party_name(beteiligter.kontakt)
        address = format_address(beteiligter.kontakt)
        for name_key, address_key in aliases:
            slots[name_key] = name
            if address:
                slots[address_key] = address

    gericht = akte.beteiligter("GERICHT")
    if gericht is not None:
        slots["GERICHT"] = format_party_name(gericht.kontakt)

    if akte.gegenstandswert is not None:
        slots["STREITWERT"] = float(akte.gegenstandswert)

    if akte.aktenzeichen:
        slots["AZ"] = akte.aktenzeichen
        slots["AKTENZEICHEN"] = akte.aktenzeichen

    return slots


def fill_slots(
    definition: KlageartDefinition,
    prefilled: SlotValues,
    user_values: SlotValues,
    *,
    today: date | None = None,
) -> SlotFillResult:
    """Merge defaults, prefill and user answers and check required slots.

    User answers win over prefill, prefill wins over registry defaults. Keys
    outside the definition are carried along so that earlier answers are
    never lost.
    """
    slots: SlotValues = {}
    for slot in definition.all_slots:
        if slot.default is not None:
            slots[slot.key] = slot.default
    for source in (prefilled, user_values):
        for key, value in source.items():
            if value is not None:
                slots[key] = value
    for slot in definition.all_slots:
        slots.setdefault(slot.key, None)

    missing = [slot for slot in definition.required_slots if slots.get(slot.key) is None]
    has_placeholders = any(is_placeholder(value) for value in slots.values())

    rueckfrage = generate_rueckfrage(missing[0], definition, slots) if missing else None

    if definition.id == "kschg_klage":
        zugang = slots.get("ZUGANG_DATUM")
        if isinstance(zugang, str) and not is_placeholder(zugang):
            warning = check_kschg_frist(zugang, today=today)
            if warning:
                rueckfrage = f"{warning}\n\n{rueckfrage}" if rueckfrage else warning

    return SlotFillResult(
        slots=slots,
        missing_required=missing,
        has_placeholders=has_placeholders,
        vollstaendig=not missing and not has_placeholders,
        rueckfrage=rueckfrage,
    )


def generate_rueckfrage(slot: SlotDefinition, definition: KlageartDefinition, slots: SlotValues) -> str:
    question = _QUESTIONS.get(
        slot.key,
        f"Fuer die {definition.label} benoetigen wir noch folgende Information: {slot.label}",
    )
    question += _FORMAT_HINTS.get(slot.type, "")

    known: list[str] = []
    klaeger = slots.get("KLAEGER_NAME")
    beklagter = slots.get("BEKLAGTER_NAME")
    if klaeger and not is_placeholder(klaeger):
        known.append(f"Klaeger: {klaeger}")
    if beklagter and not is_placeholder(beklagter):
        known.append(f"Beklagter: {beklagter}")
    if known:
        question += "\n\nBereits bekannt: " + ", ".join(known)

    return question + ESCAPE_HATCH


def check_kschg_frist(zugang_datum: str, *, today: date | None = None) -> str | None:
    """Deadline hint for the three-week period of SS 4 KSchG."""
    zugang = parse_date_string(zugang_datum)
    if zugang is None:
        logger.debug("Unparseable ZUGANG_DATUM %r", zugang_datum)
        return None
    deadline = add_days(zugang, KSCHG_FRIST_DAYS)
    remaining = days_until(deadline, today)
    if remaining < 0:
        return (
            f"ACHTUNG: Die 3-Wochen-Frist nach SS 4 KSchG ist am {format_date(deadline)} abgelaufen! "
            "Eine nachtraegliche Zulassung nach SS 5 KSchG sollte geprueft werden."
        )
    if remaining <= 3:
        return (
            f"DRINGEND: Die 3-Wochen-Frist nach SS 4 KSchG endet am {format_date(deadline)} "
            f"(noch {remaining} Tag(e))!"
        )
    if remaining <= 7:
        return (
            f"Hinweis: Die 3-Wochen-Frist nach SS 4 KSchG endet am {format_date(deadline)} "
            f"(noch {remaining} Tage)."
        )
    return None


def fill_remaining_with_placeholders(definition: KlageartDefinition, slots: SlotValues) -> SlotValues:
    """Mark every still-missing required slot as an explicit placeholder."""
    filled = dict(slots)
    for slot in definition.required_slots:
        if filled.get(slot.key) is None:
            filled[slot.key] = "{{" + slot.key + "}}"
    return filled
