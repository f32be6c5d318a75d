"""ERV compliance checks for an assembled Schriftsatz.

The validator is advisory. It never raises: any internal failure becomes a
single FORM/KRITISCH warning, and the result is always sorted KRITISCH,
WARNUNG, INFO.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from helena_agent.schriftsatz.dates import add_days, add_months, days_until, format_date, parse_date_string
from helena_agent.schriftsatz.placeholders import PLACEHOLDER_PATTERN, collect_placeholders, is_placeholder
from helena_agent.schriftsatz.registry import ErvPruefung, KlageartDefinition
from helena_agent.schriftsatz.schemas import ErvWarnung, Schriftsatz, SlotValues

logger = logging.getLogger(__name__)

_SEVERITY_ORDER = {"KRITISCH": 0, "WARNUNG": 1, "INFO": 2}

ARBG_KOSTEN_HINWEIS = "Kein Gebuehrenvorschuss beim Arbeitsgericht erforderlich"


def validate_erv(
    schriftsatz: Schriftsatz,
    definition: KlageartDefinition,
    slots: SlotValues,
    *,
    today: date | None = None,
) -> list[ErvWarnung]:
    warnungen: list[ErvWarnung] = []
    try:
        warnungen.extend(_check_inhalt(schriftsatz))
        warnungen.extend(_check_form(schriftsatz))
        warnungen.extend(_check_fristen(definition, slots, today or date.today()))
        warnungen.extend(_check_vollstaendigkeit(schriftsatz))
    except Exception as exc:
        logger.exception("ERV validation failed")
        warnungen.append(
            ErvWarnung(typ="FORM", schwere="KRITISCH", text=f"Validierungsfehler: {exc}")
        )
    return sort_warnungen(warnungen)


def sort_warnungen(warnungen: list[ErvWarnung]) -> list[ErvWarnung]:
    return sorted(warnungen, key=lambda warnung: _SEVERITY_ORDER[warnung.schwere])


def has_kritisch(warnungen: list[ErvWarnung]) -> bool:
    return any(warnung.schwere == "KRITISCH" for warnung in warnungen)


def _missing(value: str | None) -> bool:
    return not value or not value.strip() or PLACEHOLDER_PATTERN.fullmatch(value.strip()) is not None


def _check_inhalt(schriftsatz: Schriftsatz) -> list[ErvWarnung]:
    rubrum = schriftsatz.rubrum
    result: list[ErvWarnung] = []

    if _missing(rubrum.gericht):
        result.append(
            ErvWarnung(
                typ="INHALT",
                schwere="KRITISCH",
                text="Gericht fehlt im Rubrum (SS 253 Abs. 2 Nr. 1 ZPO)",
                feld="rubrum.gericht",
            )
        )

    for feld, party, genitiv in (
        ("rubrum.klaeger", rubrum.klaeger, "des Klaegers"),
        ("rubrum.beklagter", rubrum.beklagter, "des Beklagten"),
    ):
        if _missing(party.name):
            result.append(
                ErvWarnung(
                    typ="INHALT",
                    schwere="KRITISCH",
                    text=f"Name {genitiv} fehlt im Rubrum (SS 253 Abs. 2 Nr. 1 ZPO)",
                    feld=f"{feld}.name",
                )
            )
        if _missing(party.anschrift):
            result.append(
                ErvWarnung(
                    typ="INHALT",
                    schwere="WARNUNG",
                    text=f"Anschrift {genitiv} fehlt -- fuer Zustellungen erforderlich",
                    feld=f"{feld}.anschrift",
                )
            )

    if _missing(rubrum.aktenzeichen):
        result.append(
            ErvWarnung(
                typ="INHALT",
                schwere="INFO",
                text="Kein Aktenzeichen angegeben (bei Neueinreichung normal)",
                feld="rubrum.aktenzeichen",
            )
        )

    if not [antrag for antrag in schriftsatz.antraege if antrag.strip()]:
        result.append(
            ErvWarnung(
                typ="INHALT",
                schwere="KRITISCH",
                text="Keine Antraege formuliert (SS 253 Abs. 2 Nr. 2 ZPO erfordert bestimmten Antrag)",
                feld="antraege",
            )
        )

    if _missing(rubrum.wegen):
        result.append(
            ErvWarnung(
                typ="INHALT",
                schwere="WARNUNG",
                text="Wegen-Angabe fehlt im Rubrum",
                feld="rubrum.wegen",
            )
        )
    return result


def _check_form(schriftsatz: Schriftsatz) -> list[ErvWarnung]:
    formales = schriftsatz.formales
    result: list[ErvWarnung] = []
    if _missing(formales.datum):
        result.append(
            ErvWarnung(typ="FORM", schwere="WARNUNG", text="Datum fehlt im Schriftsatz", feld="formales.datum")
        )
    if _missing(formales.unterschrift):
        result.append(
            ErvWarnung(
                typ="FORM",
                schwere="WARNUNG",
                text="Unterschrift / Anwaltsbezeichnung fehlt",
                feld="formales.unterschrift",
            )
        )
    result.extend(
        [
            ErvWarnung(typ="FORM", schwere="INFO", text="Schriftsatz muss als PDF/A eingereicht werden (SS 2 ERVV)"),
            ErvWarnung(typ="FORM", schwere="INFO", text="Qualifizierte elektronische Signatur erforderlich (SS 130a ZPO)"),
            ErvWarnung(typ="FORM", schwere="INFO", text="beA Dateigroesse max. 60 MB"),
        ]
    )
    return result


def _check_fristen(definition: KlageartDefinition, slots: SlotValues, today: date) -> list[ErvWarnung]:
    result: list[ErvWarnung] = []
    for pruefung in definition.erv_pruefungen:
        warnung = _run_pruefung(pruefung, slots, today)
        if warnung is not None:
            result.append(warnung)
    if definition.rechtsgebiet == "ARBEITSRECHT" and not any(
        warnung.text == ARBG_KOSTEN_HINWEIS for warnung in result
    ):
        result.append(ErvWarnung(typ="FRIST", schwere="INFO", text=ARBG_KOSTEN_HINWEIS))
    return result


def _slot_date(pruefung: ErvPruefung, slots: SlotValues) -> tuple[str, date | None]:
    key = pruefung.params.get("fromSlot") or pruefung.params.get("slot") or ""
    value: Any = slots.get(key)
    if value is None or is_placeholder(value):
        return key, None
    return key, parse_date_string(value)


def _run_pruefung(pruefung: ErvPruefung, slots: SlotValues, today: date) -> ErvWarnung | None:
    check = pruefung.check

    if check == "3_WOCHEN_FRIST":
        key, zugang = _slot_date(pruefung, slots)
        if zugang is None:
            return None
        deadline = add_days(zugang, 21)
        remaining = days_until(deadline, today)
        if remaining < 0:
            return ErvWarnung(
                typ="FRIST",
                schwere="KRITISCH",
                text=(
                    f"3-Wochen-Frist nach SS 4 KSchG ist am {format_date(deadline)} abgelaufen! "
                    "Nachtraegliche Zulassung nach SS 5 KSchG pruefen."
                ),
                feld=key,
            )
        if remaining < 7:
            return ErvWarnung(
                typ="FRIST",
                schwere="WARNUNG",
                text=(
                    f"3-Wochen-Frist nach SS 4 KSchG endet am {format_date(deadline)} "
                    f"(noch {remaining} Tag(e)). Eilbeduerftigkeit beachten!"
                ),
                feld=key,
            )
        return None

    if check == "SCHLICHTUNGSKLAUSEL":
        return ErvWarnung(
            typ="FRIST",
            schwere="INFO",
            text="Pruefen, ob ein obligatorisches Schlichtungsverfahren vorgeschaltet ist (SS 15a EGZPO)",
        )

    if check == "BETRIEBSRAT_ANHOERUNG":
        key = pruefung.params.get("slot", "BETRIEBSRAT_ANHOERUNG")
        value = slots.get(key)
        if value is None or value == "" or is_placeholder(value):
            return ErvWarnung(
                typ="INHALT",
                schwere="WARNUNG",
                text=(
                    "Betriebsrat-Anhoerung (SS 102 BetrVG) nicht angegeben -- wenn Betriebsrat "
                    "vorhanden, ist fehlende Anhoerung Unwirksamkeitsgrund"
                ),
                feld=key,
            )
        return None

    if check == "GEBUEHRENVORSCHUSS":
        return ErvWarnung(
            typ="FRIST",
            schwere="INFO",
            text="Gerichtskostenvorschuss einzahlen (SS 12 GKG) -- Zustellung erfolgt erst nach Zahlung",
        )

    if check == "FAELLIGKEIT_PRUEFUNG":
        key, start = _slot_date(pruefung, slots)
        if start is not None and start > today:
            return ErvWarnung(
                typ="FRIST",
                schwere="WARNUNG",
                text=f"Lohnanspruch ab {format_date(start)} ist noch nicht faellig -- Klage ggf. verfrueht",
                feld=key,
            )
        return None

    if check == "DRINGLICHKEIT":
        return ErvWarnung(
            typ="FRIST",
            schwere="INFO",
            text=(
                "Dringlichkeitsvermutung bei einstweiliger Verfuegung pruefen -- "
                "Verfuegungsgrund muss glaubhaft gemacht werden"
            ),
        )

    if check == "ERWIDERUNGSFRIST":
        key, deadline = _slot_date(pruefung, slots)
        if deadline is None:
            return None
        remaining = days_until(deadline, today)
        if remaining < 0:
            return ErvWarnung(
                typ="FRIST",
                schwere="KRITISCH",
                text=f"Erwiderungsfrist am {format_date(deadline)} abgelaufen! Fristverlaengerung beantragen.",
                feld=key,
            )
        if remaining < 7:
            return ErvWarnung(
                typ="FRIST",
                schwere="WARNUNG",
                text=f"Erwiderungsfrist endet am {format_date(deadline)} (noch {remaining} Tag(e)).",
                feld=key,
            )
        return None

    if check == "BERUFUNGSFRIST":
        key, zustellung = _slot_date(pruefung, slots)
        if zustellung is None:
            return None
        deadline = add_months(zustellung, 1)
        remaining = days_until(deadline, today)
        if remaining < 0:
            return ErvWarnung(
                typ="FRIST",
                schwere="KRITISCH",
                text=f"Berufungsfrist (1 Monat, SS 517 ZPO) am {format_date(deadline)} abgelaufen!",
                feld=key,
            )
        if remaining < 7:
            return ErvWarnung(
                typ="FRIST",
                schwere="WARNUNG",
                text=f"Berufungsfrist (SS 517 ZPO) endet am {format_date(deadline)} (noch {remaining} Tag(e)).",
                feld=key,
            )
        return None

    if check == "BERUFUNGSBEGRUENDUNGSFRIST":
        key, zustellung = _slot_date(pruefung, slots)
        if zustellung is None:
            return None
        deadline = add_months(zustellung, 2)
        remaining = days_until(deadline, today)
        if remaining < 0:
            return ErvWarnung(
                typ="FRIST",
                schwere="KRITISCH",
                text=f"Berufungsbegruendungsfrist (2 Monate, SS 520 ZPO) am {format_date(deadline)} abgelaufen!",
                feld=key,
            )
        if remaining < 14:
            return ErvWarnung(
                typ="FRIST",
                schwere="WARNUNG",
                text=(
                    f"Berufungsbegruendungsfrist (SS 520 ZPO) endet am {format_date(deadline)} "
                    f"(noch {remaining} Tag(e))."
                ),
                feld=key,
            )
        return None

    logger.debug("Unknown ERV check %s", check)
    return None


def _check_vollstaendigkeit(schriftsatz: Schriftsatz) -> list[ErvWarnung]:
    tokens = collect_placeholders(schriftsatz)
    if not tokens:
        return []
    return [
        ErvWarnung(
            typ="INHALT",
            schwere="WARNUNG",
            text=f"{len(tokens)} unaufgeloeste Platzhalter: {', '.join(tokens)}",
            feld="platzhalter",
        )
    ]
