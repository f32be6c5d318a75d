"""`{{KEY}}` placeholder detection and substitution over a Schriftsatz."""

from __future__ import annotations

import re

from helena_agent.schriftsatz.schemas import (
    Anlage,
    Beweisangebot,
    Formales,
    Kosten,
    Party,
    Rubrum,
    Schriftsatz,
    SlotValues,
)

PLACEHOLDER_PATTERN = re.compile(r"\{\{([A-Z_]+)\}\}")

PLATZHALTER_MAP: dict[str, str] = {
    # Parteien
    "KLAEGER_NAME": "mandant.name",
    "KLAEGER_ADRESSE": "mandant.adresse",
    "BEKLAGTER_NAME": "gegner.name",
    "BEKLAGTER_ADRESSE": "gegner.adresse",
    "ANTRAGSTELLER_NAME": "mandant.name",
    "ANTRAGSTELLER_ADRESSE": "mandant.adresse",
    "ANTRAGSGEGNER_NAME": "gegner.name",
    "ANTRAGSGEGNER_ADRESSE": "gegner.adresse",
    "BERUFUNGSKLAEGER": "mandant.name",
    "BERUFUNGSKLAEGER_ADRESSE": "mandant.adresse",
    "BERUFUNGSBEKLAGTER": "gegner.name",
    "BERUFUNGSBEKLAGTER_ADRESSE": "gegner.adresse",
    "PARTEI_A_NAME": "mandant.name",
    "PARTEI_A_ADRESSE": "mandant.adresse",
    "PARTEI_B_NAME": "gegner.name",
    "PARTEI_B_ADRESSE": "gegner.adresse",
    "ABSENDER": "mandant.name",
    "ABSENDER_ADRESSE": "mandant.adresse",
    "EMPFAENGER": "gegner.name",
    "EMPFAENGER_ADRESSE": "gegner.adresse",
    # Gericht und Akte
    "GERICHT": "gericht.name",
    "AKTENZEICHEN": "akte.aktenzeichen",
    "AZ": "akte.aktenzeichen",
    "STREITWERT": "akte.gegenstandswert",
    "STREITWERT_EUR": "akte.gegenstandswert",
    # Kanzlei
    "RA_NAME": "anwalt.name",
    "RA_KANZLEI": "kanzlei.name",
    "RA_ADRESSE": "kanzlei.adresse",
    "DATUM": "datum.heute",
    # Klageart-spezifisch
    "KUENDIGUNGSDATUM": "akte.kuendigungsdatum",
    "ZUGANG_DATUM": "akte.zugang_datum",
    "EINTRITTSDATUM": "akte.eintrittsdatum",
    "BRUTTOGEHALT": "akte.bruttogehalt",
    "BERUFSBEZEICHNUNG": "akte.berufsbezeichnung",
    "KUENDIGUNGSART": "akte.kuendigungsart",
    "ZEITRAUM_VON": "akte.zeitraum_von",
    "ZEITRAUM_BIS": "akte.zeitraum_bis",
    "MONATSBETRAG": "akte.monatsbetrag",
    "AUSSTEHENDE_SUMME": "akte.ausstehende_summe",
    "URTEIL_DATUM": "akte.urteil_datum",
    "URTEIL_AZ": "akte.urteil_az",
    "KLAGE_DATUM": "akte.klage_datum",
    "FRIST": "akte.frist",
    # Ergaenzungen durch den Anwalt
    "ERGAENZUNG": "ergaenzung.allgemein",
    "ERGAENZUNG_SACHVERHALT": "ergaenzung.sachverhalt",
}

_REVERSE_MAP: dict[str, str] = {}
for _key, _dotted in PLATZHALTER_MAP.items():
    _REVERSE_MAP.setdefault(_dotted, _key)


def to_dotted_key(key: str) -> str:
    return PLATZHALTER_MAP.get(key, key.lower())


def to_upper_snake(dotted_key: str) -> str:
    mapped = _REVERSE_MAP.get(dotted_key)
    if mapped is not None:
        return mapped
    return dotted_key.replace(".", "_").upper()


def is_placeholder(value: object) -> bool:
    return isinstance(value, str) and value.startswith("{{") and value.endswith("}}")


def extract_placeholders(text: str | None) -> list[str]:
    """Distinct `{{KEY}}` tokens in order of first appearance."""
    if not text:
        return []
    seen: dict[str, None] = {}
    for match in PLACEHOLDER_PATTERN.finditer(text):
        seen.setdefault(match.group(0), None)
    return list(seen)


def resolve_text(text: str, slots: SlotValues) -> str:
    """Replace tokens that have a concrete slot value; others stay as-is."""

    def _replace(match: re.Match[str]) -> str:
        value = slots.get(match.group(1))
        if value is None or is_placeholder(value):
            return match.group(0)
        return _stringify(value)

    return PLACEHOLDER_PATTERN.sub(_replace, text)


def resolve_schriftsatz(schriftsatz: Schriftsatz, slots: SlotValues) -> Schriftsatz:
    """Return a copy with every string field resolved against `slots`.

    The walk visits the known string fields of the document tree explicitly.
    Unmatched tokens are left untouched so that validation still sees them.
    """
    resolved = schriftsatz.model_copy(deep=True)

    def sub(text: str) -> str:
        return resolve_text(text, slots)

    def sub_optional(text: str | None) -> str | None:
        return None if text is None else sub(text)

    _resolve_rubrum(resolved.rubrum, sub, sub_optional)
    resolved.antraege = [sub(antrag) for antrag in resolved.antraege]
    resolved.sachverhalt = sub(resolved.sachverhalt)
    resolved.rechtliche_wuerdigung = sub(resolved.rechtliche_wuerdigung)
    for angebot in resolved.beweisangebote:
        _resolve_beweisangebot(angebot, sub, sub_optional)
    for anlage in resolved.anlagen:
        _resolve_anlage(anlage, sub)
    _resolve_kosten(resolved.kosten, sub)
    _resolve_formales(resolved.formales, sub)
    resolved.forderung = sub_optional(resolved.forderung)
    resolved.unresolved_platzhalter = collect_placeholders(resolved)
    return resolved


def collect_placeholders(schriftsatz: Schriftsatz) -> list[str]:
    """Distinct unresolved tokens across all text fields of the document."""
    seen: dict[str, None] = {}
    for text in _iter_texts(schriftsatz):
        for token in extract_placeholders(text):
            seen.setdefault(token, None)
    return list(seen)


def _iter_texts(schriftsatz: Schriftsatz) -> list[str]:
    rubrum = schriftsatz.rubrum
    texts: list[str | None] = [
        rubrum.gericht,
        rubrum.aktenzeichen,
        rubrum.wegen,
        *_party_texts(rubrum.klaeger),
        *_party_texts(rubrum.beklagter),
        *schriftsatz.antraege,
        schriftsatz.sachverhalt,
        schriftsatz.rechtliche_wuerdigung,
        schriftsatz.forderung,
        schriftsatz.formales.datum,
        schriftsatz.formales.unterschrift,
        *schriftsatz.formales.hinweise,
        *schriftsatz.kosten.hinweise,
    ]
    for angebot in schriftsatz.beweisangebote:
        texts.extend((angebot.behauptung, angebot.beweismittel, angebot.anlagen_nummer))
    for anlage in schriftsatz.anlagen:
        texts.extend((anlage.nummer, anlage.bezeichnung))
    return [text for text in texts if text]


def _party_texts(party: Party) -> tuple[str | None, ...]:
    return (party.name, party.anschrift, party.vertreter)


def _resolve_rubrum(rubrum: Rubrum, sub, sub_optional) -> None:
    rubrum.gericht = sub(rubrum.gericht)
    rubrum.aktenzeichen = sub_optional(rubrum.aktenzeichen)
    rubrum.wegen = sub(rubrum.wegen)
    for party in (rubrum.klaeger, rubrum.beklagter):
        party.name = sub(party.name)
        party.anschrift = sub_optional(party.anschrift)
        party.vertreter = sub_optional(party.vertreter)


def _resolve_beweisangebot(angebot: Beweisangebot, sub, sub_optional) -> None:
    angebot.behauptung = sub(angebot.behauptung)
    angebot.beweismittel = sub(angebot.beweismittel)
    angebot.anlagen_nummer = sub_optional(angebot.anlagen_nummer)


def _resolve_anlage(anlage: Anlage, sub) -> None:
    anlage.nummer = sub(anlage.nummer)
    anlage.bezeichnung = sub(anlage.bezeichnung)


def _resolve_kosten(kosten: Kosten, sub) -> None:
    kosten.hinweise = [sub(hinweis) for hinweis in kosten.hinweise]


def _resolve_formales(formales: Formales, sub) -> None:
    formales.datum = sub(formales.datum)
    formales.unterschrift = sub(formales.unterschrift)
    formales.hinweise = [sub(hinweis) for hinweis in formales.hinweise]


def _stringify(value: object) -> str:
    if isinstance(value, bool):
        return "ja" if value else "nein"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
