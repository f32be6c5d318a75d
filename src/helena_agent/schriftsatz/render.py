"""Markdown rendering of a Schriftsatz for draft review."""

from __future__ import annotations

from helena_agent.schriftsatz.assembler import format_euro
from helena_agent.schriftsatz.schemas import ErvWarnung, Party, Schriftsatz

_SEVERITY_ICON = {"KRITISCH": "[!]", "WARNUNG": "[~]", "INFO": "[i]"}

_ROLE_LABEL = {
    "KLAEGER": "Klaeger",
    "BEKLAGTER": "Beklagter",
    "ANTRAGSTELLER": "Antragsteller",
    "ANTRAGSGEGNER": "Antragsgegner",
}


def render_schriftsatz_markdown(schriftsatz: Schriftsatz, warnungen: list[ErvWarnung] | None = None) -> str:
    rubrum = schriftsatz.rubrum
    lines: list[str] = [f"**An das {rubrum.gericht}**", ""]
    if rubrum.aktenzeichen:
        lines += [f"Az.: {rubrum.aktenzeichen}", ""]

    lines += ["## Rubrum", "", "In dem Rechtsstreit", ""]
    lines += _party_block(rubrum.klaeger)
    lines += ["", "gegen", ""]
    lines += _party_block(rubrum.beklagter)
    lines += ["", f"wegen {rubrum.wegen}"]
    if rubrum.streitwert is not None:
        lines.append(f"Streitwert: {format_euro(rubrum.streitwert)} EUR")
    lines.append("")

    if schriftsatz.antraege:
        lines += ["## Antraege", ""]
        lines += [f"{index}. {antrag}" for index, antrag in enumerate(schriftsatz.antraege, start=1)]
        lines.append("")

    if schriftsatz.sachverhalt:
        lines += ["## Sachverhalt", "", schriftsatz.sachverhalt, ""]

    if schriftsatz.rechtliche_wuerdigung:
        lines += ["## Rechtliche Wuerdigung", "", schriftsatz.rechtliche_wuerdigung, ""]

    if schriftsatz.forderung:
        lines += ["## Aufforderung", "", schriftsatz.forderung, ""]

    if schriftsatz.beweisangebote:
        lines += ["## Beweisangebote", ""]
        for angebot in schriftsatz.beweisangebote:
            anlage = f" ({angebot.anlagen_nummer})" if angebot.anlagen_nummer else ""
            lines.append(f"- {angebot.behauptung} -- Beweis: {angebot.beweismittel}{anlage}")
        lines.append("")

    if schriftsatz.anlagen:
        lines += ["## Anlagen", ""]
        lines += [f"- {anlage.nummer}: {anlage.bezeichnung}" for anlage in schriftsatz.anlagen]
        lines.append("")

    if schriftsatz.kosten.hinweise:
        lines += ["## Kosten", ""]
        lines += [f"- {hinweis}" for hinweis in schriftsatz.kosten.hinweise]
        lines.append("")

    lines += [schriftsatz.formales.datum, "", schriftsatz.formales.unterschrift, "", "Rechtsanwalt/Rechtsanwaeltin", ""]

    if warnungen:
        lines += ["---", "", "## Pruefbericht", ""]
        for warnung in warnungen:
            feld = f" ({warnung.feld})" if warnung.feld else ""
            lines.append(f"- {_SEVERITY_ICON[warnung.schwere]} {warnung.typ}: {warnung.text}{feld}")
        lines.append("")

    if schriftsatz.retrieval_belege:
        lines += ["## Quellen", ""]
        lines += [
            f"- {beleg.referenz} (Relevanz {beleg.score:.2f})" for beleg in schriftsatz.retrieval_belege
        ]
        lines.append("")

    lines.append("_ENTWURF -- erfordert Pruefung und Freigabe durch den Anwalt._")
    return "\n".join(lines)


def _party_block(party: Party) -> list[str]:
    block = [f"{party.name}", f"-- {_ROLE_LABEL[party.rolle]} --"]
    if party.anschrift:
        block.insert(1, party.anschrift)
    if party.vertreter:
        block.append(f"Prozessbevollmaechtigte(r): {party.vertreter}")
    return block
