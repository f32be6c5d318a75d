from datetime import date

import pytest

from helena_agent.agent.cancellation import CancellationToken, OperationCancelled
from helena_agent.retrieval.types import LegalChunk
from helena_agent.schriftsatz.assembler import (
    NO_SOURCES_TEXT,
    SchriftsatzAssembler,
    build_query,
    calculate_streitwert,
    cap_context,
    format_euro,
    gkg_einfache_gebuehr,
    split_antraege,
    to_number,
)
from helena_agent.schriftsatz.registry import get_klageart_definition
from helena_agent.schriftsatz.schemas import SectionText
from helena_agent.schriftsatz.slots import fill_slots, prefill_slots_from_akte

TODAY = date(2025, 3, 20)


@pytest.mark.asyncio
async def test_assemble_kschg_filing(kschg_model, kschg_intent, kschg_akte, kschg_user_slots, legal_sources) -> None:
    definition = get_klageart_definition("kschg_klage")
    slots = fill_slots(
        definition, prefill_slots_from_akte(kschg_akte, kschg_intent), kschg_user_slots, today=TODAY
    ).slots
    assembler = SchriftsatzAssembler(kschg_model, legal_sources)

    result = await assembler.assemble(kschg_intent, definition, slots, today=TODAY)
    schriftsatz = result.schriftsatz

    assert schriftsatz.rubrum.gericht == "Arbeitsgericht Berlin"
    assert schriftsatz.rubrum.klaeger.name == "Max Mustermann"
    assert schriftsatz.rubrum.beklagter.anschrift == "Ring 2, 10117 Berlin"
    assert schriftsatz.rubrum.wegen == "Kuendigungsschutzklage"
    assert schriftsatz.rubrum.streitwert == 10500.0
    assert len(schriftsatz.antraege) == 2
    assert schriftsatz.antraege[1] == "Die Beklagte wird verurteilt, den Klaeger weiterzubeschaeftigen."
    assert schriftsatz.anlagen[0].nummer == "K1"
    assert schriftsatz.anlagen[0].bezeichnung == "Kuendigungsschreiben"
    assert schriftsatz.kosten.streitwert == 10500.0
    assert "Streitwert: 10.500,00 EUR" in schriftsatz.kosten.hinweise
    assert schriftsatz.formales.datum == "20.03.2025"
    assert schriftsatz.formales.unterschrift == "Rechtsanwaeltin Schmidt"
    assert {beleg.quelle for beleg in schriftsatz.retrieval_belege} == {"gesetz", "urteil", "muster"}

    assert [name for name, _ in kschg_model.calls] == [
        "SectionText",
        "SectionText",
        "SectionText",
        "BeweisangeboteOutput",
    ]
    assert result.token_usage.total == 60


@pytest.mark.asyncio
async def test_assemble_without_sources_uses_fallback_context(kschg_model, kschg_intent) -> None:
    definition = get_klageart_definition("kschg_klage")
    assembler = SchriftsatzAssembler(kschg_model)

    result = await assembler.assemble(kschg_intent, definition, {}, today=TODAY)

    prompts = [str(messages[1].content) for _, messages in kschg_model.calls]
    assert all(prompt.startswith(f"Relevante Quellen:\n{NO_SOURCES_TEXT}") for prompt in prompts)
    assert result.schriftsatz.retrieval_belege == []
    assert result.schriftsatz.rubrum.klaeger.name == "{{KLAEGER_NAME}}"
    assert result.schriftsatz.formales.unterschrift == "{{RA_NAME}}"


@pytest.mark.asyncio
async def test_parse_failure_raises(structured_model, kschg_intent) -> None:
    model = structured_model({SectionText: lambda messages: None})
    assembler = SchriftsatzAssembler(model)

    with pytest.raises(ValueError, match="konnte nicht erzeugt werden"):
        await assembler.assemble(kschg_intent, get_klageart_definition("kschg_klage"), {}, today=TODAY)


@pytest.mark.asyncio
async def test_cancelled_token_stops_assembly(kschg_model, kschg_intent) -> None:
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelled):
        await SchriftsatzAssembler(kschg_model).assemble(
            kschg_intent, get_klageart_definition("kschg_klage"), {}, cancellation=token
        )
    assert kschg_model.calls == []


def test_cap_context_truncates_or_drops_overflow() -> None:
    chunks = [
        LegalChunk("a", "KSchG SS 1", "x" * 300, "gesetz", 0.9),
        LegalChunk("b", "KSchG SS 4", "y" * 300, "gesetz", 0.8),
    ]

    truncated = cap_context(chunks, 500)
    assert truncated.text.endswith("...")
    assert [beleg.chunk_id for beleg in truncated.belege] == ["a", "b"]

    dropped = cap_context(chunks, 350)
    assert [beleg.chunk_id for beleg in dropped.belege] == ["a"]
    assert not dropped.text.endswith("...")

    assert cap_context([], 500).text == NO_SOURCES_TEXT


def test_build_query_fills_slots_and_intent(kschg_intent) -> None:
    query = build_query("{{KLAGEART}} {{RECHTSGEBIET}} {{BRUTTOGEHALT}} {{UNBEKANNT}}", {"BRUTTOGEHALT": 3500}, kschg_intent)

    assert query == "kschg_klage ARBEITSRECHT 3500 UNBEKANNT"


def test_split_antraege_strips_numbering() -> None:
    assert split_antraege("1. Erster Antrag\n\n2.  Zweiter Antrag\nDritter") == [
        "Erster Antrag",
        "Zweiter Antrag",
        "Dritter",
    ]


def test_streitwert_rules() -> None:
    assert calculate_streitwert(get_klageart_definition("kschg_klage"), {"BRUTTOGEHALT": "3.500,00"}) == 10500.0
    assert calculate_streitwert(get_klageart_definition("kschg_klage"), {}) is None
    assert calculate_streitwert(get_klageart_definition("lohnklage"), {"AUSSTEHENDE_SUMME": 7000}) == 7000.0
    assert calculate_streitwert(get_klageart_definition("generic"), {"STREITWERT": "12000"}) == 12000.0


def test_gkg_fee_table() -> None:
    assert gkg_einfache_gebuehr(500) == 38.0
    assert gkg_einfache_gebuehr(1000) == 58.0
    assert gkg_einfache_gebuehr(10500) == 295.0


def test_number_parsing_and_formatting() -> None:
    assert to_number("4.500,00 EUR") == 4500.0
    assert to_number("4.500") == 4500.0
    assert to_number("3500.50") == 3500.5
    assert to_number("{{BRUTTOGEHALT}}") is None
    assert to_number(True) is None
    assert to_number("viel") is None
    assert format_euro(13500) == "13.500,00"
