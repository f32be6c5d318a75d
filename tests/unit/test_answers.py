import pytest

from helena_agent.schriftsatz.answers import (
    AnswerClassification,
    ExtractedSlot,
    ExtractedSlots,
    classify_answer_intent,
    extract_slot_values,
    is_cancel_message,
    is_unknown_answer,
    normalize_slot_value,
)
from helena_agent.schriftsatz.registry import SlotDefinition

ZUGANG = SlotDefinition(key="ZUGANG_DATUM", label="Zugang der Kuendigung", type="date", required=True)
GEHALT = SlotDefinition(key="BRUTTOGEHALT", label="Bruttogehalt", type="currency", required=True)
WEITER = SlotDefinition(key="WEITERBESCHAEFTIGUNG", label="Weiterbeschaeftigung", type="boolean")


def test_cancel_detection() -> None:
    assert is_cancel_message("Abbrechen!")
    assert is_cancel_message("stop bitte")
    assert is_cancel_message("Nein danke.")
    assert not is_cancel_message("Nicht abbrechen, der Zugang war am 03.03.")
    assert not is_cancel_message("stoppen")


def test_unknown_answer_detection() -> None:
    assert is_unknown_answer("Das weiss ich noch nicht")
    assert is_unknown_answer("Weiß ich nicht.")
    assert not is_unknown_answer("am 03.03.2025")


@pytest.mark.asyncio
async def test_classify_short_circuits_without_model(structured_model) -> None:
    model = structured_model({})

    assert (await classify_answer_intent("abbrechen", "Wann?", model)).typ == "cancel"
    assert (await classify_answer_intent("weiss ich noch nicht", "Wann?", model)).typ == "answer"
    assert model.calls == []


@pytest.mark.asyncio
async def test_classify_delegates_to_model(structured_model) -> None:
    model = structured_model(
        {AnswerClassification: AnswerClassification(typ="correction", corrected_slot_key="BRUTTOGEHALT")}
    )

    result = await classify_answer_intent("Das Gehalt war doch 4000", "Wann?", model)

    assert result.typ == "correction"
    assert result.corrected_slot_key == "BRUTTOGEHALT"
    assert "Rueckfrage:\nWann?" in str(model.calls[0][1][1].content)


@pytest.mark.asyncio
async def test_extract_normalizes_and_ignores_unexpected_keys(structured_model) -> None:
    model = structured_model(
        {
            ExtractedSlots: ExtractedSlots(
                values=[
                    ExtractedSlot(key="ZUGANG_DATUM", value="2025-03-03"),
                    ExtractedSlot(key="BRUTTOGEHALT", value="3.500,00 EUR"),
                    ExtractedSlot(key="ANDERES", value="x"),
                ]
            )
        }
    )

    values = await extract_slot_values("Zugang 3.3., Gehalt 3500", [ZUGANG, GEHALT], model)

    assert values == {"ZUGANG_DATUM": "03.03.2025", "BRUTTOGEHALT": 3500.0}


@pytest.mark.asyncio
async def test_unknown_reply_becomes_placeholder_for_first_expected_slot(structured_model) -> None:
    model = structured_model({})

    values = await extract_slot_values("weiss ich noch nicht", [ZUGANG, GEHALT], model)

    assert values == {"ZUGANG_DATUM": "{{ZUGANG_DATUM}}"}
    assert await extract_slot_values("egal", [], model) == {}


def test_normalize_slot_value() -> None:
    assert normalize_slot_value(ZUGANG, "3.3.2025") == "03.03.2025"
    assert normalize_slot_value(ZUGANG, "Anfang Maerz") == "Anfang Maerz"
    assert normalize_slot_value(GEHALT, "nicht bekannt") == "nicht bekannt"
    assert normalize_slot_value(WEITER, "Ja") is True
    assert normalize_slot_value(WEITER, "nein") is False
    assert normalize_slot_value(GEHALT, "  ") is None
