import dataclasses

import pytest

from helena_agent.schriftsatz.registry import (
    GENERIC_ID,
    get_klageart_definition,
    list_klagearten,
    register_klageart,
)


def test_known_filing_types_are_registered() -> None:
    ids = {definition.id for definition in list_klagearten()}

    assert {"kschg_klage", "lohnklage", "ev_antrag", "klageerwiderung", "berufung", "abmahnung", GENERIC_ID} <= ids


def test_unknown_id_falls_back_to_generic() -> None:
    assert get_klageart_definition("gibt_es_nicht").id == GENERIC_ID


def test_kschg_definition_shape() -> None:
    definition = get_klageart_definition("kschg_klage")

    assert definition.rechtsgebiet == "ARBEITSRECHT"
    assert definition.required_slots[0].key == "KLAEGER_NAME"
    assert all(slot.required for slot in definition.required_slots)
    assert not any(slot.required for slot in definition.optional_slots)
    assert definition.streitwert_regel.typ == "VIERTELJAHRESGEHALT"
    assert definition.section("rechtliche_wuerdigung").rag_sources == ("gesetz", "urteil", "muster")
    assert definition.section("nicht_vorhanden") is None
    assert [pruefung.check for pruefung in definition.erv_pruefungen][0] == "3_WOCHEN_FRIST"


def test_slot_keys_are_unique_per_definition() -> None:
    for definition in list_klagearten():
        keys = [slot.key for slot in definition.all_slots]
        assert len(keys) == len(set(keys)), definition.id


def test_register_rejects_duplicates_unless_replacing() -> None:
    original = get_klageart_definition("abmahnung")
    with pytest.raises(ValueError):
        register_klageart(original)

    relabelled = dataclasses.replace(original, label="Abmahnung (angepasst)")
    register_klageart(relabelled, replace=True)
    try:
        assert get_klageart_definition("abmahnung").label == "Abmahnung (angepasst)"
    finally:
        register_klageart(original, replace=True)
