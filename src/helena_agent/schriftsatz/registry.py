"""Data-driven filing type (Klageart) definitions.

Each entry declares the slots a filing needs, the sections it consists of
(with the retrieval sources and query template per section), how the
Streitwert is derived and which ERV deadline checks apply. The pipeline has no
per-Klageart code paths; a new filing type is a new entry here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from helena_agent.retrieval.types import Quelle
from helena_agent.schriftsatz.schemas import Rechtsgebiet, Stadium

SlotType = Literal["text", "date", "currency", "number", "boolean"]
PrefillSource = Literal["mandant", "gegner", "akte", "gericht"]
StreitwertTyp = Literal["VIERTELJAHRESGEHALT", "FESTBETRAG", "SUMME", "MANUELL"]

GENERIC_ID = "generic"


@dataclass(slots=True, frozen=True)
class SlotDefinition:
    key: str
    label: str
    type: SlotType = "text"
    required: bool = True
    prefill_from: PrefillSource | None = None
    default: str | int | float | bool | None = None


@dataclass(slots=True, frozen=True)
class SectionConfig:
    id: str
    label: str
    rag_sources: tuple[Quelle, ...] = ()
    rag_query: str = ""
    generate_via_llm: bool = False


@dataclass(slots=True, frozen=True)
class StreitwertRegel:
    typ: StreitwertTyp
    faktor: float | None = None
    festbetrag: float | None = None


@dataclass(slots=True, frozen=True)
class ErvPruefung:
    id: str
    check: str
    params: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class KlageartDefinition:
    id: str
    label: str
    rechtsgebiet: Rechtsgebiet
    stadien: tuple[Stadium, ...]
    required_slots: tuple[SlotDefinition, ...]
    optional_slots: tuple[SlotDefinition, ...]
    sections: tuple[SectionConfig, ...]
    streitwert_regel: StreitwertRegel
    erv_pruefungen: tuple[ErvPruefung, ...] = ()

    @property
    def all_slots(self) -> tuple[SlotDefinition, ...]:
        return self.required_slots + self.optional_slots

    def section(self, section_id: str) -> SectionConfig | None:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None


def _required(key: str, label: str, type: SlotType = "text", prefill_from: PrefillSource | None = None) -> SlotDefinition:
    return SlotDefinition(key=key, label=label, type=type, required=True, prefill_from=prefill_from)


def _optional(key: str, label: str, type: SlotType = "text", prefill_from: PrefillSource | None = None) -> SlotDefinition:
    return SlotDefinition(key=key, label=label, type=type, required=False, prefill_from=prefill_from)


KLAEGER_NAME = _required("KLAEGER_NAME", "Name des Klaegers", prefill_from="mandant")
KLAEGER_ADRESSE = _required("KLAEGER_ADRESSE", "Anschrift des Klaegers", prefill_from="mandant")
BEKLAGTER_NAME = _required("BEKLAGTER_NAME", "Name des Beklagten", prefill_from="gegner")
BEKLAGTER_ADRESSE = _required("BEKLAGTER_ADRESSE", "Anschrift des Beklagten", prefill_from="gegner")
GERICHT = _required("GERICHT", "Zustaendiges Gericht", prefill_from="gericht")
AKTENZEICHEN = _optional("AKTENZEICHEN", "Aktenzeichen", prefill_from="akte")

_PARTY_SLOTS = (KLAEGER_NAME, KLAEGER_ADRESSE, BEKLAGTER_NAME, BEKLAGTER_ADRESSE, GERICHT)

STANDARD_SECTIONS: tuple[SectionConfig, ...] = (
    SectionConfig(id="rubrum", label="Rubrum"),
    SectionConfig(
        id="antraege",
        label="Antraege",
        rag_sources=("muster",),
        rag_query="{{KLAGEART}} Antraege Muster",
        generate_via_llm=True,
    ),
    SectionConfig(id="sachverhalt", label="Sachverhalt", generate_via_llm=True),
    SectionConfig(
        id="rechtliche_wuerdigung",
        label="Rechtliche Wuerdigung",
        rag_sources=("gesetz", "urteil", "muster"),
        rag_query="{{KLAGEART}} {{RECHTSGEBIET}} Anspruchsgrundlage Rechtsprechung",
        generate_via_llm=True,
    ),
    SectionConfig(id="beweisangebote", label="Beweisangebote", generate_via_llm=True),
    SectionConfig(id="anlagen", label="Anlagenverzeichnis"),
    SectionConfig(id="kosten", label="Kosten"),
    SectionConfig(id="formales", label="Formales"),
)


def _sections(*, antraege_query: str, wuerdigung_query: str) -> tuple[SectionConfig, ...]:
    overrides = {
        "antraege": antraege_query,
        "rechtliche_wuerdigung": wuerdigung_query,
    }
    return tuple(
        SectionConfig(
            id=section.id,
            label=section.label,
            rag_sources=section.rag_sources,
            rag_query=overrides.get(section.id, section.rag_query),
            generate_via_llm=section.generate_via_llm,
        )
        for section in STANDARD_SECTIONS
    )


KSCHG_KLAGE = KlageartDefinition(
    id="kschg_klage",
    label="Kuendigungsschutzklage",
    rechtsgebiet="ARBEITSRECHT",
    stadien=("ERSTINSTANZ", "BERUFUNG"),
    required_slots=_PARTY_SLOTS
    + (
        _required("KUENDIGUNGSDATUM", "Datum der Kuendigung", "date"),
        _required("ZUGANG_DATUM", "Zugang der Kuendigung (wann erhalten?)", "date"),
        _required("EINTRITTSDATUM", "Beginn des Arbeitsverhaeltnisses", "date"),
        _required("BRUTTOGEHALT", "Monatliches Bruttogehalt", "currency"),
        _required("BERUFSBEZEICHNUNG", "Berufsbezeichnung / Taetigkeit"),
        _required("KUENDIGUNGSART", "Art der Kuendigung (ordentlich/ausserordentlich)"),
    ),
    optional_slots=(
        AKTENZEICHEN,
        _optional("KUENDIGUNGSGRUND", "Angegebener Kuendigungsgrund"),
        _optional("BETRIEBSRAT_ANHOERUNG", "Betriebsrat angehoert?"),
        _optional("BETRIEBSGROESSE", "Anzahl der Arbeitnehmer im Betrieb", "number"),
        _optional("SONDERKUENDIGUNGSSCHUTZ", "Sonderkuendigungsschutz (z.B. Schwerbehinderung)"),
        _optional("WEITERBESCHAEFTIGUNG", "Weiterbeschaeftigungsantrag stellen?", "boolean"),
    ),
    sections=_sections(
        antraege_query="Kuendigungsschutzklage Feststellungsantrag Weiterbeschaeftigungsantrag SS 4 KSchG Muster",
        wuerdigung_query="Kuendigungsschutzklage KSchG SS 1 SS 4 Kuendigungsschutzgesetz Sozialwidrigkeit Kuendigung",
    ),
    streitwert_regel=StreitwertRegel(typ="VIERTELJAHRESGEHALT", faktor=3),
    erv_pruefungen=(
        ErvPruefung(id="kschg_frist", check="3_WOCHEN_FRIST", params={"fromSlot": "ZUGANG_DATUM"}),
        ErvPruefung(
            id="betriebsrat",
            check="BETRIEBSRAT_ANHOERUNG",
            params={"slot": "BETRIEBSRAT_ANHOERUNG"},
        ),
    ),
)

LOHNKLAGE = KlageartDefinition(
    id="lohnklage",
    label="Lohnklage",
    rechtsgebiet="ARBEITSRECHT",
    stadien=("ERSTINSTANZ", "BERUFUNG"),
    required_slots=_PARTY_SLOTS
    + (
        _required("ZEITRAUM_VON", "Beginn des ausstehenden Zeitraums", "date"),
        _required("ZEITRAUM_BIS", "Ende des ausstehenden Zeitraums", "date"),
        _required("MONATSBETRAG", "Monatlicher Bruttobetrag", "currency"),
        _required("ZAHLUNGSGRUND", "Rechtsgrund der Zahlung (Arbeitsvertrag, Tarifvertrag)"),
    ),
    optional_slots=(
        AKTENZEICHEN,
        _optional("AUSSTEHENDE_SUMME", "Ausstehende Gesamtsumme", "currency"),
        _optional("VERZUGSZINSEN", "Verzugszinsen ab", "date"),
        _optional("ABRECHNUNG_VERLANGT", "Abrechnung verlangen?", "boolean"),
        _optional("MAHNUNG_DATUM", "Datum der Mahnung", "date"),
    ),
    sections=_sections(
        antraege_query="Lohnklage Zahlungsantrag Abrechnungsantrag Verzugszinsen Muster",
        wuerdigung_query="Lohnklage Gehaltsklage SS 611a BGB Verguetungsanspruch Arbeitsentgelt Verzug SS 288 BGB",
    ),
    streitwert_regel=StreitwertRegel(typ="SUMME"),
    erv_pruefungen=(
        ErvPruefung(id="faelligkeit", check="FAELLIGKEIT_PRUEFUNG", params={"fromSlot": "ZEITRAUM_VON"}),
    ),
)

EV_ANTRAG = KlageartDefinition(
    id="ev_antrag",
    label="Antrag auf einstweilige Verfuegung",
    rechtsgebiet="SONSTIGES",
    stadien=("EV",),
    required_slots=(
        _required("ANTRAGSTELLER_NAME", "Name des Antragstellers", prefill_from="mandant"),
        _required("ANTRAGSTELLER_ADRESSE", "Anschrift des Antragstellers", prefill_from="mandant"),
        _required("ANTRAGSGEGNER_NAME", "Name des Antragsgegners", prefill_from="gegner"),
        _required("ANTRAGSGEGNER_ADRESSE", "Anschrift des Antragsgegners", prefill_from="gegner"),
        GERICHT,
        _required("VERFUEGUNGSANSPRUCH", "Verfuegungsanspruch (welches Recht?)"),
        _required("VERFUEGUNGSGRUND", "Verfuegungsgrund (warum eilbeduerftig?)"),
    ),
    optional_slots=(
        AKTENZEICHEN,
        _optional("GLAUBHAFTMACHUNG", "Mittel der Glaubhaftmachung"),
        _optional("SCHUTZSCHRIFT", "Schutzschrift hinterlegt?", "boolean"),
    ),
    sections=_sections(
        antraege_query="Einstweilige Verfuegung Antrag Eilantrag Muster SS 935 ZPO",
        wuerdigung_query="Einstweilige Verfuegung SS 935 SS 940 ZPO Verfuegungsanspruch Verfuegungsgrund Glaubhaftmachung",
    ),
    streitwert_regel=StreitwertRegel(typ="MANUELL"),
    erv_pruefungen=(ErvPruefung(id="dringlichkeit", check="DRINGLICHKEIT"),),
)

KLAGEERWIDERUNG = KlageartDefinition(
    id="klageerwiderung",
    label="Klageerwiderung",
    rechtsgebiet="SONSTIGES",
    stadien=("ERSTINSTANZ", "BERUFUNG"),
    required_slots=(
        BEKLAGTER_NAME,
        BEKLAGTER_ADRESSE,
        KLAEGER_NAME,
        KLAEGER_ADRESSE,
        GERICHT,
        _required("AZ", "Aktenzeichen des Verfahrens", prefill_from="akte"),
        _required("KLAGE_DATUM", "Datum der Klageschrift", "date"),
    ),
    optional_slots=(
        _optional("KLAGE_ZUSAMMENFASSUNG", "Kurzfassung der Klage"),
        _optional("ERWIDERUNGSFRIST", "Ende der Erwiderungsfrist", "date"),
    ),
    sections=_sections(
        antraege_query="Klageerwiderung Klageabweisungsantrag Muster",
        wuerdigung_query="Klageerwiderung Verteidigung {{RECHTSGEBIET}} Einwendungen Einreden",
    ),
    streitwert_regel=StreitwertRegel(typ="MANUELL"),
    erv_pruefungen=(
        ErvPruefung(id="erwiderungsfrist", check="ERWIDERUNGSFRIST", params={"fromSlot": "ERWIDERUNGSFRIST"}),
    ),
)

BERUFUNG = KlageartDefinition(
    id="berufung",
    label="Berufungsschrift",
    rechtsgebiet="SONSTIGES",
    stadien=("BERUFUNG",),
    required_slots=(
        _required("BERUFUNGSKLAEGER", "Name des Berufungsklaegers", prefill_from="mandant"),
        _required("BERUFUNGSKLAEGER_ADRESSE", "Anschrift des Berufungsklaegers", prefill_from="mandant"),
        _required("BERUFUNGSBEKLAGTER", "Name des Berufungsbeklagten", prefill_from="gegner"),
        _required("BERUFUNGSBEKLAGTER_ADRESSE", "Anschrift des Berufungsbeklagten", prefill_from="gegner"),
        GERICHT,
        _required("URTEIL_DATUM", "Datum des angefochtenen Urteils", "date"),
        _required("URTEIL_AZ", "Aktenzeichen des angefochtenen Urteils"),
        _required("BERUFUNGSGRUENDE", "Wesentliche Berufungsgruende"),
    ),
    optional_slots=(
        _optional("URTEIL_ZUSTELLUNG", "Zustellung des Urteils", "date"),
        _optional("BERUFUNGSFRIST_ENDE", "Ende der Berufungsfrist", "date"),
    ),
    sections=_sections(
        antraege_query="Berufungsantrag Abaenderungsantrag Aufhebungsantrag Muster SS 520 ZPO",
        wuerdigung_query="Berufung {{RECHTSGEBIET}} SS 511 SS 513 SS 520 ZPO Berufungsbegruendung Rechtsfehler",
    ),
    streitwert_regel=StreitwertRegel(typ="MANUELL"),
    erv_pruefungen=(
        ErvPruefung(id="berufungsfrist", check="BERUFUNGSFRIST", params={"fromSlot": "URTEIL_ZUSTELLUNG"}),
        ErvPruefung(
            id="berufungsbegruendungsfrist",
            check="BERUFUNGSBEGRUENDUNGSFRIST",
            params={"fromSlot": "URTEIL_ZUSTELLUNG"},
        ),
    ),
)

ABMAHNUNG = KlageartDefinition(
    id="abmahnung",
    label="Abmahnung",
    rechtsgebiet="SONSTIGES",
    stadien=("AUSSERGERICHTLICH",),
    required_slots=(
        _required("ABSENDER", "Name des Absenders", prefill_from="mandant"),
        _required("ABSENDER_ADRESSE", "Anschrift des Absenders", prefill_from="mandant"),
        _required("EMPFAENGER", "Name des Empfaengers", prefill_from="gegner"),
        _required("EMPFAENGER_ADRESSE", "Anschrift des Empfaengers", prefill_from="gegner"),
        _required("VERSTOSS", "Beschreibung des Verstosses"),
        _required("FRIST", "Frist zur Abhilfe", "date"),
    ),
    optional_slots=(
        _optional("RECHTSGRUNDLAGE", "Rechtsgrundlage"),
        _optional("SCHADENSERSATZ", "Schadensersatzforderung", "currency"),
        _optional("STRAFBEWEHRTE_UNTERLASSUNG", "Strafbewehrte Unterlassungserklaerung fordern?", "boolean"),
    ),
    sections=(
        SectionConfig(id="rubrum", label="Absender/Empfaenger"),
        SectionConfig(id="sachverhalt", label="Sachverhalt", generate_via_llm=True),
        SectionConfig(
            id="rechtliche_wuerdigung",
            label="Rechtliche Begruendung",
            rag_sources=("gesetz", "urteil"),
            rag_query="Abmahnung {{RECHTSGEBIET}} Unterlassungsanspruch Beseitigungsanspruch",
            generate_via_llm=True,
        ),
        SectionConfig(
            id="forderung",
            label="Aufforderung / Fristsetzung",
            rag_sources=("muster",),
            rag_query="Abmahnung Fristsetzung Unterlassungserklaerung Muster",
            generate_via_llm=True,
        ),
        SectionConfig(id="formales", label="Formales"),
    ),
    streitwert_regel=StreitwertRegel(typ="MANUELL"),
)

GENERIC = KlageartDefinition(
    id=GENERIC_ID,
    label="Allgemeiner Schriftsatz",
    rechtsgebiet="SONSTIGES",
    stadien=("ERSTINSTANZ", "BERUFUNG", "REVISION", "BESCHWERDE", "EV", "AUSSERGERICHTLICH"),
    required_slots=(
        _required("PARTEI_A_NAME", "Name der eigenen Partei", prefill_from="mandant"),
        _required("PARTEI_A_ADRESSE", "Anschrift der eigenen Partei", prefill_from="mandant"),
        _required("PARTEI_B_NAME", "Name der Gegenpartei", prefill_from="gegner"),
        _required("PARTEI_B_ADRESSE", "Anschrift der Gegenpartei", prefill_from="gegner"),
        _required("BETREFF", "Gegenstand des Schriftsatzes"),
    ),
    optional_slots=(
        _optional("GERICHT", "Zustaendiges Gericht", prefill_from="gericht"),
        AKTENZEICHEN,
        _optional("STREITWERT", "Streitwert", "currency", prefill_from="akte"),
    ),
    sections=STANDARD_SECTIONS,
    streitwert_regel=StreitwertRegel(typ="MANUELL"),
)

_REGISTRY: dict[str, KlageartDefinition] = {
    definition.id: definition
    for definition in (KSCHG_KLAGE, LOHNKLAGE, EV_ANTRAG, KLAGEERWIDERUNG, BERUFUNG, ABMAHNUNG, GENERIC)
}


def get_klageart_definition(klageart_id: str) -> KlageartDefinition:
    """Registry lookup; unknown ids fall back to the generic entry."""
    return _REGISTRY.get(klageart_id, GENERIC)


def register_klageart(definition: KlageartDefinition, *, replace: bool = False) -> None:
    if definition.id in _REGISTRY and not replace:
        raise ValueError(f"Klageart already registered: {definition.id}")
    _REGISTRY[definition.id] = definition


def list_klagearten() -> list[KlageartDefinition]:
    return list(_REGISTRY.values())
