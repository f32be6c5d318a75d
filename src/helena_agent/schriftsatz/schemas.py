"""Pydantic contracts shared by every Schriftsatz pipeline stage."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

Rechtsgebiet = Literal[
    "ARBEITSRECHT",
    "FAMILIENRECHT",
    "VERKEHRSRECHT",
    "MIETRECHT",
    "STRAFRECHT",
    "ERBRECHT",
    "SOZIALRECHT",
    "INKASSO",
    "HANDELSRECHT",
    "VERWALTUNGSRECHT",
    "SONSTIGES",
]
Stadium = Literal["ERSTINSTANZ", "BERUFUNG", "REVISION", "BESCHWERDE", "EV", "AUSSERGERICHTLICH"]
ParteiRolle = Literal["KLAEGER", "BEKLAGTER"]
Gerichtszweig = Literal["ARBG", "LG", "AG", "OLG", "LAG", "BGH", "BAG", "VG", "SG", "FG"]
PartyRolle = Literal["KLAEGER", "BEKLAGTER", "ANTRAGSTELLER", "ANTRAGSGEGNER"]
BelegQuelle = Literal["gesetz", "urteil", "muster", "akte_dokument"]
WarnungTyp = Literal["INHALT", "FORM", "FRIST"]
Schwere = Literal["INFO", "WARNUNG", "KRITISCH"]

SlotValue = str | int | float | bool | None
SlotValues = dict[str, SlotValue]


class IntentResult(BaseModel):
    """Classified filing intent."""

    rechtsgebiet: Rechtsgebiet = Field(description="Rechtsgebiet der Anfrage")
    klageart: str = Field(description="Klageart-ID aus der Registry, z.B. kschg_klage")
    stadium: Stadium = Field(description="Verfahrensstadium")
    rolle: ParteiRolle = Field(description="Parteistellung des Mandanten")
    gerichtszweig: Gerichtszweig = Field(description="Gerichtszweig der ersten Instanz")
    gericht: str | None = Field(default=None, description="Konkretes Gericht, falls ableitbar")
    confidence: float = Field(ge=0.0, le=1.0, description="Sicherheit der Klassifikation")
    begruendung: str = Field(description="Kurze deutsche Begruendung")


class Party(BaseModel):
    name: str
    anschrift: str | None = None
    vertreter: str | None = None
    rolle: PartyRolle


class Rubrum(BaseModel):
    gericht: str = ""
    aktenzeichen: str | None = None
    klaeger: Party
    beklagter: Party
    wegen: str = ""
    streitwert: float | None = None


class Beweisangebot(BaseModel):
    behauptung: str
    beweismittel: str
    anlagen_nummer: str | None = None


class Anlage(BaseModel):
    nummer: str
    bezeichnung: str
    dokument_id: str | None = None


class Kosten(BaseModel):
    streitwert: float | None = None
    gerichtskosten: float | None = None
    anwaltskosten: float | None = None
    hinweise: list[str] = Field(default_factory=list)


class Formales(BaseModel):
    datum: str = ""
    unterschrift: str = ""
    hinweise: list[str] = Field(default_factory=list)


class RetrievalBeleg(BaseModel):
    """Audit record of one retrieved chunk used for a section."""

    quelle: BelegQuelle
    chunk_id: str
    referenz: str
    score: float
    auszug: str


class ErvWarnung(BaseModel):
    typ: WarnungTyp
    schwere: Schwere
    text: str
    feld: str | None = None


class SchriftsatzMetadata(BaseModel):
    klageart: str
    rechtsgebiet: Rechtsgebiet
    stadium: Stadium
    rolle: ParteiRolle
    gerichtszweig: Gerichtszweig
    gericht: str = ""


class Schriftsatz(BaseModel):
    """The assembled filing document."""

    metadata: SchriftsatzMetadata
    rubrum: Rubrum
    antraege: list[str] = Field(default_factory=list)
    sachverhalt: str = ""
    rechtliche_wuerdigung: str = ""
    beweisangebote: list[Beweisangebot] = Field(default_factory=list)
    anlagen: list[Anlage] = Field(default_factory=list)
    kosten: Kosten = Field(default_factory=Kosten)
    formales: Formales = Field(default_factory=Formales)
    forderung: str | None = None
    retrieval_belege: list[RetrievalBeleg] = Field(default_factory=list)
    unresolved_platzhalter: list[str] = Field(default_factory=list)
    vollstaendig: bool = False
    warnungen: list[str] = Field(default_factory=list)


# Structured-output shapes for LLM-generated sections.


class SectionText(BaseModel):
    text: str = Field(description="Ausformulierter Abschnittstext auf Deutsch")


class BeweisangeboteOutput(BaseModel):
    beweisangebote: list[Beweisangebot] = Field(default_factory=list)
