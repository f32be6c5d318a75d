"""Case file (Akte) records and the repository contract the core reads from."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Literal, Protocol

from helena_agent.agent.roles import UserRole


@dataclass(slots=True)
class Adresse:
    strasse: str | None = None
    hausnummer: str | None = None
    plz: str | None = None
    ort: str | None = None
    ist_haupt: bool = False


@dataclass(slots=True)
class Kontakt:
    vorname: str | None = None
    nachname: str | None = None
    firma: str | None = None
    titel: str | None = None
    adressen: list[Adresse] = field(default_factory=list)


@dataclass(slots=True)
class Beteiligter:
    rolle: str
    kontakt: Kontakt


@dataclass(slots=True)
class Dokument:
    id: str
    name: str
    tags: list[str] = field(default_factory=list)
    text: str = ""


@dataclass(slots=True)
class Frist:
    id: str
    titel: str
    datum: date
    erledigt: bool = False


@dataclass(slots=True)
class Zeiteintrag:
    id: str
    datum: date
    dauer_minuten: int
    beschreibung: str


@dataclass(slots=True)
class Akte:
    id: str
    aktenzeichen: str | None = None
    kurzrubrum: str | None = None
    sachgebiet: str | None = None
    gegenstandswert: float | None = None
    status: str = "OFFEN"
    anwalt_id: str | None = None
    sachbearbeiter_id: str | None = None
    beteiligte: list[Beteiligter] = field(default_factory=list)
    dokumente: list[Dokument] = field(default_factory=list)
    fristen: list[Frist] = field(default_factory=list)
    zeiteintraege: list[Zeiteintrag] = field(default_factory=list)
    felder: dict[str, Any] = field(default_factory=dict)

    def beteiligter(self, rolle: str) -> Beteiligter | None:
        for entry in self.beteiligte:
            if entry.rolle == rolle:
                return entry
        return None

    @property
    def owner_id(self) -> str | None:
        return self.anwalt_id or self.sachbearbeiter_id


class CaseRepository(Protocol):
    """Read access to case files, scoped by the caller's permissions."""

    def get_akte(self, akte_id: str) -> Akte | None:
        """Return the Akte or None."""

    def search_akten(self, query: str, user_id: str, role: UserRole | str, limit: int = 10) -> list[Akte]:
        """Search Akten the user may access."""

    def user_can_access(self, akte_id: str, user_id: str, role: UserRole | str) -> bool:
        """Case access predicate."""


class InMemoryCaseRepository:
    """Deterministic repository used for tests and local prototyping."""

    def __init__(self, akten: list[Akte] | None = None) -> None:
        self._akten: dict[str, Akte] = {akte.id: akte for akte in akten or []}

    def add(self, akte: Akte) -> None:
        self._akten[akte.id] = akte

    def get_akte(self, akte_id: str) -> Akte | None:
        return self._akten.get(akte_id)

    def search_akten(self, query: str, user_id: str, role: UserRole | str, limit: int = 10) -> list[Akte]:
        needle = query.lower()
        hits = [
            akte
            for akte in self._akten.values()
            if self.user_can_access(akte.id, user_id, role)
            and needle in " ".join(
                filter(None, [akte.aktenzeichen, akte.kurzrubrum, akte.sachgebiet])
            ).lower()
        ]
        return hits[:limit]

    def user_can_access(self, akte_id: str, user_id: str, role: UserRole | str) -> bool:
        akte = self._akten.get(akte_id)
        if akte is None:
            return False
        if role == UserRole.ADMIN or role == UserRole.ADMIN.value:
            return True
        if role in (UserRole.SEKRETARIAT, UserRole.SEKRETARIAT.value):
            return True
        return user_id in (akte.anwalt_id, akte.sachbearbeiter_id)


def format_party_name(kontakt: Kontakt) -> str:
    if kontakt.firma:
        return kontakt.firma
    parts = [part for part in (kontakt.titel, kontakt.vorname, kontakt.nachname) if part]
    return " ".join(parts) or "Unbekannt"


def format_address(kontakt: Kontakt) -> str | None:
    if not kontakt.adressen:
        return None
    address = next((entry for entry in kontakt.adressen if entry.ist_haupt), kontakt.adressen[0])
    parts: list[str] = []
    if address.strasse:
        parts.append(
            f"{address.strasse} {address.hausnummer}" if address.hausnummer else address.strasse
        )
    if address.plz or address.ort:
        parts.append(" ".join(part for part in (address.plz, address.ort) if part))
    return ", ".join(parts) if parts else None


AlertTyp = Literal[
    "FRIST_KRITISCH",
    "AKTE_INAKTIV",
    "BETEILIGTE_FEHLEN",
    "DOKUMENT_FEHLT",
    "WIDERSPRUCH",
    "NEUES_URTEIL",
]


@dataclass(slots=True)
class Alert:
    id: str
    akte_id: str
    typ: AlertTyp
    titel: str
    inhalt: str
    severity: int = 5
    user_id: str | None = None


class InMemoryAlertStore:
    """Alert sink for case-level hints raised by the assistant."""

    def __init__(self) -> None:
        self._alerts: list[Alert] = []

    def add(self, alert: Alert) -> None:
        self._alerts.append(alert)

    def list_for_akte(self, akte_id: str) -> list[Alert]:
        return [alert for alert in self._alerts if alert.akte_id == akte_id]
