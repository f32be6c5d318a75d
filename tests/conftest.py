import asyncio
from collections.abc import Callable
from typing import Any

import pytest
from langchain_core.messages import AIMessage, BaseMessage
from pydantic import BaseModel

from helena_agent.cases import Adresse, Akte, Beteiligter, InMemoryCaseRepository, Kontakt
from helena_agent.retrieval.sources import LegalSourceIndex
from helena_agent.schriftsatz.drafts import DraftService, InMemoryNotifier, SqliteDraftStore
from helena_agent.schriftsatz.schemas import (
    Beweisangebot,
    BeweisangeboteOutput,
    IntentResult,
    SectionText,
)

Responder = BaseModel | Callable[[list[BaseMessage]], BaseModel | None]


class ScriptedStructuredModel:
    """Stands in for a chat model that only serves structured-output calls.

    Each schema maps to a fixed instance or to a callable receiving the
    prompt messages. A responder returning None simulates a parsing failure.
    """

    def __init__(self, responders: dict[type[BaseModel], Responder]) -> None:
        self.responders = responders
        self.calls: list[tuple[str, list[BaseMessage]]] = []

    def with_structured_output(self, schema: type[BaseModel], *, include_raw: bool = False) -> "_StructuredCall":
        return _StructuredCall(self, schema, include_raw)


class _StructuredCall:
    def __init__(self, model: ScriptedStructuredModel, schema: type[BaseModel], include_raw: bool) -> None:
        self.model = model
        self.schema = schema
        self.include_raw = include_raw

    async def ainvoke(self, messages: list[BaseMessage]) -> Any:
        self.model.calls.append((self.schema.__name__, messages))
        responder = self.model.responders[self.schema]
        parsed = responder(messages) if callable(responder) else responder
        if not self.include_raw:
            return parsed
        raw = AIMessage(
            content="",
            usage_metadata={"input_tokens": 10, "output_tokens": 5, "total_tokens": 15},
        )
        return {
            "raw": raw,
            "parsed": parsed,
            "parsing_error": None if parsed is not None else "invalid json",
        }


class ScriptedChatModel(ScriptedStructuredModel):
    """Tool-calling chat model replaying scripted turns.

    A turn is an AIMessage, an exception to raise, or a callable receiving the
    prompt messages. The last turn repeats once the script is exhausted.
    """

    def __init__(
        self,
        turns: list[Any],
        responders: dict[type[BaseModel], Responder] | None = None,
        *,
        delay: float = 0.0,
    ) -> None:
        super().__init__(responders or {})
        self.turns = turns
        self.delay = delay
        self.seen: list[list[BaseMessage]] = []
        self.bound_tools: list[str] = []

    def bind_tools(self, tools: list[Any]) -> "ScriptedChatModel":
        self.bound_tools = [tool.name for tool in tools]
        return self

    async def ainvoke(self, messages: list[BaseMessage]) -> AIMessage:
        self.seen.append(list(messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        turn = self.turns[min(len(self.seen), len(self.turns)) - 1]
        if isinstance(turn, Exception):
            raise turn
        return turn(messages) if callable(turn) else turn


def kschg_section_text(messages: list[BaseMessage]) -> SectionText:
    system = str(messages[0].content)
    if system.startswith("Formuliere die Antraege"):
        return SectionText(
            text=(
                "1. Es wird festgestellt, dass das Arbeitsverhaeltnis durch die Kuendigung vom "
                "{{KUENDIGUNGSDATUM}} nicht aufgeloest worden ist.\n"
                "2. Die Beklagte wird verurteilt, den Klaeger weiterzubeschaeftigen."
            )
        )
    if system.startswith("Schildere den Sachverhalt"):
        return SectionText(text="Der Klaeger ist seit dem {{EINTRITTSDATUM}} als {{BERUFSBEZEICHNUNG}} beschaeftigt.")
    return SectionText(text="Die Kuendigung ist sozial ungerechtfertigt (SS 1 Abs. 2 KSchG).")


@pytest.fixture
def structured_model() -> type[ScriptedStructuredModel]:
    return ScriptedStructuredModel


@pytest.fixture
def kschg_intent() -> IntentResult:
    return IntentResult(
        rechtsgebiet="ARBEITSRECHT",
        klageart="kschg_klage",
        stadium="ERSTINSTANZ",
        rolle="KLAEGER",
        gerichtszweig="ARBG",
        gericht="Arbeitsgericht Berlin",
        confidence=0.92,
        begruendung="Arbeitgeberkuendigung, Mandant will sich wehren",
    )


@pytest.fixture
def kschg_model(kschg_intent: IntentResult) -> ScriptedStructuredModel:
    return ScriptedStructuredModel(
        {
            IntentResult: kschg_intent,
            SectionText: kschg_section_text,
            BeweisangeboteOutput: BeweisangeboteOutput(
                beweisangebote=[
                    Beweisangebot(
                        behauptung="Die Kuendigung ging am {{ZUGANG_DATUM}} zu.",
                        beweismittel="Kuendigungsschreiben",
                    )
                ]
            ),
        }
    )


@pytest.fixture
def kschg_akte() -> Akte:
    return Akte(
        id="akte-1",
        aktenzeichen="12/25",
        kurzrubrum="Mustermann ./. Beispiel GmbH",
        sachgebiet="Arbeitsrecht",
        anwalt_id="anwalt-1",
        beteiligte=[
            Beteiligter(
                rolle="MANDANT",
                kontakt=Kontakt(
                    vorname="Max",
                    nachname="Mustermann",
                    adressen=[Adresse(strasse="Hauptstr.", hausnummer="1", plz="10115", ort="Berlin")],
                ),
            ),
            Beteiligter(
                rolle="GEGNER",
                kontakt=Kontakt(
                    firma="Beispiel GmbH",
                    adressen=[Adresse(strasse="Ring", hausnummer="2", plz="10117", ort="Berlin")],
                ),
            ),
            Beteiligter(rolle="GERICHT", kontakt=Kontakt(firma="Arbeitsgericht Berlin")),
        ],
    )


@pytest.fixture
def kschg_user_slots() -> dict[str, Any]:
    return {
        "KUENDIGUNGSDATUM": "28.02.2025",
        "ZUGANG_DATUM": "03.03.2025",
        "EINTRITTSDATUM": "01.04.2019",
        "BRUTTOGEHALT": "3.500,00 EUR",
        "BERUFSBEZEICHNUNG": "Lagerist",
        "KUENDIGUNGSART": "ordentlich",
        "BETRIEBSRAT_ANHOERUNG": "ja",
        "RA_NAME": "Rechtsanwaeltin Schmidt",
    }


@pytest.fixture
def cases(kschg_akte: Akte) -> InMemoryCaseRepository:
    return InMemoryCaseRepository([kschg_akte])


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def drafts(tmp_path, notifier: InMemoryNotifier) -> DraftService:
    return DraftService(SqliteDraftStore(tmp_path / "helena.db"), notifier=notifier)


@pytest.fixture
def legal_sources() -> LegalSourceIndex:
    index = LegalSourceIndex()
    index.add_gesetz("kschg-1", "KSchG", "1", "Die Kuendigung ist sozial ungerechtfertigt, wenn sie nicht durch Gruende bedingt ist.")
    index.add_gesetz("kschg-4", "KSchG", "4", "Will ein Arbeitnehmer geltend machen, dass eine Kuendigung sozial ungerechtfertigt ist, muss er innerhalb von drei Wochen Klage erheben.")
    index.add_urteil("bag-1", "BAG", "2 AZR 123/20", "Zur Sozialauswahl bei betriebsbedingter Kuendigung.")
    index.add_muster("muster-1", "Kuendigungsschutzklage", "Es wird festgestellt, dass das Arbeitsverhaeltnis nicht aufgeloest ist.")
    return index


@pytest.fixture
def chat_model() -> type[ScriptedChatModel]:
    return ScriptedChatModel
