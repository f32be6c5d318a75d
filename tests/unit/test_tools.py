import pytest
from langchain_core.tools import tool

from helena_agent.agent.registry import ToolContext, ToolRegistry
from helena_agent.agent.roles import UserRole
from helena_agent.agent.tools import register_helena_tools
from helena_agent.cases import InMemoryAlertStore
from helena_agent.schriftsatz.drafts import DraftKind


@pytest.fixture
def registry() -> ToolRegistry:
    registry = ToolRegistry()
    register_helena_tools(registry)
    return registry


def _context(cases, drafts, *, akte_id="akte-1", user_id="anwalt-1", sources=None, alerts=None) -> ToolContext:
    return ToolContext(
        user_id=user_id,
        user_role=UserRole.ANWALT,
        akte_id=akte_id,
        cases=cases,
        drafts=drafts,
        sources=sources,
        alerts=alerts,
    )


@pytest.mark.asyncio
async def test_frist_tool_creates_pending_draft(registry, cases, drafts) -> None:
    result = await registry.execute(
        "create_draft_frist",
        {"titel": "Klagefrist SS 4 KSchG", "datum": "2025-03-24", "vorfrist": "20.03.2025"},
        _context(cases, drafts),
    )

    assert result.error is None
    assert result.data["typ"] == "FRIST"
    assert result.data["status"] == "PENDING"
    draft = await drafts.get(result.data["draftId"])
    assert draft is not None
    assert draft.kind is DraftKind.FRIST
    assert draft.payload.datum == "24.03.2025"


@pytest.mark.asyncio
async def test_frist_tool_rejects_invalid_date(registry, cases, drafts) -> None:
    result = await registry.execute(
        "create_draft_frist", {"titel": "Frist", "datum": "naechste Woche"}, _context(cases, drafts)
    )

    assert result.error == "Ungueltiges Datum: naechste Woche"


@pytest.mark.asyncio
async def test_notiz_requires_an_akte(registry, cases, drafts) -> None:
    result = await registry.execute("create_notiz", {"inhalt": "Rueckruf"}, _context(cases, drafts, akte_id=None))

    assert result.error.startswith("Keine Akte angegeben")
    assert await drafts.list_for_akte("akte-1") == []


@pytest.mark.asyncio
async def test_foreign_akte_is_not_readable(registry, cases, drafts) -> None:
    result = await registry.execute("read_akte", {}, _context(cases, drafts, user_id="anwalt-2"))

    assert result.error == "Akte akte-1 nicht gefunden oder kein Zugriff."


@pytest.mark.asyncio
async def test_alert_goes_to_akte_owner(registry, cases, drafts) -> None:
    alerts = InMemoryAlertStore()

    result = await registry.execute(
        "create_alert",
        {"typ": "FRIST_KRITISCH", "titel": "Klagefrist", "inhalt": "Frist endet in 4 Tagen", "severity": 9},
        _context(cases, drafts, alerts=alerts),
    )

    assert result.source["table"] == "helena_alerts"
    stored = alerts.list_for_akte("akte-1")
    assert [alert.user_id for alert in stored] == ["anwalt-1"]
    assert stored[0].severity == 9


@pytest.mark.asyncio
async def test_source_search_needs_index(registry, cases, drafts, legal_sources) -> None:
    missing = await registry.execute("search_gesetze", {"query": "Kuendigung"}, _context(cases, drafts))
    found = await registry.execute(
        "search_gesetze", {"query": "Kuendigung sozial ungerechtfertigt"}, _context(cases, drafts, sources=legal_sources)
    )

    assert missing.error == "Rechtsquellen-Index ist nicht konfiguriert."
    assert found.data
    assert all(item["referenz"].startswith("KSchG") for item in found.data)


@pytest.mark.asyncio
async def test_kosten_rules_for_arbeitsrecht(registry, cases, drafts) -> None:
    result = await registry.execute(
        "get_kosten_rules", {"klageart": "kschg_klage", "streitwert": 10500}, _context(cases, drafts)
    )

    assert result.data["streitwertRegel"]["typ"] == "VIERTELJAHRESGEHALT"
    assert result.data["einfacheGebuehr"] == 295
    assert len(result.data["hinweise"]) == 2


def test_web_search_is_only_offered_with_a_backend(registry) -> None:
    assert "search_web" not in registry.names()
    assert len(registry.names()) == 17


@pytest.mark.asyncio
async def test_web_search_returns_backend_results(cases, drafts) -> None:
    queries: list[str] = []

    @tool
    async def fake_web_search(query: str) -> dict:
        """Returns one canned hit."""
        queries.append(query)
        return {
            "results": [
                {"title": "BAG Pressemitteilung", "url": "https://example.org/bag", "content": "Urteil zur Kuendigung"}
            ]
        }

    registry = ToolRegistry()
    register_helena_tools(registry, web_search=fake_web_search)

    result = await registry.execute("search_web", {"query": "BAG Kuendigung 2025"}, _context(cases, drafts))

    assert queries == ["BAG Kuendigung 2025"]
    assert result.error is None
    assert result.data == [
        {"titel": "BAG Pressemitteilung", "url": "https://example.org/bag", "text": "Urteil zur Kuendigung"}
    ]
    assert result.source == {"table": "web", "query": "BAG Kuendigung 2025"}
