"""Built-in Helena tool catalogue.

Read tools return case data and legal sources; write tools never touch live
data and only create approval-pending drafts or alerts. Every handler takes a
validated input model plus the run's `ToolContext` and returns a
`ToolResult` with provenance in `source`.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Literal

from langchain_core.tools import BaseTool
from pydantic import BaseModel, Field

from helena_agent.agent.registry import ToolContext, ToolRegistry, ToolSpec
from helena_agent.agent.roles import HelenaTool
from helena_agent.cases import Akte, Alert, format_address, format_party_name
from helena_agent.retrieval.types import Quelle
from helena_agent.schriftsatz.assembler import format_euro, gkg_einfache_gebuehr
from helena_agent.schriftsatz.dates import format_date, parse_date_string
from helena_agent.schriftsatz.drafts import (
    DokumentPayload,
    DraftKind,
    FristPayload,
    NotizPayload,
    ZeiterfassungPayload,
)
from helena_agent.schriftsatz.registry import get_klageart_definition
from helena_agent.types import ToolResult, utc_now

NOTIZ_TITLE_CHARS = 80
DOKUMENT_TEXT_CHARS = 8000
CANCELLED = "Abgebrochen."
NO_AKTE = "Keine Akte angegeben und kein Akte-Kontext vorhanden."


class AkteInput(BaseModel):
    akte_id: str | None = Field(default=None, description="ID der Akte; ohne Angabe die aktuelle Akte")


class FristenInput(AkteInput):
    nur_offen: bool = Field(default=True, description="Nur nicht erledigte Fristen")


class DokumentDetailInput(AkteInput):
    dokument_id: str = Field(min_length=1)


class SourceSearchInput(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=20)


class KostenRulesInput(BaseModel):
    streitwert: float | None = Field(default=None, ge=0)
    klageart: str | None = None


class AktenSearchInput(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=10, ge=1, le=50)


class WebSearchInput(BaseModel):
    query: str = Field(min_length=1)


class DraftDokumentInput(AkteInput):
    titel: str = Field(min_length=1)
    inhalt: str = Field(min_length=1)
    dokument_typ: str = "SCHREIBEN"


class DraftFristInput(AkteInput):
    titel: str = Field(min_length=1)
    datum: str = Field(description="Fristdatum TT.MM.JJJJ oder JJJJ-MM-TT")
    fristtyp: str = "FRIST"
    vorfrist: str | None = None
    beschreibung: str | None = None


class NotizInput(AkteInput):
    inhalt: str = Field(min_length=1)


class AlertInput(AkteInput):
    typ: Literal[
        "FRIST_KRITISCH",
        "AKTE_INAKTIV",
        "BETEILIGTE_FEHLEN",
        "DOKUMENT_FEHLT",
        "WIDERSPRUCH",
        "NEUES_URTEIL",
    ]
    titel: str = Field(min_length=1)
    inhalt: str = Field(min_length=1)
    severity: int = Field(default=5, ge=1, le=10)


class ZeiterfassungInput(AkteInput):
    dauer_minuten: int = Field(ge=1, le=24 * 60)
    beschreibung: str = Field(min_length=1)
    datum: str | None = None


def _resolve_akte(ctx: ToolContext, akte_id: str | None) -> tuple[Akte | None, ToolResult | None]:
    target = akte_id or ctx.akte_id
    if not target:
        return None, ToolResult(error=NO_AKTE)
    akte = ctx.cases.get_akte(target)
    if akte is None or not ctx.can_access_akte(target):
        return None, ToolResult(error=f"Akte {target} nicht gefunden oder kein Zugriff.")
    return akte, None


def _akte_summary(akte: Akte) -> dict[str, object]:
    return {
        "id": akte.id,
        "aktenzeichen": akte.aktenzeichen,
        "kurzrubrum": akte.kurzrubrum,
        "sachgebiet": akte.sachgebiet,
        "status": akte.status,
        "gegenstandswert": akte.gegenstandswert,
        "beteiligte": [
            {
                "rolle": entry.rolle,
                "name": format_party_name(entry.kontakt),
                "adresse": format_address(entry.kontakt),
            }
            for entry in akte.beteiligte
        ],
    }


async def _read_akte(data: AkteInput, ctx: ToolContext) -> ToolResult:
    akte, error = _resolve_akte(ctx, data.akte_id)
    if error:
        return error
    return ToolResult(data=_akte_summary(akte), source={"table": "akten", "id": akte.id})


async def _read_akte_detail(data: AkteInput, ctx: ToolContext) -> ToolResult:
    akte, error = _resolve_akte(ctx, data.akte_id)
    if error:
        return error
    detail = _akte_summary(akte)
    detail["dokumente"] = [{"id": dok.id, "name": dok.name, "tags": dok.tags} for dok in akte.dokumente]
    detail["fristen"] = [
        {"id": frist.id, "titel": frist.titel, "datum": format_date(frist.datum), "erledigt": frist.erledigt}
        for frist in akte.fristen
    ]
    detail["felder"] = akte.felder
    return ToolResult(data=detail, source={"table": "akten", "id": akte.id})


async def _read_dokumente(data: AkteInput, ctx: ToolContext) -> ToolResult:
    akte, error = _resolve_akte(ctx, data.akte_id)
    if error:
        return error
    return ToolResult(
        data=[{"id": dok.id, "name": dok.name, "tags": dok.tags} for dok in akte.dokumente],
        source={"table": "dokumente", "query": f"akte_id={akte.id}"},
    )


async def _read_dokumente_detail(data: DokumentDetailInput, ctx: ToolContext) -> ToolResult:
    akte, error = _resolve_akte(ctx, data.akte_id)
    if error:
        return error
    for dok in akte.dokumente:
        if dok.id == data.dokument_id:
            return ToolResult(
                data={"id": dok.id, "name": dok.name, "tags": dok.tags, "text": dok.text[:DOKUMENT_TEXT_CHARS]},
                source={"table": "dokumente", "id": dok.id},
            )
    return ToolResult(error=f"Dokument {data.dokument_id} nicht gefunden.")


async def _read_fristen(data: FristenInput, ctx: ToolContext) -> ToolResult:
    akte, error = _resolve_akte(ctx, data.akte_id)
    if error:
        return error
    fristen = [frist for frist in akte.fristen if not (data.nur_offen and frist.erledigt)]
    fristen.sort(key=lambda frist: frist.datum)
    return ToolResult(
        data=[
            {"id": frist.id, "titel": frist.titel, "datum": format_date(frist.datum), "erledigt": frist.erledigt}
            for frist in fristen
        ],
        source={"table": "fristen", "query": f"akte_id={akte.id}"},
    )


async def _read_zeiterfassung(data: AkteInput, ctx: ToolContext) -> ToolResult:
    akte, error = _resolve_akte(ctx, data.akte_id)
    if error:
        return error
    eintraege = [
        {
            "id": eintrag.id,
            "datum": format_date(eintrag.datum),
            "dauerMinuten": eintrag.dauer_minuten,
            "beschreibung": eintrag.beschreibung,
        }
        for eintrag in akte.zeiteintraege
    ]
    return ToolResult(
        data={"eintraege": eintraege, "summeMinuten": sum(e.dauer_minuten for e in akte.zeiteintraege)},
        source={"table": "zeiterfassungen", "query": f"akte_id={akte.id}"},
    )


def _source_search(quelle: Quelle):
    async def _search(data: SourceSearchInput, ctx: ToolContext) -> ToolResult:
        if ctx.sources is None:
            return ToolResult(error="Rechtsquellen-Index ist nicht konfiguriert.")
        embedding = await ctx.cancellation.guard(ctx.sources.embed_query(data.query))
        chunks = await ctx.cancellation.guard(ctx.sources.search(quelle, embedding, data.limit))
        return ToolResult(
            data=[
                {"id": chunk.id, "referenz": chunk.referenz, "score": round(chunk.score, 4), "text": chunk.content}
                for chunk in chunks
            ],
            source={"table": f"{quelle}_chunks", "query": data.query},
        )

    return _search


async def _get_kosten_rules(data: KostenRulesInput, ctx: ToolContext) -> ToolResult:
    result: dict[str, object] = {}
    if data.klageart:
        definition = get_klageart_definition(data.klageart)
        regel = definition.streitwert_regel
        result["klageart"] = definition.id
        result["streitwertRegel"] = {"typ": regel.typ, "faktor": regel.faktor, "festbetrag": regel.festbetrag}
        if definition.rechtsgebiet == "ARBEITSRECHT":
            result["hinweise"] = [
                "Kein Gebuehrenvorschuss beim Arbeitsgericht erforderlich",
                "Kosten erster Instanz: Jede Partei traegt eigene Anwaltskosten (SS 12a ArbGG)",
            ]
    if data.streitwert is not None:
        gebuehr = gkg_einfache_gebuehr(data.streitwert)
        result["streitwert"] = data.streitwert
        result["einfacheGebuehr"] = gebuehr
        result["gerichtskosten3fach"] = gebuehr * 3
        result["anzeige"] = f"{format_euro(gebuehr * 3)} EUR Gerichtskosten (3,0 Gebuehr nach GKG)"
    if not result:
        return ToolResult(error="Bitte streitwert oder klageart angeben.")
    return ToolResult(data=result, source={"table": "kosten_rules"})


async def _search_alle_akten(data: AktenSearchInput, ctx: ToolContext) -> ToolResult:
    akten = ctx.cases.search_akten(data.query, ctx.user_id, ctx.user_role, data.limit)
    return ToolResult(
        data=[_akte_summary(akte) for akte in akten],
        source={"table": "akten", "query": data.query},
    )


def _web_search(backend: BaseTool):
    async def _search(data: WebSearchInput, ctx: ToolContext) -> ToolResult:
        raw = await ctx.cancellation.guard(backend.ainvoke({"query": data.query}))
        if isinstance(raw, dict):
            if raw.get("error"):
                return ToolResult(error=f"Websuche fehlgeschlagen: {raw['error']}")
            raw = raw.get("results", [])
        source = {"table": "web", "query": data.query}
        if not isinstance(raw, list):
            return ToolResult(data=str(raw), source=source)
        return ToolResult(
            data=[
                {"titel": item.get("title"), "url": item.get("url"), "text": item.get("content")}
                for item in raw
                if isinstance(item, dict)
            ],
            source=source,
        )

    return _search


async def _create_draft_dokument(data: DraftDokumentInput, ctx: ToolContext) -> ToolResult:
    akte, error = _resolve_akte(ctx, data.akte_id)
    if error:
        return error
    if ctx.cancellation.cancelled:
        return ToolResult(error=CANCELLED)
    draft = await ctx.drafts.create_draft(
        akte_id=akte.id,
        kind=DraftKind.DOKUMENT,
        titel=data.titel,
        inhalt=data.inhalt,
        payload=DokumentPayload(dokument_typ=data.dokument_typ),
        triggered_by=ctx.user_id,
        owner_id=akte.owner_id,
    )
    return _draft_result(draft.id, draft.kind)


async def _create_draft_frist(data: DraftFristInput, ctx: ToolContext) -> ToolResult:
    akte, error = _resolve_akte(ctx, data.akte_id)
    if error:
        return error
    datum = parse_date_string(data.datum)
    if datum is None:
        return ToolResult(error=f"Ungueltiges Datum: {data.datum}")
    if ctx.cancellation.cancelled:
        return ToolResult(error=CANCELLED)
    draft = await ctx.drafts.create_draft(
        akte_id=akte.id,
        kind=DraftKind.FRIST,
        titel=data.titel,
        inhalt=data.beschreibung or data.titel,
        payload=FristPayload(datum=format_date(datum), fristtyp=data.fristtyp, vorfrist=data.vorfrist),
        triggered_by=ctx.user_id,
        owner_id=akte.owner_id,
    )
    return _draft_result(draft.id, draft.kind)


async def _create_notiz(data: NotizInput, ctx: ToolContext) -> ToolResult:
    if not (data.akte_id or ctx.akte_id):
        return ToolResult(error=f"{NO_AKTE} Notizen benoetigen eine Akte.")
    akte, error = _resolve_akte(ctx, data.akte_id)
    if error:
        return error
    if ctx.cancellation.cancelled:
        return ToolResult(error=CANCELLED)
    titel = data.inhalt if len(data.inhalt) <= NOTIZ_TITLE_CHARS else data.inhalt[:77] + "..."
    draft = await ctx.drafts.create_draft(
        akte_id=akte.id,
        kind=DraftKind.NOTIZ,
        titel=titel,
        inhalt=data.inhalt,
        payload=NotizPayload(),
        triggered_by=ctx.user_id,
        owner_id=akte.owner_id,
    )
    return _draft_result(draft.id, draft.kind)


async def _create_alert(data: AlertInput, ctx: ToolContext) -> ToolResult:
    akte, error = _resolve_akte(ctx, data.akte_id)
    if error:
        return error
    if ctx.alerts is None:
        return ToolResult(error="Hinweise sind nicht verfuegbar.")
    if ctx.cancellation.cancelled:
        return ToolResult(error=CANCELLED)
    alert = Alert(
        id=str(uuid.uuid4()),
        akte_id=akte.id,
        typ=data.typ,
        titel=data.titel,
        inhalt=data.inhalt,
        severity=data.severity,
        user_id=akte.owner_id,
    )
    ctx.alerts.add(alert)
    return ToolResult(
        data={"alertId": alert.id, "typ": alert.typ, "severity": alert.severity},
        source={"table": "helena_alerts", "id": alert.id},
    )


async def _update_akte_rag(data: AkteInput, ctx: ToolContext) -> ToolResult:
    akte, error = _resolve_akte(ctx, data.akte_id)
    if error:
        return error
    if ctx.cancellation.cancelled:
        return ToolResult(error=CANCELLED)
    stand = utc_now().isoformat()
    akte.felder["rag_stand"] = stand
    return ToolResult(
        data={"akteId": akte.id, "dokumente": len(akte.dokumente), "stand": stand},
        source={"table": "akten", "id": akte.id},
    )


async def _create_draft_zeiterfassung(data: ZeiterfassungInput, ctx: ToolContext) -> ToolResult:
    akte, error = _resolve_akte(ctx, data.akte_id)
    if error:
        return error
    datum = parse_date_string(data.datum) if data.datum else date.today()
    if datum is None:
        return ToolResult(error=f"Ungueltiges Datum: {data.datum}")
    if ctx.cancellation.cancelled:
        return ToolResult(error=CANCELLED)
    draft = await ctx.drafts.create_draft(
        akte_id=akte.id,
        kind=DraftKind.ZEITERFASSUNG,
        titel=f"{data.dauer_minuten} Min. -- {data.beschreibung[:60]}",
        inhalt=data.beschreibung,
        payload=ZeiterfassungPayload(
            dauer_minuten=data.dauer_minuten, datum=format_date(datum), taetigkeit=data.beschreibung
        ),
        triggered_by=ctx.user_id,
        owner_id=akte.owner_id,
    )
    return _draft_result(draft.id, draft.kind)


def _draft_result(draft_id: str, kind: DraftKind) -> ToolResult:
    return ToolResult(
        data={"draftId": draft_id, "typ": kind.value, "status": "PENDING"},
        source={"table": "helena_drafts", "id": draft_id},
    )


def register_helena_tools(registry: ToolRegistry, *, web_search: BaseTool | None = None) -> None:
    """Register the tool catalogue; role filtering happens per run.

    `search_web` is only offered when a web search backend is configured.
    """

    specs = [
        (HelenaTool.READ_AKTE, "Liest Stammdaten und Beteiligte einer Akte.", AkteInput, _read_akte, ["read"]),
        (
            HelenaTool.READ_AKTE_DETAIL,
            "Liest eine Akte vollstaendig inkl. Dokumentenliste, Fristen und Felder.",
            AkteInput,
            _read_akte_detail,
            ["read"],
        ),
        (HelenaTool.READ_DOKUMENTE, "Listet die Dokumente einer Akte.", AkteInput, _read_dokumente, ["read"]),
        (
            HelenaTool.READ_DOKUMENTE_DETAIL,
            "Liest den Text eines Dokuments.",
            DokumentDetailInput,
            _read_dokumente_detail,
            ["read"],
        ),
        (HelenaTool.READ_FRISTEN, "Listet Fristen einer Akte.", FristenInput, _read_fristen, ["read"]),
        (
            HelenaTool.READ_ZEITERFASSUNG,
            "Listet Zeiteintraege einer Akte.",
            AkteInput,
            _read_zeiterfassung,
            ["read"],
        ),
        (
            HelenaTool.SEARCH_GESETZE,
            "Durchsucht Gesetzestexte.",
            SourceSearchInput,
            _source_search("gesetz"),
            ["read", "retrieval"],
        ),
        (
            HelenaTool.SEARCH_URTEILE,
            "Durchsucht Rechtsprechung.",
            SourceSearchInput,
            _source_search("urteil"),
            ["read", "retrieval"],
        ),
        (
            HelenaTool.SEARCH_MUSTER,
            "Durchsucht Musterschriftsaetze.",
            SourceSearchInput,
            _source_search("muster"),
            ["read", "retrieval"],
        ),
        (
            HelenaTool.GET_KOSTEN_RULES,
            "Liefert Streitwertregeln und Gerichtskosten nach GKG.",
            KostenRulesInput,
            _get_kosten_rules,
            ["read"],
        ),
        (
            HelenaTool.SEARCH_ALLE_AKTEN,
            "Durchsucht alle Akten, auf die der Nutzer Zugriff hat.",
            AktenSearchInput,
            _search_alle_akten,
            ["read"],
        ),
        (
            HelenaTool.CREATE_DRAFT_DOKUMENT,
            "Legt einen Dokument-Entwurf zur Freigabe an.",
            DraftDokumentInput,
            _create_draft_dokument,
            ["write"],
        ),
        (
            HelenaTool.CREATE_DRAFT_FRIST,
            "Legt einen Frist-Entwurf zur Freigabe an.",
            DraftFristInput,
            _create_draft_frist,
            ["write"],
        ),
        (HelenaTool.CREATE_NOTIZ, "Legt einen Notiz-Entwurf an.", NotizInput, _create_notiz, ["write"]),
        (HelenaTool.CREATE_ALERT, "Legt einen Hinweis zur Akte an.", AlertInput, _create_alert, ["write"]),
        (
            HelenaTool.UPDATE_AKTE_RAG,
            "Indiziert eine Akte fuer die Suche neu.",
            AkteInput,
            _update_akte_rag,
            ["write"],
        ),
        (
            HelenaTool.CREATE_DRAFT_ZEITERFASSUNG,
            "Legt einen Zeiterfassungs-Entwurf an.",
            ZeiterfassungInput,
            _create_draft_zeiterfassung,
            ["write"],
        ),
    ]
    if web_search is not None:
        specs.append(
            (
                HelenaTool.SEARCH_WEB,
                "Websuche, wenn interne Quellen nicht reichen.",
                WebSearchInput,
                _web_search(web_search),
                ["read"],
            )
        )
    for tool, description, args_schema, handler, tags in specs:
        registry.register(
            ToolSpec(
                name=tool.value,
                description=description,
                args_schema=args_schema,
                handler=handler,
                tags=tags,
            )
        )
