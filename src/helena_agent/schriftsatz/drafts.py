"""Approval-pending drafts: typed payloads, SQLite persistence and notification."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field

from helena_agent.schriftsatz.schemas import ErvWarnung, Schriftsatz
from helena_agent.types import utc_now

logger = logging.getLogger(__name__)


class DraftKind(str, Enum):
    DOKUMENT = "DOKUMENT"
    FRIST = "FRIST"
    NOTIZ = "NOTIZ"
    ZEITERFASSUNG = "ZEITERFASSUNG"


class DraftStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class DokumentPayload(BaseModel):
    dokument_typ: str = "SCHREIBEN"


class SchriftsatzPayload(BaseModel):
    """Pipeline output attached to a DOKUMENT draft."""

    klageart: str
    stadium: str
    rechtsgebiet: str
    schriftsatz: Schriftsatz
    warnungen: list[ErvWarnung] = Field(default_factory=list)


class FristPayload(BaseModel):
    datum: str
    fristtyp: str = "FRIST"
    vorfrist: str | None = None


class NotizPayload(BaseModel):
    pass


class ZeiterfassungPayload(BaseModel):
    dauer_minuten: int = Field(ge=1)
    datum: str
    taetigkeit: str | None = None


DraftPayload = SchriftsatzPayload | DokumentPayload | FristPayload | NotizPayload | ZeiterfassungPayload

_PAYLOAD_TYPES: dict[str, type[BaseModel]] = {
    "schriftsatz": SchriftsatzPayload,
    "dokument": DokumentPayload,
    "frist": FristPayload,
    "notiz": NotizPayload,
    "zeiterfassung": ZeiterfassungPayload,
}


def _payload_tag(payload: BaseModel) -> str:
    for tag, payload_type in _PAYLOAD_TYPES.items():
        if type(payload) is payload_type:
            return tag
    raise TypeError(f"Unsupported draft payload: {type(payload).__name__}")


class Draft(BaseModel):
    id: str
    akte_id: str
    user_id: str
    kind: DraftKind
    status: DraftStatus = DraftStatus.PENDING
    titel: str
    inhalt: str
    payload: DraftPayload
    created_at: datetime = Field(default_factory=utc_now)


class SqliteDraftStore:
    """Drafts table in SQLite; the payload is JSON only at this edge."""

    def __init__(self, sqlite_path: str | Path = "helena_agent.db") -> None:
        self.db_file = Path(sqlite_path)
        _ensure_drafts_table(self.db_file)

    def insert(self, draft: Draft) -> None:
        with sqlite3.connect(self.db_file) as conn:
            conn.execute(
                "INSERT INTO helena_drafts(id, akte_id, user_id, typ, status, titel, inhalt, meta_tag, meta, created_at) "
                "VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    draft.id,
                    draft.akte_id,
                    draft.user_id,
                    draft.kind.value,
                    draft.status.value,
                    draft.titel,
                    draft.inhalt,
                    _payload_tag(draft.payload),
                    draft.payload.model_dump_json(),
                    draft.created_at.isoformat(),
                ),
            )
            conn.commit()

    def get(self, draft_id: str) -> Draft | None:
        with sqlite3.connect(self.db_file) as conn:
            row = conn.execute(
                "SELECT id, akte_id, user_id, typ, status, titel, inhalt, meta_tag, meta, created_at "
                "FROM helena_drafts WHERE id = ?",
                (draft_id,),
            ).fetchone()
        return _row_to_draft(row) if row else None

    def list_for_akte(self, akte_id: str) -> list[Draft]:
        with sqlite3.connect(self.db_file) as conn:
            rows = conn.execute(
                "SELECT id, akte_id, user_id, typ, status, titel, inhalt, meta_tag, meta, created_at "
                "FROM helena_drafts WHERE akte_id = ? ORDER BY created_at",
                (akte_id,),
            ).fetchall()
        return [_row_to_draft(row) for row in rows]


def _row_to_draft(row: tuple[Any, ...]) -> Draft:
    draft_id, akte_id, user_id, typ, status, titel, inhalt, meta_tag, meta, created_at = row
    payload_type = _PAYLOAD_TYPES[meta_tag]
    return Draft(
        id=draft_id,
        akte_id=akte_id,
        user_id=user_id,
        kind=DraftKind(typ),
        status=DraftStatus(status),
        titel=titel,
        inhalt=inhalt,
        payload=payload_type.model_validate(json.loads(meta)),
        created_at=datetime.fromisoformat(created_at),
    )


def _ensure_drafts_table(db_file: Path) -> None:
    db_file.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_file) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS helena_drafts("
            "id TEXT PRIMARY KEY, akte_id TEXT NOT NULL, user_id TEXT NOT NULL, typ TEXT NOT NULL, "
            "status TEXT NOT NULL, titel TEXT NOT NULL, inhalt TEXT NOT NULL, meta_tag TEXT NOT NULL, "
            "meta TEXT NOT NULL, created_at TEXT NOT NULL)"
        )
        conn.commit()


class Notifier(Protocol):
    """Delivers in-app notifications."""

    async def notify(self, user_id: str, *, title: str, message: str, data: dict[str, Any]) -> None:
        """Send one notification."""


class InMemoryNotifier:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def notify(self, user_id: str, *, title: str, message: str, data: dict[str, Any]) -> None:
        self.sent.append({"user_id": user_id, "title": title, "message": message, "data": data})


async def notify_draft_created(
    notifier: Notifier,
    draft: Draft,
    *,
    triggered_by: str,
    owner_id: str | None,
) -> None:
    """Notify the requesting user and the case owner; failures are logged only."""
    recipients = [triggered_by]
    if owner_id and owner_id != triggered_by:
        recipients.append(owner_id)
    for recipient in recipients:
        try:
            await notifier.notify(
                recipient,
                title=f"Neuer Helena-Entwurf: {draft.titel}",
                message=f"Helena hat einen {draft.kind.value}-Entwurf erstellt.",
                data={
                    "draftId": draft.id,
                    "akteId": draft.akte_id,
                    "draftTyp": draft.kind.value,
                    "link": f"/akten/{draft.akte_id}?draft={draft.id}",
                },
            )
        except Exception as exc:
            logger.warning("Draft notification to %s failed: %s", recipient, exc)


class DraftService:
    """Creates drafts on behalf of the assistant user."""

    def __init__(
        self,
        store: SqliteDraftStore,
        *,
        notifier: Notifier | None = None,
        helena_user_id: str = "helena",
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.helena_user_id = helena_user_id

    async def create_draft(
        self,
        *,
        akte_id: str,
        kind: DraftKind,
        titel: str,
        inhalt: str,
        payload: DraftPayload,
        triggered_by: str,
        owner_id: str | None = None,
    ) -> Draft:
        draft = Draft(
            id=str(uuid.uuid4()),
            akte_id=akte_id,
            user_id=self.helena_user_id,
            kind=kind,
            titel=titel,
            inhalt=inhalt,
            payload=payload,
        )
        await asyncio.to_thread(self.store.insert, draft)
        logger.info("Created %s draft %s for Akte %s", kind.value, draft.id, akte_id)
        if self.notifier is not None:
            await notify_draft_created(self.notifier, draft, triggered_by=triggered_by, owner_id=owner_id)
        return draft

    async def get(self, draft_id: str) -> Draft | None:
        return await asyncio.to_thread(self.store.get, draft_id)

    async def list_for_akte(self, akte_id: str) -> list[Draft]:
        return await asyncio.to_thread(self.store.list_for_akte, akte_id)
