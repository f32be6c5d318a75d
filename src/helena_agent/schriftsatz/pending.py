"""Durable continuation state for multi-turn Schriftsatz clarification."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from helena_agent.schriftsatz.schemas import IntentResult, SlotValues
from helena_agent.types import utc_now

TTL_DAYS = 7
MAX_ROUNDS = 5


@dataclass(slots=True)
class PendingPipelineState:
    user_id: str
    akte_id: str
    intent: IntentResult
    slots: SlotValues
    rueckfrage: str
    round: int
    original_message: str
    expires_at: datetime


class SqlitePendingPipelineStore:
    """One row per (user, Akte); every save refreshes the expiry.

    Expired rows are removed lazily on `load`. The round limit is enforced by
    the caller against `max_rounds`.
    """

    def __init__(
        self,
        sqlite_path: str | Path = "helena_agent.db",
        *,
        ttl_days: int = TTL_DAYS,
        max_rounds: int = MAX_ROUNDS,
    ) -> None:
        self.db_file = Path(sqlite_path)
        self.ttl = timedelta(days=ttl_days)
        self.max_rounds = max_rounds
        _ensure_pending_table(self.db_file)

    def save(
        self,
        user_id: str,
        akte_id: str,
        intent: IntentResult,
        slots: SlotValues,
        rueckfrage: str,
        round: int,
        original_message: str,
        *,
        now: datetime | None = None,
    ) -> PendingPipelineState:
        expires_at = (now or utc_now()) + self.ttl
        with sqlite3.connect(self.db_file) as conn:
            conn.execute(
                "INSERT INTO helena_pending_pipelines"
                "(user_id, akte_id, intent, slots, rueckfrage, round, original_message, expires_at) "
                "VALUES(?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(user_id, akte_id) DO UPDATE SET "
                "intent=excluded.intent, slots=excluded.slots, rueckfrage=excluded.rueckfrage, "
                "round=excluded.round, original_message=excluded.original_message, "
                "expires_at=excluded.expires_at",
                (
                    user_id,
                    akte_id,
                    intent.model_dump_json(),
                    json.dumps(slots, ensure_ascii=False),
                    rueckfrage,
                    round,
                    original_message,
                    expires_at.isoformat(),
                ),
            )
            conn.commit()
        return PendingPipelineState(
            user_id=user_id,
            akte_id=akte_id,
            intent=intent,
            slots=dict(slots),
            rueckfrage=rueckfrage,
            round=round,
            original_message=original_message,
            expires_at=expires_at,
        )

    def load(self, user_id: str, akte_id: str, *, now: datetime | None = None) -> PendingPipelineState | None:
        with sqlite3.connect(self.db_file) as conn:
            row = conn.execute(
                "SELECT intent, slots, rueckfrage, round, original_message, expires_at "
                "FROM helena_pending_pipelines WHERE user_id = ? AND akte_id = ?",
                (user_id, akte_id),
            ).fetchone()
        if row is None:
            return None
        intent_json, slots_json, rueckfrage, round_, original_message, expires_raw = row
        expires_at = datetime.fromisoformat(expires_raw)
        if expires_at <= (now or utc_now()):
            self.clear(user_id, akte_id)
            return None
        return PendingPipelineState(
            user_id=user_id,
            akte_id=akte_id,
            intent=IntentResult.model_validate_json(intent_json),
            slots=json.loads(slots_json),
            rueckfrage=rueckfrage,
            round=round_,
            original_message=original_message,
            expires_at=expires_at,
        )

    def clear(self, user_id: str, akte_id: str) -> None:
        with sqlite3.connect(self.db_file) as conn:
            conn.execute(
                "DELETE FROM helena_pending_pipelines WHERE user_id = ? AND akte_id = ?",
                (user_id, akte_id),
            )
            conn.commit()


def _ensure_pending_table(db_file: Path) -> None:
    db_file.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_file) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS helena_pending_pipelines("
            "user_id TEXT NOT NULL, akte_id TEXT NOT NULL, intent TEXT NOT NULL, slots TEXT NOT NULL, "
            "rueckfrage TEXT NOT NULL, round INTEGER NOT NULL, original_message TEXT NOT NULL, "
            "expires_at TEXT NOT NULL, PRIMARY KEY(user_id, akte_id))"
        )
        conn.commit()
