"""Tool-call audit trail and token usage accounting."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol


@dataclass(slots=True)
class ToolAuditRecord:
    audit_id: str
    timestamp_utc: str
    tool_name: str
    params: dict[str, Any]
    result_summary: str
    user_id: str
    akte_id: str | None
    duration_ms: float
    cache_hit: bool = False


@dataclass(slots=True)
class UsageRecord:
    timestamp_utc: str
    user_id: str
    akte_id: str | None
    funktion: str
    provider: str
    model: str
    tokens_in: int
    tokens_out: int


class AuditLog(Protocol):
    """Structured audit logger for tool invocations."""

    def log_tool_call(
        self,
        *,
        tool_name: str,
        params: dict[str, Any],
        result_summary: str,
        user_id: str,
        akte_id: str | None,
        duration_ms: float,
        cache_hit: bool = False,
    ) -> None:
        """Persist one audit entry."""


class UsageTracker(Protocol):
    """Fire-and-forget token usage recorder."""

    async def record(
        self,
        *,
        user_id: str,
        akte_id: str | None,
        funktion: str,
        provider: str,
        model: str,
        tokens_in: int,
        tokens_out: int,
    ) -> None:
        """Persist one usage entry."""


class InMemoryAuditLog:
    """In-memory audit storage for API-level observability."""

    def __init__(self, max_records: int = 5000) -> None:
        self._records: dict[str, ToolAuditRecord] = {}
        self._max_records = max_records

    def log_tool_call(
        self,
        *,
        tool_name: str,
        params: dict[str, Any],
        result_summary: str,
        user_id: str,
        akte_id: str | None,
        duration_ms: float,
        cache_hit: bool = False,
    ) -> None:
        audit_id = str(uuid.uuid4())
        self._records[audit_id] = ToolAuditRecord(
            audit_id=audit_id,
            timestamp_utc=_utc_now(),
            tool_name=tool_name,
            params=params,
            result_summary=result_summary,
            user_id=user_id,
            akte_id=akte_id,
            duration_ms=duration_ms,
            cache_hit=cache_hit,
        )
        if len(self._records) > self._max_records:
            oldest = next(iter(self._records))
            del self._records[oldest]

    def get(self, audit_id: str) -> ToolAuditRecord:
        record = self._records.get(audit_id)
        if record is None:
            raise KeyError(f"Audit record not found: {audit_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[ToolAuditRecord]:
        return list(self._records.values())[-limit:]


class InMemoryUsageTracker:
    """Collects usage records and aggregates them for dashboards."""

    def __init__(self) -> None:
        self.records: list[UsageRecord] = []

    async def record(
        self,
        *,
        user_id: str,
        akte_id: str | None,
        funktion: str,
        provider: str,
        model: str,
        tokens_in: int,
        tokens_out: int,
    ) -> None:
        self.records.append(
            UsageRecord(
                timestamp_utc=_utc_now(),
                user_id=user_id,
                akte_id=akte_id,
                funktion=funktion,
                provider=provider,
                model=model,
                tokens_in=tokens_in,
                tokens_out=tokens_out,
            )
        )

    def summary(self) -> dict[str, Any]:
        """Aggregate token usage per model for dashboard display."""
        per_model: dict[str, dict[str, int]] = {}
        for record in self.records:
            bucket = per_model.setdefault(record.model, {"tokens_in": 0, "tokens_out": 0, "calls": 0})
            bucket["tokens_in"] += record.tokens_in
            bucket["tokens_out"] += record.tokens_out
            bucket["calls"] += 1
        return {
            "total_calls": len(self.records),
            "total_tokens_in": sum(record.tokens_in for record in self.records),
            "total_tokens_out": sum(record.tokens_out for record in self.records),
            "per_model": per_model,
        }


@dataclass(slots=True)
class Timer:
    """Simple context timer used around tool and model calls."""

    _start: float = field(default=0.0, repr=False)
    elapsed_ms: float = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
