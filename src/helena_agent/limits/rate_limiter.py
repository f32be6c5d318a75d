"""Fixed-window per-user request limiter with fail-open degradation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from helena_agent.config import RateLimitConfig, SettingsProvider
from helena_agent.limits.counters import CounterStore
from helena_agent.types import utc_now

logger = logging.getLogger(__name__)


class HealthState(str, Enum):
    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"


@dataclass(slots=True, frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    limit: int
    reset_at: datetime
    message: str | None = None


class RateLimiter:
    """Counts requests per user in a one-hour window.

    The window starts with the first request: the counter key receives its
    expiry only when the increment returns 1. If the store cannot be reached
    the request is allowed and the limiter reports `DEGRADED` until the next
    successful round trip.
    """

    def __init__(
        self,
        store: CounterStore,
        settings: SettingsProvider,
        *,
        config: RateLimitConfig | None = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.config = config or RateLimitConfig()
        self._state = HealthState.HEALTHY

    def health(self) -> HealthState:
        return self._state

    def limit(self) -> int:
        raw = self.settings.get(self.config.setting_key, self.config.default_limit_per_hour)
        try:
            value = int(raw)
        except (TypeError, ValueError):
            logger.warning("Invalid rate limit setting %r, using default", raw)
            return self.config.default_limit_per_hour
        return value if value > 0 else self.config.default_limit_per_hour

    async def check(self, user_id: str) -> RateLimitResult:
        limit = self.limit()
        key = f"{self.config.key_prefix}{user_id}"
        now = utc_now()
        try:
            count = await self.store.incr(key)
            if count == 1:
                await self.store.expire(key, self.config.window_seconds)
            ttl = await self.store.ttl(key)
            if ttl == -1:
                # An earlier expire was lost; the window restarts now.
                await self.store.expire(key, self.config.window_seconds)
                ttl = self.config.window_seconds
        except Exception as exc:
            if self._state is HealthState.HEALTHY:
                logger.warning("Rate limit store unavailable, failing open: %s", exc)
            self._state = HealthState.DEGRADED
            return RateLimitResult(
                allowed=True,
                remaining=limit - 1,
                limit=limit,
                reset_at=now + timedelta(seconds=self.config.window_seconds),
            )

        if self._state is HealthState.DEGRADED:
            logger.info("Rate limit store reachable again")
        self._state = HealthState.HEALTHY

        reset_at = now + timedelta(seconds=ttl if ttl > 0 else self.config.window_seconds)
        if count > limit:
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=limit,
                reset_at=reset_at,
                message=(
                    f"Du hast das Limit von {limit} Helena-Anfragen pro Stunde erreicht. "
                    f"Bitte warte bis {reset_at.astimezone().strftime('%H:%M')}."
                ),
            )
        return RateLimitResult(allowed=True, remaining=limit - count, limit=limit, reset_at=reset_at)
