"""Atomic counter stores behind the rate limiter."""

from __future__ import annotations

import time
from typing import Protocol

from redis.asyncio import Redis


class CounterStore(Protocol):
    """Minimal increment/expire/ttl contract of a shared counter backend."""

    async def incr(self, key: str) -> int:
        """Increment and return the new value."""

    async def expire(self, key: str, seconds: int) -> None:
        """Set the key's time to live."""

    async def ttl(self, key: str) -> int:
        """Remaining seconds, or a negative value without expiry."""


class InMemoryCounterStore:
    """Process-local store for tests and single-instance deployments."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._values: dict[str, int] = {}
        self._expires: dict[str, float] = {}

    def _evict(self, key: str) -> None:
        deadline = self._expires.get(key)
        if deadline is not None and deadline <= self._clock():
            self._values.pop(key, None)
            self._expires.pop(key, None)

    async def incr(self, key: str) -> int:
        self._evict(key)
        self._values[key] = self._values.get(key, 0) + 1
        return self._values[key]

    async def expire(self, key: str, seconds: int) -> None:
        if key in self._values:
            self._expires[key] = self._clock() + seconds

    async def ttl(self, key: str) -> int:
        self._evict(key)
        if key not in self._values:
            return -2
        deadline = self._expires.get(key)
        if deadline is None:
            return -1
        return max(0, int(deadline - self._clock()))


class RedisCounterStore:
    """Redis-backed store; the client is owned by the surrounding application."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCounterStore":
        return cls(Redis.from_url(url, decode_responses=True))

    async def incr(self, key: str) -> int:
        return int(await self._client.incr(key))

    async def expire(self, key: str, seconds: int) -> None:
        await self._client.expire(key, seconds)

    async def ttl(self, key: str) -> int:
        return int(await self._client.ttl(key))
