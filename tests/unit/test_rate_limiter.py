import pytest

from helena_agent.config import InMemorySettings, RateLimitConfig
from helena_agent.limits.counters import InMemoryCounterStore
from helena_agent.limits.rate_limiter import HealthState, RateLimiter


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _FlakyStore:
    def __init__(self) -> None:
        self.inner = InMemoryCounterStore()
        self.down = True

    async def incr(self, key: str) -> int:
        if self.down:
            raise ConnectionError("redis down")
        return await self.inner.incr(key)

    async def expire(self, key: str, seconds: int) -> None:
        await self.inner.expire(key, seconds)

    async def ttl(self, key: str) -> int:
        return await self.inner.ttl(key)


@pytest.mark.asyncio
async def test_limit_plus_one_request_is_blocked() -> None:
    settings = InMemorySettings({"ai.helena.rate_limit_per_hour": 3})
    limiter = RateLimiter(InMemoryCounterStore(), settings)

    results = [await limiter.check("u1") for _ in range(4)]

    assert [result.allowed for result in results] == [True, True, True, False]
    assert [result.remaining for result in results] == [2, 1, 0, 0]
    assert results[-1].message is not None
    assert "Limit von 3 Helena-Anfragen pro Stunde" in results[-1].message
    assert (await limiter.check("u2")).allowed


@pytest.mark.asyncio
async def test_window_resets_after_expiry() -> None:
    clock = _FakeClock()
    limiter = RateLimiter(
        InMemoryCounterStore(clock=clock),
        InMemorySettings({"ai.helena.rate_limit_per_hour": 1}),
        config=RateLimitConfig(window_seconds=60),
    )

    assert (await limiter.check("u1")).allowed
    assert not (await limiter.check("u1")).allowed

    clock.now += 61
    assert (await limiter.check("u1")).allowed


def test_invalid_setting_falls_back_to_default() -> None:
    limiter = RateLimiter(InMemoryCounterStore(), InMemorySettings({"ai.helena.rate_limit_per_hour": "viele"}))
    assert limiter.limit() == 60

    limiter.settings = InMemorySettings({"ai.helena.rate_limit_per_hour": 0})
    assert limiter.limit() == 60


@pytest.mark.asyncio
async def test_store_failure_fails_open_and_recovers() -> None:
    store = _FlakyStore()
    limiter = RateLimiter(store, InMemorySettings({"ai.helena.rate_limit_per_hour": 5}))

    degraded = await limiter.check("u1")
    assert degraded.allowed
    assert degraded.remaining == 4
    assert limiter.health() is HealthState.DEGRADED

    store.down = False
    healthy = await limiter.check("u1")
    assert healthy.allowed
    assert limiter.health() is HealthState.HEALTHY


@pytest.mark.asyncio
async def test_counter_store_ttl_semantics() -> None:
    clock = _FakeClock()
    store = InMemoryCounterStore(clock=clock)

    assert await store.ttl("missing") == -2
    await store.incr("k")
    assert await store.ttl("k") == -1
    await store.expire("k", 30)
    assert await store.ttl("k") == 30

    clock.now += 31
    assert await store.ttl("k") == -2
    assert await store.incr("k") == 1


class _LostExpireStore(InMemoryCounterStore):
    def __init__(self, clock) -> None:
        super().__init__(clock=clock)
        self.fail_next_expire = True

    async def expire(self, key: str, seconds: int) -> None:
        if self.fail_next_expire:
            self.fail_next_expire = False
            raise ConnectionError("expire lost")
        await super().expire(key, seconds)


@pytest.mark.asyncio
async def test_counter_without_expiry_is_rearmed() -> None:
    clock = _FakeClock()
    store = _LostExpireStore(clock)
    limiter = RateLimiter(
        store,
        InMemorySettings({"ai.helena.rate_limit_per_hour": 2}),
        config=RateLimitConfig(window_seconds=60),
    )

    assert (await limiter.check("u1")).allowed
    assert await store.ttl("helena:ratelimit:u1") == -1

    assert (await limiter.check("u1")).allowed
    assert await store.ttl("helena:ratelimit:u1") == 60
    assert not (await limiter.check("u1")).allowed

    clock.now += 61
    assert (await limiter.check("u1")).allowed
