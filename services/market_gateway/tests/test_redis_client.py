"""
Tests for RedisClient against an in-process Redis (fakeredis with Lua).

These run the real fixed-window script, not a mock of it.
"""

import asyncio

import fakeredis
import pytest
import pytest_asyncio

from shared.utils import redis_client as redis_client_module
from shared.utils.redis_client import RedisClient
from cache_store import RedisCacheStore
from rate_limiter import RateLimit, RateLimiter, RateScope, RedisCounterStore


KEY = "rate_limit:alpha:127.0.0.1"


@pytest_asyncio.fixture
async def redis(monkeypatch) -> RedisClient:
    server = fakeredis.FakeServer()

    def fake_from_url(url, **kwargs):
        return fakeredis.FakeAsyncRedis(server=server, decode_responses=kwargs.get("decode_responses", False))

    monkeypatch.setattr(redis_client_module.aioredis, "from_url", fake_from_url)
    client = RedisClient("redis://fake:6379/0")
    await client.connect()
    yield client
    await client.disconnect()


# ============================================================================
# FIXED-WINDOW SCRIPT
# ============================================================================

@pytest.mark.asyncio
class TestWindowCounterScript:
    async def test_caps_at_max_calls(self, redis):
        results = [await redis.incr_window(KEY, 3, 60) for _ in range(5)]

        assert [permitted for permitted, _ in results] == [True, True, True, False, False]
        assert all(0 < ttl <= 60 for _, ttl in results)

    async def test_rejected_call_does_not_increment(self, redis):
        for _ in range(4):
            await redis.incr_window(KEY, 2, 60)

        assert await redis.client.get(KEY) == b"2"

    async def test_first_call_sets_window_expiry(self, redis):
        await redis.incr_window(KEY, 5, 60)

        assert await redis.client.ttl(KEY) == 60

    async def test_counter_without_ttl_gets_one_on_permit(self, redis):
        await redis.client.set(KEY, b"3")

        permitted, ttl = await redis.incr_window(KEY, 5, 60)

        assert permitted is True
        assert ttl == 60
        assert await redis.client.get(KEY) == b"4"
        assert await redis.client.ttl(KEY) == 60

    async def test_counter_without_ttl_gets_one_on_reject(self, redis):
        await redis.client.set(KEY, b"5")

        permitted, ttl = await redis.incr_window(KEY, 5, 60)

        assert permitted is False
        assert ttl == 60
        assert await redis.client.get(KEY) == b"5"
        assert await redis.client.ttl(KEY) == 60

    async def test_single_slot_under_concurrency(self, redis):
        results = await asyncio.gather(*[redis.incr_window(KEY, 1, 60) for _ in range(10)])

        assert sum(1 for permitted, _ in results if permitted) == 1
        assert await redis.client.get(KEY) == b"1"

    async def test_limiter_scopes_are_independent(self, redis):
        limiter = RateLimiter(RedisCounterStore(redis))
        budget = RateLimit(1, 60)

        first = await limiter.allow(RateScope("alpha", "10.0.0.1"), budget)
        second = await limiter.allow(RateScope("alpha", "10.0.0.1"), budget)
        other = await limiter.allow(RateScope("alpha", "10.0.0.2"), budget)

        assert first.permitted and other.permitted
        assert not second.permitted
        assert 0 < second.retry_after_seconds <= 60


# ============================================================================
# CACHE OPERATIONS
# ============================================================================

@pytest.mark.asyncio
class TestCacheOperations:
    async def test_set_with_ttl_expires(self, redis):
        store = RedisCacheStore(redis)

        await store.set("indices:IBM", b"[]", 900)

        assert await redis.get("indices:IBM") == b"[]"
        assert await redis.client.ttl("indices:IBM") == 900

    async def test_set_without_ttl_persists(self, redis):
        await redis.set("indices:IBM", b"[]")

        assert await redis.client.ttl("indices:IBM") == -1

    @pytest.mark.parametrize("ttl", [0, -5])
    async def test_non_positive_ttl_rejected(self, redis, ttl):
        with pytest.raises(ValueError):
            await redis.set("indices:IBM", b"[]", ttl)

        assert await redis.get("indices:IBM") is None
