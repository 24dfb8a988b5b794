"""
Tests for the fixed-window rate limiter and its counter stores.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from shared.errors import CacheStoreUnavailable
from rate_limiter import (
    InMemoryCounterStore,
    RateLimit,
    RateLimiter,
    RateScope,
    RedisCounterStore,
)


class FailingCounterStore:
    async def incr_window(self, key, max_calls, window_seconds):
        raise CacheStoreUnavailable("connection refused")


# ============================================================================
# WINDOW SEMANTICS
# ============================================================================

@pytest.mark.asyncio
class TestFixedWindow:
    async def test_at_most_max_calls_per_window(self, rate_limiter, alpha_scope, alpha_budget):
        decisions = [await rate_limiter.allow(alpha_scope, alpha_budget) for _ in range(8)]

        assert [d.permitted for d in decisions] == [True] * 5 + [False] * 3

    async def test_rejection_reports_remaining_window(self, rate_limiter, clock, alpha_scope):
        budget = RateLimit(max_calls=1, window_seconds=60)
        await rate_limiter.allow(alpha_scope, budget)
        clock.advance(15)

        decision = await rate_limiter.allow(alpha_scope, budget)

        assert decision.permitted is False
        assert decision.retry_after_seconds == 45

    async def test_window_boundary_resets_count(self, rate_limiter, counter_store, clock, alpha_scope):
        budget = RateLimit(max_calls=2, window_seconds=60)
        for _ in range(2):
            assert (await rate_limiter.allow(alpha_scope, budget)).permitted
        assert not (await rate_limiter.allow(alpha_scope, budget)).permitted

        clock.advance(60)

        assert counter_store.count(alpha_scope.key) == 0
        assert (await rate_limiter.allow(alpha_scope, budget)).permitted
        assert counter_store.count(alpha_scope.key) == 1

    async def test_boundary_burst_is_allowed(self, rate_limiter, clock, alpha_scope):
        """Fixed windows let 2 x max_calls through around a boundary."""
        budget = RateLimit(max_calls=3, window_seconds=60)
        first = [await rate_limiter.allow(alpha_scope, budget) for _ in range(3)]
        clock.advance(60)
        second = [await rate_limiter.allow(alpha_scope, budget) for _ in range(3)]

        assert all(d.permitted for d in first + second)

    async def test_rejected_calls_do_not_extend_count(self, rate_limiter, counter_store, alpha_scope):
        budget = RateLimit(max_calls=1, window_seconds=60)
        for _ in range(4):
            await rate_limiter.allow(alpha_scope, budget)

        assert counter_store.count(alpha_scope.key) == 1

    async def test_scopes_are_independent(self, rate_limiter):
        budget = RateLimit(max_calls=1, window_seconds=60)
        a = RateScope("alpha", "10.0.0.1")
        b = RateScope("alpha", "10.0.0.2")
        c = RateScope("coingecko", "10.0.0.1")

        assert (await rate_limiter.allow(a, budget)).permitted
        assert (await rate_limiter.allow(b, budget)).permitted
        assert (await rate_limiter.allow(c, budget)).permitted
        assert not (await rate_limiter.allow(a, budget)).permitted

    async def test_scope_key_format(self):
        assert RateScope("alpha", "1.2.3.4").key == "rate_limit:alpha:1.2.3.4"


# ============================================================================
# CONCURRENCY
# ============================================================================

@pytest.mark.asyncio
class TestConcurrentAllow:
    async def test_single_slot_never_granted_twice(self, rate_limiter, alpha_scope):
        budget = RateLimit(max_calls=1, window_seconds=60)

        decisions = await asyncio.gather(*[rate_limiter.allow(alpha_scope, budget) for _ in range(20)])

        assert sum(d.permitted for d in decisions) == 1

    async def test_concurrent_calls_respect_budget(self, rate_limiter, alpha_scope, alpha_budget):
        decisions = await asyncio.gather(*[rate_limiter.allow(alpha_scope, alpha_budget) for _ in range(50)])

        assert sum(d.permitted for d in decisions) == 5


# ============================================================================
# STORE FAILURE POLICY
# ============================================================================

@pytest.mark.asyncio
class TestStoreFailure:
    async def test_fail_open_permits(self, alpha_scope, alpha_budget):
        limiter = RateLimiter(FailingCounterStore(), fail_open=True)

        decision = await limiter.allow(alpha_scope, alpha_budget)

        assert decision.permitted is True

    async def test_fail_closed_raises(self, alpha_scope, alpha_budget):
        limiter = RateLimiter(FailingCounterStore(), fail_open=False)

        with pytest.raises(CacheStoreUnavailable):
            await limiter.allow(alpha_scope, alpha_budget)


# ============================================================================
# REDIS BACKEND
# ============================================================================

@pytest.mark.asyncio
class TestRedisCounterStore:
    async def test_delegates_to_atomic_script(self, alpha_scope):
        redis = AsyncMock()
        redis.incr_window.return_value = (False, 42)
        limiter = RateLimiter(RedisCounterStore(redis))

        decision = await limiter.allow(alpha_scope, RateLimit(5, 60))

        redis.incr_window.assert_awaited_once_with("rate_limit:alpha:127.0.0.1", 5, 60)
        assert decision.permitted is False
        assert decision.retry_after_seconds == 42

    async def test_negative_ttl_clamped(self, alpha_scope):
        redis = AsyncMock()
        redis.incr_window.return_value = (False, -1)
        limiter = RateLimiter(RedisCounterStore(redis))

        decision = await limiter.allow(alpha_scope, RateLimit(5, 60))

        assert decision.retry_after_seconds == 0


def test_in_memory_count_unknown_key_is_zero():
    assert InMemoryCounterStore().count("rate_limit:none:none") == 0
