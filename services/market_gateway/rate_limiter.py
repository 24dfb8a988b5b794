"""
Rate Limiter - fixed-window call budget per (provider, caller) scope

Windows are fixed, not sliding: a counter starts on the first call, lives
window_seconds and is then recreated lazily. Up to 2 x max_calls can pass
around a window boundary (end of one window + start of the next). That burst
is accepted behaviour.

The check-and-increment runs as one atomic step in the counter store
(a Lua script in Redis), so two callers sharing a scope can never both see
count == max_calls - 1 and both pass.
"""

import asyncio
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from shared.errors import CacheStoreUnavailable
from shared.utils.logger import get_logger
from shared.utils.redis_client import RedisClient

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimit:
    max_calls: int
    window_seconds: int


@dataclass(frozen=True)
class RateScope:
    """The (provider, caller) pair a budget is tracked against"""

    provider: str
    caller: str

    @property
    def key(self) -> str:
        return f"rate_limit:{self.provider}:{self.caller}"


@dataclass(frozen=True)
class RateDecision:
    permitted: bool
    retry_after_seconds: int = 0


# ============================================================================
# Counter stores
# ============================================================================

class CounterStore(ABC):
    """Backing counter with an atomic check-and-increment"""

    @abstractmethod
    async def incr_window(self, key: str, max_calls: int, window_seconds: int) -> Tuple[bool, int]:
        """Consume one slot; return (permitted, seconds until the window resets)."""


class RedisCounterStore(CounterStore):
    def __init__(self, redis_client: RedisClient):
        self.redis = redis_client

    async def incr_window(self, key: str, max_calls: int, window_seconds: int) -> Tuple[bool, int]:
        return await self.redis.incr_window(key, max_calls, window_seconds)


class InMemoryCounterStore(CounterStore):
    """
    Process-local counters

    Everything after the initial yield runs without a suspension point, which
    makes it atomic under asyncio's cooperative scheduling.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        # key -> [count, window_expires_at]
        self._windows: Dict[str, List[float]] = {}

    async def incr_window(self, key: str, max_calls: int, window_seconds: int) -> Tuple[bool, int]:
        # Stand-in for the store round-trip; lets concurrent callers interleave
        await asyncio.sleep(0)

        now = self._clock()
        window = self._windows.get(key)
        if window is None or window[1] <= now:
            window = [0, now + window_seconds]
            self._windows[key] = window

        remaining = max(0, math.ceil(window[1] - now))
        if window[0] >= max_calls:
            return False, remaining

        window[0] += 1
        return True, remaining

    def count(self, key: str) -> int:
        window = self._windows.get(key)
        if window is None or window[1] <= self._clock():
            return 0
        return int(window[0])


# ============================================================================
# Limiter
# ============================================================================

class RateLimiter:
    """
    Gate consulted on every cache miss before an upstream call

    When the counter store is unreachable the limiter fails in the configured
    direction: fail_open permits the call, fail closed raises
    CacheStoreUnavailable. It never lets the store error escape otherwise.
    """

    def __init__(self, counter_store: CounterStore, fail_open: bool = True):
        self.counters = counter_store
        self.fail_open = fail_open

    async def allow(self, scope: RateScope, limit: RateLimit) -> RateDecision:
        try:
            permitted, ttl = await self.counters.incr_window(
                scope.key, limit.max_calls, limit.window_seconds
            )
        except CacheStoreUnavailable:
            if self.fail_open:
                logger.warning("rate_limiter_store_unavailable_permitting", scope=scope.key)
                return RateDecision(permitted=True)
            logger.error("rate_limiter_store_unavailable_rejecting", scope=scope.key)
            raise

        if not permitted:
            logger.info(
                "rate_limited",
                scope=scope.key,
                max_calls=limit.max_calls,
                retry_after=ttl
            )
            return RateDecision(permitted=False, retry_after_seconds=max(ttl, 0))

        return RateDecision(permitted=True)
