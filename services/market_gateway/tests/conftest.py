"""
Pytest configuration and fixtures for Market Gateway tests.
"""

import pytest
from typing import Any, List

from shared.models.series import SeriesPoint

from cache_store import InMemoryCacheStore
from orchestrator import FetchOrchestrator
from rate_limiter import InMemoryCounterStore, RateLimit, RateLimiter, RateScope
from ws_manager import SubscriberRegistry


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeConnection:
    """Push connection double that records messages or fails on send"""

    def __init__(self, name: str, fail: bool = False):
        self.name = name
        self.fail = fail
        self.messages: List[Any] = []

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise ConnectionError(f"{self.name} went away")
        self.messages.append(data)


def make_points(count: int, start: int = 1_700_000_000, step: int = 60) -> List[SeriesPoint]:
    """Helper to create an ordered series."""
    return [SeriesPoint(time=start + i * step, value=100.0 + i) for i in range(count)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_store(clock) -> InMemoryCacheStore:
    return InMemoryCacheStore(clock=clock)


@pytest.fixture
def counter_store(clock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def rate_limiter(counter_store) -> RateLimiter:
    return RateLimiter(counter_store, fail_open=True)


@pytest.fixture
def orchestrator(cache_store, rate_limiter) -> FetchOrchestrator:
    return FetchOrchestrator(cache_store, rate_limiter, upstream_timeout=10.0)


@pytest.fixture
def registry() -> SubscriberRegistry:
    return SubscriberRegistry()


@pytest.fixture
def alpha_scope() -> RateScope:
    return RateScope(provider="alpha", caller="127.0.0.1")


@pytest.fixture
def alpha_budget() -> RateLimit:
    return RateLimit(max_calls=5, window_seconds=60)
