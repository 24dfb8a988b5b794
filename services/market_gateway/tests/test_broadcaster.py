"""
Tests for the periodic crypto broadcast loop.
"""

import asyncio

import pytest

from broadcaster import CryptoBroadcaster
from orchestrator import FetchOrchestrator
from rate_limiter import RateLimit

from conftest import FakeConnection, make_points


class StopLoop(Exception):
    pass


class RecordingSleep:
    """Replaces asyncio.sleep; stops the loop after `ticks` intervals."""

    def __init__(self, ticks: int):
        self.delays = []
        self.ticks = ticks

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if len(self.delays) > self.ticks:
            raise StopLoop()


def make_broadcaster(orchestrator, registry, fetch_fn, sleep=asyncio.sleep, interval=60.0):
    return CryptoBroadcaster(
        orchestrator,
        registry,
        fetch_fn=fetch_fn,
        provider="coingecko",
        budget=RateLimit(50, 60),
        coin_id="bitcoin",
        ttl_seconds=60,
        interval=interval,
        window=100,
        sleep=sleep,
    )


@pytest.mark.asyncio
class TestTick:
    async def test_pushes_series_to_subscribers(self, orchestrator, registry):
        points = make_points(3)

        async def fetch():
            return points

        conn = FakeConnection("a")
        registry.add(conn)
        broadcaster = make_broadcaster(orchestrator, registry, fetch)

        assert await broadcaster.tick() is True

        assert conn.messages == [{"type": "crypto", "data": [p.model_dump() for p in points]}]
        assert broadcaster.state == "idle"

    async def test_uses_crypto_cache_key(self, orchestrator, registry, cache_store):
        async def fetch():
            return make_points(2)

        await make_broadcaster(orchestrator, registry, fetch).tick()

        assert await cache_store.get("crypto:bitcoin") is not None

    async def test_timeout_skips_tick_without_message(self, cache_store, rate_limiter, registry):
        orchestrator = FetchOrchestrator(cache_store, rate_limiter, upstream_timeout=0.01)

        async def slow_fetch():
            await asyncio.sleep(1.0)
            return make_points(1)

        conn = FakeConnection("a")
        registry.add(conn)
        broadcaster = make_broadcaster(orchestrator, registry, slow_fetch)

        assert await broadcaster.tick() is False
        assert conn.messages == []
        assert broadcaster.state == "idle"

    async def test_dead_subscriber_removed_and_rest_served(self, orchestrator, registry):
        async def fetch():
            return make_points(2)

        alive, dead = FakeConnection("alive"), FakeConnection("dead", fail=True)
        registry.add(alive)
        registry.add(dead)

        await make_broadcaster(orchestrator, registry, fetch).tick()

        assert len(alive.messages) == 1
        assert dead not in registry


@pytest.mark.asyncio
class TestLoop:
    async def test_failed_tick_schedules_next_at_interval(self, orchestrator, registry):
        calls = []

        async def flaky_fetch():
            calls.append(len(calls))
            if len(calls) == 1:
                raise asyncio.TimeoutError()
            return make_points(2)

        conn = FakeConnection("a")
        registry.add(conn)
        sleep = RecordingSleep(ticks=2)
        broadcaster = make_broadcaster(orchestrator, registry, flaky_fetch, sleep=sleep)

        with pytest.raises(StopLoop):
            await broadcaster._run_loop()

        assert sleep.delays == [60.0, 60.0, 60.0]
        assert len(calls) == 2
        assert len(conn.messages) == 1

    async def test_start_and_stop(self, orchestrator, registry):
        async def fetch():
            return make_points(1)

        broadcaster = make_broadcaster(orchestrator, registry, fetch, interval=3600)

        await broadcaster.start()
        assert broadcaster.running

        await broadcaster.stop()
        assert not broadcaster.running
