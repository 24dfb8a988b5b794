"""
Broadcast Loop - periodic crypto refresh pushed to WebSocket subscribers

IDLE -> FETCHING -> IDLE every interval, independent of request traffic.
A failed tick is logged and skipped; it never stops later ticks. The task is
owned by the service lifespan, which cancels it on shutdown.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from shared.errors import GatewayError
from shared.models.series import CryptoBroadcast

from orchestrator import FetchFn, FetchOrchestrator
from rate_limiter import RateLimit, RateScope
from ws_manager import SubscriberRegistry

logger = structlog.get_logger(__name__)

BROADCAST_CALLER = "broadcaster"


class CryptoBroadcaster:
    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        registry: SubscriberRegistry,
        fetch_fn: FetchFn,
        provider: str,
        budget: RateLimit,
        coin_id: str = "bitcoin",
        ttl_seconds: int = 60,
        interval: float = 60.0,
        window: Optional[int] = 100,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.orchestrator = orchestrator
        self.registry = registry
        self.fetch_fn = fetch_fn
        self.scope = RateScope(provider=provider, caller=BROADCAST_CALLER)
        self.budget = budget
        self.coin_id = coin_id
        self.key = f"crypto:{coin_id}"
        self.ttl_seconds = ttl_seconds
        self.interval = interval
        self.window = window
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.state = "idle"

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop(), name="crypto-broadcaster")
        logger.info("broadcaster_started", key=self.key, interval=self.interval)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self.state = "idle"
        logger.info("broadcaster_stopped")

    async def tick(self) -> bool:
        """Run one fetch + fan-out. Returns False when the tick was skipped."""
        self.state = "fetching"
        try:
            series = await self.orchestrator.resolve(
                self.key,
                self.ttl_seconds,
                self.scope,
                self.budget,
                self.fetch_fn,
                window=self.window,
            )
        except GatewayError as e:
            logger.warning("broadcast_tick_skipped", key=self.key, error=str(e), kind=type(e).__name__)
            return False
        except Exception as e:
            logger.error("broadcast_tick_failed", key=self.key, error=str(e))
            return False
        finally:
            self.state = "idle"

        message = CryptoBroadcast(data=series).model_dump()
        sent = await self.registry.broadcast(message)
        logger.info("broadcasted_crypto_update", key=self.key, points=len(series), sent_to=sent)
        return True

    async def _run_loop(self) -> None:
        """First tick fires one interval after start"""
        while True:
            await self._sleep(self.interval)
            await self.tick()
