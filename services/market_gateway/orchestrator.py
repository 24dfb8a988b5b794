"""
Fetch Orchestrator - cache-or-fetch for every data route

resolve() runs strictly in this order:
    1. cache lookup (hit -> return, no limiter, no upstream)
    2. rate limiter gate
    3. upstream fetch with a bounded timeout, ordering + trimming
    4. cache write with the caller's TTL

Concurrent misses for the same key are coalesced (single-flight): the first
caller becomes the leader and runs steps 2-4, later callers await the
leader's outcome. Followers do not consume rate budget and never reach the
provider, so upstream volume is one call per key per miss burst.

A leader that is throttled on its own scope, or cancelled, hands nothing to
its followers: they retry, and the next one leads under its own scope.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Type

import orjson
import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from shared.errors import CacheStoreUnavailable, GatewayError, RateLimited, UpstreamError
from shared.models.series import SeriesPoint, order_series

from cache_store import CacheStore
from rate_limiter import RateLimit, RateLimiter, RateScope

logger = structlog.get_logger(__name__)

FetchFn = Callable[[], Awaitable[Sequence[BaseModel]]]


class _LeaderAbandoned(Exception):
    """The leader's outcome does not apply to its followers"""


class FetchOrchestrator:
    def __init__(
        self,
        cache_store: CacheStore,
        rate_limiter: RateLimiter,
        upstream_timeout: float = 10.0,
        fail_open: bool = True,
        single_flight: bool = True,
    ):
        self.cache = cache_store
        self.rate_limiter = rate_limiter
        self.upstream_timeout = upstream_timeout
        self.fail_open = fail_open
        self.single_flight = single_flight
        self._in_flight: Dict[str, "asyncio.Future[List[Any]]"] = {}
        self._adapters: Dict[type, TypeAdapter] = {}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def resolve(
        self,
        key: str,
        ttl_seconds: int,
        scope: RateScope,
        budget: RateLimit,
        fetch_fn: FetchFn,
        model: Type[BaseModel] = SeriesPoint,
        window: Optional[int] = None,
    ) -> List[Any]:
        """
        Return fresh data for key, from cache when possible

        Args:
            key: Cache key (e.g. "indices:IBM")
            ttl_seconds: Expiry for a newly written entry
            scope: Rate limiter scope consulted on a miss
            budget: Calls allowed per window for that scope
            fetch_fn: Provider adapter call returning normalized models
            model: Model class used to decode cached payloads
            window: Keep only the most recent N points (series only)

        Raises:
            RateLimited, UpstreamQuotaExceeded, UpstreamError,
            CacheStoreUnavailable (fail-closed policy only)
        """
        cached = await self._read_cache(key, model)
        if cached is not None:
            logger.debug("cache_hit", key=key)
            return cached

        if not self.single_flight:
            return await self._fetch_and_store(key, ttl_seconds, scope, budget, fetch_fn, window)

        while True:
            pending = self._in_flight.get(key)
            if pending is None:
                return await self._lead(key, ttl_seconds, scope, budget, fetch_fn, window)

            logger.debug("fetch_coalesced", key=key)
            try:
                return await asyncio.shield(pending)
            except _LeaderAbandoned:
                # Leader was throttled on its own scope or cancelled; retry as ourselves
                logger.debug("fetch_leader_abandoned", key=key, scope=scope.key)

    # ------------------------------------------------------------------------

    async def _lead(
        self,
        key: str,
        ttl_seconds: int,
        scope: RateScope,
        budget: RateLimit,
        fetch_fn: FetchFn,
        window: Optional[int],
    ) -> List[Any]:
        future: "asyncio.Future[List[Any]]" = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = await self._fetch_and_store(key, ttl_seconds, scope, budget, fetch_fn, window)
        except (RateLimited, asyncio.CancelledError):
            future.set_exception(_LeaderAbandoned())
            future.exception()
            raise
        except Exception as e:
            future.set_exception(e)
            # Followers (if any) re-raise it; mark retrieved for the no-follower case
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            if self._in_flight.get(key) is future:
                del self._in_flight[key]

    # ------------------------------------------------------------------------

    async def _fetch_and_store(
        self,
        key: str,
        ttl_seconds: int,
        scope: RateScope,
        budget: RateLimit,
        fetch_fn: FetchFn,
        window: Optional[int],
    ) -> List[Any]:
        logger.info("cache_miss", key=key)

        decision = await self.rate_limiter.allow(scope, budget)
        if not decision.permitted:
            raise RateLimited(decision.retry_after_seconds, scope=scope.key)

        try:
            items = list(await asyncio.wait_for(fetch_fn(), timeout=self.upstream_timeout))
        except asyncio.TimeoutError as e:
            logger.warning("upstream_timeout", key=key, provider=scope.provider, timeout=self.upstream_timeout)
            raise UpstreamError(scope.provider, f"timed out after {self.upstream_timeout}s") from e
        except GatewayError as e:
            logger.warning("upstream_failed", key=key, provider=scope.provider, error=str(e), kind=type(e).__name__)
            raise
        except Exception as e:
            logger.error("upstream_unexpected_error", key=key, provider=scope.provider, error=str(e))
            raise UpstreamError(scope.provider, str(e)) from e

        if window is not None:
            items = order_series(items)[-window:]

        payload = orjson.dumps([item.model_dump() for item in items])
        await self._write_cache(key, payload, ttl_seconds)
        return items

    async def _read_cache(self, key: str, model: Type[BaseModel]) -> Optional[List[Any]]:
        try:
            raw = await self.cache.get(key)
        except CacheStoreUnavailable:
            if not self.fail_open:
                raise
            logger.warning("cache_read_failed_treating_as_miss", key=key)
            return None

        if raw is None:
            return None

        try:
            return self._adapter(model).validate_json(raw)
        except ValidationError as e:
            logger.warning("cache_payload_invalid", key=key, error=str(e))
            return None

    async def _write_cache(self, key: str, payload: bytes, ttl_seconds: int) -> None:
        try:
            await self.cache.set(key, payload, ttl_seconds)
        except CacheStoreUnavailable:
            if not self.fail_open:
                raise
            logger.warning("cache_write_failed", key=key)
            return
        logger.info("cache_write", key=key, ttl=ttl_seconds, size=len(payload))

    def _adapter(self, model: Type[BaseModel]) -> TypeAdapter:
        adapter = self._adapters.get(model)
        if adapter is None:
            adapter = TypeAdapter(List[model])  # type: ignore[valid-type]
            self._adapters[model] = adapter
        return adapter
