"""
Market Gateway - Main Entry Point

Gateway for the FinanceIQ dashboard:
- REST API for indices, stock, crypto series and news
- WebSocket push of the crypto series every minute
- Technical indicators over posted series
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from shared.config.settings import Settings, mask_secret, settings
from shared.utils.logger import configure_logging, get_logger
from shared.utils.redis_client import RedisClient

from adapters import COINGECKO
from broadcaster import CryptoBroadcaster
from cache_store import CacheStore, RedisCacheStore
from gateway import MarketGateway, provider_budget
from http_clients import HTTPClientManager
from orchestrator import FetchOrchestrator
from rate_limiter import CounterStore, RateLimiter, RedisCounterStore
from routes import indicators_router, news_router, realtime_router, series_router
from ws_manager import SubscriberRegistry

configure_logging(service_name=settings.service_name)
logger = get_logger(__name__)


def create_app(
    app_settings: Optional[Settings] = None,
    cache_store: Optional[CacheStore] = None,
    counter_store: Optional[CounterStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the FastAPI app

    Redis is only connected when a cache or counter store is not injected;
    tests pass in-memory stores and an httpx MockTransport instead.
    """
    cfg = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Owns every long-lived resource and the broadcast task"""
        logger.info("market_gateway_starting")
        logger.info(
            "api_keys_loaded",
            alpha_vantage=mask_secret(cfg.alpha_vantage_api_key),
            coingecko=mask_secret(cfg.coingecko_api_key),
            newsapi=mask_secret(cfg.newsapi_key),
        )

        redis_client: Optional[RedisClient] = None
        if cache_store is None or counter_store is None:
            redis_client = RedisClient(cfg.get_redis_url())
            await redis_client.connect()

        clients = HTTPClientManager()
        clients.initialize(cfg, transport=transport)

        rate_limiter = RateLimiter(
            counter_store if counter_store is not None else RedisCounterStore(redis_client),
            fail_open=cfg.fail_open,
        )
        orchestrator = FetchOrchestrator(
            cache_store if cache_store is not None else RedisCacheStore(redis_client),
            rate_limiter,
            upstream_timeout=cfg.upstream_timeout_seconds,
            fail_open=cfg.fail_open,
            single_flight=cfg.single_flight,
        )
        registry = SubscriberRegistry()
        coin_id = cfg.broadcast_coin_id
        broadcaster = CryptoBroadcaster(
            orchestrator,
            registry,
            fetch_fn=lambda: clients.coingecko.fetch_ohlc(coin_id),
            provider=COINGECKO,
            budget=provider_budget(cfg, COINGECKO),
            coin_id=coin_id,
            ttl_seconds=cfg.cache_ttl_crypto,
            interval=cfg.broadcast_interval_seconds,
            window=cfg.series_window,
        )

        app.state.gateway = MarketGateway(
            settings=cfg,
            clients=clients,
            rate_limiter=rate_limiter,
            orchestrator=orchestrator,
            registry=registry,
            broadcaster=broadcaster,
            redis=redis_client,
        )

        if cfg.broadcast_enabled:
            await broadcaster.start()

        logger.info(
            "market_gateway_started",
            store_failure_policy=cfg.store_failure_policy,
            single_flight=cfg.single_flight,
        )

        yield

        logger.info("market_gateway_shutting_down")
        await broadcaster.stop()
        await clients.close()
        if redis_client:
            await redis_client.disconnect()
        logger.info("market_gateway_stopped")

    app = FastAPI(
        title="FinanceIQ Market Gateway",
        description="Cached, rate-limited market data aggregation with real-time push",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.get_cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(series_router)
    app.include_router(news_router)
    app.include_router(indicators_router)
    app.include_router(realtime_router)

    @app.get("/health")
    async def health():
        gateway = get_gateway_or_none(app)
        redis_ok = None
        subscribers = 0
        if gateway is not None and gateway.redis is not None:
            redis_ok = await gateway.redis.ping()
        if gateway is not None:
            subscribers = gateway.registry.get_stats()["active_connections"]
        return {
            "status": "ok",
            "redis": redis_ok,
            "subscribers": subscribers,
        }

    # Static dashboard last so API routes take precedence
    if os.path.isdir(cfg.static_dir):
        app.mount("/", StaticFiles(directory=cfg.static_dir, html=True), name="static")

    return app


def get_gateway_or_none(app: FastAPI) -> Optional[MarketGateway]:
    return getattr(app.state, "gateway", None)


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
