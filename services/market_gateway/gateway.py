"""
Runtime container wired by the lifespan and handed to routes via Depends
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request

from shared.config.settings import Settings
from shared.utils.redis_client import RedisClient

from adapters import ALPHA_VANTAGE, COINGECKO, NEWSAPI
from broadcaster import CryptoBroadcaster
from http_clients import HTTPClientManager
from orchestrator import FetchOrchestrator
from rate_limiter import RateLimit, RateLimiter
from ws_manager import SubscriberRegistry


@dataclass
class MarketGateway:
    settings: Settings
    clients: HTTPClientManager
    rate_limiter: RateLimiter
    orchestrator: FetchOrchestrator
    registry: SubscriberRegistry
    broadcaster: CryptoBroadcaster
    redis: Optional[RedisClient] = None

    def budget(self, provider: str) -> RateLimit:
        return provider_budget(self.settings, provider)


def provider_budget(cfg: Settings, provider: str) -> RateLimit:
    """Rate budget configured for a provider id"""
    if provider == ALPHA_VANTAGE:
        return RateLimit(cfg.alpha_vantage_max_calls, cfg.alpha_vantage_window_seconds)
    if provider == COINGECKO:
        return RateLimit(cfg.coingecko_max_calls, cfg.coingecko_window_seconds)
    if provider == NEWSAPI:
        return RateLimit(cfg.newsapi_max_calls, cfg.newsapi_window_seconds)
    raise ValueError(f"unknown provider {provider!r}")


def caller_id(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def get_gateway(request: Request) -> MarketGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Gateway not ready")
    return gateway
