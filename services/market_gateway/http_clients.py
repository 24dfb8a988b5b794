"""
HTTP Clients - shared upstream clients with connection pooling

Providers:
- Alpha Vantage: intraday indices and daily stock series
- CoinGecko: crypto OHLC
- NewsAPI: financial headlines

Each client is created ONCE in the service lifespan and reused. Every call
carries the configured upstream timeout; transport failures, non-2xx
statuses and undecodable bodies surface as UpstreamError, HTTP 429 as
UpstreamQuotaExceeded.
"""

import httpx
from typing import Optional, Dict, Any, List
import structlog

from shared.config.settings import Settings
from shared.errors import UpstreamError, UpstreamQuotaExceeded
from shared.models.series import NewsArticle, SeriesPoint

from adapters import (
    ALPHA_VANTAGE,
    COINGECKO,
    NEWSAPI,
    DAILY_SERIES_FIELD,
    INTRADAY_SERIES_FIELD,
    parse_alpha_vantage_series,
    parse_coingecko_ohlc,
    parse_newsapi_articles,
)

logger = structlog.get_logger(__name__)


# ============================================================================
# Connection limits
# ============================================================================

# External APIs are rate limited; keep the pool small
EXTERNAL_API_LIMITS = httpx.Limits(
    max_keepalive_connections=10,
    max_connections=20,
    keepalive_expiry=60.0
)

USER_AGENT = "FinanceIQ-Gateway/1.0"


class _ProviderClient:
    """Common request/translate logic for one upstream provider"""

    provider: str = ""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            limits=EXTERNAL_API_LIMITS,
            http2=transport is None,
            headers={"User-Agent": USER_AGENT, **(headers or {})},
            transport=transport,
        )
        logger.info(f"{self.provider}_client_initialized", base_url=base_url)

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            logger.warning("upstream_timeout", provider=self.provider, url=url)
            raise UpstreamError(self.provider, "request timed out") from e
        except httpx.HTTPError as e:
            logger.warning("upstream_request_error", provider=self.provider, url=url, error=str(e))
            raise UpstreamError(self.provider, str(e)) from e

        if response.status_code == 429:
            logger.warning("upstream_quota_exceeded", provider=self.provider, url=url)
            raise UpstreamQuotaExceeded(self.provider, response.text[:200] or None)

        if response.status_code >= 400:
            logger.warning(
                "upstream_status_error",
                provider=self.provider,
                url=url,
                status_code=response.status_code
            )
            raise UpstreamError(self.provider, f"HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(self.provider, "response is not valid JSON") from e

    async def close(self):
        """Close the client and release pooled connections"""
        await self._client.aclose()
        logger.info(f"{self.provider}_client_closed")


# ============================================================================
# Alpha Vantage
# ============================================================================

class AlphaVantageClient(_ProviderClient):
    """
    Client for the Alpha Vantage query API

    Endpoints used:
    - /query?function=TIME_SERIES_INTRADAY&interval=1min
    - /query?function=TIME_SERIES_DAILY
    """

    provider = ALPHA_VANTAGE

    def __init__(self, api_key: str, base_url: str, timeout: float = 10.0, transport=None):
        super().__init__(base_url, timeout=timeout, transport=transport)
        self.api_key = api_key

    async def fetch_intraday(self, symbol: str) -> List[SeriesPoint]:
        payload = await self._get_json("/query", params={
            "function": "TIME_SERIES_INTRADAY",
            "symbol": symbol,
            "interval": "1min",
            "apikey": self.api_key,
        })
        return parse_alpha_vantage_series(payload, INTRADAY_SERIES_FIELD)

    async def fetch_daily(self, symbol: str) -> List[SeriesPoint]:
        payload = await self._get_json("/query", params={
            "function": "TIME_SERIES_DAILY",
            "symbol": symbol,
            "apikey": self.api_key,
        })
        return parse_alpha_vantage_series(payload, DAILY_SERIES_FIELD)


# ============================================================================
# CoinGecko
# ============================================================================

class CoinGeckoClient(_ProviderClient):
    """
    Client for the CoinGecko v3 API

    Endpoints used:
    - /coins/{id}/ohlc
    """

    provider = COINGECKO

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        api_key_header: str = "x-cg-demo-api-key",
        days: int = 7,
        timeout: float = 10.0,
        transport=None,
    ):
        headers = {api_key_header: api_key} if api_key else None
        super().__init__(base_url, timeout=timeout, headers=headers, transport=transport)
        self.days = days

    async def fetch_ohlc(self, coin_id: str) -> List[SeriesPoint]:
        payload = await self._get_json(
            f"/coins/{coin_id}/ohlc",
            params={"vs_currency": "usd", "days": self.days},
        )
        return parse_coingecko_ohlc(payload)


# ============================================================================
# NewsAPI
# ============================================================================

class NewsAPIClient(_ProviderClient):
    """
    Client for NewsAPI

    Endpoints used:
    - /everything
    """

    provider = NEWSAPI

    def __init__(
        self,
        api_key: str,
        base_url: str,
        query: str,
        page_size: int = 20,
        timeout: float = 10.0,
        transport=None,
    ):
        super().__init__(base_url, timeout=timeout, transport=transport)
        self.api_key = api_key
        self.query = query
        self.page_size = page_size

    async def fetch_headlines(self) -> List[NewsArticle]:
        payload = await self._get_json("/everything", params={
            "q": self.query,
            "language": "en",
            "sortBy": "publishedAt",
            "pageSize": self.page_size,
            "apiKey": self.api_key,
        })
        return parse_newsapi_articles(payload)


# ============================================================================
# Client manager
# ============================================================================

class HTTPClientManager:
    """
    Holder for every upstream client

    Initialized once in the FastAPI lifespan.
    """

    def __init__(self):
        self.alpha_vantage: Optional[AlphaVantageClient] = None
        self.coingecko: Optional[CoinGeckoClient] = None
        self.newsapi: Optional[NewsAPIClient] = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self, cfg: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        """Create all clients from settings"""
        if self._initialized:
            logger.warning("http_clients_already_initialized")
            return

        timeout = cfg.upstream_timeout_seconds
        self.alpha_vantage = AlphaVantageClient(
            api_key=cfg.alpha_vantage_api_key,
            base_url=cfg.alpha_vantage_base_url,
            timeout=timeout,
            transport=transport,
        )
        self.coingecko = CoinGeckoClient(
            base_url=cfg.coingecko_base_url,
            api_key=cfg.coingecko_api_key,
            api_key_header=cfg.coingecko_api_key_header,
            days=cfg.crypto_ohlc_days,
            timeout=timeout,
            transport=transport,
        )
        self.newsapi = NewsAPIClient(
            api_key=cfg.newsapi_key,
            base_url=cfg.newsapi_base_url,
            query=cfg.news_query,
            page_size=cfg.news_page_size,
            timeout=timeout,
            transport=transport,
        )

        self._initialized = True
        logger.info("http_client_manager_initialized")

    async def close(self):
        """Close all clients"""
        for client in (self.alpha_vantage, self.coingecko, self.newsapi):
            if client:
                try:
                    await client.close()
                except Exception as e:
                    logger.error("client_close_error", error=str(e))

        self._initialized = False
        logger.info("http_client_manager_closed")
