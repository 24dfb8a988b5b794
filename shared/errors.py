"""
Gateway error taxonomy

Every failure the fetch path can produce maps to one of these classes so the
HTTP layer can tell local throttling apart from provider throttling and from
infrastructure faults.
"""

from typing import Optional


PROVIDER_NAMES = {
    "alpha": "Alpha Vantage",
    "coingecko": "CoinGecko",
    "newsapi": "NewsAPI",
}


def provider_name(provider: str) -> str:
    return PROVIDER_NAMES.get(provider, provider)


class GatewayError(Exception):
    """Base class for all gateway errors"""

    status_code: int = 500
    public_message: str = "Internal error"

    def to_response(self) -> dict:
        return {"error": self.public_message}


class RateLimited(GatewayError):
    """Local call budget for a (provider, caller) scope is exhausted"""

    status_code = 429
    public_message = "Rate limit exceeded"

    def __init__(self, retry_after: int, scope: Optional[str] = None):
        super().__init__(f"rate limited, retry after {retry_after}s")
        self.retry_after = retry_after
        self.scope = scope

    def to_response(self) -> dict:
        return {"error": self.public_message, "retryAfter": self.retry_after}


class UpstreamQuotaExceeded(GatewayError):
    """The provider itself reported that our quota is used up"""

    status_code = 429

    def __init__(self, provider: str, detail: Optional[str] = None):
        super().__init__(detail or f"{provider} quota exceeded")
        self.provider = provider
        self.detail = detail

    @property
    def public_message(self) -> str:  # type: ignore[override]
        return f"{provider_name(self.provider)} API limit reached"


class UpstreamError(GatewayError):
    """Timeout, transport failure or malformed payload from a provider"""

    status_code = 500

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message

    @property
    def public_message(self) -> str:  # type: ignore[override]
        return f"Failed to fetch {provider_name(self.provider)} data"


class CacheStoreUnavailable(GatewayError):
    """Backing store (Redis) could not be reached"""

    status_code = 503
    public_message = "Cache store unavailable"
