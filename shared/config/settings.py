"""
Centralized configuration using Pydantic Settings
Loads from environment variables and .env file
"""

from typing import Optional, List, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """
    Application settings
    All settings can be overridden by environment variables
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow"
    )

    # =============================================
    # SERVICE
    # =============================================
    service_name: str = Field(default="market_gateway", description="Service name for log context")
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3000, description="Bind port")
    static_dir: str = Field(default="public", description="Directory served at / when present")
    cors_origins: str = Field(default="*", description="Comma-separated allowed CORS origins")

    # =============================================
    # API KEYS
    # =============================================
    alpha_vantage_api_key: str = Field(default="demo", description="Alpha Vantage API key")
    coingecko_api_key: Optional[str] = Field(default=None, description="CoinGecko API key")
    newsapi_key: str = Field(default="demo", description="NewsAPI key")

    # =============================================
    # PROVIDER ENDPOINTS
    # =============================================
    alpha_vantage_base_url: str = Field(default="https://www.alphavantage.co", description="Alpha Vantage base URL")
    coingecko_base_url: str = Field(default="https://api.coingecko.com/api/v3", description="CoinGecko base URL")
    coingecko_api_key_header: str = Field(default="x-cg-demo-api-key", description="Header carrying the CoinGecko key")
    newsapi_base_url: str = Field(default="https://newsapi.org/v2", description="NewsAPI base URL")
    upstream_timeout_seconds: float = Field(default=10.0, description="Timeout for every upstream call")

    # =============================================
    # REDIS
    # =============================================
    redis_url: Optional[str] = Field(default=None, description="Full Redis URL (overrides host/port/db)")
    redis_host: str = Field(default="localhost", description="Redis host")
    redis_port: int = Field(default=6379, description="Redis port")
    redis_db: int = Field(default=0, description="Redis database number")
    redis_password: Optional[str] = Field(default=None, description="Redis password")

    # =============================================
    # RATE LIMITS (calls per window)
    # =============================================
    alpha_vantage_max_calls: int = Field(default=5, description="Alpha Vantage calls per window")
    alpha_vantage_window_seconds: int = Field(default=60, description="Alpha Vantage window")
    coingecko_max_calls: int = Field(default=50, description="CoinGecko calls per window")
    coingecko_window_seconds: int = Field(default=60, description="CoinGecko window")
    newsapi_max_calls: int = Field(default=100, description="NewsAPI calls per window")
    newsapi_window_seconds: int = Field(default=86400, description="NewsAPI window")

    # =============================================
    # CACHE DURATIONS (seconds)
    # =============================================
    cache_ttl_indices: int = Field(default=900, description="Indices cache TTL")
    cache_ttl_stocks: int = Field(default=900, description="Stocks cache TTL")
    cache_ttl_crypto: int = Field(default=60, description="Crypto cache TTL")
    cache_ttl_news: int = Field(default=300, description="News cache TTL")
    cache_ttl_economic: int = Field(default=3600, description="Economic data cache TTL (reserved)")

    # =============================================
    # FETCH ORCHESTRATION
    # =============================================
    series_window: int = Field(default=100, description="Most recent points kept per series")
    crypto_ohlc_days: int = Field(default=7, description="Days of CoinGecko OHLC history")
    news_page_size: int = Field(default=20, description="Articles requested from NewsAPI")
    news_query: str = Field(
        default='economy OR "federal reserve" OR geopolitical OR inflation OR earnings',
        description="NewsAPI search query"
    )
    store_failure_policy: Literal["open", "closed"] = Field(
        default="open",
        description="Behaviour when Redis is unreachable: open (permit/miss) or closed (reject)"
    )
    single_flight: bool = Field(default=True, description="Coalesce concurrent cache misses per key")

    # =============================================
    # BROADCAST
    # =============================================
    broadcast_enabled: bool = Field(default=True, description="Run the periodic crypto broadcast")
    broadcast_interval_seconds: float = Field(default=60.0, description="Seconds between broadcast ticks")
    broadcast_coin_id: str = Field(default="bitcoin", description="Coin pushed to WebSocket subscribers")

    # =============================================
    # LOGGING
    # =============================================
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format (json or text)")

    @property
    def fail_open(self) -> bool:
        return self.store_failure_policy == "open"

    def get_cors_origins(self) -> List[str]:
        """Split CORS origins into a list"""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def get_redis_url(self) -> str:
        """Get Redis connection URL"""
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"


def mask_secret(value: Optional[str], visible: int = 5) -> str:
    """Return the first characters of a secret followed by an ellipsis"""
    if not value:
        return "<unset>"
    return value[:visible] + "..."


# Global settings instance
settings = Settings()
