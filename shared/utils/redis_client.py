"""
Redis client wrapper with async support
Provides the byte-level cache and counter operations used by the gateway
"""

from typing import Optional, List, Tuple
import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..config.settings import settings
from ..errors import CacheStoreUnavailable
from .logger import get_logger

logger = get_logger(__name__)


# Fixed-window counter: check, increment and set expiry in one round-trip.
# Returns {permitted, ttl}. A rejected call does not increment.
WINDOW_COUNTER_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
local max_calls = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
if current >= max_calls then
    local ttl = redis.call('TTL', KEYS[1])
    if ttl < 0 then
        redis.call('EXPIRE', KEYS[1], window)
        ttl = window
    end
    return {0, ttl}
end
current = redis.call('INCR', KEYS[1])
local ttl = redis.call('TTL', KEYS[1])
if current == 1 or ttl < 0 then
    redis.call('EXPIRE', KEYS[1], window)
    ttl = window
end
return {1, ttl}
"""


class RedisClient:
    """
    Async Redis client with helper methods for cache and counter operations

    Values are handled as raw bytes (decode_responses=False) so cached
    payloads round-trip byte-exact. Every RedisError is logged and re-raised
    as CacheStoreUnavailable; callers decide whether to fail open or closed.
    """

    def __init__(self, redis_url: Optional[str] = None, max_connections: int = 50):
        """
        Initialize Redis client

        Args:
            redis_url: Redis connection URL (uses settings if not provided)
            max_connections: Connection pool size
        """
        self.redis_url = redis_url or settings.get_redis_url()
        self.max_connections = max_connections
        self._client: Optional[Redis] = None
        self._window_script = None

    async def connect(self) -> None:
        """Establish Redis connection"""
        try:
            self._client = aioredis.from_url(
                self.redis_url,
                decode_responses=False,
                max_connections=self.max_connections
            )
            await self._client.ping()
            self._window_script = self._client.register_script(WINDOW_COUNTER_SCRIPT)
            logger.info("redis_connected", url=self.redis_url)
        except RedisError as e:
            logger.error("redis_connect_failed", url=self.redis_url, error=str(e))
            raise CacheStoreUnavailable(str(e)) from e

    async def disconnect(self) -> None:
        """Close Redis connection"""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        """Get Redis client instance"""
        if not self._client:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def ping(self) -> bool:
        """Return True when Redis answers a PING"""
        try:
            return bool(await self.client.ping())
        except (RedisError, RuntimeError) as e:
            logger.warning("redis_ping_failed", error=str(e))
            return False

    # =============================================
    # STRING OPERATIONS
    # =============================================

    async def get(self, key: str) -> Optional[bytes]:
        """
        Get a raw value by key

        Returns:
            Stored bytes or None if the key is absent or expired
        """
        try:
            return await self.client.get(key)
        except RedisError as e:
            logger.error("redis_get_error", key=key, error=str(e))
            raise CacheStoreUnavailable(str(e)) from e

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> bool:
        """
        Set a key-value pair

        Args:
            key: Redis key
            value: Raw bytes to store
            ttl: Time to live in seconds; None stores without expiry
        """
        if ttl is not None and ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        try:
            if ttl is not None:
                return bool(await self.client.setex(key, ttl, value))
            return bool(await self.client.set(key, value))
        except RedisError as e:
            logger.error("redis_set_error", key=key, error=str(e))
            raise CacheStoreUnavailable(str(e)) from e

    # =============================================
    # COUNTER OPERATIONS
    # =============================================

    async def incr_window(self, key: str, max_calls: int, window_seconds: int) -> Tuple[bool, int]:
        """
        Atomically consume one slot of a fixed-window counter

        Returns:
            (permitted, seconds until the window resets)
        """
        if self._window_script is None:
            self._window_script = self.client.register_script(WINDOW_COUNTER_SCRIPT)
        try:
            result: List[int] = await self._window_script(keys=[key], args=[max_calls, window_seconds])
        except RedisError as e:
            logger.error("redis_incr_window_error", key=key, error=str(e))
            raise CacheStoreUnavailable(str(e)) from e
        permitted, ttl = int(result[0]), int(result[1])
        return permitted == 1, ttl
