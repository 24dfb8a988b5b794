"""
Cache Store - key/value bytes with per-key expiry

The store owns expiry; callers never look at timestamps. Entries are never
deleted explicitly, they age out and get overwritten by the next fetch.
"""

import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

from shared.utils.redis_client import RedisClient


class CacheStore(ABC):
    """Contract consumed by the fetch orchestrator"""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl_seconds: int) -> bool:
        """Store bytes under key for ttl_seconds."""


class RedisCacheStore(CacheStore):
    """GET / SETEX against Redis; errors surface as CacheStoreUnavailable"""

    def __init__(self, redis_client: RedisClient):
        self.redis = redis_client

    async def get(self, key: str) -> Optional[bytes]:
        return await self.redis.get(key)

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> bool:
        return await self.redis.set(key, value, ttl=ttl_seconds)


class InMemoryCacheStore(CacheStore):
    """
    Process-local store with passive expiry

    Used for tests and single-process deployments without Redis.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[bytes, float]] = {}

    async def get(self, key: str) -> Optional[bytes]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            return None
        return value

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> bool:
        self._entries[key] = (bytes(value), self._clock() + ttl_seconds)
        return True

    def ttl(self, key: str) -> Optional[float]:
        """Seconds left for key, None when absent or expired"""
        entry = self._entries.get(key)
        if entry is None:
            return None
        remaining = entry[1] - self._clock()
        return remaining if remaining > 0 else None

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for _, expires_at in self._entries.values() if expires_at > now)
