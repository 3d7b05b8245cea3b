"""
Read-through cache for market data.

Provides a small caching layer with:
- A single ``get_or_compute(key, ttl, fetcher)`` contract
- In-flight request deduplication (concurrent misses share one fetch)
- In-memory TTL + LRU backend for tests and single-process deployments
- Redis backend with graceful degradation on Redis failures

Caching Strategy:
- Populate only after a successful fetch; None and exceptions are never cached
- TTL-based expiration per value kind (see CacheKeys / settings)
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import redis.asyncio as aioredis
from loguru import logger
from redis.exceptions import RedisError

from conviction.core.config import settings


Fetcher = Callable[[], Awaitable[Any]]


class CacheKeys:
    """Cache key builders shared by every backend"""

    @staticmethod
    def metadata(token_address: str, chain: str) -> str:
        return f"metadata:{chain}:{token_address}"

    @staticmethod
    def price(token_address: str, chain: str) -> str:
        return f"price:{chain}:{token_address}"

    @staticmethod
    def price_history(token_address: str, chain: str, time_from_ms: int, time_to_ms: int) -> str:
        return f"history:{chain}:{token_address}:{time_from_ms}:{time_to_ms}"

    @staticmethod
    def base_price(chain: str, asset: str) -> str:
        return f"base-price:{chain}:{asset}"


class Cache(ABC):
    """
    Abstract read-through cache.

    Backends implement ``get``/``set``/``invalidate``; deduplication of
    concurrent misses lives here so every backend gets it.
    """

    def __init__(self):
        self._inflight: Dict[str, asyncio.Future] = {}
        self._hits = 0
        self._misses = 0

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Cached value or None"""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value with a TTL"""

    @abstractmethod
    async def invalidate(self, key: str) -> None:
        """Drop one key"""

    async def close(self) -> None:
        return None

    async def get_or_compute(self, key: str, ttl_seconds: int, fetcher: Fetcher) -> Any:
        """
        Return the cached value for ``key`` or compute it with ``fetcher``.

        Args:
            key: Cache key (see CacheKeys)
            ttl_seconds: Time-to-live for a freshly computed value
            fetcher: Zero-argument coroutine function producing the value

        Returns:
            Cached or freshly computed value (None is returned but not stored)
        """
        cached = await self.get(key)
        if cached is not None:
            self._hits += 1
            logger.debug(f"Cache HIT: {key}")
            return cached

        self._misses += 1
        task = self._inflight.get(key)
        if task is None:
            logger.debug(f"Cache MISS: {key}")
            task = asyncio.ensure_future(self._compute(key, ttl_seconds, fetcher))
            self._inflight[key] = task
        else:
            logger.debug(f"Cache MISS (joined in-flight fetch): {key}")

        return await asyncio.shield(task)

    async def _compute(self, key: str, ttl_seconds: int, fetcher: Fetcher) -> Any:
        try:
            value = await fetcher()
            if value is not None:
                await self.set(key, value, ttl_seconds)
            return value
        finally:
            self._inflight.pop(key, None)

    def stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            "backend": type(self).__name__,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 2) if total else 0.0,
            "inflight": len(self._inflight),
        }


class InMemoryCache(Cache):
    """Process-local TTL cache with LRU eviction"""

    def __init__(self, max_size: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        super().__init__()
        self.max_size = max_size or settings.CACHE_MAX_SIZE
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if value is None:
            return
        self._entries[key] = (self._clock() + ttl_seconds, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache EVICT: {evicted}")

    async def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        data = super().stats()
        data.update({"size": len(self._entries), "max_size": self.max_size})
        return data


class RedisCache(Cache):
    """
    Redis-backed cache shared between workers.

    Values are stored as JSON with SETEX. After MAX_FAILURES consecutive
    Redis errors the circuit opens and lookups bypass Redis (every call
    computes directly) until FAILURE_RESET_TIME has passed.
    """

    KEY_PREFIX = "conviction"

    # Circuit breaker settings
    MAX_FAILURES = 5
    FAILURE_RESET_TIME = 60  # seconds

    def __init__(self, redis_client: Optional[aioredis.Redis] = None, url: Optional[str] = None):
        super().__init__()
        self.redis = redis_client
        self.url = url or settings.REDIS_URL
        self._failures = 0
        self._last_failure_time: Optional[datetime] = None

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}:{key}"

    async def _get_redis(self) -> Optional[aioredis.Redis]:
        """
        Get Redis client with circuit breaker pattern.

        Returns:
            Redis client or None if circuit is open
        """
        if self._failures >= self.MAX_FAILURES:
            if self._last_failure_time:
                elapsed = (datetime.utcnow() - self._last_failure_time).total_seconds()
                if elapsed < self.FAILURE_RESET_TIME:
                    return None
                logger.info("Cache circuit breaker reset")
                self._failures = 0
                self._last_failure_time = None

        if self.redis is None:
            self.redis = aioredis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=10,
                socket_timeout=2.0,
                socket_connect_timeout=2.0,
            )
        return self.redis

    def _record_failure(self, error: Exception):
        self._failures += 1
        self._last_failure_time = datetime.utcnow()
        logger.warning(f"Redis failure recorded ({self._failures}/{self.MAX_FAILURES}): {error}")

    async def get(self, key: str) -> Optional[Any]:
        redis = await self._get_redis()
        if redis is None:
            return None

        try:
            raw = await redis.get(self._key(key))
        except RedisError as e:
            self._record_failure(e)
            return None

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Dropping undecodable cache entry {key}")
            await self.invalidate(key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if value is None:
            return
        redis = await self._get_redis()
        if redis is None:
            return

        try:
            await redis.setex(self._key(key), ttl_seconds, json.dumps(value))
        except RedisError as e:
            self._record_failure(e)

    async def invalidate(self, key: str) -> None:
        redis = await self._get_redis()
        if redis is None:
            return
        try:
            await redis.delete(self._key(key))
        except RedisError as e:
            self._record_failure(e)

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None

    def stats(self) -> Dict[str, Any]:
        data = super().stats()
        data.update({
            "circuit_open": self._failures >= self.MAX_FAILURES,
            "failures": self._failures,
        })
        return data


def create_cache() -> Cache:
    """Redis when REDIS_URL is configured, otherwise in-memory"""
    if settings.REDIS_URL:
        logger.info("Using Redis cache")
        return RedisCache()
    logger.info(f"Using in-memory cache (max_size={settings.CACHE_MAX_SIZE})")
    return InMemoryCache()
