from conviction.services.cache.cache_service import (
    Cache,
    CacheKeys,
    InMemoryCache,
    RedisCache,
    create_cache,
)

__all__ = ["Cache", "CacheKeys", "InMemoryCache", "RedisCache", "create_cache"]
