"""Cache layer for the Encore backend.

Provides Redis caching with the cache-aside pattern:
- Read-through façade for paginated and search queries
- Exact-key and SCAN-based pattern invalidation for mutation paths
- TTL-based expiration (2 days by default, shorter for volatile searches)
"""

from encore.cache.invalidation import CacheInvalidator
from encore.cache.keys import CacheKeys
from encore.cache.redis import RedisCache, close_redis, get_redis, ping_redis

__all__ = [
    "CacheKeys",
    "RedisCache",
    "CacheInvalidator",
    "get_redis",
    "close_redis",
    "ping_redis",
]
