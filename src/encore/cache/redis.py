"""Redis cache implementation for the Encore backend.

Provides the shared async Redis client and the read-through cache façade.
The cache is an optimization only: every fault is logged and answered from
the source of truth, so a slow or missing Redis degrades latency, never
correctness.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar, cast

import orjson
import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from encore.cache.keys import CacheKeys
from encore.config import settings
from encore.observability.metrics import record_cache_error, record_cache_hit, record_cache_miss

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Module-level connection pool
_redis_client: Redis | None = None


async def get_redis() -> Redis:
    """Get or create the Redis client.

    Connection errors are retried with exponential backoff before surfacing,
    after which callers fall back to the database.
    """
    global _redis_client
    if _redis_client is None:
        retry = Retry(
            ExponentialBackoff(cap=settings.redis_retry_cap, base=settings.redis_retry_base),
            settings.redis_max_retries,
        )
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            settings.redis_url,
            decode_responses=False,
            retry=retry,
            retry_on_error=[RedisConnectionError, RedisTimeoutError],
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connections."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


async def ping_redis() -> bool:
    """Log the store's health at startup. Never raises."""
    try:
        client = await get_redis()
        await cast(Awaitable[bool], client.ping())
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        return False
    logger.info("Redis connection healthy")
    return True


class RedisCache:
    """Read-through cache over Redis.

    Values are stored as orjson-encoded bytes under "{resource}:{identifier}".
    """

    def __init__(self, client: Redis, ttl: int | None = None):
        self.client = client
        self.ttl = ttl if ttl is not None else settings.cache_default_ttl

    async def fetch_cached(
        self,
        resource: str,
        identifier: str | int,
        compute: Callable[[], Awaitable[T]],
        ttl: int | None = None,
    ) -> T:
        """Return the cached result for a key, computing and storing it on a miss.

        The identifier must already be deterministic for logically-equivalent
        requests (see CacheKeys.page and CacheKeys.query_hash).

        A result of None is returned but never stored, so the next call
        recomputes. Empty collections are valid results and are cached.

        Args:
            resource: Cache namespace, e.g. "users"
            identifier: Primary key or normalized query identifier
            compute: Zero-argument coroutine function producing the result
            ttl: Retention in seconds (defaults to the cache's TTL)
        """
        key = CacheKeys.entry(resource, identifier)

        try:
            cached = await self.client.get(key)
        except Exception as e:
            logger.error(f"Redis error reading {key}, falling back to source: {e}")
            record_cache_error("get")
            return await compute()

        if cached is not None:
            try:
                result = cast(T, orjson.loads(cached))
            except orjson.JSONDecodeError:
                logger.warning(f"Discarding undecodable cache entry {key}")
            else:
                logger.debug(f"Cache hit: {key}")
                record_cache_hit(resource)
                return result

        logger.debug(f"Cache miss: {key}")
        record_cache_miss(resource)
        result = await compute()

        if result is not None:
            await self._store(key, result, ttl or self.ttl)

        return result

    async def _store(self, key: str, value: Any, ttl: int) -> None:
        try:
            payload = orjson.dumps(value)
            await self.client.set(key, payload, ex=ttl)
        except Exception as e:
            logger.error(f"Redis error writing {key}: {e}")
            record_cache_error("set")

    async def get(self, resource: str, identifier: str | int) -> Any | None:
        """Read a cached value without computing. Returns None on miss or fault."""
        key = CacheKeys.entry(resource, identifier)
        try:
            cached = await self.client.get(key)
        except Exception as e:
            logger.error(f"Redis error reading {key}: {e}")
            record_cache_error("get")
            return None
        return orjson.loads(cached) if cached is not None else None

    async def health_check(self) -> bool:
        """Check Redis connectivity."""
        try:
            await cast(Awaitable[bool], self.client.ping())
            return True
        except Exception:
            return False
