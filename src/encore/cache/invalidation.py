"""Cache invalidation for mutation paths.

Mutation paths call these helpers AFTER their write commits. Invalidating
before the commit lets a concurrent reader repopulate the entry with
pre-write data, which then stays stale until its TTL expires.

Pattern invalidation walks the keyspace with SCAN in batches and deletes as
it goes, so a large keyspace never blocks the store.

Example:
    invalidator = CacheInvalidator(await get_redis())

    await session.commit()
    await invalidator.invalidate_listing("users", "performers")
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from encore.cache.keys import CacheKeys
from encore.observability.metrics import record_cache_error, record_cache_invalidation

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Keys requested per SCAN round trip
SCAN_BATCH_SIZE = 100


class CacheInvalidator:
    """Deletes stale cache entries by exact key or wildcard pattern.

    Failures are logged and swallowed: a missed invalidation degrades to
    "stale until TTL", it never fails the request that triggered it.
    """

    def __init__(self, client: Redis):
        self.client = client

    async def invalidate_keys(self, keys: str | Iterable[str]) -> int:
        """Delete one or more exact keys.

        Returns the number of keys removed (0 on failure).
        """
        keys_to_delete = [keys] if isinstance(keys, str) else list(keys)
        if not keys_to_delete:
            return 0

        try:
            deleted = int(await self.client.delete(*keys_to_delete))
        except Exception as e:
            logger.error(f"Failed to invalidate keys {keys_to_delete}: {e}")
            record_cache_error("invalidate")
            return 0

        logger.info(f"Invalidated cache keys: {', '.join(keys_to_delete)}")
        record_cache_invalidation(deleted)
        return deleted

    async def invalidate_pattern(self, pattern: str, batch_size: int = SCAN_BATCH_SIZE) -> int:
        """Delete every key matching a glob pattern (e.g. "users:performers_p*").

        Returns the number of keys removed before any failure.
        """
        deleted = 0
        cursor: int = 0
        try:
            while True:
                cursor, keys = await self.client.scan(cursor=cursor, match=pattern, count=batch_size)
                if keys:
                    deleted += int(await self.client.delete(*keys))
                if int(cursor) == 0:
                    break
        except Exception as e:
            logger.error(f"Failed to invalidate pattern {pattern!r}: {e}")
            record_cache_error("invalidate")
            record_cache_invalidation(deleted)
            return deleted

        if deleted:
            logger.info(f"Invalidated pattern {pattern!r}: {deleted} keys removed")
        record_cache_invalidation(deleted)
        return deleted

    async def invalidate_listing(self, resource: str, listing: str) -> int:
        """Invalidate every cached page of a paginated listing."""
        return await self.invalidate_pattern(CacheKeys.page_pattern(resource, listing))

    async def invalidate_resource(self, resource: str) -> int:
        """Invalidate every entry in a resource namespace (e.g. all search results)."""
        return await self.invalidate_pattern(CacheKeys.resource_pattern(resource))
