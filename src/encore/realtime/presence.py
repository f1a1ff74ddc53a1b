"""Presence registry backed by Redis.

Keys:
- {presence_key} (set): user ids with at least one live connection
- {presence_count_prefix}:{user_id} (string counter): live connections per user

A user stays in the set while their counter is positive, so a second tab
closing does not mark the user offline while the first is still open.

Abrupt process death skips the disconnect path and leaves counters
inflated. When the heartbeat is enabled, every process periodically
re-applies a TTL to the counters of its local users; counters of a dead
process expire and prune() removes their users from the set.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from encore.config import settings

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


def _decode(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


class PresenceRegistry:
    """Tracks which users currently hold a live real-time connection.

    Every operation is a single-key Redis command, idempotent or
    self-correcting, so processes share the registry without locks.
    Store errors are logged and swallowed.
    """

    def __init__(
        self,
        client: Redis,
        key: str | None = None,
        count_prefix: str | None = None,
        ttl: int | None = None,
        heartbeat_enabled: bool | None = None,
    ):
        self.client = client
        self.key = key or settings.presence_key
        self.count_prefix = count_prefix or settings.presence_count_prefix
        self.ttl = ttl or settings.presence_ttl
        self.heartbeat_enabled = (
            settings.presence_heartbeat_enabled if heartbeat_enabled is None else heartbeat_enabled
        )

    def count_key(self, user_id: str) -> str:
        return f"{self.count_prefix}:{user_id}"

    async def connect(self, user_id: str) -> int:
        """Record a new connection for a user.

        Returns the user's live connection count (0 if the store failed).
        """
        count_key = self.count_key(user_id)
        try:
            count = int(await self.client.incr(count_key))
            if self.heartbeat_enabled:
                await self.client.expire(count_key, self.ttl)
            await self.client.sadd(self.key, user_id)
        except Exception as e:
            logger.error(f"Failed to record presence for {user_id}: {e}")
            return 0
        return count

    async def disconnect(self, user_id: str) -> bool:
        """Record a closed connection for a user.

        Returns True when it was the user's last connection and the user
        was removed from the online set.
        """
        count_key = self.count_key(user_id)
        try:
            remaining = int(await self.client.decr(count_key))
            if remaining > 0:
                return False
            await self.client.delete(count_key)
            return await self._remove_if_idle(user_id)
        except Exception as e:
            logger.error(f"Failed to clear presence for {user_id}: {e}")
            return False

    async def _remove_if_idle(self, user_id: str) -> bool:
        await self.client.srem(self.key, user_id)

        # A connect may have raced the removal; put the user back if so
        current = await self.client.get(self.count_key(user_id))
        if current is not None and int(current) > 0:
            await self.client.sadd(self.key, user_id)
            return False
        return True

    async def online_users(self) -> list[str]:
        try:
            members = await self.client.smembers(self.key)
        except Exception as e:
            logger.error(f"Failed to read online users: {e}")
            return []
        return sorted(_decode(member) for member in members)

    async def is_online(self, user_id: str) -> bool:
        try:
            return bool(await self.client.sismember(self.key, user_id))
        except Exception as e:
            logger.error(f"Failed to read presence for {user_id}: {e}")
            return False

    async def refresh(self, user_ids: Iterable[str]) -> None:
        """Re-apply the TTL to the counters of locally connected users."""
        for user_id in user_ids:
            try:
                await self.client.expire(self.count_key(user_id), self.ttl)
            except Exception as e:
                logger.warning(f"Failed to refresh presence for {user_id}: {e}")

    async def prune(self) -> list[str]:
        """Remove users whose counter expired or dropped to zero.

        Returns the user ids that were removed.
        """
        removed: list[str] = []
        try:
            members = await self.client.smembers(self.key)
            for member in members:
                user_id = _decode(member)
                current = await self.client.get(self.count_key(user_id))
                if current is not None and int(current) > 0:
                    continue
                if await self._remove_if_idle(user_id):
                    removed.append(user_id)
        except Exception as e:
            logger.error(f"Failed to prune presence set: {e}")

        if removed:
            logger.info(f"Pruned {len(removed)} stale presence entries")
        return removed
