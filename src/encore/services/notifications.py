"""User notifications: durable record, history stream and real-time push.

A notification is delivered three ways:
1. a row in the notifications table (what the notification list shows),
2. an entry on the Redis Stream used as a capped history for other consumers,
3. a NOTIFICATION envelope on the event bus, which the gateway turns into a
   "notification" emit to the user's personal room.

Only (1) is transactional. The stream append runs as a background task and
both (2) and (3) log their failures instead of raising.
"""

from __future__ import annotations

import logging
from typing import Any

import orjson
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from encore.config import settings
from encore.core.tasks import spawn_background
from encore.events.bus import EventBus
from encore.events.publisher import publish_notification
from encore.events.schemas import NotificationEvent
from encore.persistence.repositories import NotificationRepository

logger = logging.getLogger(__name__)


class NotificationService:
    """Announce notifications on the bus and the history stream.

    Args:
        bus: Event bus shared by every process
        client: Redis client for the history stream; None disables it
        stream: Stream key (defaults to settings.notification_stream)
        maxlen: Approximate cap on the stream length
    """

    def __init__(
        self,
        bus: EventBus,
        client: Redis | None = None,
        stream: str | None = None,
        maxlen: int | None = None,
    ):
        self.bus = bus
        self.client = client
        self.stream = stream or settings.notification_stream
        self.maxlen = maxlen or settings.notification_stream_maxlen

    @staticmethod
    async def record(
        session: AsyncSession,
        user_id: str,
        type: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Add a notification row to the caller's transaction (not committed)."""
        return await NotificationRepository(session).create(user_id, type, message, data)

    async def announce(
        self,
        user_id: str,
        type: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> NotificationEvent:
        """Push a notification that is already durable. Call after commit."""
        event = await publish_notification(
            self.bus, user_id=user_id, type=type, message=message, data=data
        )
        if self.client is not None:
            spawn_background(self._append_history(event), name=f"notification-stream:{user_id}")
        return event

    async def notify(
        self,
        session: AsyncSession,
        user_id: str,
        type: str,
        message: str,
        data: dict[str, Any] | None = None,
        persist: bool = True,
    ) -> NotificationEvent:
        """Record, commit and announce a single notification."""
        if persist:
            await self.record(session, user_id, type, message, data)
            await session.commit()
        return await self.announce(user_id, type, message, data)

    async def _append_history(self, event: NotificationEvent) -> None:
        assert self.client is not None
        fields = {
            "userId": event.user_id,
            "type": event.type,
            "message": event.message,
            "data": orjson.dumps(event.data),
            "createdAt": event.created_at,
        }
        try:
            await self.client.xadd(self.stream, fields, maxlen=self.maxlen, approximate=True)
        except Exception as e:
            logger.warning(f"Failed to append notification for {event.user_id} to stream: {e}")
