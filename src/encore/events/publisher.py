"""Envelope publishing helpers for write paths.

Each helper builds one envelope, publishes it once and returns it. Call
them only after the triggering write has committed.

Example:
    from encore.events.publisher import publish_message

    record = await chats.create_message(chat_id, sender_id, content)
    await publish_message(bus, record, chat_id=chat_id, receiver_id=receiver_id)
"""

from __future__ import annotations

from typing import Any

from encore.events.bus import EventBus
from encore.events.schemas import MessageEvent, NotificationEvent, PresenceStatus, StatusEvent


async def publish_status(event_bus: EventBus, user_id: str, status: PresenceStatus) -> StatusEvent:
    """Announce that a user went online or offline."""
    event = StatusEvent(user_id=user_id, status=status)
    await event_bus.publish(event)
    return event


async def publish_message(
    event_bus: EventBus,
    message: dict[str, Any],
    chat_id: str,
    receiver_id: str,
) -> MessageEvent:
    """Announce a persisted chat message.

    Args:
        event_bus: Event bus to publish to
        message: The persisted message record (with sender summary)
        chat_id: Conversation the message belongs to
        receiver_id: The participant who should get a background toast
    """
    event = MessageEvent(message=message, chat_id=chat_id, receiver_id=receiver_id)
    await event_bus.publish(event)
    return event


async def publish_notification(
    event_bus: EventBus,
    user_id: str,
    type: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> NotificationEvent:
    """Announce a notification for a single user."""
    event = NotificationEvent(user_id=user_id, type=type, message=message, data=data or {})
    await event_bus.publish(event)
    return event
