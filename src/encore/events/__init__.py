"""Event system for the Encore backend.

Write paths persist first, invalidate stale cache entries, then publish one
typed envelope. Every process's real-time gateway is subscribed to the bus
and re-emits each envelope to its locally connected sockets.
"""

from encore.events.bus import EnvelopeHandler, EventBus, InMemoryEventBus
from encore.events.publisher import publish_message, publish_notification, publish_status
from encore.events.redis_bus import RedisPubSubEventBus
from encore.events.runtime import create_event_bus, start_event_bus, stop_event_bus
from encore.events.schemas import (
    AnyEnvelope,
    EnvelopeType,
    MessageEvent,
    NotificationEvent,
    PresenceStatus,
    StatusEvent,
    decode_envelope,
    encode_envelope,
)

__all__ = [
    # Envelopes
    "EnvelopeType",
    "PresenceStatus",
    "StatusEvent",
    "MessageEvent",
    "NotificationEvent",
    "AnyEnvelope",
    "encode_envelope",
    "decode_envelope",
    # Bus
    "EventBus",
    "EnvelopeHandler",
    "InMemoryEventBus",
    "RedisPubSubEventBus",
    "create_event_bus",
    "start_event_bus",
    "stop_event_bus",
    # Publishers
    "publish_status",
    "publish_message",
    "publish_notification",
]
