"""Real-time delivery: per-process gateway and shared presence registry."""

from encore.realtime.gateway import (
    Connection,
    ConnectionRegistry,
    ConnectionState,
    Gateway,
    MessageStore,
)
from encore.realtime.presence import PresenceRegistry

__all__ = [
    "Gateway",
    "Connection",
    "ConnectionRegistry",
    "ConnectionState",
    "MessageStore",
    "PresenceRegistry",
]
