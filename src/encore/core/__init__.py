"""Core primitives shared by the cache, bus and gateway layers."""

from encore.core.errors import (
    AuthenticationError,
    ChatNotFoundError,
    EncoreError,
    EnvelopeDecodeError,
    NotParticipantError,
    PersistenceError,
)
from encore.core.tasks import drain_background, spawn_background

__all__ = [
    "EncoreError",
    "AuthenticationError",
    "ChatNotFoundError",
    "EnvelopeDecodeError",
    "NotParticipantError",
    "PersistenceError",
    "spawn_background",
    "drain_background",
]
