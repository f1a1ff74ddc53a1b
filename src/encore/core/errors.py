"""Error taxonomy for the real-time and cache layers.

Cache and publish faults are never raised to callers; they are logged where
they happen. These exceptions cover the faults that do cross a boundary.
"""

from __future__ import annotations


class EncoreError(Exception):
    """Base class for Encore errors."""


class AuthenticationError(EncoreError):
    """A connection handshake or request carried no resolvable user identifier."""


class EnvelopeDecodeError(EncoreError):
    """A bus payload could not be decoded into a known envelope."""


class PersistenceError(EncoreError):
    """The persistence layer failed while serving a core operation."""


class ChatNotFoundError(EncoreError):
    """A message was addressed to a conversation that does not exist."""


class NotParticipantError(EncoreError):
    """The user is not a participant of the conversation they addressed."""
