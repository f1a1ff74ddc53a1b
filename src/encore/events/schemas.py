"""Event envelope schemas for the Encore backend.

Every envelope on the bus is one of three kinds, each with its own typed
payload:
- StatusEvent: a user went online or offline
- MessageEvent: a chat message was persisted
- NotificationEvent: a notification was issued for a user

Wire shape (orjson bytes):
{
    "type": "STATUS" | "MESSAGE" | "NOTIFICATION",
    "payload": {
        STATUS:       {"userId", "status": "online" | "offline"}
        MESSAGE:      {"message": <persisted message record>, "chatId", "receiverId"}
        NOTIFICATION: {"userId", "type", "message", "data", "createdAt"}
    }
}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import orjson

from encore.core.errors import EnvelopeDecodeError


class EnvelopeType(str, Enum):
    """Discriminator of an envelope on the bus."""

    STATUS = "STATUS"
    MESSAGE = "MESSAGE"
    NOTIFICATION = "NOTIFICATION"


class PresenceStatus(str, Enum):
    """Presence state announced by a STATUS envelope."""

    ONLINE = "online"
    OFFLINE = "offline"


# Older publishers tagged chat messages this way
_TYPE_ALIASES = {"NEW_MESSAGE": EnvelopeType.MESSAGE}


@dataclass(frozen=True, slots=True)
class StatusEvent:
    """A user's presence changed."""

    user_id: str
    status: PresenceStatus

    @property
    def envelope_type(self) -> EnvelopeType:
        return EnvelopeType.STATUS

    def payload(self) -> dict[str, Any]:
        return {"userId": self.user_id, "status": self.status.value}


@dataclass(frozen=True, slots=True)
class MessageEvent:
    """A chat message was persisted and should reach the conversation."""

    message: dict[str, Any]
    chat_id: str
    receiver_id: str

    @property
    def envelope_type(self) -> EnvelopeType:
        return EnvelopeType.MESSAGE

    def payload(self) -> dict[str, Any]:
        return {"message": self.message, "chatId": self.chat_id, "receiverId": self.receiver_id}

    @property
    def sender_name(self) -> str:
        sender = self.message.get("sender") or {}
        return str(sender.get("name") or "")

    @property
    def content(self) -> str:
        return str(self.message.get("content") or "")


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """A notification addressed to a single user."""

    user_id: str
    type: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def envelope_type(self) -> EnvelopeType:
        return EnvelopeType.NOTIFICATION

    def payload(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "type": self.type,
            "message": self.message,
            "data": self.data,
            "createdAt": self.created_at,
        }


# Union type for all envelopes
AnyEnvelope = StatusEvent | MessageEvent | NotificationEvent


def encode_envelope(event: AnyEnvelope) -> bytes:
    """Serialize an envelope to its wire shape."""
    return orjson.dumps({"type": event.envelope_type.value, "payload": event.payload()})


def decode_envelope(data: bytes | str) -> AnyEnvelope:
    """Deserialize an envelope from its wire shape.

    Raises:
        EnvelopeDecodeError: If the payload is not JSON, the type is unknown
            or a required field is missing.
    """
    try:
        parsed = orjson.loads(data)
    except orjson.JSONDecodeError as e:
        raise EnvelopeDecodeError(f"Envelope is not valid JSON: {e}") from e

    if not isinstance(parsed, dict) or not isinstance(parsed.get("payload"), dict):
        raise EnvelopeDecodeError("Envelope must be an object with an object payload")

    raw_type = parsed.get("type")
    if not isinstance(raw_type, str):
        raise EnvelopeDecodeError(f"Envelope type must be a string, got {raw_type!r}")
    try:
        envelope_type = _TYPE_ALIASES.get(raw_type) or EnvelopeType(raw_type)
    except ValueError as e:
        raise EnvelopeDecodeError(f"Unknown envelope type: {raw_type!r}") from e

    payload: dict[str, Any] = parsed["payload"]
    try:
        match envelope_type:
            case EnvelopeType.STATUS:
                return StatusEvent(
                    user_id=str(payload["userId"]),
                    status=PresenceStatus(payload["status"]),
                )
            case EnvelopeType.MESSAGE:
                message = payload["message"]
                if not isinstance(message, dict):
                    raise EnvelopeDecodeError("MESSAGE payload must carry a message record")
                return MessageEvent(
                    message=message,
                    chat_id=str(payload["chatId"]),
                    receiver_id=str(payload["receiverId"]),
                )
            case EnvelopeType.NOTIFICATION:
                return NotificationEvent(
                    user_id=str(payload["userId"]),
                    type=str(payload["type"]),
                    message=str(payload["message"]),
                    data=dict(payload.get("data") or {}),
                    created_at=str(payload.get("createdAt") or datetime.now(UTC).isoformat()),
                )
    except (KeyError, ValueError, TypeError) as e:
        raise EnvelopeDecodeError(f"Malformed {envelope_type.value} payload: {e}") from e

    raise EnvelopeDecodeError(f"Unhandled envelope type: {envelope_type.value}")
