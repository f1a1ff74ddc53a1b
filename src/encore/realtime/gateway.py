"""Real-time gateway: connections, rooms, presence and envelope fan-out.

One Gateway is constructed per process at startup and owns that process's
connection registry. It is the only subscriber of the event bus.

Connection lifecycle:
    CONNECTING -> AUTHENTICATED -> ACTIVE -> DISCONNECTED

Every connection joins its personal room (its user id) on connect, and any
number of conversation rooms on request. Rooms are connection-scoped and
rebuilt from scratch on reconnect.

Fan-out rules for envelopes received from the bus:
- STATUS: "user_status_change" to every local connection
- MESSAGE: "receive_message" to the conversation room, plus a
  "message_notification" toast to the receiver's personal room
- NOTIFICATION: "notification" to the addressed user's personal room

Client-originated messages are persisted and published on the bus, never
emitted locally, so delivery has one code path whichever process took the
write.

Frames are JSON text: {"event": <name>, "data": <payload>}.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

import orjson

from encore.core.errors import AuthenticationError
from encore.events.bus import EventBus
from encore.events.publisher import publish_message, publish_status
from encore.events.schemas import (
    AnyEnvelope,
    MessageEvent,
    NotificationEvent,
    PresenceStatus,
    StatusEvent,
)
from encore.observability.metrics import set_active_connections
from encore.realtime.presence import PresenceRegistry

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 50


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


class Socket(Protocol):
    """The subset of a WebSocket the gateway drives."""

    async def accept(self) -> None: ...

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class MessageStore(Protocol):
    """Persistence collaborator for client-originated chat messages."""

    async def persist_message(
        self, chat_id: str, sender_id: str, content: str, receiver_id: str | None = None
    ) -> tuple[dict[str, Any], str | None]:
        """Store a message, returning (record, receiver_id)."""
        ...

    async def is_participant(self, chat_id: str, user_id: str) -> bool: ...


@dataclass(eq=False)
class Connection:
    """One live socket and the rooms it belongs to."""

    socket: Socket
    user_id: str
    id: str = field(default_factory=lambda: uuid4().hex)
    state: ConnectionState = ConnectionState.CONNECTING
    rooms: set[str] = field(default_factory=set)

    async def emit(self, event: str, data: Any) -> None:
        frame = orjson.dumps({"event": event, "data": data}).decode()
        await self.socket.send_text(frame)


class ConnectionRegistry:
    """Local connections indexed by id and by room."""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, set[Connection]] = {}

    def add(self, connection: Connection) -> None:
        self._connections[connection.id] = connection

    def join(self, connection: Connection, room: str) -> bool:
        """Add a connection to a room. Returns False if it was already a member."""
        if room in connection.rooms:
            return False
        connection.rooms.add(room)
        self._rooms.setdefault(room, set()).add(connection)
        return True

    def remove(self, connection: Connection) -> None:
        """Drop a connection and all of its room memberships."""
        for room in connection.rooms:
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(connection)
            if not members:
                del self._rooms[room]
        connection.rooms.clear()
        self._connections.pop(connection.id, None)

    def members(self, room: str) -> list[Connection]:
        return list(self._rooms.get(room, ()))

    @property
    def connections(self) -> list[Connection]:
        return list(self._connections.values())

    @property
    def user_ids(self) -> set[str]:
        return {connection.user_id for connection in self._connections.values()}

    def connection_count(self, user_id: str) -> int:
        return sum(1 for c in self._connections.values() if c.user_id == user_id)

    def __len__(self) -> int:
        return len(self._connections)


class Gateway:
    """Per-process real-time gateway.

    Args:
        bus: Event bus shared by every process
        presence: Presence registry in the shared store
        messages: Persistence collaborator for client-sent messages
        verify_token: Resolves a handshake token to a user id, raising
            AuthenticationError when it cannot
        heartbeat_interval: Seconds between presence refreshes; None disables
    """

    def __init__(
        self,
        bus: EventBus,
        presence: PresenceRegistry,
        messages: MessageStore,
        verify_token: Callable[[str], str],
        heartbeat_interval: float | None = None,
    ):
        self.bus = bus
        self.presence = presence
        self.messages = messages
        self.verify_token = verify_token
        self.heartbeat_interval = heartbeat_interval
        self.registry = ConnectionRegistry()
        self._heartbeat_task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to the bus and start the presence heartbeat if configured."""
        await self.bus.subscribe(self.handle_envelope)
        if self.heartbeat_interval and self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        logger.info("Real-time gateway started")

    async def stop(self) -> None:
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        for connection in self.registry.connections:
            await self.disconnect(connection)
        logger.info("Real-time gateway stopped")

    async def _heartbeat_loop(self) -> None:
        assert self.heartbeat_interval is not None
        while True:
            try:
                await asyncio.sleep(self.heartbeat_interval)
                await self.heartbeat()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Presence heartbeat failed: {e}")

    async def heartbeat(self) -> None:
        """Refresh local presence and reap users left behind by dead processes."""
        await self.presence.refresh(self.registry.user_ids)
        for user_id in await self.presence.prune():
            await publish_status(self.bus, user_id, PresenceStatus.OFFLINE)

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    def authenticate(self, token: str | None) -> str:
        """Resolve a handshake token to a user id.

        Raises:
            AuthenticationError: If no user id can be resolved
        """
        if not token:
            raise AuthenticationError("Missing token")
        user_id = self.verify_token(token)
        if not user_id:
            raise AuthenticationError("Token carries no user id")
        return user_id

    async def connect(self, socket: Socket, user_id: str) -> Connection:
        """Accept an authenticated socket and bring it to ACTIVE."""
        connection = Connection(socket=socket, user_id=user_id)
        await socket.accept()
        connection.state = ConnectionState.AUTHENTICATED

        self.registry.add(connection)
        self.registry.join(connection, user_id)
        set_active_connections(len(self.registry))

        await self.presence.connect(user_id)
        await publish_status(self.bus, user_id, PresenceStatus.ONLINE)

        try:
            await connection.emit("online_users_list", await self.presence.online_users())
        except Exception as e:
            logger.debug(f"Failed to send online users to {connection.id}: {e}")

        connection.state = ConnectionState.ACTIVE
        logger.info(f"User {user_id} connected ({len(self.registry)} local connections)")
        return connection

    async def disconnect(self, connection: Connection) -> None:
        """Tear down a connection. Safe to call more than once."""
        if connection.state == ConnectionState.DISCONNECTED:
            return
        connection.state = ConnectionState.DISCONNECTED

        self.registry.remove(connection)
        set_active_connections(len(self.registry))

        went_offline = await self.presence.disconnect(connection.user_id)
        if went_offline:
            await publish_status(self.bus, connection.user_id, PresenceStatus.OFFLINE)

        logger.info(
            f"User {connection.user_id} disconnected ({len(self.registry)} local connections)"
        )

    # -------------------------------------------------------------------------
    # Client-originated events
    # -------------------------------------------------------------------------

    async def handle_client_event(self, connection: Connection, event: str, data: Any) -> None:
        """Dispatch one inbound frame from a client."""
        match event:
            case "join_room":
                await self.join_room(connection, str(data or ""))
            case "join_chat":
                await self.join_chat(connection, str(data or ""))
            case "send_message":
                await self.send_message(connection, data if isinstance(data, dict) else {})
            case "ping":
                await connection.emit("pong", None)
            case _:
                logger.warning(f"Ignoring unknown client event {event!r}")

    async def join_room(self, connection: Connection, user_id: str) -> None:
        """Join a personal room. Only the connection's own room is honoured."""
        if user_id != connection.user_id:
            logger.warning(f"User {connection.user_id} tried to join the room of {user_id}")
            return
        self.registry.join(connection, user_id)

    async def join_chat(self, connection: Connection, chat_id: str) -> None:
        """Join a conversation room. Repeated joins are no-ops."""
        if not chat_id:
            return
        try:
            allowed = await self.messages.is_participant(chat_id, connection.user_id)
        except Exception as e:
            logger.error(f"Failed to check membership of chat {chat_id}: {e}")
            return
        if not allowed:
            logger.warning(f"User {connection.user_id} is not a participant of chat {chat_id}")
            return
        if self.registry.join(connection, chat_id):
            logger.debug(f"User {connection.user_id} joined chat {chat_id}")

    async def send_message(self, connection: Connection, data: dict[str, Any]) -> MessageEvent | None:
        """Persist a client-sent message and publish it on the bus."""
        chat_id = data.get("chatId")
        content = data.get("content")
        if not chat_id or not content:
            logger.warning(f"Rejected send_message from {connection.user_id}: missing fields")
            return None

        try:
            record, receiver_id = await self.messages.persist_message(
                str(chat_id),
                connection.user_id,
                str(content),
                data.get("receiverId"),
            )
        except Exception as e:
            logger.error(f"Failed to persist message in chat {chat_id}: {e}")
            return None

        if receiver_id is None:
            return None
        return await publish_message(self.bus, record, chat_id=str(chat_id), receiver_id=receiver_id)

    # -------------------------------------------------------------------------
    # Bus fan-out
    # -------------------------------------------------------------------------

    async def handle_envelope(self, event: AnyEnvelope) -> None:
        """Re-emit one bus envelope to the relevant local connections."""
        match event:
            case StatusEvent():
                await self.broadcast("user_status_change", event.payload())
            case MessageEvent():
                await self.emit_to_room(event.chat_id, "receive_message", event.message)
                await self.emit_to_room(
                    event.receiver_id,
                    "message_notification",
                    {
                        "chatId": event.chat_id,
                        "senderName": event.sender_name,
                        "preview": event.content[:PREVIEW_LENGTH],
                    },
                )
            case NotificationEvent():
                await self.emit_to_room(event.user_id, "notification", event.payload())

    async def emit_to_room(self, room: str, event: str, data: Any) -> int:
        """Emit to every local member of a room. Returns the delivery count."""
        return await self._deliver(self.registry.members(room), event, data)

    async def broadcast(self, event: str, data: Any) -> int:
        """Emit to every local connection. Returns the delivery count."""
        return await self._deliver(self.registry.connections, event, data)

    async def _deliver(self, connections: list[Connection], event: str, data: Any) -> int:
        delivered = 0
        for connection in connections:
            if connection.state != ConnectionState.ACTIVE:
                continue
            try:
                await connection.emit(event, data)
                delivered += 1
            except Exception as e:
                logger.debug(f"Dropping connection {connection.id} after failed send: {e}")
                await self.disconnect(connection)
        return delivered
