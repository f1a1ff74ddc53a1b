"""Tests for the real-time gateway: connections, rooms and fan-out."""

from __future__ import annotations

from typing import Any

import pytest

from encore.core.errors import AuthenticationError, NotParticipantError
from encore.events import InMemoryEventBus, publish_message, publish_notification
from encore.events.schemas import MessageEvent
from encore.realtime.gateway import ConnectionState, Gateway
from encore.realtime.presence import PresenceRegistry
from tests.doubles import FakeRedis, MockWebSocket


class FakeMessageStore:
    """Message store with fixed chat membership."""

    def __init__(self, chats: dict[str, list[str]]) -> None:
        self.chats = chats
        self.persisted: list[tuple[str, str, str]] = []

    async def persist_message(
        self, chat_id: str, sender_id: str, content: str, receiver_id: str | None = None
    ) -> tuple[dict[str, Any], str | None]:
        if sender_id not in self.chats.get(chat_id, []):
            raise NotParticipantError(f"{sender_id} is not in {chat_id}")
        self.persisted.append((chat_id, sender_id, content))
        others = [p for p in self.chats[chat_id] if p != sender_id]
        record = {
            "id": f"m{len(self.persisted)}",
            "chatId": chat_id,
            "senderId": sender_id,
            "content": content,
            "sender": {"id": sender_id, "name": sender_id.upper()},
        }
        return record, others[0] if others else None

    async def is_participant(self, chat_id: str, user_id: str) -> bool:
        return user_id in self.chats.get(chat_id, [])


def verify_token(token: str) -> str:
    users = {"token-u1": "u1", "token-u2": "u2", "token-blank": ""}
    if token not in users:
        raise AuthenticationError("Invalid token")
    return users[token]


@pytest.fixture
async def bus() -> InMemoryEventBus:
    bus = InMemoryEventBus()
    await bus.start()
    yield bus
    await bus.stop()


@pytest.fixture
def store() -> FakeMessageStore:
    return FakeMessageStore({"c1": ["u1", "u2"]})


def make_gateway(bus: InMemoryEventBus, redis: FakeRedis, store: FakeMessageStore) -> Gateway:
    presence = PresenceRegistry(redis, heartbeat_enabled=False)
    return Gateway(bus=bus, presence=presence, messages=store, verify_token=verify_token)


@pytest.fixture
async def gateway(
    bus: InMemoryEventBus, fake_redis: FakeRedis, store: FakeMessageStore
) -> Gateway:
    gateway = make_gateway(bus, fake_redis, store)
    await gateway.start()
    yield gateway
    await gateway.stop()


class TestAuthenticate:
    """Handshake token resolution."""

    def test_valid_token(self, gateway: Gateway) -> None:
        assert gateway.authenticate("token-u1") == "u1"

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_token(self, gateway: Gateway, token: str | None) -> None:
        with pytest.raises(AuthenticationError):
            gateway.authenticate(token)

    def test_invalid_token(self, gateway: Gateway) -> None:
        with pytest.raises(AuthenticationError):
            gateway.authenticate("forged")

    def test_token_without_user_id(self, gateway: Gateway) -> None:
        with pytest.raises(AuthenticationError):
            gateway.authenticate("token-blank")


class TestConnectionLifecycle:
    """Connect and disconnect bookkeeping."""

    async def test_connect_sequence(self, gateway: Gateway, fake_redis: FakeRedis) -> None:
        """Accept, personal room, presence, then the online list."""
        socket = MockWebSocket()
        connection = await gateway.connect(socket, "u1")

        assert socket.accepted
        assert connection.state == ConnectionState.ACTIVE
        assert connection.rooms == {"u1"}
        assert await gateway.presence.is_online("u1")
        assert socket.events()[0] == ("online_users_list", ["u1"])

    async def test_status_broadcast_on_connect(
        self, gateway: Gateway, bus: InMemoryEventBus
    ) -> None:
        """Every local connection hears about a user coming online."""
        watcher = MockWebSocket()
        await gateway.connect(watcher, "u2")
        await gateway.connect(MockWebSocket(), "u1")
        await bus.drain()

        assert ("user_status_change", {"userId": "u1", "status": "online"}) in watcher.events()

    async def test_second_tab_does_not_go_offline(
        self, gateway: Gateway, bus: InMemoryEventBus
    ) -> None:
        """Offline is announced only when the last connection closes."""
        watcher = MockWebSocket()
        await gateway.connect(watcher, "u2")
        first = await gateway.connect(MockWebSocket(), "u1")
        second = await gateway.connect(MockWebSocket(), "u1")

        await gateway.disconnect(first)
        await bus.drain()
        offline = {"userId": "u1", "status": "offline"}
        assert ("user_status_change", offline) not in watcher.events()

        await gateway.disconnect(second)
        await bus.drain()
        assert ("user_status_change", offline) in watcher.events()
        assert not await gateway.presence.is_online("u1")

    async def test_disconnect_is_idempotent(self, gateway: Gateway) -> None:
        connection = await gateway.connect(MockWebSocket(), "u1")
        await gateway.disconnect(connection)
        await gateway.disconnect(connection)

        assert connection.state == ConnectionState.DISCONNECTED
        assert len(gateway.registry) == 0
        assert connection.rooms == set()

    async def test_failed_send_disconnects(
        self, gateway: Gateway, bus: InMemoryEventBus
    ) -> None:
        """A socket that cannot be written to is torn down on delivery."""
        broken = await gateway.connect(MockWebSocket(fail_sends=True), "u1")
        assert await gateway.broadcast("ping", None) == 0

        assert broken.state == ConnectionState.DISCONNECTED
        assert len(gateway.registry) == 0


class TestRooms:
    """join_room and join_chat authorization."""

    async def test_join_own_room_only(self, gateway: Gateway) -> None:
        connection = await gateway.connect(MockWebSocket(), "u1")

        await gateway.handle_client_event(connection, "join_room", "u2")
        assert connection.rooms == {"u1"}
        assert gateway.registry.members("u2") == []

    async def test_join_chat_as_participant(self, gateway: Gateway) -> None:
        connection = await gateway.connect(MockWebSocket(), "u1")

        await gateway.handle_client_event(connection, "join_chat", "c1")
        await gateway.handle_client_event(connection, "join_chat", "c1")
        assert connection.rooms == {"u1", "c1"}
        assert gateway.registry.members("c1") == [connection]

    async def test_join_chat_refused_for_outsider(
        self, gateway: Gateway, store: FakeMessageStore
    ) -> None:
        store.chats["c2"] = ["u2", "u3"]
        connection = await gateway.connect(MockWebSocket(), "u1")

        await gateway.handle_client_event(connection, "join_chat", "c2")
        assert "c2" not in connection.rooms

    async def test_ping_pong(self, gateway: Gateway) -> None:
        socket = MockWebSocket()
        connection = await gateway.connect(socket, "u1")

        await gateway.handle_client_event(connection, "ping", None)
        assert socket.events("pong") == [("pong", None)]


class TestFanOut:
    """Envelope routing to local connections."""

    async def test_message_reaches_room_and_receiver(
        self, gateway: Gateway, bus: InMemoryEventBus
    ) -> None:
        """receive_message to the chat room, a toast to the receiver."""
        sender_socket, receiver_socket = MockWebSocket(), MockWebSocket()
        sender = await gateway.connect(sender_socket, "u1")
        receiver = await gateway.connect(receiver_socket, "u2")
        await gateway.join_chat(sender, "c1")
        await gateway.join_chat(receiver, "c1")

        record = {"id": "m1", "content": "x" * 80, "sender": {"name": "Aida"}}
        await publish_message(bus, record, chat_id="c1", receiver_id="u2")
        await bus.drain()

        assert sender_socket.events("receive_message") == [("receive_message", record)]
        assert receiver_socket.events("receive_message") == [("receive_message", record)]
        assert receiver_socket.events("message_notification") == [
            (
                "message_notification",
                {"chatId": "c1", "senderName": "Aida", "preview": "x" * 50},
            )
        ]
        assert sender_socket.events("message_notification") == []

    async def test_messages_delivered_in_publish_order(
        self, gateway: Gateway, bus: InMemoryEventBus
    ) -> None:
        """Two messages for one chat reach a member in the order they were published."""
        member_socket = MockWebSocket()
        await gateway.join_chat(await gateway.connect(member_socket, "u2"), "c1")

        await publish_message(bus, {"id": "m1"}, chat_id="c1", receiver_id="u2")
        await publish_message(bus, {"id": "m2"}, chat_id="c1", receiver_id="u2")
        await bus.drain()

        assert [data["id"] for _, data in member_socket.events("receive_message")] == [
            "m1",
            "m2",
        ]

    async def test_each_process_delivers_once(
        self, bus: InMemoryEventBus, fake_redis: FakeRedis, store: FakeMessageStore
    ) -> None:
        """Two processes on one bus each deliver only to their own sockets."""
        gateway_a = make_gateway(bus, fake_redis, store)
        gateway_b = make_gateway(bus, fake_redis, store)
        await gateway_a.start()
        await gateway_b.start()
        try:
            socket_a, socket_b = MockWebSocket(), MockWebSocket()
            await gateway_a.join_chat(await gateway_a.connect(socket_a, "u1"), "c1")
            await gateway_b.join_chat(await gateway_b.connect(socket_b, "u2"), "c1")

            await publish_message(bus, {"id": "m1"}, chat_id="c1", receiver_id="u2")
            await bus.drain()

            assert len(socket_a.events("receive_message")) == 1
            assert len(socket_b.events("receive_message")) == 1
            assert len(socket_b.events("message_notification")) == 1
        finally:
            await gateway_a.stop()
            await gateway_b.stop()

    async def test_notification_only_to_addressee(
        self, gateway: Gateway, bus: InMemoryEventBus
    ) -> None:
        addressee, bystander = MockWebSocket(), MockWebSocket()
        await gateway.connect(addressee, "u2")
        await gateway.connect(bystander, "u1")

        event = await publish_notification(bus, "u2", "BOOKING_REQUEST", "New booking request")
        await bus.drain()

        assert addressee.events("notification") == [("notification", event.payload())]
        assert bystander.events("notification") == []


class TestSendMessage:
    """Client-sent messages go through persistence and the bus."""

    async def test_publishes_without_local_emit(
        self,
        gateway: Gateway,
        bus: InMemoryEventBus,
        store: FakeMessageStore,
    ) -> None:
        """The sender's socket gets the message only via the bus."""
        published: list[Any] = []

        async def spy(event: Any) -> None:
            published.append(event)

        await bus.subscribe(spy)
        socket = MockWebSocket()
        connection = await gateway.connect(socket, "u1")
        await gateway.join_chat(connection, "c1")

        event = await gateway.send_message(connection, {"chatId": "c1", "content": "hello"})
        assert isinstance(event, MessageEvent)
        assert event.receiver_id == "u2"
        assert store.persisted == [("c1", "u1", "hello")]
        assert socket.events("receive_message") == []

        await bus.drain()
        assert [e for e in published if isinstance(e, MessageEvent)] == [event]
        assert len(socket.events("receive_message")) == 1

    async def test_missing_fields_rejected(
        self, gateway: Gateway, store: FakeMessageStore
    ) -> None:
        connection = await gateway.connect(MockWebSocket(), "u1")
        assert await gateway.send_message(connection, {"chatId": "c1"}) is None
        assert store.persisted == []

    async def test_non_participant_rejected(
        self, gateway: Gateway, store: FakeMessageStore
    ) -> None:
        connection = await gateway.connect(MockWebSocket(), "u3")
        await gateway.handle_client_event(
            connection, "send_message", {"chatId": "c1", "content": "hi"}
        )
        assert store.persisted == []


class TestHeartbeat:
    """Periodic presence refresh and reaping."""

    async def test_heartbeat_announces_pruned_users(
        self, gateway: Gateway, bus: InMemoryEventBus, fake_redis: FakeRedis
    ) -> None:
        """Users left behind by a dead process are announced offline."""
        watcher = MockWebSocket()
        await gateway.connect(watcher, "u1")
        await fake_redis.sadd(gateway.presence.key, "dead")

        await gateway.heartbeat()
        await bus.drain()

        assert (
            "user_status_change",
            {"userId": "dead", "status": "offline"},
        ) in watcher.events()
        assert await gateway.presence.online_users() == ["u1"]
