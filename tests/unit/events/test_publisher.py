"""Tests for envelope publishing helpers."""

import pytest

from encore.events import (
    InMemoryEventBus,
    publish_message,
    publish_notification,
    publish_status,
)
from encore.events.schemas import (
    AnyEnvelope,
    MessageEvent,
    NotificationEvent,
    PresenceStatus,
    StatusEvent,
)


@pytest.fixture
async def event_bus() -> InMemoryEventBus:
    """Create an in-memory event bus for testing."""
    bus = InMemoryEventBus()
    await bus.start()
    yield bus
    await bus.stop()


@pytest.fixture
async def received(event_bus: InMemoryEventBus) -> list[AnyEnvelope]:
    events: list[AnyEnvelope] = []

    async def handler(event: AnyEnvelope) -> None:
        events.append(event)

    await event_bus.subscribe(handler)
    return events


class TestPublishers:
    """Each helper publishes exactly one envelope and returns it."""

    async def test_publish_status(
        self, event_bus: InMemoryEventBus, received: list[AnyEnvelope]
    ) -> None:
        """publish_status announces a presence change."""
        event = await publish_status(event_bus, "u1", PresenceStatus.ONLINE)
        await event_bus.drain()

        assert received == [event]
        assert isinstance(event, StatusEvent)
        assert event.status == PresenceStatus.ONLINE

    async def test_publish_message(
        self, event_bus: InMemoryEventBus, received: list[AnyEnvelope]
    ) -> None:
        """publish_message carries the record and routing ids."""
        record = {"id": "m1", "content": "hi", "sender": {"name": "Aida"}}
        event = await publish_message(event_bus, record, chat_id="c1", receiver_id="u2")
        await event_bus.drain()

        assert received == [event]
        assert isinstance(event, MessageEvent)
        assert (event.chat_id, event.receiver_id) == ("c1", "u2")

    async def test_publish_notification(
        self, event_bus: InMemoryEventBus, received: list[AnyEnvelope]
    ) -> None:
        """publish_notification defaults data to an empty dict."""
        event = await publish_notification(event_bus, "u2", "BOOKING_REQUEST", "New request")
        await event_bus.drain()

        assert received == [event]
        assert isinstance(event, NotificationEvent)
        assert event.data == {}
