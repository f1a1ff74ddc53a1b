"""Tests for notification delivery."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import orjson
import pytest

from encore.core.tasks import drain_background
from encore.events import InMemoryEventBus, NotificationEvent
from encore.services import notifications as notifications_module
from encore.services.notifications import NotificationService
from tests.doubles import FailingRedis, FakeRedis


@pytest.fixture
async def bus() -> InMemoryEventBus:
    bus = InMemoryEventBus()
    await bus.start()
    yield bus
    await bus.stop()


@pytest.fixture
async def received(bus: InMemoryEventBus) -> list[Any]:
    events: list[Any] = []

    async def handler(event: Any) -> None:
        events.append(event)

    await bus.subscribe(handler)
    return events


class TestAnnounce:
    """Publishing and history stream append."""

    async def test_publishes_and_appends_history(
        self, bus: InMemoryEventBus, received: list[Any], fake_redis: FakeRedis
    ) -> None:
        service = NotificationService(bus, fake_redis, stream="notifications", maxlen=100)

        event = await service.announce("u2", "BOOKING_REQUEST", "New request", {"bookingId": "b1"})
        await bus.drain()
        await drain_background()

        assert received == [event]
        assert isinstance(event, NotificationEvent)
        [entry] = fake_redis.streams["notifications"]
        assert entry["userId"] == "u2"
        assert entry["type"] == "BOOKING_REQUEST"
        assert orjson.loads(entry["data"]) == {"bookingId": "b1"}
        assert entry["createdAt"] == event.created_at

    async def test_stream_is_capped(self, bus: InMemoryEventBus, fake_redis: FakeRedis) -> None:
        service = NotificationService(bus, fake_redis, stream="notifications", maxlen=3)
        for i in range(5):
            await service.announce("u1", "BOOKING_UPDATE", f"update {i}")
        await drain_background()

        assert len(fake_redis.streams["notifications"]) == 3

    async def test_stream_failure_does_not_raise(
        self, bus: InMemoryEventBus, received: list[Any], failing_redis: FailingRedis
    ) -> None:
        """The envelope still goes out when the stream append fails."""
        service = NotificationService(bus, failing_redis)  # type: ignore[arg-type]

        await service.announce("u2", "BOOKING_REQUEST", "New request")
        await bus.drain()
        await drain_background()

        assert len(received) == 1
        assert failing_redis.calls == ["xadd"]

    async def test_without_client_only_publishes(
        self, bus: InMemoryEventBus, received: list[Any]
    ) -> None:
        service = NotificationService(bus)
        await service.announce("u2", "BOOKING_REQUEST", "New request")
        await bus.drain()
        assert len(received) == 1


class TestNotify:
    """Record, commit, then announce."""

    async def test_commits_before_publishing(
        self, bus: InMemoryEventBus, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        order: list[str] = []
        session = AsyncMock()
        session.commit.side_effect = lambda: order.append("commit")

        class Repository:
            def __init__(self, session: Any) -> None:
                pass

            async def create(self, *args: Any) -> dict[str, Any]:
                order.append("create")
                return {}

        async def publish(event: Any) -> bool:
            order.append("publish")
            return True

        monkeypatch.setattr(notifications_module, "NotificationRepository", Repository)
        monkeypatch.setattr(bus, "publish", publish)

        await NotificationService(bus).notify(session, "u1", "BOOKING_UPDATE", "Accepted")
        assert order == ["create", "commit", "publish"]

    async def test_persist_false_skips_record(self, bus: InMemoryEventBus) -> None:
        session = AsyncMock()
        await NotificationService(bus).notify(
            session, "u1", "BOOKING_UPDATE", "Accepted", persist=False
        )
        session.commit.assert_not_called()
