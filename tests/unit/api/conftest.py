"""Fixtures for API tests.

The application is created without running its lifespan; every
process-wide collaborator is placed on app.state directly and the database
session is replaced by a mock, with repositories patched per test.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from encore.api.app import create_app
from encore.cache import CacheInvalidator, RedisCache
from encore.persistence.db import get_session
from encore.realtime import Gateway, PresenceRegistry
from encore.security.auth import get_token_verifier
from tests.doubles import FakeRedis, RecordingBus


class FakeNotifications:
    """Notification service recording what was recorded and announced."""

    def __init__(self) -> None:
        self.recorded: list[tuple[str, str, str, dict[str, Any] | None]] = []
        self.announced: list[tuple[str, str, str, dict[str, Any] | None]] = []

    async def record(
        self, session: Any, user_id: str, type: str, message: str, data: Any = None
    ) -> dict[str, Any]:
        self.recorded.append((user_id, type, message, data))
        return {}

    async def announce(self, user_id: str, type: str, message: str, data: Any = None) -> None:
        self.announced.append((user_id, type, message, data))


class FakeMessageStore:
    def __init__(self) -> None:
        self.chats: dict[str, list[str]] = {}

    async def persist_message(self, *args: Any, **kwargs: Any) -> Any:
        raise NotImplementedError

    async def is_participant(self, chat_id: str, user_id: str) -> bool:
        return user_id in self.chats.get(chat_id, [])


@pytest.fixture
def session() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def notifications() -> FakeNotifications:
    return FakeNotifications()


@pytest.fixture
def app(
    fake_redis: FakeRedis,
    bus: RecordingBus,
    notifications: FakeNotifications,
    session: AsyncMock,
) -> FastAPI:
    app = create_app()
    app.state.bus = bus
    app.state.cache = RedisCache(fake_redis)
    app.state.invalidator = CacheInvalidator(fake_redis)
    app.state.notifications = notifications
    app.state.gateway = Gateway(
        bus=bus,
        presence=PresenceRegistry(fake_redis, heartbeat_enabled=False),
        messages=FakeMessageStore(),
        verify_token=get_token_verifier().verify,
    )

    async def override_session() -> AsyncIterator[AsyncMock]:
        yield session

    app.dependency_overrides[get_session] = override_session
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
