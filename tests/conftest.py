"""Global pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from tests.doubles import FailingRedis, FakeRedis


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def failing_redis() -> FailingRedis:
    return FailingRedis()
