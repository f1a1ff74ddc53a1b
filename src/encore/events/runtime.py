"""Runtime wiring for the Encore event bus."""

from __future__ import annotations

import logging

from encore.config import settings
from encore.events.bus import EventBus, InMemoryEventBus
from encore.events.redis_bus import RedisPubSubEventBus

logger = logging.getLogger(__name__)


def create_event_bus() -> EventBus:
    """Create an event bus based on configuration."""
    backend = settings.event_bus_backend.lower()

    if backend in {"memory", "inmemory", "in_memory"}:
        return InMemoryEventBus()

    if backend in {"redis", "pubsub", "redis_pubsub"}:
        return RedisPubSubEventBus(channel=settings.event_channel)

    raise ValueError("Unsupported event_bus_backend. Supported values: memory, redis.")


async def start_event_bus(bus: EventBus) -> EventBus:
    """Start a bus created by create_event_bus."""
    await bus.start()
    logger.info("Event bus started (%s)", type(bus).__name__)
    return bus


async def stop_event_bus(bus: EventBus) -> None:
    await bus.stop()
    logger.info("Event bus stopped (%s)", type(bus).__name__)
