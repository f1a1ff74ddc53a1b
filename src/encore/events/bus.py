"""Event bus implementation for the Encore backend.

Provides pub/sub for real-time envelopes:
- InMemoryEventBus: for single-process deployments and tests
- RedisPubSubEventBus: for multi-process deployments over one Redis channel

Every process subscribes exactly once at startup; the real-time gateway is
the subscriber that fans envelopes out to local connections.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from encore.events.schemas import AnyEnvelope
from encore.observability.metrics import record_event_published, record_event_received

logger = logging.getLogger(__name__)


EnvelopeHandler = Callable[[AnyEnvelope], Awaitable[None]]


class EventBus(ABC):
    """Abstract event bus interface."""

    @abstractmethod
    async def publish(self, event: AnyEnvelope) -> bool:
        """Publish an envelope to every subscribed process.

        Returns False when the envelope could not be published. Publishing
        never raises: the write that triggered it has already committed.
        """

    @abstractmethod
    async def subscribe(self, handler: EnvelopeHandler) -> None:
        """Register a handler invoked for every envelope, in delivery order."""

    @abstractmethod
    async def start(self) -> None:
        """Start delivering envelopes to handlers."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop delivering envelopes."""

    async def health_check(self) -> bool:
        return True


class InMemoryEventBus(EventBus):
    """In-memory event bus using asyncio.Queue.

    Envelopes are delivered in FIFO order and handlers run one at a time,
    so publish order is preserved for every subscriber.
    """

    def __init__(self, max_size: int = 10000):
        self._queue: asyncio.Queue[AnyEnvelope] = asyncio.Queue(maxsize=max_size)
        self._handlers: list[EnvelopeHandler] = []
        self._running = False
        self._task: asyncio.Task[None] | None = None

    async def publish(self, event: AnyEnvelope) -> bool:
        """Publish an envelope. Blocks while the queue is full."""
        await self._queue.put(event)
        record_event_published(event.envelope_type.value)
        return True

    async def subscribe(self, handler: EnvelopeHandler) -> None:
        self._handlers.append(handler)

    async def start(self) -> None:
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._process_loop())

    async def stop(self) -> None:
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _process_loop(self) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except TimeoutError:
                continue
            except asyncio.CancelledError:
                break

            record_event_received(event.envelope_type.value)
            for handler in self._handlers:
                try:
                    await handler(event)
                except Exception:
                    logger.exception("Error in envelope handler")

            self._queue.task_done()

    @property
    def pending_count(self) -> int:
        """Number of envelopes waiting to be delivered."""
        return self._queue.qsize()

    async def drain(self) -> None:
        """Wait for all pending envelopes to be delivered."""
        await self._queue.join()
