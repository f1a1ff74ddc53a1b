"""Redis Pub/Sub event bus for multi-process deployments.

All envelopes travel on ONE well-known channel. Every process holds exactly
one subscription to it regardless of how many users or conversations it
serves, so no process subscribes or unsubscribes as sockets join rooms.
The cost is that every process sees every envelope and filters locally.

Delivery is best-effort: an envelope published while a process is
disconnected is never seen by it. Persistence happens before publish, so a
lost envelope means a missed real-time update, never lost data.

Example:
    bus = RedisPubSubEventBus()
    await bus.subscribe(gateway.handle_envelope)
    await bus.start()

    await bus.publish(StatusEvent(user_id="u1", status=PresenceStatus.ONLINE))

    await bus.stop()
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, cast

from encore.cache.redis import get_redis
from encore.config import settings
from encore.core.errors import EnvelopeDecodeError
from encore.events.bus import EnvelopeHandler, EventBus
from encore.events.schemas import AnyEnvelope, decode_envelope, encode_envelope
from encore.observability.metrics import (
    record_envelope_dropped,
    record_event_publish_failure,
    record_event_published,
    record_event_received,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)


class RedisPubSubEventBus(EventBus):
    """Event bus over a single Redis Pub/Sub channel.

    Messages are read one at a time and each handler is awaited before the
    next message is read, so a subscriber observes envelopes in the order
    Redis delivers them (publish order per publisher).
    """

    def __init__(self, channel: str | None = None, client: Redis | None = None):
        self.channel = channel or settings.event_channel
        self._handlers: list[EnvelopeHandler] = []
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._pubsub: PubSub | None = None
        self._redis: Redis | None = client

    async def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = await get_redis()
        return self._redis

    async def subscribe(self, handler: EnvelopeHandler) -> None:
        self._handlers.append(handler)
        handler_name = getattr(handler, "__name__", handler.__class__.__name__)
        logger.info(f"Registered envelope handler: {handler_name}")

    async def start(self) -> None:
        """Subscribe to the channel and start the listen loop."""
        if self._running:
            return

        redis = await self._get_redis()
        self._pubsub = redis.pubsub()
        await self._pubsub.subscribe(self.channel)

        self._running = True
        self._task = asyncio.create_task(self._listen_loop())
        logger.info(f"Subscribed to event channel {self.channel}")

    async def stop(self) -> None:
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._pubsub:
            try:
                await self._pubsub.unsubscribe(self.channel)
                await self._pubsub.aclose()
            except Exception as e:
                logger.warning(f"Error closing subscription to {self.channel}: {e}")
            self._pubsub = None

        logger.info(f"Unsubscribed from event channel {self.channel}")

    async def _listen_loop(self) -> None:
        while self._running and self._pubsub:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )

                if message is None:
                    continue

                if message["type"] == "message":
                    await self._handle_message(message["data"])

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in event channel listener: {e}")
                await asyncio.sleep(1)

    async def _handle_message(self, data: bytes | str) -> None:
        """Decode one payload and hand it to every handler.

        Undecodable payloads are dropped; a failing handler does not stop
        the others or the loop.
        """
        try:
            event = decode_envelope(data)
        except EnvelopeDecodeError as e:
            logger.warning(f"Dropping malformed envelope on {self.channel}: {e}")
            record_envelope_dropped()
            return

        record_event_received(event.envelope_type.value)
        for handler in self._handlers:
            try:
                await handler(event)
            except Exception as e:
                handler_name = getattr(handler, "__name__", handler.__class__.__name__)
                logger.error(f"Envelope handler {handler_name} failed: {e}")

    async def publish(self, event: AnyEnvelope) -> bool:
        envelope_type = event.envelope_type.value
        try:
            redis = await self._get_redis()
            receivers = cast(int, await redis.publish(self.channel, encode_envelope(event)))
        except Exception as e:
            logger.error(f"Failed to publish {envelope_type} envelope: {e}")
            record_event_publish_failure(envelope_type)
            return False

        logger.debug(f"Published {envelope_type} envelope to {receivers} subscribers")
        record_event_published(envelope_type)
        return True

    async def health_check(self) -> bool:
        try:
            redis = await self._get_redis()
            await redis.ping()
            return self._running
        except Exception:
            return False
