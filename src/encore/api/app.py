"""FastAPI application factory for Encore.

Creates the application with:
- Chat, booking, listing, search, moderation and notification endpoints
- The /ws real-time channel driven by a per-process Gateway
- Lifecycle management for the database, Redis and the event bus
- Prometheus metrics and correlation-aware structured logging
- Uniform {"message", "code"} error responses
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.types import ExceptionHandler

from encore.api.errors import (
    ApiError,
    api_exception_handler,
    generic_exception_handler,
    persistence_exception_handler,
)
from encore.api.middleware import CorrelationMiddleware
from encore.api.routers import (
    admin,
    bookings,
    chat,
    health,
    notifications,
    realtime,
    search,
    users,
)
from encore.api.routers import metrics as metrics_router
from encore.cache import CacheInvalidator, RedisCache, close_redis, get_redis, ping_redis
from encore.config import settings
from encore.core.errors import PersistenceError
from encore.core.tasks import drain_background
from encore.events.runtime import create_event_bus, start_event_bus, stop_event_bus
from encore.observability import configure_logging
from encore.observability.metrics import MetricsMiddleware, get_metrics
from encore.persistence.db import close_db, init_db
from encore.realtime import Gateway, PresenceRegistry
from encore.security.auth import get_token_verifier
from encore.services.chat import SessionMessageStore
from encore.services.notifications import NotificationService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup the shared collaborators are built once and stored on
    app.state; the gateway subscribes to the bus before the bus starts
    listening so no envelope is missed. Shutdown runs in reverse order.
    """
    configure_logging(json_format=settings.env != "dev", level=settings.log_level)
    if settings.enable_metrics:
        get_metrics()

    logger.info(f"Starting Encore ({settings.env}, instance {settings.instance_id})")
    if settings.env == "dev":
        await init_db()

    redis_client = await get_redis()
    await ping_redis()

    bus = create_event_bus()
    gateway = Gateway(
        bus=bus,
        presence=PresenceRegistry(redis_client),
        messages=SessionMessageStore(),
        verify_token=get_token_verifier().verify,
        heartbeat_interval=(
            settings.presence_heartbeat_interval if settings.presence_heartbeat_enabled else None
        ),
    )
    app.state.bus = bus
    app.state.gateway = gateway
    app.state.cache = RedisCache(redis_client)
    app.state.invalidator = CacheInvalidator(redis_client)
    app.state.notifications = NotificationService(bus, redis_client)

    await gateway.start()
    await start_event_bus(bus)
    logger.info("Encore startup complete")

    yield

    logger.info("Shutting down Encore")
    await gateway.stop()
    await stop_event_bus(bus)
    await drain_background()
    await close_redis()
    await close_db()
    logger.info("Encore shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Encore",
        description="Real-time fan-out and cache-consistency backend for the marketplace",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # CorrelationMiddleware is innermost so its context is set for everything else
    app.add_middleware(CorrelationMiddleware)
    if settings.enable_metrics:
        app.add_middleware(MetricsMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url] if settings.client_url else ["*"],
        allow_credentials=bool(settings.client_url),
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-Correlation-ID"],
    )

    app.add_exception_handler(ApiError, cast(ExceptionHandler, api_exception_handler))
    app.add_exception_handler(
        PersistenceError, cast(ExceptionHandler, persistence_exception_handler)
    )
    app.add_exception_handler(Exception, cast(ExceptionHandler, generic_exception_handler))

    app.include_router(health.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)

    app.include_router(users.router)
    app.include_router(search.router)
    app.include_router(chat.router)
    app.include_router(bookings.router)
    app.include_router(notifications.router)
    app.include_router(admin.router)
    app.include_router(realtime.router)

    return app
