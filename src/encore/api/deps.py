"""Shared FastAPI dependencies for Encore routers.

Process-wide collaborators (gateway, bus, cache, invalidator, notification
service) are built once in the app lifespan and stored on app.state; these
providers read them back so tests can swap any of them with
app.dependency_overrides.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from encore.cache.invalidation import CacheInvalidator
from encore.cache.redis import RedisCache
from encore.events.bus import EventBus
from encore.persistence.db import get_session
from encore.realtime.gateway import Gateway
from encore.security.auth import CurrentUser, get_current_user, require_admin
from encore.services.notifications import NotificationService


def get_gateway(conn: HTTPConnection) -> Gateway:
    return conn.app.state.gateway


def get_bus(conn: HTTPConnection) -> EventBus:
    return conn.app.state.bus


def get_cache(conn: HTTPConnection) -> RedisCache:
    return conn.app.state.cache


def get_invalidator(conn: HTTPConnection) -> CacheInvalidator:
    return conn.app.state.invalidator


def get_notifications(conn: HTTPConnection) -> NotificationService:
    return conn.app.state.notifications


SessionDep = Annotated[AsyncSession, Depends(get_session)]
BusDep = Annotated[EventBus, Depends(get_bus)]
CacheDep = Annotated[RedisCache, Depends(get_cache)]
InvalidatorDep = Annotated[CacheInvalidator, Depends(get_invalidator)]
NotificationsDep = Annotated[NotificationService, Depends(get_notifications)]
UserDep = Annotated[CurrentUser, Depends(get_current_user)]
AdminDep = Annotated[CurrentUser, Depends(require_admin)]
