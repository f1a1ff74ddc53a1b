"""Public account listings served through the read-through cache.

Pages are cached under "users:{role}s_p{page}_l{limit}_s{search}" and are
dropped by the moderation endpoint whenever a performer's visibility changes.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Query
from sqlalchemy.ext.asyncio import AsyncSession

from encore.api.deps import CacheDep, SessionDep
from encore.cache.keys import CacheKeys
from encore.cache.redis import RedisCache
from encore.persistence.repositories import UserRepository

router = APIRouter(prefix="/api/users", tags=["users"])

LISTING_RESOURCE = "users"


async def _listing(
    role: str,
    page: int,
    limit: int,
    search: str,
    cache: RedisCache,
    session: AsyncSession,
) -> dict[str, Any]:
    identifier = CacheKeys.page(f"{role}s", page, limit, search)

    async def load() -> dict[str, Any]:
        return await UserRepository(session).list_by_role(role, page, limit, search)

    result = await cache.fetch_cached(LISTING_RESOURCE, identifier, load)
    return {
        "data": result.get("data") or [],
        "meta": result.get("meta")
        or {"total": 0, "page": page, "limit": limit, "totalPages": 0},
    }


@router.get("/customers")
async def list_customers(
    cache: CacheDep,
    session: SessionDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    search: str = "",
) -> dict[str, Any]:
    return await _listing("customer", page, limit, search, cache, session)


@router.get("/performers")
async def list_performers(
    cache: CacheDep,
    session: SessionDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    search: str = "",
) -> dict[str, Any]:
    return await _listing("performer", page, limit, search, cache, session)
