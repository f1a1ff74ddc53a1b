"""Performer search.

Results are cached for a short time under "search_performers:{hash}", where
the hash is order-insensitive over the query parameters. Moderation changes
drop the whole "search_performers:*" keyspace.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from encore.api.deps import CacheDep, SessionDep
from encore.cache.keys import CacheKeys
from encore.config import settings
from encore.persistence.repositories import UserRepository

router = APIRouter(prefix="/api/search", tags=["search"])

SEARCH_RESOURCE = "search_performers"


def performer_profile(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": record["id"],
        "name": record["name"],
        "profilePicture": record.get("profile_picture"),
        "city": record.get("city"),
        "roles": record.get("roles") or [],
        "description": record.get("description"),
        "priceRange": record.get("price_range"),
        "accountType": record.get("account_type"),
        "details": record.get("details") or {},
        "bookedDates": record.get("booked_dates") or [],
    }


@router.get("/performers")
async def search_performers(
    request: Request, cache: CacheDep, session: SessionDep
) -> list[dict[str, Any]]:
    """Search approved performers by any combination of filters."""
    filters = dict(request.query_params)

    async def load() -> list[dict[str, Any]]:
        return await UserRepository(session).search_performers(filters)

    results = await cache.fetch_cached(
        SEARCH_RESOURCE,
        CacheKeys.query_hash(filters),
        load,
        ttl=settings.search_cache_ttl,
    )
    return [performer_profile(r) for r in results]
