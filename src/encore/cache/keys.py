"""Cache key schema for the Encore backend.

Key format: {resource}:{identifier}

Where:
- resource: the cached aggregate ("users", "search_performers", ...)
- identifier: a primary key, a pagination descriptor
  ("performers_p1_l10_sJohn%20Doe") or an md5 hash of normalized query params
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import orjson


class CacheKeys:
    """Cache key generator following a consistent naming convention."""

    SEPARATOR = ":"

    @classmethod
    def entry(cls, resource: str, identifier: str | int) -> str:
        """Key for a single cached result."""
        return f"{resource}{cls.SEPARATOR}{identifier}"

    @classmethod
    def page(cls, listing: str, page: int, limit: int, search: str = "") -> str:
        """Identifier for one page of a paginated, searchable listing.

        The search term is percent-encoded so distinct terms never share a key
        and glob characters cannot leak into invalidation patterns.

        e.g. page("performers", 1, 10, "John Doe") -> "performers_p1_l10_sJohn%20Doe"
        """
        return f"{listing}_p{page}_l{limit}_s{quote(search, safe='')}"

    @classmethod
    def query_hash(cls, params: Mapping[str, Any]) -> str:
        """Deterministic identifier for a query's parameters.

        Parameters are sorted by name before hashing so that equivalent
        queries collide regardless of the order they were supplied in.
        """
        normalized = orjson.dumps(dict(params), option=orjson.OPT_SORT_KEYS)
        return hashlib.md5(normalized, usedforsecurity=False).hexdigest()

    @classmethod
    def page_pattern(cls, resource: str, listing: str) -> str:
        """Pattern covering every page of a listing, for SCAN + DEL."""
        return f"{resource}{cls.SEPARATOR}{listing}_p*"

    @classmethod
    def resource_pattern(cls, resource: str) -> str:
        """Pattern covering every entry of a resource namespace."""
        return f"{resource}{cls.SEPARATOR}*"

    @classmethod
    def parse(cls, key: str) -> tuple[str, str] | None:
        """Split a key into (resource, identifier).

        Returns None if the key doesn't match the expected format.
        """
        resource, sep, identifier = key.partition(cls.SEPARATOR)
        if not sep or not resource or not identifier:
            return None
        return resource, identifier
