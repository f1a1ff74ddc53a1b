"""Tests for cache key generation."""

import fnmatch

import pytest

from encore.cache.keys import CacheKeys


class TestCacheKeys:
    """Test cache key generation."""

    def test_entry_key(self) -> None:
        """Entry key joins resource and identifier with a colon."""
        assert CacheKeys.entry("users", "u1") == "users:u1"
        assert CacheKeys.entry("bookings", 42) == "bookings:42"

    def test_page_identifier(self) -> None:
        """Page identifier encodes page, limit and search."""
        assert CacheKeys.page("performers", 1, 10, "") == "performers_p1_l10_s"
        assert CacheKeys.page("customers", 3, 25, "anna") == "customers_p3_l25_sanna"

    def test_page_identifier_encodes_search(self) -> None:
        """Whitespace and glob characters are percent-encoded."""
        assert CacheKeys.page("performers", 1, 10, "John Doe") == "performers_p1_l10_sJohn%20Doe"
        assert CacheKeys.page("performers", 1, 10, "a*b?") == "performers_p1_l10_sa%2Ab%3F"

    @pytest.mark.parametrize(
        ("first", "second"),
        [("John Doe", "JohnDoe"), ("  ", ""), (" John\tDoe\n", "John Doe")],
    )
    def test_distinct_searches_get_distinct_keys(self, first: str, second: str) -> None:
        """Different search terms never share a page key, yet both stay invalidatable."""
        pattern = CacheKeys.page_pattern("users", "performers")
        key_a = CacheKeys.entry("users", CacheKeys.page("performers", 1, 10, first))
        key_b = CacheKeys.entry("users", CacheKeys.page("performers", 1, 10, second))

        assert key_a != key_b
        assert fnmatch.fnmatchcase(key_a, pattern)
        assert fnmatch.fnmatchcase(key_b, pattern)

    def test_page_pattern_covers_every_page(self) -> None:
        """Page pattern matches the prefix shared by all pages of a listing."""
        pattern = CacheKeys.page_pattern("users", "performers")
        assert pattern == "users:performers_p*"
        key = CacheKeys.entry("users", CacheKeys.page("performers", 7, 50, "x"))
        assert key.startswith(pattern[:-1])

    def test_page_pattern_excludes_other_listings(self) -> None:
        """Customer pages do not match the performer pattern."""
        pattern = CacheKeys.page_pattern("users", "performers")
        key = CacheKeys.entry("users", CacheKeys.page("customers", 1, 10, ""))
        assert not key.startswith(pattern[:-1])

    def test_resource_pattern(self) -> None:
        """Resource pattern covers a whole namespace."""
        assert CacheKeys.resource_pattern("search_performers") == "search_performers:*"


class TestQueryHash:
    """Test order-insensitive query hashing."""

    def test_hash_is_order_insensitive(self) -> None:
        """Equivalent parameter sets hash identically regardless of order."""
        a = CacheKeys.query_hash({"city": "Almaty", "category": "DJ", "priceMin": "100"})
        b = CacheKeys.query_hash({"priceMin": "100", "city": "Almaty", "category": "DJ"})
        assert a == b

    def test_hash_differs_for_different_values(self) -> None:
        """Different filters produce different hashes."""
        a = CacheKeys.query_hash({"city": "Almaty"})
        b = CacheKeys.query_hash({"city": "Astana"})
        assert a != b

    def test_hash_is_md5_hex(self) -> None:
        """Hash is a 32-character hex digest."""
        digest = CacheKeys.query_hash({})
        assert len(digest) == 32
        int(digest, 16)

    def test_hash_is_stable_across_calls(self) -> None:
        """Normalization is idempotent."""
        params = {"b": "2", "a": "1"}
        assert CacheKeys.query_hash(params) == CacheKeys.query_hash(dict(params))


class TestParseKey:
    """Test key parsing."""

    def test_parse_entry_key(self) -> None:
        """Parse splits on the first separator."""
        assert CacheKeys.parse("users:performers_p1_l10_s") == ("users", "performers_p1_l10_s")

    def test_parse_keeps_colons_in_identifier(self) -> None:
        """Identifiers may contain the separator."""
        assert CacheKeys.parse("users:a:b") == ("users", "a:b")

    def test_parse_invalid_key(self) -> None:
        """Keys without a resource or identifier are rejected."""
        assert CacheKeys.parse("nocolon") is None
        assert CacheKeys.parse(":id") is None
        assert CacheKeys.parse("users:") is None
