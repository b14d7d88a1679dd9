"""Tests for slackcache.cache.models and slackcache.cache.sizing modules."""

from __future__ import annotations

import time

from slackcache.cache.models import CacheEntry, CacheMetrics, DisposeReason
from slackcache.cache.sizing import (
    ENTRY_OVERHEAD,
    FALLBACK_SIZE,
    SEARCH_ENTRY_OVERHEAD,
    estimate_entry_size,
    estimate_search_result_size,
    json_length,
)


class TestCacheEntry:
    """Tests for CacheEntry dataclass."""

    def test_not_expired_without_ttl(self):
        entry = CacheEntry(key="k", value=1, created_at=time.time() - 10_000, ttl=0)
        assert entry.is_expired is False
        assert entry.remaining_ttl is None

    def test_expired(self):
        entry = CacheEntry(key="k", value=1, created_at=time.time() - 10, ttl=5)
        assert entry.is_expired is True
        assert entry.remaining_ttl == 0.0

    def test_remaining_ttl(self):
        entry = CacheEntry(key="k", value=1, ttl=60)
        assert 59 < entry.remaining_ttl <= 60

    def test_touch(self):
        entry = CacheEntry(key="k", value=1, last_accessed=0)
        entry.touch()
        assert entry.access_count == 1
        assert entry.last_accessed > 0


class TestCacheMetrics:
    """Tests for CacheMetrics dataclass."""

    def test_compute_hit_rate(self):
        assert CacheMetrics.compute_hit_rate(1, 3) == 25.0
        assert CacheMetrics.compute_hit_rate(0, 0) == 0.0

    def test_to_dict(self):
        data = CacheMetrics(hits=2, misses=1, size=3, max=10).to_dict()
        assert data["hits"] == 2
        assert data["max"] == 10
        assert set(data) == {
            "hits", "misses", "sets", "deletes", "evictions",
            "hit_rate", "memory_usage", "size", "max",
        }

    def test_dispose_reason_values(self):
        assert DisposeReason.EVICT == "evict"
        assert DisposeReason.EXPIRE.value == "expire"


class TestSizing:
    """Tests for JSON based size estimation."""

    def test_json_length(self):
        assert json_length({"a": 1}) == len('{"a":1}')

    def test_entry_size_formula(self):
        value = {"name": "general"}
        expected = json_length(value) * 2 + len("C123") * 2 + ENTRY_OVERHEAD
        assert estimate_entry_size(value, "C123") == expected

    def test_non_string_keys_encoded(self):
        assert estimate_entry_size({1: "a"}, "k") > ENTRY_OVERHEAD

    def test_unencodable_falls_back(self):
        assert estimate_entry_size(2**80, "k") == FALLBACK_SIZE

    def test_search_result_size_formula(self):
        results = [{"id": "1"}]
        metadata = {"total_count": 1}
        expected = (
            json_length(results) * 2
            + json_length(metadata) * 2
            + len("hello") * 2
            + len("key") * 2
            + SEARCH_ENTRY_OVERHEAD
        )
        assert estimate_search_result_size(results, metadata, "hello", "key") == expected
