"""
Cache data models for slackcache.

This module contains the core data structures used by the caching layer:
cache entries, metrics snapshots and the reasons an entry can leave a cache.

Classes:
    DisposeReason: Why an entry was removed from a cache
    CacheEntry: A cached value with timing, size and access metadata
    CacheMetrics: Counters and derived rates of one bounded cache

Features:
    - Automatic expiration checking (TTL of 0 never expires)
    - Access pattern tracking
    - Size accounting for byte-bounded caches
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class DisposeReason(str, Enum):
    """Why an entry left a cache."""

    EVICT = "evict"
    SET = "set"
    DELETE = "delete"
    EXPIRE = "expire"


@dataclass
class CacheEntry:
    """Represents a cached value with metadata."""

    key: Any
    value: Any
    created_at: float = field(default_factory=time.time)
    last_accessed: float = field(default_factory=time.time)
    ttl: float = 0.0  # Time to live in seconds
    access_count: int = 0
    size_bytes: int = 0

    @property
    def is_expired(self) -> bool:
        """Check if the cache entry has expired."""
        if self.ttl <= 0:
            return False  # No expiration
        return time.time() - self.created_at > self.ttl

    @property
    def age_seconds(self) -> float:
        return time.time() - self.created_at

    @property
    def remaining_ttl(self) -> float | None:
        """Seconds left before expiry, ``None`` when the entry never expires."""
        if self.ttl <= 0:
            return None
        return max(0.0, self.ttl - self.age_seconds)

    def touch(self) -> None:
        """Update last accessed time and increment access count."""
        self.last_accessed = time.time()
        self.access_count += 1


@dataclass
class CacheMetrics:
    """Metrics snapshot of a bounded cache."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    hit_rate: float = 0.0
    memory_usage: int = 0
    size: int = 0
    max: int = 0

    @staticmethod
    def compute_hit_rate(hits: int, misses: int) -> float:
        """Hit rate as a percentage, 0 when there were no accesses."""
        total_requests = hits + misses
        return hits / total_requests * 100 if total_requests > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "evictions": self.evictions,
            "hit_rate": self.hit_rate,
            "memory_usage": self.memory_usage,
            "size": self.size,
            "max": self.max,
        }
