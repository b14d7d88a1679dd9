"""
Bounded LRU cache with TTL and an optional byte ceiling.

This is the storage primitive behind every domain cache and the search
cache. Entries are kept in an OrderedDict in recency order (least recently
used first) and evicted strictly from the front until both the entry-count
limit and the byte ceiling hold.

Classes:
    BoundedCache: TTL-aware LRU mapping with dispose callbacks and metrics

Example:
    >>> from slackcache.cache.lru import BoundedCache
    >>> cache = BoundedCache(max_entries=2, ttl=60)
    >>> cache.set("a", 1)
    True
    >>> cache.set("b", 2)
    True
    >>> cache.set("c", 3)
    True
    >>> cache.get("a") is None
    True
    >>> cache.get_metrics().evictions
    1
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any, Generic, TypeVar

from ..utils.error_handling import ConfigurationError
from ..utils.logging_config import get_logger
from .models import CacheEntry, CacheMetrics, DisposeReason
from .sizing import estimate_entry_size

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

SizeCalculation = Callable[[Any, Any], int]
DisposeCallback = Callable[[Any, Any, DisposeReason], None]


class BoundedCache(Generic[K, V]):
    """
    In-memory key/value cache with strict LRU eviction.

    Invariants: the entry count never exceeds ``max_entries``; with
    ``max_size`` set the summed entry sizes never exceed it. A ``ttl`` of 0
    means entries never expire. Expired entries are removed lazily on access
    or in bulk by :meth:`purge_stale`.

    Args:
        max_entries: Maximum number of entries (must be positive)
        ttl: Default time to live in seconds (0 disables expiry)
        max_size: Optional byte ceiling across all entries
        size_calculation: ``(value, key) -> int`` size function; defaults to
            the JSON estimator when ``max_size`` is given
        dispose: ``(value, key, reason)`` callback fired when an entry leaves
        update_age_on_get: Promote an entry to most recently used on ``get``
        name: Label used in log records
    """

    def __init__(
        self,
        max_entries: int,
        ttl: float = 0,
        max_size: int | None = None,
        size_calculation: SizeCalculation | None = None,
        dispose: DisposeCallback | None = None,
        update_age_on_get: bool = True,
        name: str = "cache",
    ):
        if isinstance(max_entries, bool) or not isinstance(max_entries, int) or max_entries <= 0:
            raise ConfigurationError(
                "max must be a positive number",
                context={"field": "max", "value": max_entries},
            )
        if ttl is None or ttl < 0:
            raise ConfigurationError(
                "ttl must be non-negative",
                context={"field": "ttl", "value": ttl},
            )
        if max_size is not None and max_size < 0:
            raise ConfigurationError(
                "max_size must be non-negative",
                context={"field": "max_size", "value": max_size},
            )

        self._max = max_entries
        self._ttl = float(ttl)
        self._max_size = max_size or None
        if self._max_size is not None and size_calculation is None:
            size_calculation = estimate_entry_size
        self._size_calculation = size_calculation
        self._dispose = dispose
        self.update_age_on_get = update_age_on_get
        self.name = name

        self._data: OrderedDict[K, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self._current_size_bytes = 0

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._evictions = 0

        self.logger = get_logger()

    # -- properties --------------------------------------------------------

    @property
    def max(self) -> int:
        return self._max

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def max_size(self) -> int | None:
        return self._max_size

    @property
    def size(self) -> int:
        """Number of stored entries, including expired ones not yet purged."""
        return len(self._data)

    @property
    def memory_usage(self) -> int:
        return self._current_size_bytes

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return self.has(key)

    # -- operations --------------------------------------------------------

    def get(self, key: K) -> V | None:
        """Return the cached value, or ``None`` on a miss or expired entry."""
        with self._lock:
            entry = self._lookup(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired:
                self._remove(key, DisposeReason.EXPIRE)
                self._misses += 1
                return None

            self._hits += 1
            entry.touch()
            if self.update_age_on_get:
                self._data.move_to_end(key)
            return entry.value

    def has(self, key: object) -> bool:
        """TTL-aware membership test without promotion or metric changes."""
        with self._lock:
            entry = self._lookup(key)
            return entry is not None and not entry.is_expired

    def peek_entry(self, key: K) -> CacheEntry | None:
        """Return the live entry without promotion or metric changes."""
        with self._lock:
            entry = self._lookup(key)
            if entry is None or entry.is_expired:
                return None
            return entry

    def set(self, key: K, value: V, ttl: float | None = None) -> bool:
        """
        Insert or replace an entry.

        Args:
            key: Cache key
            value: Value to store
            ttl: Per-entry TTL override in seconds

        Returns:
            False when nothing was stored: the key is unusable, the size
            calculation failed, or the entry alone exceeds ``max_size``.
            A rejected size also drops any value already stored under
            ``key`` so a stale value is never served in its place.
        """
        if key is None:
            return False
        if ttl is not None and ttl < 0:
            self.logger.warning(f"{self.name} cache rejected negative ttl for {key}")
            return False

        size_bytes = 0
        if self._size_calculation is not None:
            try:
                size_bytes = int(self._size_calculation(value, key))
            except Exception as e:
                self.logger.warning(f"{self.name} cache size calculation failed for {key}: {e}")
                return self._reject_replacement(key)
            if size_bytes < 0:
                self.logger.warning(f"{self.name} cache size calculation returned {size_bytes}")
                return self._reject_replacement(key)
            if self._max_size is not None and size_bytes > self._max_size:
                self.logger.debug(
                    f"{self.name} cache entry {key} exceeds max_size ({size_bytes} > {self._max_size})"
                )
                return self._reject_replacement(key)

        now = time.time()
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            last_accessed=now,
            ttl=self._ttl if ttl is None else float(ttl),
            size_bytes=size_bytes,
        )

        with self._lock:
            try:
                previous = self._data.pop(key, None)
            except TypeError:
                self.logger.debug(f"{self.name} cache rejected unhashable key {key!r}")
                return False

            if previous is not None:
                self._current_size_bytes -= previous.size_bytes
                if previous.value is not value:
                    self._fire_dispose(previous, DisposeReason.SET)

            self._data[key] = entry
            self._current_size_bytes += size_bytes
            self._sets += 1

            self._evict_entries()
            return True

    def delete(self, key: K) -> bool:
        """Remove an entry; returns whether it existed."""
        with self._lock:
            if self._lookup(key) is None:
                return False
            self._remove(key, DisposeReason.DELETE)
            self._deletes += 1
            return True

    def clear(self) -> None:
        """Remove every entry, disposing each with reason ``DELETE``."""
        with self._lock:
            entries = list(self._data.values())
            self._data.clear()
            self._current_size_bytes = 0
            for entry in entries:
                self._fire_dispose(entry, DisposeReason.DELETE)

    def purge_stale(self) -> int:
        """Remove all expired entries and return how many were removed."""
        with self._lock:
            stale = [key for key, entry in self._data.items() if entry.is_expired]
            for key in stale:
                self._remove(key, DisposeReason.EXPIRE)
            return len(stale)

    def keys(self) -> list[K]:
        """Live keys, most recently used first."""
        with self._lock:
            return [key for key, entry in reversed(self._data.items()) if not entry.is_expired]

    def items(self) -> list[tuple[K, V]]:
        """Live ``(key, value)`` pairs, most recently used first."""
        with self._lock:
            return [
                (key, entry.value)
                for key, entry in reversed(self._data.items())
                if not entry.is_expired
            ]

    def get_metrics(self) -> CacheMetrics:
        with self._lock:
            return CacheMetrics(
                hits=self._hits,
                misses=self._misses,
                sets=self._sets,
                deletes=self._deletes,
                evictions=self._evictions,
                hit_rate=CacheMetrics.compute_hit_rate(self._hits, self._misses),
                memory_usage=self._current_size_bytes,
                size=len(self._data),
                max=self._max,
            )

    def reset_metrics(self) -> None:
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._sets = 0
            self._deletes = 0
            self._evictions = 0

    # -- internals ---------------------------------------------------------

    def _lookup(self, key: object) -> CacheEntry | None:
        if key is None:
            return None
        try:
            return self._data.get(key)  # type: ignore[arg-type]
        except TypeError:
            return None

    def _reject_replacement(self, key: K) -> bool:
        with self._lock:
            if self._lookup(key) is not None:
                self._remove(key, DisposeReason.DELETE)
        return False

    def _remove(self, key: K, reason: DisposeReason) -> None:
        entry = self._data.pop(key)
        self._current_size_bytes -= entry.size_bytes
        self._fire_dispose(entry, reason)

    def _over_limits(self) -> bool:
        if len(self._data) > self._max:
            return True
        return self._max_size is not None and self._current_size_bytes > self._max_size

    def _evict_entries(self) -> None:
        """Evict least recently used entries until both limits hold."""
        while self._over_limits() and self._data:
            key, entry = self._data.popitem(last=False)
            self._current_size_bytes -= entry.size_bytes
            self._evictions += 1
            self.logger.log_cache_eviction(self.name, key, DisposeReason.EVICT.value)
            self._fire_dispose(entry, DisposeReason.EVICT)

    def _fire_dispose(self, entry: CacheEntry, reason: DisposeReason) -> None:
        if self._dispose is None:
            return
        try:
            self._dispose(entry.value, entry.key, reason)
        except Exception as e:
            self.logger.warning(f"{self.name} cache dispose callback failed for {entry.key}: {e}")
