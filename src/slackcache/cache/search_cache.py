"""
Search result cache with query normalization and adaptive TTL.

Result sets are keyed by the normalized form of the query, so reordered or
re-cased queries hit the same entry. Simpler queries are cached longer than
complex ones. Every failure on the read or write path degrades to a miss or
a skipped write; the search itself is never disrupted by the cache.

Classes:
    SearchResultMetadata: Count, paging and timing facts about a result set
    SearchResult: A cached result set and the query that produced it
    CacheInvalidationPattern: What to invalidate and why
    SearchBatchEntry: One element of a batch write
    SearchCacheMetrics: Query memo and result counters
    SearchCache: The cache itself

Example:
    >>> from slackcache.cache.search_cache import SearchCache
    >>> from slackcache.config import SearchCacheConfig
    >>> cache = SearchCache(SearchCacheConfig(max_queries=10, max_results=20))
    >>> cache.set("hello world", [{"id": "1"}], {"total_count": 1})
    True
    >>> cache.get("HELLO   WORLD").metadata.total_count
    1
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from re import Pattern
from typing import Any, Literal, NamedTuple

from ..config import SearchCacheConfig
from ..search.normalizer import QueryComplexity, SearchQuery, SearchQueryNormalizer
from ..utils.error_handling import QueryNormalizationError
from ..utils.logging_config import get_logger
from .lru import BoundedCache
from .sizing import estimate_search_result_size

InvalidationType = Literal["channel", "user", "date", "query_pattern"]


@dataclass
class SearchResultMetadata:
    total_count: int
    has_more: bool
    search_time: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_count": self.total_count,
            "has_more": self.has_more,
            "search_time": self.search_time,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class SearchResult:
    query: SearchQuery
    results: list[dict[str, Any]]
    metadata: SearchResultMetadata
    cache_key: str


@dataclass(frozen=True)
class CacheInvalidationPattern:
    type: InvalidationType
    value: str | Pattern[str]
    reason: str = ""


class SearchBatchEntry(NamedTuple):
    query: str
    results: list[dict[str, Any]]
    options: Mapping[str, Any] | None = None


@dataclass
class SearchCacheMetrics:
    query_hits: int = 0
    query_misses: int = 0
    result_hits: int = 0
    result_misses: int = 0
    invalidations: int = 0
    adaptive_ttl_adjustments: int = 0
    memory_usage: int = 0
    avg_query_complexity: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "query_hits": self.query_hits,
            "query_misses": self.query_misses,
            "result_hits": self.result_hits,
            "result_misses": self.result_misses,
            "invalidations": self.invalidations,
            "adaptive_ttl_adjustments": self.adaptive_ttl_adjustments,
            "memory_usage": self.memory_usage,
            "avg_query_complexity": self.avg_query_complexity,
        }


class SearchCache:
    """
    Bounded cache of search result sets keyed by normalized query.

    Normalized queries are memoized for ``query_ttl`` seconds; the memo
    drives the query hit/miss counters. Result sets live for ``result_ttl``
    seconds, scaled by the complexity multiplier when adaptive TTL is on.

    Raises:
        ConfigurationError: On construction with an invalid config
    """

    def __init__(self, config: SearchCacheConfig):
        config.validate()
        self.config = config
        self.normalizer = SearchQueryNormalizer(thresholds=config.complexity_thresholds)
        self.logger = get_logger()

        self._cache: BoundedCache[str, SearchResult] = BoundedCache(
            max_entries=config.max_queries,
            ttl=config.result_ttl,
            max_size=config.memory_limit,
            size_calculation=self._calculate_size,
            update_age_on_get=True,
            name="search",
        )
        self._query_memo: BoundedCache[str, SearchQuery] = BoundedCache(
            max_entries=config.max_queries,
            ttl=config.query_ttl,
            name="search_queries",
        )
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._query_hits = 0
        self._query_misses = 0
        self._result_hits = 0
        self._result_misses = 0
        self._invalidations = 0
        self._adaptive_ttl_adjustments = 0
        self._complexity_sum = 0
        self._query_count = 0

    @staticmethod
    def _calculate_size(value: SearchResult, key: str) -> int:
        return estimate_search_result_size(
            value.results, value.metadata.to_dict(), value.query.raw, key
        )

    @property
    def size(self) -> int:
        return self._cache.size

    @property
    def max(self) -> int:
        return self._cache.max

    def _normalize(self, query: str) -> SearchQuery:
        normalized = self._query_memo.get(query)
        if normalized is not None:
            self._query_hits += 1
        else:
            self._query_misses += 1
            normalized = self.normalizer.normalize(query)
            self._query_memo.set(query, normalized)

        self._query_count += 1
        self._complexity_sum += normalized.complexity.score
        return normalized

    def _adaptive_ttl(self, query: SearchQuery) -> float:
        multiplier = self.config.adaptive_ttl_multipliers.for_complexity(query.complexity.value)
        if multiplier != 1:
            self._adaptive_ttl_adjustments += 1
        return self.config.result_ttl * multiplier

    def get(self, query: str, options: Mapping[str, Any] | None = None) -> SearchResult | None:
        """Return the cached result set for ``query`` or ``None``."""
        try:
            normalized = self._normalize(query)
        except QueryNormalizationError as e:
            self.logger.debug(f"Search cache get skipped for unparseable query: {e}")
            self._result_misses += 1
            return None

        cache_key = self.normalizer.generate_cache_key(normalized, options)
        cached = self._cache.get(cache_key)
        if cached is None:
            self._result_misses += 1
            return None

        self._result_hits += 1
        return cached

    def set(
        self,
        query: str,
        results: Iterable[dict[str, Any]],
        options: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Cache a result set. Results beyond ``max_results`` are dropped.

        Returns:
            Whether the result set was stored. Failures are logged, not raised.
        """
        try:
            normalized = self._normalize(query)
            cache_key = self.normalizer.generate_cache_key(normalized, options)

            all_results = list(results)
            options = options or {}
            metadata = SearchResultMetadata(
                total_count=options.get("total_count", options.get("totalCount", len(all_results))),
                has_more=options.get(
                    "has_more", options.get("hasMore", len(all_results) > self.config.max_results)
                ),
                search_time=options.get("search_time", options.get("searchTime", 0)),
            )
            entry = SearchResult(
                query=normalized,
                results=all_results[: self.config.max_results],
                metadata=metadata,
                cache_key=cache_key,
            )

            ttl = self._adaptive_ttl(normalized) if self.config.adaptive_ttl else None
            return self._cache.set(cache_key, entry, ttl=ttl)
        except Exception as e:
            self.logger.warning(f"Search cache set failed for {query!r}: {e}")
            return False

    def delete(self, query: str, options: Mapping[str, Any] | None = None) -> bool:
        """Remove the result set cached for ``query``; returns whether one existed."""
        try:
            normalized = self.normalizer.normalize(query)
        except QueryNormalizationError:
            return False

        removed = self._cache.delete(self.normalizer.generate_cache_key(normalized, options))
        if removed:
            self._invalidations += 1
        return removed

    def get_batch(self, queries: Iterable[str]) -> dict[str, SearchResult | None]:
        return {query: self.get(query) for query in queries}

    def set_batch(self, entries: Iterable[SearchBatchEntry | tuple]) -> int:
        """Store each entry independently and return how many were stored."""
        stored = 0
        for entry in entries:
            batch_entry = SearchBatchEntry(*entry)
            if self.set(batch_entry.query, batch_entry.results, batch_entry.options):
                stored += 1
        return stored

    def invalidate_pattern(self, pattern: CacheInvalidationPattern) -> int:
        """
        Invalidate entries matching ``pattern`` and return how many were removed.

        Channel, user and date patterns clear the whole cache, since any
        cached result set may contain affected messages. ``query_pattern``
        removes only entries whose query or key matches.
        """
        if not self.config.enable_pattern_invalidation:
            return 0

        if pattern.type in ("channel", "user", "date"):
            invalidated = self._cache.size
            self._cache.clear()
        elif pattern.type == "query_pattern":
            invalidated = 0
            for cache_key, result in self._cache.items():
                if self._matches(pattern.value, result, cache_key):
                    self._cache.delete(cache_key)
                    invalidated += 1
        else:
            self.logger.warning(f"Unknown search cache invalidation type: {pattern.type}")
            return 0

        self._invalidations += invalidated
        self.logger.log_invalidation(
            pattern.type, str(getattr(pattern.value, "pattern", pattern.value)), invalidated,
            reason=pattern.reason,
        )
        return invalidated

    @staticmethod
    def _matches(value: str | Pattern[str], result: SearchResult, cache_key: str) -> bool:
        candidates = (result.query.normalized, result.query.raw, cache_key)
        if isinstance(value, str):
            needle = value.lower()
            return any(needle in candidate.lower() for candidate in candidates)
        return any(value.search(candidate) for candidate in candidates)

    def invalidate_channel(self, channel_id: str) -> int:
        return self.invalidate_pattern(
            CacheInvalidationPattern(
                type="channel", value=channel_id, reason=f"Channel {channel_id} invalidation"
            )
        )

    def invalidate_user(self, user_id: str) -> int:
        return self.invalidate_pattern(
            CacheInvalidationPattern(
                type="user", value=user_id, reason=f"User {user_id} invalidation"
            )
        )

    def purge_stale(self) -> int:
        self._query_memo.purge_stale()
        return self._cache.purge_stale()

    def get_metrics(self) -> SearchCacheMetrics:
        return SearchCacheMetrics(
            query_hits=self._query_hits,
            query_misses=self._query_misses,
            result_hits=self._result_hits,
            result_misses=self._result_misses,
            invalidations=self._invalidations,
            adaptive_ttl_adjustments=self._adaptive_ttl_adjustments,
            memory_usage=self._cache.memory_usage,
            avg_query_complexity=(
                self._complexity_sum / self._query_count if self._query_count else 0.0
            ),
        )

    def get_complexity(self, query: str) -> QueryComplexity | None:
        """Complexity class of ``query``, ``None`` when it cannot be parsed."""
        try:
            return self.normalizer.normalize(query).complexity
        except QueryNormalizationError:
            return None

    def clear(self) -> None:
        """Drop every cached result set and memoized query and reset metrics."""
        self._cache.clear()
        self._query_memo.clear()
        self._cache.reset_metrics()
        self._reset_counters()
