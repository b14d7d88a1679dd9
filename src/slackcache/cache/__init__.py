"""
Caching layer for Slack API responses and search results.

Modules:
    lru: Bounded LRU cache with TTL, memory ceiling and dispose hooks
    search_cache: Search result cache keyed by normalized query
    service: Cache service owning the five domain caches
    integration: Cache-or-fetch helper and cache key conventions
"""

from .integration import CacheIntegrationHelper, CacheKeyBuilder, determine_cache_type
from .lru import BoundedCache
from .models import CacheEntry, CacheMetrics, DisposeReason
from .search_cache import (
    CacheInvalidationPattern,
    SearchBatchEntry,
    SearchCache,
    SearchCacheMetrics,
    SearchResult,
    SearchResultMetadata,
)
from .service import (
    CacheHealthStatus,
    CacheInstance,
    CacheService,
    CacheServiceDependencies,
    CacheServiceFactory,
    CacheServiceMetrics,
)

__all__ = [
    "BoundedCache",
    "CacheEntry",
    "CacheMetrics",
    "DisposeReason",
    "SearchCache",
    "SearchResult",
    "SearchResultMetadata",
    "SearchCacheMetrics",
    "SearchBatchEntry",
    "CacheInvalidationPattern",
    "CacheService",
    "CacheServiceFactory",
    "CacheServiceDependencies",
    "CacheServiceMetrics",
    "CacheInstance",
    "CacheHealthStatus",
    "CacheIntegrationHelper",
    "CacheKeyBuilder",
    "determine_cache_type",
]
