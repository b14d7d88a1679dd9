"""
Cache integration helpers for domain services.

Domain services (channels, users, files, threads, search) wrap their Slack
API calls in :meth:`CacheIntegrationHelper.cache_or_fetch`. When caching is
disabled, skipped, or broken, the fetch still runs; a cache fault never
turns into a failed tool call.

Keys are built with :class:`CacheKeyBuilder` so that every service names
entries the same way: ``<cache>:<operation>[:<id>...]`` followed by sorted
``name:value`` parameters joined with ``|``.

Example:
    >>> helper = CacheIntegrationHelper(service)
    >>> key = CacheKeyBuilder.thread("replies", "C123", "1700000000.000100")
    >>> replies = await helper.cache_or_fetch("threads", key, fetch_replies)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, Literal, TypeVar

from ..utils.logging_config import get_logger
from .search_cache import CacheInvalidationPattern, SearchCache
from .service import CacheService

logger = get_logger()

T = TypeVar("T")

CacheType = Literal["channels", "users", "search", "files", "threads"]
CACHE_TYPES: tuple[str, ...] = ("channels", "users", "search", "files", "threads")


def _format_params(params: Mapping[str, Any] | None) -> str:
    if not params:
        return ""
    return "|".join(f"{name}:{params[name]}" for name in sorted(params))


def _search_key_query(key: str) -> str | None:
    """Raw query of a ``search:<operation>:<query>[|params]`` key.

    The search cache is keyed by the normalized query alone, so the
    operation and any parameters are dropped.
    """
    parts = key.split(":", 2)
    if len(parts) < 3:
        return None
    return parts[2].split("|", 1)[0] or None


class CacheKeyBuilder:
    """Consistent cache key naming across domain services."""

    @staticmethod
    def channel(operation: str, params: Mapping[str, Any] | None = None) -> str:
        return f"channels:{operation}:{_format_params(params)}"

    @staticmethod
    def user(
        operation: str, user_id: str | None = None, params: Mapping[str, Any] | None = None
    ) -> str:
        key = f"users:{operation}"
        if not user_id:
            return key
        param_str = _format_params(params)
        return f"{key}:{user_id}|{param_str}" if param_str else f"{key}:{user_id}"

    @staticmethod
    def search(operation: str, query: str, params: Mapping[str, Any] | None = None) -> str:
        param_str = _format_params(params)
        key = f"search:{operation}:{query}"
        return f"{key}|{param_str}" if param_str else key

    @staticmethod
    def file(operation: str, params: Mapping[str, Any] | None = None) -> str:
        return f"files:{operation}:{_format_params(params)}"

    @staticmethod
    def thread(
        operation: str,
        channel_id: str | None = None,
        thread_ts: str | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> str:
        key = f"threads:{operation}"
        if channel_id:
            key += f":{channel_id}"
            if thread_ts:
                key += f":{thread_ts}"
        param_str = _format_params(params)
        return f"{key}|{param_str}" if param_str else key


def determine_cache_type(key: str) -> str | None:
    """Cache name from a key's prefix, ``None`` when unrecognised."""
    prefix = key.split(":", 1)[0]
    return prefix if prefix in CACHE_TYPES else None


class CacheIntegrationHelper:
    """Cache-or-fetch with graceful degradation.

    Args:
        cache_service: The service to use, or ``None`` when caching is disabled
    """

    def __init__(self, cache_service: CacheService | None):
        self.cache_service = cache_service

    def is_cache_available(self) -> bool:
        return self.cache_service is not None

    async def cache_or_fetch(
        self,
        cache_type: CacheType,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        ttl: float | None = None,
        skip_cache: bool = False,
    ) -> T:
        """
        Return the cached value for ``key`` or fetch, cache and return it.

        For the ``search`` cache ``key`` is the raw query and the fetched
        value is the list of result items.
        """
        if self.cache_service is None or skip_cache:
            return await fetch()

        try:
            cache = self.cache_service.get_cache(cache_type)

            if isinstance(cache, SearchCache):
                cached_result = cache.get(key)
                if cached_result is not None:
                    logger.debug(f"Cache hit for key: {key}")
                    return cached_result.results  # type: ignore[return-value]
            else:
                cached = cache.get(key)
                if cached is not None:
                    logger.debug(f"Cache hit for key: {key}")
                    return cached
        except Exception as e:
            logger.warning(f"Cache read failed for key: {key}, falling back to direct fetch: {e}")
            return await fetch()

        logger.debug(f"Cache miss for key: {key}, fetching fresh data")
        fresh = await fetch()

        if fresh is not None:
            try:
                if isinstance(cache, SearchCache):
                    if isinstance(fresh, list):
                        cache.set(key, fresh)
                else:
                    cache.set(key, fresh, ttl=ttl)
                logger.debug(f"Cached data for key: {key}")
            except Exception as e:
                logger.warning(f"Cache write failed for key: {key}: {e}")

        return fresh

    async def invalidate_cache(
        self,
        keys: Iterable[str] | None = None,
        patterns: Iterable[str] | None = None,
        cache_types: Iterable[str] | None = None,
    ) -> int:
        """
        Invalidate specific keys, search query patterns, or whole caches.

        A ``search:<operation>:<query>`` key removes the entry cached for
        that exact query; ``patterns`` remove every query containing them.

        Returns:
            The number of entries removed. Failures are logged, not raised.
        """
        if self.cache_service is None:
            return 0

        removed = 0
        try:
            search_cache = self.cache_service.get_search_cache()

            for key in keys or ():
                cache_type = determine_cache_type(key)
                if cache_type is None:
                    logger.debug(f"Cannot determine cache for key: {key}")
                    continue
                if cache_type == "search":
                    query = _search_key_query(key)
                    if query is not None and search_cache.delete(query):
                        removed += 1
                elif self.cache_service.get_cache(cache_type).delete(key):
                    removed += 1
                logger.debug(f"Invalidated cache key: {key}")

            for pattern in patterns or ():
                removed += search_cache.invalidate_pattern(
                    CacheInvalidationPattern(
                        type="query_pattern", value=pattern, reason=f"Pattern invalidation: {pattern}"
                    )
                )
                logger.debug(f"Invalidated cache pattern: {pattern}")

            for cache_type in cache_types or ():
                cache = self.cache_service.get_cache(cache_type)
                removed += cache.size
                cache.clear()
                logger.debug(f"Cleared cache type: {cache_type}")
        except Exception as e:
            logger.warning(f"Cache invalidation failed: {e}")

        return removed

    def get_cache_metrics(self) -> dict[str, Any] | None:
        """Service metrics as a plain dict, ``None`` when unavailable."""
        if self.cache_service is None:
            return None
        try:
            return self.cache_service.get_metrics().to_dict()
        except Exception as e:
            logger.warning(f"Failed to retrieve cache metrics: {e}")
            return None
