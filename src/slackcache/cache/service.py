"""
Cache service: the composition root of the caching layer.

The service owns five independent caches and coordinates invalidation,
metrics, maintenance and health reporting across them:

    channels   channel info keyed by channel id
    users      user profiles keyed by user id
    search     search result sets keyed by normalized query
    files      file metadata keyed by ``files:<operation>:...``
    threads    thread replies keyed by ``threads:<operation>:<channel>:<ts>``

Each service instance has its own caches; nothing is shared between
instances. The process-wide memory ceiling is advisory: crossing it is
reported in logs and health status but never blocks a write.

Classes:
    CacheServiceDependencies: Optional collaborators injected at creation
    CacheInstance: Description of one owned cache
    GlobalCacheMetrics: Totals across all caches
    CacheServiceMetrics: Per-cache and global metrics
    CacheHealth: Health of a single cache
    CacheHealthStatus: Overall health report
    CacheService: The service
    CacheServiceFactory: Validated construction

Example:
    >>> from slackcache.cache.service import CacheServiceFactory
    >>> service = CacheServiceFactory.create_with_defaults()
    >>> await service.initialize()
    >>> service.get_channel_cache().set("C123", {"name": "general"})
    True
    >>> await service.invalidate_by_channel("C123")
    1
    >>> await service.shutdown()
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import regex as regex_mod

from ..config import (
    CACHE_NAMES,
    CacheServiceConfig,
    CacheSettings,
    DomainCacheConfig,
    SearchCacheConfig,
)
from ..utils.error_handling import ConfigurationError, ErrorCategory, ErrorCollector
from ..utils.logging_config import get_logger
from ..utils.performance_monitoring import CachePerformanceMonitor
from .lru import BoundedCache
from .models import CacheMetrics
from .search_cache import SearchCache, SearchCacheMetrics
from .sizing import estimate_entry_size

logger = get_logger()

MEMORY_PRESSURE_RATIO = 0.9
MIN_HEALTHY_HIT_RATE = 50.0
MIN_HEALTHY_SEARCH_HIT_RATE = 30.0

_KEY_SEGMENT_RE = regex_mod.compile(r"[:|]")


@dataclass
class CacheServiceDependencies:
    """Optional collaborators. An injected monitor is used only with ``enable_metrics``."""

    performance_monitor: CachePerformanceMonitor | None = None


@dataclass
class CacheInstance:
    name: str
    type: str
    config: DomainCacheConfig | SearchCacheConfig
    metrics: CacheMetrics | SearchCacheMetrics
    memory_usage: int


@dataclass
class GlobalCacheMetrics:
    total_memory_usage: int = 0
    total_hits: int = 0
    total_misses: int = 0
    overall_hit_rate: float = 0.0


@dataclass
class CacheServiceMetrics:
    channels: CacheMetrics
    users: CacheMetrics
    search: SearchCacheMetrics
    files: CacheMetrics
    threads: CacheMetrics
    global_metrics: GlobalCacheMetrics

    def to_dict(self) -> dict[str, Any]:
        return {
            "channels": self.channels.to_dict(),
            "users": self.users.to_dict(),
            "search": self.search.to_dict(),
            "files": self.files.to_dict(),
            "threads": self.threads.to_dict(),
            "global": {
                "total_memory_usage": self.global_metrics.total_memory_usage,
                "total_hits": self.global_metrics.total_hits,
                "total_misses": self.global_metrics.total_misses,
                "overall_hit_rate": self.global_metrics.overall_hit_rate,
            },
        }


@dataclass
class CacheHealth:
    healthy: bool
    issues: list[str] = field(default_factory=list)


@dataclass
class CacheHealthStatus:
    healthy: bool
    caches: dict[str, CacheHealth]
    memory_usage: int
    memory_limit: int | None
    memory_pressure: bool
    average_response_time_ms: float
    uptime: float


class CacheService:
    """
    Owns the five domain caches of one integration server instance.

    Use :class:`CacheServiceFactory` to construct; it validates the config.
    """

    def __init__(
        self,
        config: CacheServiceConfig,
        dependencies: CacheServiceDependencies | None = None,
    ):
        dependencies = dependencies or CacheServiceDependencies()
        self.config = config
        # Metrics are collected only when enabled; initialize() creates the monitor.
        self.performance_monitor: CachePerformanceMonitor | None = (
            dependencies.performance_monitor if config.enable_metrics else None
        )
        self.error_collector = ErrorCollector()

        self._channel_cache = self._create_domain_cache("channels", config.channels)
        self._user_cache = self._create_domain_cache("users", config.users)
        self._search_cache = SearchCache(config.search)
        self._file_cache = self._create_domain_cache("files", config.files)
        self._thread_cache = self._create_domain_cache("threads", config.threads)

        self._initialized = False
        self._start_time = time.time()
        self._maintenance_task: asyncio.Task[None] | None = None

    @staticmethod
    def _create_domain_cache(name: str, config: DomainCacheConfig) -> BoundedCache[str, Any]:
        return BoundedCache(
            max_entries=config.max,
            ttl=config.ttl,
            max_size=config.max_size,
            size_calculation=estimate_entry_size,
            update_age_on_get=config.update_age_on_get,
            name=name,
        )

    # -- accessors -----------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    def get_channel_cache(self) -> BoundedCache[str, Any]:
        return self._channel_cache

    def get_user_cache(self) -> BoundedCache[str, Any]:
        return self._user_cache

    def get_search_cache(self) -> SearchCache:
        return self._search_cache

    def get_file_cache(self) -> BoundedCache[str, Any]:
        return self._file_cache

    def get_thread_cache(self) -> BoundedCache[str, Any]:
        return self._thread_cache

    def get_cache(self, name: str) -> BoundedCache[str, Any] | SearchCache:
        """Look up an owned cache by name.

        Raises:
            KeyError: If ``name`` is not one of the five cache names
        """
        caches = self._caches()
        if name not in caches:
            raise KeyError(f"Unknown cache: {name}")
        return caches[name]

    def _caches(self) -> dict[str, BoundedCache[str, Any] | SearchCache]:
        return {
            "channels": self._channel_cache,
            "users": self._user_cache,
            "search": self._search_cache,
            "files": self._file_cache,
            "threads": self._thread_cache,
        }

    def _domain_caches(self) -> dict[str, BoundedCache[str, Any]]:
        return {
            "channels": self._channel_cache,
            "users": self._user_cache,
            "files": self._file_cache,
            "threads": self._thread_cache,
        }

    def get_cache_instances(self) -> list[CacheInstance]:
        instances = []
        for name, cache in self._caches().items():
            metrics = cache.get_metrics()
            instances.append(
                CacheInstance(
                    name=name,
                    type="search" if name == "search" else "lru",
                    config=getattr(self.config, name),
                    metrics=metrics,
                    memory_usage=metrics.memory_usage,
                )
            )
        return instances

    # -- lifecycle -----------------------------------------------------------

    async def initialize(self) -> None:
        """
        Mark the service ready. Calling it twice is harmless.

        With ``enable_metrics`` set, a performance monitor is created unless
        one was injected.
        """
        if self._initialized:
            return
        logger.info("Initializing cache service...")
        if self.config.enable_metrics and self.performance_monitor is None:
            self.performance_monitor = CachePerformanceMonitor()
        self._start_time = time.time()
        self._initialized = True
        self.check_memory_usage()
        logger.info("Cache service initialization completed successfully")

    def schedule_maintenance(self, interval: float) -> asyncio.Task[None]:
        """
        Run :meth:`perform_maintenance` every ``interval`` seconds.

        Must be called from a running event loop. Replaces any previously
        scheduled task. :meth:`shutdown` cancels it.
        """
        if interval <= 0:
            raise ConfigurationError(
                "Maintenance interval must be positive",
                context={"field": "interval", "value": interval},
            )

        if self._maintenance_task is not None and not self._maintenance_task.done():
            self._maintenance_task.cancel()

        async def _run() -> None:
            while True:
                await asyncio.sleep(interval)
                await self.perform_maintenance()

        self._maintenance_task = asyncio.get_running_loop().create_task(_run())
        return self._maintenance_task

    async def perform_maintenance(self) -> dict[str, int]:
        """Purge expired entries everywhere and check the memory ceiling."""
        purged: dict[str, int] = {}
        monitor = self.performance_monitor
        benchmark_id = monitor.start_benchmark("maintenance") if monitor else None
        logger.debug("Starting cache maintenance...")
        for name, cache in self._caches().items():
            try:
                purged[name] = cache.purge_stale()
            except Exception as e:
                logger.error(f"Cache maintenance failed for {name}: {e}")
                self.error_collector.add_error(
                    e,
                    category=ErrorCategory.CACHE,
                    context={"operation": "maintenance", "cache": name},
                )
                purged[name] = 0

        self.check_memory_usage()
        if monitor is not None and benchmark_id is not None:
            elapsed_ms = monitor.end_benchmark(benchmark_id)
            logger.debug(
                f"Cache maintenance completed: purged {sum(purged.values())} entries "
                f"in {elapsed_ms:.2f}ms, process memory {monitor.get_memory_usage()} bytes"
            )
        else:
            logger.debug(f"Cache maintenance completed: purged {sum(purged.values())} entries")
        return purged

    def check_memory_usage(self) -> bool:
        """Return whether total cache memory is above 90% of the global limit."""
        limit = self.config.global_memory_limit
        if not limit:
            return False
        total = self.get_total_memory_usage()
        if total > limit * MEMORY_PRESSURE_RATIO:
            logger.warning(
                f"Cache memory usage high: {total} bytes of {limit} byte limit",
                memory_usage=total,
                memory_limit=limit,
            )
            return True
        return False

    async def shutdown(self) -> None:
        """Cancel scheduled maintenance and clear every cache."""
        logger.info("Shutting down cache service...")
        task, self._maintenance_task = self._maintenance_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self.clear_all()
        self._initialized = False
        logger.info("Cache service shutdown completed")

    async def clear_all(self) -> None:
        for cache in self._caches().values():
            cache.clear()
        logger.info("All caches cleared")

    # -- invalidation --------------------------------------------------------

    async def invalidate_by_channel(self, channel_id: str) -> int:
        """Invalidate everything derived from one channel; returns the total."""
        total = 0
        try:
            if self._channel_cache.delete(channel_id):
                total += 1
            total += self._invalidate_segment(self._channel_cache, channel_id)
            total += self._search_cache.invalidate_channel(channel_id)
            total += self._invalidate_segment(self._thread_cache, channel_id)
            total += self._invalidate_segment(self._file_cache, channel_id)
        except Exception as e:
            logger.error(f"Failed to invalidate cache by channel {channel_id}: {e}")
            self.error_collector.add_error(
                e,
                category=ErrorCategory.CACHE,
                context={"operation": "invalidate", "channel": channel_id},
            )
            return total

        logger.log_invalidation("channel", channel_id, total)
        return total

    async def invalidate_by_user(self, user_id: str) -> int:
        """Invalidate everything derived from one user; returns the total."""
        total = 0
        try:
            if self._user_cache.delete(user_id):
                total += 1
            total += self._invalidate_segment(self._user_cache, user_id)
            total += self._search_cache.invalidate_user(user_id)
            total += self._invalidate_segment(self._thread_cache, user_id)
            total += self._invalidate_segment(self._file_cache, user_id)
        except Exception as e:
            logger.error(f"Failed to invalidate cache by user {user_id}: {e}")
            self.error_collector.add_error(
                e,
                category=ErrorCategory.CACHE,
                context={"operation": "invalidate", "user": user_id},
            )
            return total

        logger.log_invalidation("user", user_id, total)
        return total

    @staticmethod
    def _invalidate_segment(cache: BoundedCache[str, Any], identifier: str) -> int:
        """Delete keys carrying ``identifier`` as a ``:`` or ``|`` separated segment."""
        if not identifier:
            return 0
        removed = 0
        for key in cache.keys():
            if isinstance(key, str) and identifier in _KEY_SEGMENT_RE.split(key):
                if cache.delete(key):
                    removed += 1
        return removed

    # -- metrics and health --------------------------------------------------

    def get_total_memory_usage(self) -> int:
        return sum(cache.get_metrics().memory_usage for cache in self._caches().values())

    def get_metrics(self) -> CacheServiceMetrics:
        domain = {name: cache.get_metrics() for name, cache in self._domain_caches().items()}
        search = self._search_cache.get_metrics()

        total_hits = sum(m.hits for m in domain.values()) + search.result_hits
        total_misses = sum(m.misses for m in domain.values()) + search.result_misses
        total_memory = sum(m.memory_usage for m in domain.values()) + search.memory_usage

        return CacheServiceMetrics(
            channels=domain["channels"],
            users=domain["users"],
            search=search,
            files=domain["files"],
            threads=domain["threads"],
            global_metrics=GlobalCacheMetrics(
                total_memory_usage=total_memory,
                total_hits=total_hits,
                total_misses=total_misses,
                overall_hit_rate=CacheMetrics.compute_hit_rate(total_hits, total_misses),
            ),
        )

    @staticmethod
    def _check_cache_health(metrics: CacheMetrics) -> CacheHealth:
        issues = []
        if metrics.hit_rate < MIN_HEALTHY_HIT_RATE:
            issues.append(f"Low hit rate: {metrics.hit_rate:.1f}%")
        if metrics.hits == 0 and metrics.misses == 0:
            issues.append("Cache appears inactive")
        return CacheHealth(healthy=not issues, issues=issues)

    @staticmethod
    def _check_search_cache_health(metrics: SearchCacheMetrics) -> CacheHealth:
        hit_rate = CacheMetrics.compute_hit_rate(metrics.result_hits, metrics.result_misses)
        issues = []
        if hit_rate < MIN_HEALTHY_SEARCH_HIT_RATE:
            issues.append(f"Low search result hit rate: {hit_rate:.1f}%")
        return CacheHealth(healthy=not issues, issues=issues)

    def get_health_status(self) -> CacheHealthStatus:
        metrics = self.get_metrics()
        caches = {
            "channels": self._check_cache_health(metrics.channels),
            "users": self._check_cache_health(metrics.users),
            "search": self._check_search_cache_health(metrics.search),
            "files": self._check_cache_health(metrics.files),
            "threads": self._check_cache_health(metrics.threads),
        }

        memory_usage = metrics.global_metrics.total_memory_usage
        limit = self.config.global_memory_limit
        memory_pressure = bool(limit) and memory_usage / limit > MEMORY_PRESSURE_RATIO

        return CacheHealthStatus(
            healthy=all(cache.healthy for cache in caches.values()) and not memory_pressure,
            caches=caches,
            memory_usage=memory_usage,
            memory_limit=limit,
            memory_pressure=memory_pressure,
            average_response_time_ms=(
                self.performance_monitor.get_performance_report().average_duration_ms
                if self.performance_monitor is not None
                else 0.0
            ),
            uptime=time.time() - self._start_time,
        )


class CacheServiceFactory:
    """Validated construction of :class:`CacheService` instances."""

    @staticmethod
    def create(
        config: CacheServiceConfig | Mapping[str, Any],
        dependencies: CacheServiceDependencies | None = None,
    ) -> CacheService:
        """
        Validate ``config`` and build a service.

        Raises:
            ConfigurationError: ``Invalid <name> cache configuration`` for the
                first invalid sub-config, or for a non-positive global limit
        """
        if config is None:
            raise ConfigurationError("Cache service configuration is required")
        if isinstance(config, Mapping):
            missing = [name for name in CACHE_NAMES if name not in config]
            if missing:
                raise ConfigurationError(
                    f"Invalid {missing[0]} cache configuration",
                    context={"field": missing[0]},
                )
            config = CacheServiceConfig.from_dict(config)

        config.validate()
        return CacheService(config, dependencies)

    @staticmethod
    def create_with_defaults(
        dependencies: CacheServiceDependencies | None = None,
    ) -> CacheService:
        return CacheServiceFactory.create(CacheServiceConfig.defaults(), dependencies)

    @staticmethod
    def create_from_env(
        environ: Mapping[str, str] | None = None,
        dependencies: CacheServiceDependencies | None = None,
    ) -> CacheService | None:
        """
        Build a service from ``CACHE_*`` environment variables.

        Returns ``None`` when ``CACHE_ENABLED`` turns caching off; pass that
        straight to :class:`CacheIntegrationHelper` to fetch uncached.
        """
        settings = CacheSettings.from_env(environ)
        if not settings.enabled:
            logger.info("Caching disabled by CACHE_ENABLED; no cache service created")
            return None
        return CacheServiceFactory.create(settings.to_service_config(), dependencies)
