"""
Configuration module for slackcache.

This module defines the validated configuration objects for the cache
service and the relevance scorer. Every object validates eagerly and raises
ConfigurationError on invalid values; nothing is silently clamped.

Classes:
    DomainCacheConfig: Limits for one of the plain LRU domain caches
    ComplexityThresholds: Score boundaries for query complexity classes
    AdaptiveTTLMultipliers: Result TTL multipliers per complexity class
    SearchCacheConfig: Limits and behaviour of the search result cache
    CacheServiceConfig: The five domain caches plus global settings
    ScoringWeights: Weights of the composite relevance score
    EngagementWeights: Weights of the engagement signal
    LexicalIndexConfig: Field boosts and fuzziness of the lexical index
    RelevanceScorerConfig: Complete scorer configuration
    CacheSettings: Flat settings read from ``CACHE_*`` environment variables

Example:
    Production defaults:
        >>> from slackcache.config import CacheServiceConfig
        >>> config = CacheServiceConfig.defaults()
        >>> config.validate()

    Environment driven:
        >>> from slackcache.config import CacheSettings
        >>> settings = CacheSettings.from_env({"CACHE_CHANNELS_MAX": "2000"})
        >>> settings.to_service_config().channels.max
        2000
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from .utils.error_handling import ConfigurationError

MB = 1024 * 1024


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class DomainCacheConfig:
    """Limits for a plain LRU domain cache (channels, users, files, threads).

    ``ttl`` is in seconds; ``0`` disables expiry. ``max_size`` is an optional
    byte ceiling enforced with the default JSON size estimator.
    """

    max: int
    ttl: float
    update_age_on_get: bool = True
    max_size: int | None = None

    def get_issues(self) -> list[str]:
        issues = []
        if not _is_number(self.max) or self.max <= 0:
            issues.append("max must be a positive number")
        if not _is_number(self.ttl) or self.ttl < 0:
            issues.append("ttl must be non-negative")
        if self.max_size is not None and (not _is_number(self.max_size) or self.max_size < 0):
            issues.append("max_size must be non-negative")
        return issues

    def validate(self) -> None:
        issues = self.get_issues()
        if issues:
            raise ConfigurationError(
                f"Invalid cache configuration: {'; '.join(issues)}",
                context={"issues": issues},
            )


@dataclass(frozen=True)
class ComplexityThresholds:
    """Upper bounds (inclusive) of the simple and moderate classes."""

    simple: int = 5
    moderate: int = 15

    def get_issues(self) -> list[str]:
        if self.simple < 0 or self.moderate < self.simple:
            return ["complexity thresholds must satisfy 0 <= simple <= moderate"]
        return []


@dataclass(frozen=True)
class AdaptiveTTLMultipliers:
    simple: float = 3.0
    moderate: float = 2.0
    complex: float = 1.0

    def get_issues(self) -> list[str]:
        if min(self.simple, self.moderate, self.complex) <= 0:
            return ["adaptive TTL multipliers must be positive"]
        return []

    def for_complexity(self, complexity: str) -> float:
        return float(getattr(self, complexity, 1.0))


@dataclass
class SearchCacheConfig:
    """Search result cache configuration.

    ``max_queries`` bounds the number of cached result sets and normalized
    queries; ``max_results`` caps the items stored per result set. TTLs are
    seconds.
    """

    max_queries: int = 100
    max_results: int = 50
    query_ttl: float = 900.0
    result_ttl: float = 300.0
    adaptive_ttl: bool = True
    enable_pattern_invalidation: bool = True
    memory_limit: int | None = None
    adaptive_ttl_multipliers: AdaptiveTTLMultipliers = field(default_factory=AdaptiveTTLMultipliers)
    complexity_thresholds: ComplexityThresholds = field(default_factory=ComplexityThresholds)

    def get_issues(self) -> list[str]:
        issues = []
        if not _is_number(self.max_queries) or self.max_queries <= 0:
            issues.append("max_queries must be a positive number")
        if not _is_number(self.max_results) or self.max_results <= 0:
            issues.append("max_results must be a positive number")
        if not _is_number(self.query_ttl) or self.query_ttl < 0:
            issues.append("query_ttl must be non-negative")
        if not _is_number(self.result_ttl) or self.result_ttl < 0:
            issues.append("result_ttl must be non-negative")
        if self.memory_limit is not None and (
            not _is_number(self.memory_limit) or self.memory_limit < 0
        ):
            issues.append("memory_limit must be non-negative")
        issues.extend(self.adaptive_ttl_multipliers.get_issues())
        issues.extend(self.complexity_thresholds.get_issues())
        return issues

    def validate(self) -> None:
        issues = self.get_issues()
        if issues:
            raise ConfigurationError(
                f"Invalid search cache configuration: {'; '.join(issues)}",
                context={"issues": issues},
            )


CACHE_NAMES = ("channels", "users", "search", "files", "threads")


@dataclass
class CacheServiceConfig:
    """Configuration of the five caches owned by the cache service."""

    channels: DomainCacheConfig
    users: DomainCacheConfig
    search: SearchCacheConfig
    files: DomainCacheConfig
    threads: DomainCacheConfig
    enable_metrics: bool = True
    global_memory_limit: int | None = 100 * MB

    @classmethod
    def defaults(cls) -> CacheServiceConfig:
        """Production defaults."""
        return cls(
            channels=DomainCacheConfig(max=500, ttl=3600, max_size=10 * MB),
            users=DomainCacheConfig(max=1000, ttl=1800, max_size=15 * MB),
            search=SearchCacheConfig(
                max_queries=100,
                max_results=50,
                query_ttl=900,
                result_ttl=300,
                adaptive_ttl=True,
                enable_pattern_invalidation=True,
            ),
            files=DomainCacheConfig(max=200, ttl=1800, max_size=10 * MB),
            threads=DomainCacheConfig(max=300, ttl=3600, max_size=20 * MB),
            enable_metrics=True,
            global_memory_limit=100 * MB,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CacheServiceConfig:
        """Build a config from a plain mapping, filling gaps from defaults."""
        base = cls.defaults()
        kwargs: dict[str, Any] = {}

        for name in CACHE_NAMES:
            section = data.get(name)
            current = getattr(base, name)
            expected = type(current)
            if section is None:
                kwargs[name] = current
            elif isinstance(section, expected):
                kwargs[name] = section
            elif isinstance(section, Mapping):
                merged = {**_shallow_dict(current), **section}
                try:
                    if name == "search":
                        merged = _coerce_search_section(merged)
                    kwargs[name] = expected(**merged)
                except TypeError as e:
                    raise ConfigurationError(
                        f"Invalid {name} cache configuration",
                        context={"field": name, "value": dict(section)},
                    ) from e
            else:
                raise ConfigurationError(
                    f"Invalid {name} cache configuration",
                    context={"field": name, "value": section},
                )

        kwargs["enable_metrics"] = bool(data.get("enable_metrics", base.enable_metrics))
        kwargs["global_memory_limit"] = data.get("global_memory_limit", base.global_memory_limit)
        return cls(**kwargs)

    def validate(self) -> None:
        """Validate every sub-config in order and raise on the first failure.

        Raises:
            ConfigurationError: If a sub-config or the global limit is invalid.
        """
        for name in CACHE_NAMES:
            issues = getattr(self, name).get_issues()
            if issues:
                raise ConfigurationError(
                    f"Invalid {name} cache configuration",
                    context={"field": name, "issues": issues},
                )

        if self.global_memory_limit is not None and (
            not _is_number(self.global_memory_limit) or self.global_memory_limit <= 0
        ):
            raise ConfigurationError(
                "Global memory limit must be positive",
                context={"field": "global_memory_limit", "value": self.global_memory_limit},
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _shallow_dict(obj: Any) -> dict[str, Any]:
    return {f.name: getattr(obj, f.name) for f in fields(obj)}


def _coerce_search_section(section: dict[str, Any]) -> dict[str, Any]:
    multipliers = section.get("adaptive_ttl_multipliers")
    if isinstance(multipliers, Mapping):
        section["adaptive_ttl_multipliers"] = AdaptiveTTLMultipliers(**multipliers)
    thresholds = section.get("complexity_thresholds")
    if isinstance(thresholds, Mapping):
        section["complexity_thresholds"] = ComplexityThresholds(**thresholds)
    return section


@dataclass
class ScoringWeights:
    """Weights of the five relevance signals in the composite score."""

    tfidf: float = 0.4
    time_decay: float = 0.25
    engagement: float = 0.2
    urgency: float = 0.1
    importance: float = 0.05


@dataclass
class EngagementWeights:
    reaction: float = 0.3
    reply: float = 0.5
    mention: float = 0.2


@dataclass
class LexicalIndexConfig:
    """Lexical index fields, per-field boosts and fuzzy tolerance.

    ``fuzzy`` is the fraction of a query term's length allowed as edit
    distance; ``combine_with`` is ``"AND"`` or ``"OR"``.
    """

    fields: tuple[str, ...] = ("text", "user")
    boosts: dict[str, float] = field(default_factory=lambda: {"text": 2.0, "user": 1.5})
    fuzzy: float = 0.2
    combine_with: str = "AND"


@dataclass
class RelevanceScorerConfig:
    """Complete relevance scorer configuration.

    ``time_decay_half_life`` is in hours; ``cache_ttl`` (seconds) bounds how
    long a lexical scoring result is reused for identical input.
    """

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    time_decay_half_life: float = 24.0
    engagement: EngagementWeights = field(default_factory=EngagementWeights)
    lexical: LexicalIndexConfig = field(default_factory=LexicalIndexConfig)
    cache_ttl: float = 900.0
    max_cached_results: int = 100

    def validate(self) -> None:
        weights = asdict(self.weights)
        negative = [name for name, value in weights.items() if value < 0]
        if negative:
            raise ConfigurationError(
                "Scoring weights must be non-negative",
                context={"field": "weights", "issues": negative},
            )
        if self.time_decay_half_life <= 0:
            raise ConfigurationError(
                "Time decay half-life must be positive",
                context={"field": "time_decay_half_life", "value": self.time_decay_half_life},
            )
        if self.cache_ttl < 0:
            raise ConfigurationError(
                "Cache TTL must be non-negative",
                context={"field": "cache_ttl", "value": self.cache_ttl},
            )
        if self.max_cached_results <= 0:
            raise ConfigurationError(
                "max_cached_results must be positive",
                context={"field": "max_cached_results", "value": self.max_cached_results},
            )
        if not 0 <= self.lexical.fuzzy < 1:
            raise ConfigurationError(
                "Fuzzy tolerance must be in [0, 1)",
                context={"field": "lexical.fuzzy", "value": self.lexical.fuzzy},
            )
        if self.lexical.combine_with.upper() not in ("AND", "OR"):
            raise ConfigurationError(
                "combine_with must be AND or OR",
                context={"field": "lexical.combine_with", "value": self.lexical.combine_with},
            )


# (variable, attribute, minimum, maximum, default)
_ENV_NUMBERS: tuple[tuple[str, str, int, int, int], ...] = (
    ("CACHE_CHANNELS_MAX", "channels_max", 10, 10000, 1000),
    ("CACHE_CHANNELS_TTL", "channels_ttl", 60, 86400, 3600),
    ("CACHE_USERS_MAX", "users_max", 10, 10000, 500),
    ("CACHE_USERS_TTL", "users_ttl", 60, 86400, 1800),
    ("CACHE_SEARCH_MAX_QUERIES", "search_max_queries", 10, 1000, 100),
    ("CACHE_SEARCH_MAX_RESULTS", "search_max_results", 100, 50000, 5000),
    ("CACHE_SEARCH_QUERY_TTL", "search_query_ttl", 60, 3600, 900),
    ("CACHE_SEARCH_RESULT_TTL", "search_result_ttl", 60, 3600, 900),
    ("CACHE_FILES_MAX", "files_max", 10, 5000, 500),
    ("CACHE_FILES_TTL", "files_ttl", 60, 86400, 1800),
    ("CACHE_THREADS_MAX", "threads_max", 10, 5000, 300),
    ("CACHE_THREADS_TTL", "threads_ttl", 60, 3600, 2700),
    ("SEARCH_INDEX_TTL", "search_index_ttl", 60, 3600, 900),
)

_FALSE_VALUES = frozenset(["", "0", "false", "no", "off"])


@dataclass
class CacheSettings:
    """Flat cache and ranking settings, usually read from the environment."""

    enabled: bool = True
    channels_max: int = 1000
    channels_ttl: int = 3600
    users_max: int = 500
    users_ttl: int = 1800
    search_max_queries: int = 100
    search_max_results: int = 5000
    search_query_ttl: int = 900
    search_result_ttl: int = 900
    files_max: int = 500
    files_ttl: int = 1800
    threads_max: int = 300
    threads_ttl: int = 2700
    ranking_enabled: bool = True
    search_index_ttl: int = 900

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CacheSettings:
        """Read settings from ``CACHE_*`` and ``SEARCH_*`` variables.

        Raises:
            ConfigurationError: If a numeric variable is malformed or out of range.
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}

        for variable, attribute, minimum, maximum, default in _ENV_NUMBERS:
            raw = env.get(variable)
            if raw is None or raw.strip() == "":
                kwargs[attribute] = default
                continue
            try:
                value = int(float(raw))
            except ValueError as e:
                raise ConfigurationError(
                    f"{variable} must be a number",
                    context={"field": variable, "value": raw},
                ) from e
            if not minimum <= value <= maximum:
                raise ConfigurationError(
                    f"{variable} must be between {minimum} and {maximum}",
                    context={"field": variable, "value": value},
                )
            kwargs[attribute] = value

        enabled = env.get("CACHE_ENABLED")
        kwargs["enabled"] = True if enabled is None else enabled.strip().lower() not in _FALSE_VALUES
        # Only the literal "true" enables ranking once the variable is set.
        ranking = env.get("SEARCH_RANKING_ENABLED", "true")
        kwargs["ranking_enabled"] = ranking.strip().lower() == "true"

        return cls(**kwargs)

    def to_service_config(self) -> CacheServiceConfig:
        base = CacheServiceConfig.defaults()
        return CacheServiceConfig(
            channels=DomainCacheConfig(
                max=self.channels_max, ttl=self.channels_ttl, max_size=base.channels.max_size
            ),
            users=DomainCacheConfig(
                max=self.users_max, ttl=self.users_ttl, max_size=base.users.max_size
            ),
            search=SearchCacheConfig(
                max_queries=self.search_max_queries,
                max_results=self.search_max_results,
                query_ttl=self.search_query_ttl,
                result_ttl=self.search_result_ttl,
            ),
            files=DomainCacheConfig(
                max=self.files_max, ttl=self.files_ttl, max_size=base.files.max_size
            ),
            threads=DomainCacheConfig(
                max=self.threads_max, ttl=self.threads_ttl, max_size=base.threads.max_size
            ),
            enable_metrics=base.enable_metrics,
            global_memory_limit=base.global_memory_limit,
        )

    def to_scorer_config(self) -> RelevanceScorerConfig:
        return RelevanceScorerConfig(cache_ttl=float(self.search_index_ttl))
