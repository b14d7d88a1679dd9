"""
slackcache: Caching and relevance-ranking core for a Slack integration server.

The server's tool operations (channels, users, files, threads and message
search) go through this package to avoid repeated Slack API calls and to
re-rank search pages by relevance.

Key Features:
    - **Bounded Caches**: LRU with per-entry TTL, memory ceiling and dispose hooks
    - **Search Cache**: Results keyed by normalized query with adaptive TTL
    - **Query Parsing**: Slack search syntax (operators, phrases, groups, booleans)
    - **Cache Service**: Five domain caches with cross-cache invalidation and health
    - **Relevance Ranking**: BM25, time decay, engagement, urgency and importance
    - **Graceful Degradation**: Cache and ranking faults never fail a tool call

Main Classes:
    CacheService: Owns the channel, user, search, file and thread caches
    CacheServiceFactory: Validated construction from config, dict or environment
    SearchCache: Search result cache keyed by normalized query
    BoundedCache: The LRU primitive behind every cache
    RelevanceScorer: Multi-signal relevance scorer
    CacheSettings: Environment-driven settings

Example Usage:
    Caching a domain lookup:
        >>> from slackcache import CacheServiceFactory, CacheIntegrationHelper, CacheKeyBuilder
        >>> service = CacheServiceFactory.create_with_defaults()
        >>> helper = CacheIntegrationHelper(service)
        >>> key = CacheKeyBuilder.channel("info", {"channel": "C123"})
        >>> info = await helper.cache_or_fetch("channels", key, fetch_channel_info)

    Re-ranking a search page:
        >>> from slackcache import apply_relevance_scoring, create_relevance_scorer
        >>> scorer = create_relevance_scorer()
        >>> outcome = await apply_relevance_scoring(matches, "deploy failed", scorer)
"""

from .cache import (
    BoundedCache,
    CacheIntegrationHelper,
    CacheKeyBuilder,
    CacheService,
    CacheServiceFactory,
    SearchCache,
)
from .config import (
    CacheServiceConfig,
    CacheSettings,
    DomainCacheConfig,
    RelevanceScorerConfig,
    SearchCacheConfig,
)
from .search import (
    RelevanceScorer,
    SearchQueryNormalizer,
    apply_relevance_scoring,
    create_relevance_scorer,
    parse_search_query,
)
from .types import ServiceError, ServiceSuccess, SlackMessage
from .utils.error_handling import (
    ConfigurationError,
    QueryNormalizationError,
    QueryParseError,
    SlackCacheError,
)
from .utils.logging_config import configure_logging, disable_logging, enable_debug_logging, get_logger

__version__ = "0.1.0"

__all__ = [
    # Caches
    "BoundedCache",
    "SearchCache",
    "CacheService",
    "CacheServiceFactory",
    "CacheIntegrationHelper",
    "CacheKeyBuilder",
    # Configuration
    "CacheSettings",
    "CacheServiceConfig",
    "DomainCacheConfig",
    "SearchCacheConfig",
    "RelevanceScorerConfig",
    # Search
    "parse_search_query",
    "SearchQueryNormalizer",
    "RelevanceScorer",
    "apply_relevance_scoring",
    "create_relevance_scorer",
    # Types
    "SlackMessage",
    "ServiceSuccess",
    "ServiceError",
    # Errors
    "SlackCacheError",
    "ConfigurationError",
    "QueryParseError",
    "QueryNormalizationError",
    # Logging
    "configure_logging",
    "get_logger",
    "enable_debug_logging",
    "disable_logging",
    "__version__",
]
