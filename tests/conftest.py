"""
Shared test fixtures and utilities for slackcache tests.

This module provides sample Slack messages, small cache configurations and
ready-made service instances so individual tests stay short.
"""

from __future__ import annotations

import time

import pytest

from slackcache.cache.search_cache import SearchCache
from slackcache.cache.service import CacheService, CacheServiceFactory
from slackcache.config import (
    CacheServiceConfig,
    DomainCacheConfig,
    RelevanceScorerConfig,
    SearchCacheConfig,
)
from slackcache.search.scorer import RelevanceScorer

HOUR = 3600


def make_message(
    text: str,
    hours_ago: float = 1.0,
    user: str = "U001",
    reactions: list[dict] | None = None,
    reply_count: int = 0,
) -> dict:
    """Build a Slack message dict with a ``ts`` ``hours_ago`` in the past."""
    return {
        "ts": f"{time.time() - hours_ago * HOUR:.6f}",
        "text": text,
        "user": user,
        "channel": "C001",
        "reactions": reactions or [],
        "reply_count": reply_count,
    }


@pytest.fixture
def message_factory():
    """Provide :func:`make_message` to tests."""
    return make_message


@pytest.fixture
def sample_messages() -> list[dict]:
    return [
        make_message("Deploy failed on production, need a rollback asap", hours_ago=1, user="U100"),
        make_message(
            "Lunch plans for friday?",
            hours_ago=2,
            user="U200",
            reactions=[{"name": "pizza", "count": 3}],
        ),
        make_message(
            "Deploy checklist for the release milestone",
            hours_ago=48,
            user="U300",
            reply_count=4,
        ),
        make_message("<@U200> can you review the budget decision?", hours_ago=5, user="U100"),
    ]


@pytest.fixture
def search_cache_config() -> SearchCacheConfig:
    return SearchCacheConfig(max_queries=10, max_results=20, query_ttl=900, result_ttl=300)


@pytest.fixture
def search_cache(search_cache_config: SearchCacheConfig) -> SearchCache:
    return SearchCache(search_cache_config)


@pytest.fixture
def small_service_config() -> CacheServiceConfig:
    """Service config with tiny domain caches to exercise eviction."""
    return CacheServiceConfig(
        channels=DomainCacheConfig(max=3, ttl=60),
        users=DomainCacheConfig(max=3, ttl=60),
        search=SearchCacheConfig(max_queries=5, max_results=10, query_ttl=60, result_ttl=60),
        files=DomainCacheConfig(max=3, ttl=60),
        threads=DomainCacheConfig(max=3, ttl=60),
    )


@pytest.fixture
def cache_service() -> CacheService:
    return CacheServiceFactory.create_with_defaults()


@pytest.fixture
def small_cache_service(small_service_config: CacheServiceConfig) -> CacheService:
    return CacheServiceFactory.create(small_service_config)


@pytest.fixture
def scorer() -> RelevanceScorer:
    return RelevanceScorer(RelevanceScorerConfig())


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
