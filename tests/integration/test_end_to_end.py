"""
End-to-end tests for the cache service and relevance ranking.

These tests drive the public entry points together: the service factory,
the cache-or-fetch helper, the search cache and re-ranking of fetched
results.
"""

from __future__ import annotations

import time

import pytest

from slackcache.cache.integration import CacheIntegrationHelper, CacheKeyBuilder
from slackcache.cache.lru import BoundedCache
from slackcache.cache.search_cache import SearchCache
from slackcache.cache.service import CacheServiceFactory
from slackcache.config import SearchCacheConfig
from slackcache.search.integration import (
    RelevanceIntegrationOptions,
    apply_relevance_scoring,
    normalize_search_results,
)
from slackcache.search.normalizer import SearchQueryNormalizer
from slackcache.search.scorer import RelevanceScorer

pytestmark = pytest.mark.integration

SIMPLE_QUERY = "hello"
COMPLEX_QUERY = "deploy failed in:#ops from:@a after:2024-01-01"


class TestCacheBehaviour:
    """Eviction, expiry and accounting across the cache layers."""

    def test_lru_evicts_least_recently_set(self):
        cache: BoundedCache[str, int] = BoundedCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_entry_expires_after_ttl(self):
        cache: BoundedCache[str, str] = BoundedCache(max_entries=5, ttl=0.05)
        cache.set("k", "v")
        assert cache.get("k") == "v"

        time.sleep(0.1)
        assert cache.get("k") is None
        assert cache.has("k") is False

    def test_hit_rate_is_exact(self):
        cache: BoundedCache[str, int] = BoundedCache(max_entries=5)
        cache.set("k", 1)
        for _ in range(3):
            cache.get("k")
        cache.get("missing")

        metrics = cache.get_metrics()
        assert (metrics.hits, metrics.misses) == (3, 1)
        assert metrics.hit_rate == pytest.approx(75.0)

    def test_services_are_isolated(self):
        first = CacheServiceFactory.create_with_defaults()
        second = CacheServiceFactory.create_with_defaults()

        first.get_channel_cache().set("C1", {"name": "general"})

        assert second.get_channel_cache().get("C1") is None
        assert first.get_user_cache().get("C1") is None
        assert first.get_cache("search") is not second.get_cache("search")

    def test_channel_cache_eviction_keeps_max(self, small_cache_service):
        channels = small_cache_service.get_channel_cache()
        for index in range(4):
            channels.set(f"C{index}", {"id": f"C{index}"})

        instances = {instance.name: instance for instance in small_cache_service.get_cache_instances()}
        assert instances["channels"].metrics.size == 3
        assert instances["channels"].metrics.evictions == 1
        assert channels.get("C0") is None


class TestSearchCacheBehaviour:
    """Normalization and adaptive TTL seen through the search cache."""

    def test_normalization_idempotent(self):
        normalizer = SearchQueryNormalizer()
        once = normalizer.normalize(COMPLEX_QUERY)
        twice = normalizer.normalize(once.normalized)
        assert twice.normalized == once.normalized

    def test_term_and_operator_order_ignored(self):
        normalizer = SearchQueryNormalizer()
        first = normalizer.normalize("deploy failed in:#ops from:@alice")
        second = normalizer.normalize("from:@alice failed in:#ops deploy")
        assert first.normalized == second.normalized
        assert first.hash == second.hash

    def test_simple_queries_live_at_least_as_long(self):
        config = SearchCacheConfig()
        cache = SearchCache(config)
        multipliers = config.adaptive_ttl_multipliers

        simple = cache.get_complexity(SIMPLE_QUERY)
        complex_ = cache.get_complexity(COMPLEX_QUERY)

        assert simple.score < complex_.score
        assert multipliers.for_complexity(simple.value) >= multipliers.for_complexity(
            complex_.value
        )

    def test_equivalent_queries_share_entry(self):
        cache = SearchCache(SearchCacheConfig(adaptive_ttl=False, result_ttl=1000))
        cache.set("hello world", [{"id": "1"}], {"totalCount": 1})

        cached = cache.get("HELLO   WORLD")

        assert cached is not None
        assert cached.results == [{"id": "1"}]
        assert cached.metadata.total_count == 1
        assert cache.get_metrics().result_hits == 1


class TestRankingBehaviour:
    """Relevance scoring properties on realistic messages."""

    def test_time_decay_monotone(self, scorer: RelevanceScorer):
        now = time.time()
        decays = [scorer.calculate_time_decay(now - hours * 3600) for hours in (1, 5, 50, 500)]
        assert all(a > b for a, b in zip(decays, decays[1:]))
        assert scorer.calculate_time_decay("invalid") == 0.0

    def test_no_engagement_scores_zero(self, scorer: RelevanceScorer, message_factory):
        assert scorer.calculate_engagement_score(message_factory("quiet message")) == 0.0

    @pytest.mark.asyncio
    async def test_re_rank_non_destructive(self, scorer: RelevanceScorer, sample_messages):
        results = normalize_search_results(sample_messages)
        snapshot = [dict(item) for item in results]

        ranked = await scorer.re_rank_results(results, "deploy")

        assert results == snapshot
        assert sorted(map(id, ranked)) == sorted(map(id, results))

    @pytest.mark.asyncio
    async def test_scorer_failure_keeps_upstream_order(self, sample_messages):
        class FailingScorer:
            async def re_rank_results(self, results, query):
                raise RuntimeError("ranking backend down")

        results = normalize_search_results(sample_messages)
        outcome = await apply_relevance_scoring(results, "deploy", FailingScorer())

        assert outcome.results == results
        assert outcome.scoring_applied is False
        assert outcome.error == "ranking backend down"


class TestSearchFlow:
    """Fetch through the cache, then rank."""

    @pytest.mark.asyncio
    async def test_cache_or_fetch_then_rank(self, cache_service, sample_messages):
        helper = CacheIntegrationHelper(cache_service)
        scorer = RelevanceScorer()
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            return normalize_search_results(sample_messages)

        first = await helper.cache_or_fetch("search", "deploy", fetch)
        second = await helper.cache_or_fetch("search", "Deploy", fetch)

        assert calls == 1
        assert second == first

        outcome = await apply_relevance_scoring(
            second,
            "deploy",
            scorer,
            RelevanceIntegrationOptions(context="search_messages", enable_logging=False),
        )
        assert outcome.scoring_applied is True
        assert "deploy" in outcome.results[0]["text"].lower()

    @pytest.mark.asyncio
    async def test_channel_invalidation_forces_refetch(self, cache_service):
        helper = CacheIntegrationHelper(cache_service)
        key = CacheKeyBuilder.channel("info", {"channel": "C001"})
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            return {"id": "C001", "name": "general"}

        await helper.cache_or_fetch("channels", key, fetch)
        await helper.cache_or_fetch("channels", key, fetch)
        assert calls == 1

        removed = await cache_service.invalidate_by_channel("C001")
        assert removed >= 1

        await helper.cache_or_fetch("channels", key, fetch)
        assert calls == 2
