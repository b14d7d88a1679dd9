"""Tests for slackcache.config module."""

from __future__ import annotations

import pytest

from slackcache.config import (
    AdaptiveTTLMultipliers,
    CacheServiceConfig,
    CacheSettings,
    ComplexityThresholds,
    DomainCacheConfig,
    LexicalIndexConfig,
    RelevanceScorerConfig,
    ScoringWeights,
    SearchCacheConfig,
)
from slackcache.utils.error_handling import ConfigurationError


class TestDomainCacheConfig:
    """Tests for DomainCacheConfig validation."""

    def test_valid(self):
        DomainCacheConfig(max=10, ttl=0).validate()

    @pytest.mark.parametrize(
        "kwargs, issue",
        [
            ({"max": 0, "ttl": 60}, "max must be a positive number"),
            ({"max": True, "ttl": 60}, "max must be a positive number"),
            ({"max": 10, "ttl": -1}, "ttl must be non-negative"),
            ({"max": 10, "ttl": 60, "max_size": -5}, "max_size must be non-negative"),
        ],
    )
    def test_issues(self, kwargs, issue):
        config = DomainCacheConfig(**kwargs)
        assert issue in config.get_issues()
        with pytest.raises(ConfigurationError):
            config.validate()


class TestSearchCacheConfig:
    """Tests for SearchCacheConfig validation."""

    def test_defaults_valid(self):
        assert SearchCacheConfig().get_issues() == []

    def test_invalid_fields(self):
        issues = SearchCacheConfig(max_queries=0, result_ttl=-1, memory_limit=-1).get_issues()
        assert "max_queries must be a positive number" in issues
        assert "result_ttl must be non-negative" in issues
        assert "memory_limit must be non-negative" in issues

    def test_nested_issues(self):
        config = SearchCacheConfig(
            adaptive_ttl_multipliers=AdaptiveTTLMultipliers(simple=0),
            complexity_thresholds=ComplexityThresholds(simple=10, moderate=5),
        )
        assert len(config.get_issues()) == 2

    def test_multiplier_lookup(self):
        multipliers = AdaptiveTTLMultipliers()
        assert multipliers.for_complexity("simple") == 3.0
        assert multipliers.for_complexity("complex") == 1.0


class TestCacheServiceConfig:
    """Tests for CacheServiceConfig."""

    def test_defaults(self):
        config = CacheServiceConfig.defaults()
        config.validate()
        assert config.channels.max == 500
        assert config.users.ttl == 1800
        assert config.search.max_queries == 100
        assert config.threads.max_size == 20 * 1024 * 1024
        assert config.global_memory_limit == 100 * 1024 * 1024

    def test_from_dict_merges_defaults(self):
        config = CacheServiceConfig.from_dict(
            {
                "channels": {"max": 3},
                "search": {"result_ttl": 10, "complexity_thresholds": {"simple": 2, "moderate": 4}},
                "enable_metrics": False,
            }
        )
        assert config.channels.max == 3
        assert config.channels.ttl == 3600
        assert config.search.result_ttl == 10
        assert config.search.complexity_thresholds == ComplexityThresholds(2, 4)
        assert config.enable_metrics is False
        assert config.users == CacheServiceConfig.defaults().users

    def test_from_dict_rejects_wrong_type(self):
        with pytest.raises(ConfigurationError):
            CacheServiceConfig.from_dict({"users": 42})

    @pytest.mark.parametrize(
        "data, field",
        [
            ({"channels": {"maxx": 3}}, "channels"),
            ({"search": {"max_query": 5}}, "search"),
            ({"search": {"complexity_thresholds": {"easy": 1}}}, "search"),
        ],
    )
    def test_from_dict_unknown_key(self, data, field):
        with pytest.raises(ConfigurationError, match=f"Invalid {field} cache configuration") as exc_info:
            CacheServiceConfig.from_dict(data)
        assert exc_info.value.context["field"] == field
        assert isinstance(exc_info.value.__cause__, TypeError)

    def test_from_dict_rejects_mismatched_section_type(self):
        with pytest.raises(ConfigurationError, match="Invalid search cache configuration"):
            CacheServiceConfig.from_dict({"search": DomainCacheConfig(max=5, ttl=60)})
        with pytest.raises(ConfigurationError, match="Invalid users cache configuration"):
            CacheServiceConfig.from_dict({"users": SearchCacheConfig()})

    def test_from_dict_accepts_config_instances(self):
        search = SearchCacheConfig(max_queries=7)
        config = CacheServiceConfig.from_dict({"search": search})
        assert config.search is search

    def test_validate_reports_first_invalid_cache(self):
        config = CacheServiceConfig.defaults()
        config.users = DomainCacheConfig(max=0, ttl=60)
        config.files = DomainCacheConfig(max=0, ttl=60)

        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()
        assert exc_info.value.context["field"] == "users"

    def test_validate_global_limit(self):
        config = CacheServiceConfig.defaults()
        config.global_memory_limit = 0
        with pytest.raises(ConfigurationError, match="Global memory limit"):
            config.validate()

    def test_unbounded_global_limit_allowed(self):
        config = CacheServiceConfig.defaults()
        config.global_memory_limit = None
        config.validate()

    def test_to_dict(self):
        data = CacheServiceConfig.defaults().to_dict()
        assert data["channels"]["max"] == 500
        assert data["search"]["adaptive_ttl_multipliers"]["simple"] == 3.0


class TestRelevanceScorerConfig:
    """Tests for RelevanceScorerConfig validation."""

    def test_defaults_valid(self):
        config = RelevanceScorerConfig()
        config.validate()
        assert config.weights == ScoringWeights(0.4, 0.25, 0.2, 0.1, 0.05)

    @pytest.mark.parametrize(
        "config, field_name",
        [
            (RelevanceScorerConfig(weights=ScoringWeights(urgency=-0.1)), "weights"),
            (RelevanceScorerConfig(time_decay_half_life=-1), "time_decay_half_life"),
            (RelevanceScorerConfig(cache_ttl=-1), "cache_ttl"),
            (RelevanceScorerConfig(max_cached_results=0), "max_cached_results"),
            (RelevanceScorerConfig(lexical=LexicalIndexConfig(fuzzy=1.0)), "lexical.fuzzy"),
            (
                RelevanceScorerConfig(lexical=LexicalIndexConfig(combine_with="XOR")),
                "lexical.combine_with",
            ),
        ],
    )
    def test_invalid(self, config, field_name):
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()
        assert exc_info.value.context["field"] == field_name


class TestCacheSettings:
    """Tests for environment driven settings."""

    def test_defaults(self):
        settings = CacheSettings.from_env({})
        assert settings == CacheSettings()
        assert settings.enabled is True
        assert settings.ranking_enabled is True
        assert settings.search_max_results == 5000

    def test_reads_numbers(self):
        settings = CacheSettings.from_env({"CACHE_CHANNELS_MAX": "2000", "CACHE_USERS_TTL": "120.7"})
        assert settings.channels_max == 2000
        assert settings.users_ttl == 120

    def test_blank_uses_default(self):
        assert CacheSettings.from_env({"CACHE_FILES_MAX": "  "}).files_max == 500

    def test_non_numeric_raises(self):
        with pytest.raises(ConfigurationError, match="CACHE_CHANNELS_MAX must be a number"):
            CacheSettings.from_env({"CACHE_CHANNELS_MAX": "lots"})

    @pytest.mark.parametrize(
        "variable, value", [("CACHE_CHANNELS_MAX", "5"), ("CACHE_THREADS_TTL", "7200")]
    )
    def test_out_of_range_raises(self, variable, value):
        with pytest.raises(ConfigurationError) as exc_info:
            CacheSettings.from_env({variable: value})
        assert exc_info.value.context["field"] == variable

    @pytest.mark.parametrize("value", ["0", "false", "No", "off", ""])
    def test_cache_disabled(self, value):
        assert CacheSettings.from_env({"CACHE_ENABLED": value}).enabled is False

    def test_cache_enabled_any_other_value(self):
        assert CacheSettings.from_env({"CACHE_ENABLED": "yes"}).enabled is True

    @pytest.mark.parametrize("value, expected", [("true", True), ("TRUE", True), ("1", False), ("yes", False)])
    def test_ranking_requires_literal_true(self, value, expected):
        assert CacheSettings.from_env({"SEARCH_RANKING_ENABLED": value}).ranking_enabled is expected

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("CACHE_THREADS_MAX", "42")
        assert CacheSettings.from_env().threads_max == 42

    def test_to_service_config(self):
        config = CacheSettings(channels_max=20, search_result_ttl=120).to_service_config()
        config.validate()
        assert config.channels.max == 20
        assert config.channels.max_size == 10 * 1024 * 1024
        assert config.search.result_ttl == 120
        assert config.search.max_results == 5000

    def test_to_scorer_config(self):
        config = CacheSettings(search_index_ttl=300).to_scorer_config()
        assert config.cache_ttl == 300.0
