"""
Search query handling and relevance ranking.

Modules:
    query_parser: Slack search syntax parsing and query building
    normalizer: Canonical query form, complexity and cache keys
    lexical_index: BM25 index with fuzzy term expansion
    scorer: Multi-signal relevance scorer
    integration: Search-path entry point for re-ranking
"""

from .integration import (
    RelevanceIntegrationOptions,
    RelevanceIntegrationResult,
    apply_relevance_scoring,
    create_relevance_integration,
    create_relevance_scorer,
    normalize_search_results,
    validate_rankable_items,
)
from .lexical_index import LexicalIndex, tokenize
from .normalizer import DateRange, QueryComplexity, SearchQuery, SearchQueryNormalizer
from .query_parser import (
    ParsedSearchQuery,
    QueryParseFailure,
    QueryParseSuccess,
    SearchQueryOptions,
    build_slack_search_query,
    parse_search_query,
    validate_search_query,
)
from .scorer import RelevanceResult, RelevanceScore, RelevanceScorer, TFIDFResult

__all__ = [
    "parse_search_query",
    "validate_search_query",
    "build_slack_search_query",
    "ParsedSearchQuery",
    "SearchQueryOptions",
    "QueryParseSuccess",
    "QueryParseFailure",
    "SearchQueryNormalizer",
    "SearchQuery",
    "QueryComplexity",
    "DateRange",
    "LexicalIndex",
    "tokenize",
    "RelevanceScorer",
    "RelevanceScore",
    "RelevanceResult",
    "TFIDFResult",
    "apply_relevance_scoring",
    "create_relevance_integration",
    "create_relevance_scorer",
    "normalize_search_results",
    "validate_rankable_items",
    "RelevanceIntegrationOptions",
    "RelevanceIntegrationResult",
]
