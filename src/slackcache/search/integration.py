"""
Relevance scoring integration for search services.

Search services hand their result page to :func:`apply_relevance_scoring`.
With ranking disabled (``scorer is None``) or nothing to rank, the page is
returned as is. A scorer failure is logged and the upstream order is
returned; ranking never fails a search.

Example:
    >>> scorer = create_relevance_scorer(CacheSettings.from_env())
    >>> outcome = await apply_relevance_scoring(matches, "deploy", scorer)
    >>> outcome.scoring_applied
    True
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

from ..config import CacheSettings
from ..utils.logging_config import get_logger
from .scorer import RelevanceScorer

logger = get_logger()

RANKABLE_FIELDS = ("text", "timestamp", "user")


@dataclass
class RelevanceIntegrationOptions:
    """
    Args:
        performance_threshold: Milliseconds after which scoring logs a warning
        enable_logging: Emit debug logs for skipped and completed scoring
        context: Label used in log messages (e.g. ``"search_messages"``)
    """

    performance_threshold: float = 100.0
    enable_logging: bool = True
    context: str = "search"


@dataclass
class RelevanceIntegrationResult:
    results: list[Any]
    scoring_applied: bool
    processing_time: float
    error: str | None = None


async def apply_relevance_scoring(
    results: Sequence[Mapping[str, Any]],
    query: str,
    scorer: RelevanceScorer | None,
    options: RelevanceIntegrationOptions | None = None,
) -> RelevanceIntegrationResult:
    """Re-rank ``results`` for ``query``, falling back to the given order."""
    options = options or RelevanceIntegrationOptions()
    started = time.perf_counter()

    if scorer is None:
        if options.enable_logging:
            logger.debug(
                f"Relevance scoring skipped (disabled) for {options.context}",
                query=query,
                result_count=len(results),
            )
        return RelevanceIntegrationResult(list(results), False, 0.0)

    if not results or not query.strip():
        if options.enable_logging:
            logger.debug(
                f"Relevance scoring skipped (empty input) for {options.context}",
                query=query,
                result_count=len(results),
            )
        return RelevanceIntegrationResult(
            list(results), False, (time.perf_counter() - started) * 1000
        )

    try:
        ranked = await scorer.re_rank_results(results, query)
    except Exception as e:
        elapsed = (time.perf_counter() - started) * 1000
        logger.warning(
            f"Relevance scoring failed for {options.context}, falling back to original order",
            query=query,
            result_count=len(results),
            processing_time=elapsed,
            error=str(e),
        )
        return RelevanceIntegrationResult(list(results), False, elapsed, str(e))

    elapsed = (time.perf_counter() - started) * 1000
    if elapsed > options.performance_threshold:
        logger.warning(
            f"Relevance scoring exceeded performance threshold for {options.context}",
            query=query,
            result_count=len(results),
            processing_time=elapsed,
            threshold=options.performance_threshold,
        )
    elif options.enable_logging:
        logger.log_ranking_complete(options.context, len(results), elapsed)

    return RelevanceIntegrationResult(ranked, True, elapsed)


def validate_rankable_items(results: Any) -> bool:
    """True when every item is a mapping whose rankable fields are strings or absent."""
    if not isinstance(results, list):
        return False
    return all(
        isinstance(result, Mapping)
        and all(
            result.get(name) is None or isinstance(result.get(name), str)
            for name in RANKABLE_FIELDS
        )
        for result in results
    )


def normalize_search_results(
    results: Sequence[Mapping[str, Any]],
    text_field: str = "text",
    timestamp_field: str = "ts",
    user_field: str = "user",
) -> list[dict[str, Any]]:
    """
    Copy each result with string ``text``, ``timestamp`` and ``user`` keys.

    Values come from the named fields, then the canonical ones; a missing
    timestamp becomes the current time.
    """
    normalized = []
    for result in results:
        item = dict(result)
        item["text"] = str(result.get(text_field) or result.get("text") or "")
        item["timestamp"] = str(
            result.get(timestamp_field) or result.get("timestamp") or time.time()
        )
        item["user"] = str(result.get(user_field) or result.get("user") or "")
        normalized.append(item)
    return normalized


def create_relevance_integration(
    default_options: RelevanceIntegrationOptions,
) -> Callable[..., Awaitable[RelevanceIntegrationResult]]:
    """Bind ``default_options``; per-call keyword overrides take precedence."""

    async def integrate(
        results: Sequence[Mapping[str, Any]],
        query: str,
        scorer: RelevanceScorer | None,
        **overrides: Any,
    ) -> RelevanceIntegrationResult:
        return await apply_relevance_scoring(
            results, query, scorer, replace(default_options, **overrides)
        )

    return integrate


def create_relevance_scorer(settings: CacheSettings | None = None) -> RelevanceScorer | None:
    """A scorer configured from ``settings``, or ``None`` when ranking is disabled."""
    settings = settings or CacheSettings.from_env()
    if not settings.ranking_enabled:
        logger.info("Search ranking disabled")
        return None
    return RelevanceScorer(settings.to_scorer_config())
