"""
Relevance scoring for Slack search results.

Slack's own search ranks by recency or its own relevance. This module
re-ranks a result page by combining five signals:

    lexical      BM25 over message text and author, normalized to the page max
    time decay   exponential decay with a configurable half-life (hours)
    engagement   weighted reactions, replies and mentions
    urgency      urgent keywords ("asap", "blocker", "緊急", ...)
    importance   business keywords ("decision", "budget", "承認", ...)

The composite score is the weighted sum of the signals. Confidence grows
with the evidence available: 0.5 base, +0.3 for a lexical match and +0.2
for any engagement.

Classes:
    RelevanceScore: Per-message signal breakdown
    TFIDFResult: Lexical scores for a message list
    RelevanceResult: Scores for a message list plus timing
    RelevanceScorer: The scorer

Example:
    >>> scorer = RelevanceScorer()
    >>> result = scorer.calculate_relevance(messages, "deploy failed")
    >>> ranked = await scorer.re_rank_results(search_matches, "deploy failed")
"""

from __future__ import annotations

import math
import time
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

import regex as regex_mod

from ..cache.lru import BoundedCache
from ..config import RelevanceScorerConfig
from ..types import ServiceError, ServiceResult, ServiceSuccess
from ..utils.error_handling import ErrorCollector, ScoringError, ValidationError
from ..utils.logging_config import get_logger
from .lexical_index import LexicalIndex

logger = get_logger()

URGENCY_KEYWORDS: tuple[str, ...] = (
    "urgent", "asap", "immediately", "emergency", "critical", "now", "today",
    "deadline", "blocker", "blocking", "priority", "rush", "fast", "quick", "hurry",
    "緊急", "至急", "急ぎ", "すぐ", "今すぐ",
)
URGENCY_KEYWORD_WEIGHT = 0.2

IMPORTANCE_KEYWORDS: tuple[str, ...] = (
    "decision", "approve", "budget", "launch", "release", "client", "customer",
    "revenue", "milestone", "strategic", "executive", "board", "ceo", "director",
    "manager", "contract", "agreement", "legal", "compliance", "audit",
    "決定", "承認", "予算", "リリース", "クライアント", "顧客", "売上",
    "マイルストーン", "戦略的", "重要",
)
IMPORTANCE_KEYWORD_WEIGHT = 0.1

_MENTION_RE = regex_mod.compile(r"<@[A-Z0-9]+>")
_CJK_RE = regex_mod.compile(r"[\p{Han}\p{Hiragana}\p{Katakana}]")
_CLEAN_PATTERNS = (
    regex_mod.compile(r"<@[A-Z0-9]+>"),
    regex_mod.compile(r"<#[A-Z0-9]+(?:\|[^>]*)?>"),
    regex_mod.compile(r"<[^>]+>"),
    regex_mod.compile(r":[a-z0-9_+\-]+:"),
)
_WHITESPACE_RE = regex_mod.compile(r"\s+")


def _keyword_pattern(keyword: str) -> regex_mod.Pattern:
    # CJK has no word boundaries; match those keywords as plain substrings.
    if _CJK_RE.search(keyword):
        return regex_mod.compile(regex_mod.escape(keyword))
    return regex_mod.compile(rf"\b{regex_mod.escape(keyword)}\b")


_URGENCY_PATTERNS = tuple(_keyword_pattern(k) for k in URGENCY_KEYWORDS)
_IMPORTANCE_PATTERNS = tuple(_keyword_pattern(k) for k in IMPORTANCE_KEYWORDS)


@dataclass
class RelevanceScore:
    tfidf_score: float = 0.0
    time_decay_score: float = 0.0
    engagement_score: float = 0.0
    urgency_score: float = 0.0
    importance_score: float = 0.0
    composite_score: float = 0.0
    confidence: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass
class TFIDFResult:
    scores: list[float]
    field_boosts: dict[str, float]
    cache_hit: bool = False
    query_processing_time: float = 0.0


@dataclass
class RelevanceResult:
    scores: list[RelevanceScore]
    processing_time: float
    total_messages: int
    cache_hit: bool = False
    errors: list[str] = field(default_factory=list)


def _is_valid_message(message: Any) -> bool:
    return isinstance(message, Mapping) and bool(message.get("ts"))


def _reaction_count(reaction: Any) -> float:
    """Count carried by one reaction; malformed entries count as zero."""
    if not isinstance(reaction, Mapping):
        return 0
    count = reaction.get("count")
    if isinstance(count, bool) or not isinstance(count, (int, float)):
        return 0
    if not math.isfinite(count) or count < 0:
        return 0
    return count


class RelevanceScorer:
    """
    Multi-signal relevance scorer for Slack messages.

    Lexical results are cached for ``cache_ttl`` seconds keyed by the
    message identities and the query, so scoring the same page twice only
    builds the index once.

    Raises:
        ConfigurationError: On construction with an invalid config
    """

    def __init__(self, config: RelevanceScorerConfig | None = None):
        self.config = config or RelevanceScorerConfig()
        self.config.validate()
        self.index = LexicalIndex(self.config.lexical)
        self.error_collector = ErrorCollector()
        self._tfidf_cache: BoundedCache[tuple, TFIDFResult] | None = None
        if self.config.cache_ttl > 0:
            self._tfidf_cache = BoundedCache(
                max_entries=self.config.max_cached_results,
                ttl=self.config.cache_ttl,
                name="relevance",
            )

    @staticmethod
    def clean_text(text: str) -> str:
        """Strip Slack markup (mentions, links, emoji codes) and lower-case."""
        if not text:
            return ""
        for pattern in _CLEAN_PATTERNS:
            text = pattern.sub("", text)
        return _WHITESPACE_RE.sub(" ", text).strip().lower()

    def _cache_key(self, messages: Sequence[Mapping[str, Any]], query: str) -> tuple:
        return (
            tuple((str(m.get("ts", "")), str(m.get("text", "")), str(m.get("user", ""))) for m in messages),
            query,
        )

    def calculate_tfidf_score(
        self, messages: Sequence[Mapping[str, Any]], query: str
    ) -> TFIDFResult:
        """Lexical scores in [0, 1], normalized to the best match in ``messages``."""
        started = time.perf_counter()
        boosts = dict(self.config.lexical.boosts)

        def _elapsed() -> float:
            return (time.perf_counter() - started) * 1000

        if not query or not query.strip():
            return TFIDFResult([0.0] * len(messages), boosts, False, _elapsed())

        cache_key = self._cache_key(messages, query)
        if self._tfidf_cache is not None:
            cached = self._tfidf_cache.get(cache_key)
            if cached is not None:
                return TFIDFResult(list(cached.scores), boosts, True, _elapsed())

        try:
            self.index.build(
                [
                    {
                        "text": self.clean_text(str(message.get("text") or "")),
                        "user": str(message.get("user") or ""),
                    }
                    for message in messages
                ]
            )
            scores = self.index.search(query)
        except Exception as e:
            logger.warning(f"Lexical scoring failed: {e}")
            self._record_failure(e, "tfidf")
            return TFIDFResult([0.0] * len(messages), boosts, False, _elapsed())

        best = max(scores, default=0.0)
        if best > 0:
            scores = [score / best for score in scores]

        result = TFIDFResult(scores, boosts, False, _elapsed())
        if self._tfidf_cache is not None:
            self._tfidf_cache.set(cache_key, result)
        return result

    def calculate_time_decay(self, timestamp: str | float | int | None) -> float:
        """``2 ** (-age_hours / half_life)``; 0 for unusable timestamps, 1 for future ones."""
        if timestamp is None or isinstance(timestamp, bool):
            return 0.0
        try:
            seconds = float(timestamp)
        except (TypeError, ValueError):
            return 0.0
        if not math.isfinite(seconds):
            return 0.0

        age_hours = (time.time() - seconds) / 3600
        if age_hours < 0:
            return 1.0
        return 2 ** (-age_hours / self.config.time_decay_half_life)

    def calculate_engagement_score(self, message: Mapping[str, Any]) -> float:
        """Weighted sum of reaction count, reply count and user mentions."""
        weights = self.config.engagement
        score = 0.0

        reactions = message.get("reactions")
        if not isinstance(reactions, (list, tuple)):
            reactions = []
        total_reactions = sum(_reaction_count(reaction) for reaction in reactions)
        score += total_reactions * weights.reaction

        reply_count = message.get("reply_count") or 0
        if isinstance(reply_count, (int, float)) and reply_count > 0:
            score += reply_count * weights.reply

        text = message.get("text")
        if isinstance(text, str):
            score += len(_MENTION_RE.findall(text)) * weights.mention

        return score

    @staticmethod
    def _keyword_score(text: str, patterns: Sequence[regex_mod.Pattern], weight: float) -> float:
        if not text:
            return 0.0
        lowered = text.lower()
        occurrences = sum(len(pattern.findall(lowered)) for pattern in patterns)
        return min(1.0, occurrences * weight)

    def calculate_urgency_score(self, message: Mapping[str, Any]) -> float:
        return self._keyword_score(
            str(message.get("text") or ""), _URGENCY_PATTERNS, URGENCY_KEYWORD_WEIGHT
        )

    def calculate_importance_score(self, message: Mapping[str, Any]) -> float:
        return self._keyword_score(
            str(message.get("text") or ""), _IMPORTANCE_PATTERNS, IMPORTANCE_KEYWORD_WEIGHT
        )

    def _score_message(self, message: Mapping[str, Any], tfidf_score: float) -> RelevanceScore:
        weights = self.config.weights
        time_decay = self.calculate_time_decay(message.get("ts"))
        engagement = self.calculate_engagement_score(message)
        urgency = self.calculate_urgency_score(message)
        importance = self.calculate_importance_score(message)

        composite = (
            tfidf_score * weights.tfidf
            + time_decay * weights.time_decay
            + engagement * weights.engagement
            + urgency * weights.urgency
            + importance * weights.importance
        )

        confidence = 0.5
        if tfidf_score > 0:
            confidence += 0.3
        if engagement > 0:
            confidence += 0.2

        return RelevanceScore(
            tfidf_score=tfidf_score,
            time_decay_score=time_decay,
            engagement_score=engagement,
            urgency_score=urgency,
            importance_score=importance,
            composite_score=composite,
            confidence=min(1.0, confidence),
        )

    def calculate_relevance(self, messages: Sequence[Any], query: str) -> RelevanceResult:
        """
        Score each message. The output list is parallel to ``messages``;
        malformed entries (not a mapping, or no ``ts``) get an all-zero score.
        """
        started = time.perf_counter()
        valid_positions = [i for i, message in enumerate(messages) if _is_valid_message(message)]
        scores = [RelevanceScore() for _ in messages]

        if not valid_positions:
            return RelevanceResult(
                scores=scores,
                processing_time=(time.perf_counter() - started) * 1000,
                total_messages=len(messages),
            )

        valid_messages = [messages[i] for i in valid_positions]
        message_errors: list[str] = []
        try:
            tfidf = self.calculate_tfidf_score(valid_messages, query)
            for position, message, tfidf_score in zip(valid_positions, valid_messages, tfidf.scores):
                try:
                    scores[position] = self._score_message(message, tfidf_score)
                except (TypeError, ValueError) as e:
                    # Only the malformed message scores zero.
                    logger.warning(f"Skipping malformed message {message.get('ts')}: {e}")
                    self._record_failure(e, "score_message")
                    message_errors.append(str(e))
        except Exception as e:
            logger.error(f"Relevance calculation failed: {e}")
            self._record_failure(e, "calculate_relevance")
            return RelevanceResult(
                scores=[RelevanceScore() for _ in messages],
                processing_time=(time.perf_counter() - started) * 1000,
                total_messages=len(messages),
                errors=[str(e)],
            )

        return RelevanceResult(
            scores=scores,
            processing_time=(time.perf_counter() - started) * 1000,
            total_messages=len(messages),
            cache_hit=tfidf.cache_hit,
            errors=message_errors,
        )

    async def re_rank_results(
        self, results: Sequence[Mapping[str, Any]], query: str
    ) -> list[Mapping[str, Any]]:
        """
        Return the same result objects sorted by composite score, best first.

        Ties keep their upstream order and the input list is not modified.
        Any failure returns the upstream order.
        """
        if not results:
            return list(results)

        try:
            now = str(time.time())
            messages = [
                {
                    "ts": result.get("timestamp") or result.get("ts") or now,
                    "text": result.get("text") or "",
                    "user": result.get("user") or "",
                    "reactions": result.get("reactions") or [],
                    "reply_count": result.get("reply_count") or 0,
                }
                for result in results
            ]
            relevance = self.calculate_relevance(messages, query)
            order = sorted(
                range(len(results)),
                key=lambda i: relevance.scores[i].composite_score,
                reverse=True,
            )
            return [results[i] for i in order]
        except Exception as e:
            logger.warning(f"Re-ranking failed, keeping original order: {e}")
            self._record_failure(e, "re_rank_results")
            return list(results)

    def _record_failure(self, exception: Exception, operation: str) -> None:
        self.error_collector.add_error(
            ScoringError(str(exception), context={"operation": operation}),
            context={"exception_type": type(exception).__name__},
        )

    @staticmethod
    def _validate_payload(payload: Any) -> tuple[list[Any], str]:
        """Extract ``(messages, query)`` from a service payload.

        Raises:
            ValidationError: If the payload is not an object with a message
                list and a string query
        """
        if not isinstance(payload, Mapping):
            raise ValidationError("Invalid arguments: object expected")

        messages = payload.get("messages")
        query = payload.get("query")
        if not isinstance(messages, list):
            raise ValidationError("Invalid messages: array expected", context={"field": "messages"})
        if not isinstance(query, str):
            raise ValidationError("Invalid query: string expected", context={"field": "query"})
        return messages, query

    def calculate_relevance_service(self, payload: Any) -> ServiceResult[dict[str, Any]]:
        """Validated wrapper returning a tagged result instead of raising."""
        try:
            messages, query = self._validate_payload(payload)
        except ValidationError as e:
            self.error_collector.add_error(e)
            return ServiceError(error=e.message, status=400)

        try:
            result = self.calculate_relevance(messages, query)
        except Exception as e:
            logger.error(f"Relevance service failed: {e}")
            self._record_failure(e, "calculate_relevance_service")
            return ServiceError(error=f"Failed to calculate relevance: {e}", status=500)

        return ServiceSuccess(
            data={
                "scores": [score.to_dict() for score in result.scores],
                "processing_time": result.processing_time,
                "total_messages": result.total_messages,
            }
        )

    def clear_cache(self) -> None:
        if self._tfidf_cache is not None:
            self._tfidf_cache.clear()
