"""
Search query normalization.

Two queries that differ only in term order, operator order, letter case or
spacing normalize to the same string and hash, so they share one cache
entry. Normalization also extracts channel, user and date filters and
classifies the query's complexity, which drives adaptive TTLs.

Classes:
    DateRange: Optional start and end extracted from ``after:``/``before:``
    SearchQuery: Immutable normalized query
    SearchQueryNormalizer: Normalizes, classifies and keys queries

Example:
    >>> from slackcache.search.normalizer import SearchQueryNormalizer
    >>> normalizer = SearchQueryNormalizer()
    >>> a = normalizer.normalize("World hello in:#ops")
    >>> b = normalizer.normalize("in:#ops  hello WORLD")
    >>> a.hash == b.hash
    True
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import orjson

from ..config import ComplexityThresholds
from ..utils.error_handling import QueryNormalizationError
from .query_parser import (
    ParsedOperator,
    ParsedSearchQuery,
    QueryParseFailure,
    SearchQueryOptions,
    parse_search_query,
)


class QueryComplexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"

    @property
    def score(self) -> int:
        return {"simple": 1, "moderate": 2, "complex": 3}[self.value]


# Option keys that describe a result rather than select it.
RESULT_METADATA_OPTION_KEYS = frozenset(
    ["total_count", "has_more", "search_time", "totalCount", "hasMore", "searchTime"]
)

COMPLEXITY_WEIGHTS = {
    "terms": 1,
    "phrases": 2,
    "operators": 3,
    "boolean_operators": 4,
    "groups": 5,
}
DATE_RANGE_WEIGHT = 5
MULTI_CHANNEL_WEIGHT = 3
MULTI_USER_WEIGHT = 3

_DATE_FORMATS = ("%Y/%m/%d", "%m/%d/%Y")


@dataclass(frozen=True)
class DateRange:
    start: datetime | None = None
    end: datetime | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
        }


@dataclass(frozen=True)
class SearchQuery:
    """A normalized search query.

    ``channels``, ``users`` and ``operators`` are derived from the sorted
    operator list, so operator order never changes them or the hash.
    """

    raw: str
    normalized: str
    hash: str
    complexity: QueryComplexity
    channels: tuple[str, ...] | None = None
    users: tuple[str, ...] | None = None
    date_range: DateRange | None = None
    operators: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw": self.raw,
            "normalized": self.normalized,
            "hash": self.hash,
            "complexity": self.complexity.value,
            "channels": list(self.channels) if self.channels else None,
            "users": list(self.users) if self.users else None,
            "date_range": self.date_range.to_dict() if self.date_range else None,
            "operators": list(self.operators),
        }


def _parse_date(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class SearchQueryNormalizer:
    """Normalizes raw queries into cache-friendly ``SearchQuery`` objects."""

    def __init__(
        self,
        thresholds: ComplexityThresholds | None = None,
        parse_options: SearchQueryOptions | None = None,
    ):
        self.thresholds = thresholds or ComplexityThresholds()
        self.parse_options = parse_options

    def normalize(self, query: str) -> SearchQuery:
        """
        Normalize a raw query.

        Raises:
            QueryNormalizationError: If the query cannot be parsed
        """
        if not isinstance(query, str):
            raise QueryNormalizationError(
                "Query normalization failed: query must be a string",
                code="EMPTY_QUERY",
            )

        result = parse_search_query(query.strip(), self.parse_options)
        if isinstance(result, QueryParseFailure):
            raise QueryNormalizationError(
                f"Query normalization failed: {result.error.message}",
                code=result.error.code,
                suggestion=result.error.suggestion,
                context={"query": query},
            )

        parsed = result.query
        sorted_operators = sorted(
            (
                ParsedOperator(type=op.type.lower(), value=op.value.lower(), field=op.field)
                for op in parsed.operators
            ),
            key=lambda op: (op.type, op.value),
        )

        normalized = self._build_normalized_string(parsed, sorted_operators)
        channels = self._extract_values(sorted_operators, "in", "#")
        users = self._extract_values(sorted_operators, "from", "@")
        date_range = self._extract_date_range(sorted_operators)
        operator_types = tuple(op.type for op in sorted_operators)

        complexity = self._classify(
            self._complexity_score(parsed, channels, users, date_range)
        )

        filters = {
            "channels": list(channels) if channels else None,
            "users": list(users) if users else None,
            "date_range": date_range.to_dict() if date_range else None,
            "operators": list(operator_types),
        }
        digest = _sha256(
            f"{normalized}:{orjson.dumps(filters, option=orjson.OPT_SORT_KEYS).decode()}"
        )

        return SearchQuery(
            raw=query.strip(),
            normalized=normalized,
            hash=digest,
            complexity=complexity,
            channels=channels,
            users=users,
            date_range=date_range,
            operators=operator_types,
        )

    def calculate_complexity(self, query: SearchQuery) -> QueryComplexity:
        """Classify a normalized query; unparseable raw text counts as simple."""
        result = parse_search_query(query.raw, self.parse_options)
        if isinstance(result, QueryParseFailure):
            return QueryComplexity.SIMPLE
        return self._classify(
            self._complexity_score(result.query, query.channels, query.users, query.date_range)
        )

    def generate_cache_key(
        self, query: SearchQuery, options: Mapping[str, Any] | None = None
    ) -> str:
        """
        Build ``search:<hash>:<complexity>[:<options hash>]``.

        Result metadata options never contribute to the key; an options
        mapping with nothing else left adds no suffix.
        """
        parts = [query.hash, query.complexity.value]

        key_options = {
            key: value
            for key, value in (options or {}).items()
            if key not in RESULT_METADATA_OPTION_KEYS
        }
        if key_options:
            encoded = orjson.dumps(
                key_options, option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS, default=str
            )
            parts.append(hashlib.sha256(encoded).hexdigest()[:8])

        return f"search:{':'.join(parts)}"

    # -- internals ---------------------------------------------------------

    @staticmethod
    def _build_normalized_string(
        parsed: ParsedSearchQuery, sorted_operators: list[ParsedOperator]
    ) -> str:
        parts: list[str] = sorted(term.lower() for term in parsed.terms)
        parts.extend(f'"{phrase}"' for phrase in sorted(p.lower() for p in parsed.phrases))
        parts.extend(f"{op.type}:{op.value}" for op in sorted_operators)

        groups = []
        for group in parsed.groups:
            joiner = f" {group.boolean_operator.lower()} " if group.boolean_operator else " "
            groups.append(f"({joiner.join(sorted(term.lower() for term in group.terms))})")
        parts.extend(sorted(groups))

        for boolean in sorted(parsed.boolean_operators, key=lambda b: b.position):
            parts.append(boolean.type.lower())

        return " ".join(parts).strip()

    @staticmethod
    def _extract_values(
        operators: list[ParsedOperator], operator_type: str, prefix: str
    ) -> tuple[str, ...] | None:
        values = tuple(
            op.value[1:] if op.value.startswith(prefix) else op.value
            for op in operators
            if op.type == operator_type
        )
        values = tuple(value for value in values if value)
        return values or None

    @staticmethod
    def _extract_date_range(operators: list[ParsedOperator]) -> DateRange | None:
        start = end = None
        for op in operators:
            if op.type not in ("after", "before"):
                continue
            parsed_date = _parse_date(op.value)
            if parsed_date is None:
                continue
            if op.type == "after":
                start = parsed_date
            else:
                end = parsed_date
        if start is None and end is None:
            return None
        return DateRange(start=start, end=end)

    @staticmethod
    def _complexity_score(
        parsed: ParsedSearchQuery,
        channels: tuple[str, ...] | None,
        users: tuple[str, ...] | None,
        date_range: DateRange | None,
    ) -> int:
        score = (
            len(parsed.terms) * COMPLEXITY_WEIGHTS["terms"]
            + len(parsed.phrases) * COMPLEXITY_WEIGHTS["phrases"]
            + len(parsed.operators) * COMPLEXITY_WEIGHTS["operators"]
            + len(parsed.boolean_operators) * COMPLEXITY_WEIGHTS["boolean_operators"]
            + len(parsed.groups) * COMPLEXITY_WEIGHTS["groups"]
        )
        if date_range is not None:
            score += DATE_RANGE_WEIGHT
        if channels and len(channels) > 1:
            score += MULTI_CHANNEL_WEIGHT
        if users and len(users) > 1:
            score += MULTI_USER_WEIGHT
        return score

    def _classify(self, score: int) -> QueryComplexity:
        if score <= self.thresholds.simple:
            return QueryComplexity.SIMPLE
        if score <= self.thresholds.moderate:
            return QueryComplexity.MODERATE
        return QueryComplexity.COMPLEX
