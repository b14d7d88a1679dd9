"""
Error handling for the cache and relevance-ranking layer.

Two failure regimes coexist in this package. Construction-time
misconfiguration is loud: invalid limits or TTLs raise immediately and are
never clamped. Runtime trouble is quiet: a failed size calculation, an
unparseable query on a cache read, or a scoring failure degrades to "treat
as absent", is logged, and is recorded on the owning component's
:class:`ErrorCollector` rather than propagated.

Error Categories:
    - CONFIGURATION: Invalid cache or scorer configuration
    - PARSING: Search query syntax problems
    - VALIDATION: Malformed input to a service boundary
    - SCORING: Relevance computation failures
    - CACHE: Cache operation failures
    - MEMORY: Memory ceiling pressure

Classes:
    ErrorSeverity: How bad a failure is
    ErrorCategory: Which part of the system failed
    ErrorInfo: One recorded failure
    ErrorCollector: Bounded record of degraded-path failures
    SlackCacheError: Base exception class for this package

Example:
    >>> from slackcache.utils.error_handling import ErrorCollector, ScoringError
    >>> collector = ErrorCollector()
    >>> collector.add_error(ScoringError("index build failed"))
    >>> collector.get_summary()["by_category"]
    {'scoring': 1}
"""

from __future__ import annotations

import sys
import time
import traceback
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    CONFIGURATION = "configuration"
    PARSING = "parsing"
    VALIDATION = "validation"
    SCORING = "scoring"
    CACHE = "cache"
    MEMORY = "memory"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class SlackCacheError(Exception):
    """
    Base exception for cache and ranking errors.

    Subclasses fix ``category`` and ``severity`` so that an
    :class:`ErrorCollector` can classify them without inspecting messages.
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def __init__(
        self,
        message: str,
        suggestions: list[str] | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.suggestions: list[str] = list(suggestions or [])
        self.context: dict[str, Any] = dict(context or {})
        self.timestamp = time.time()


class ConfigurationError(SlackCacheError, ValueError):
    """An invalid cache or scorer setting; raised at construction time."""

    category = ErrorCategory.CONFIGURATION
    severity = ErrorSeverity.HIGH

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            suggestions=[
                "Use positive size limits",
                "Use non-negative TTL values",
                "Start from CacheServiceFactory.create_with_defaults()",
            ],
            context=context,
        )


class QueryParseError(SlackCacheError, ValueError):
    """A search query could not be parsed; ``code`` names the failure."""

    category = ErrorCategory.PARSING
    severity = ErrorSeverity.LOW

    def __init__(
        self,
        message: str,
        code: str = "PARSE_ERROR",
        suggestion: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            suggestions=[suggestion] if suggestion else None,
            context={"code": code, **(context or {})},
        )
        self.code = code


class QueryNormalizationError(QueryParseError):
    """Raised when a query cannot be normalized into a cacheable form."""


class ValidationError(SlackCacheError, ValueError):
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.LOW


class ScoringError(SlackCacheError):
    category = ErrorCategory.SCORING

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            message, suggestions=["Fall back to the upstream result order"], context=context
        )


@dataclass
class ErrorInfo:
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    exception_type: str | None = None
    traceback_str: str | None = None
    timestamp: float = field(default_factory=time.time)
    context: dict[str, Any] = field(default_factory=dict)
    suggestions: list[str] = field(default_factory=list)


def classify_exception(exception: BaseException) -> ErrorCategory:
    """Category for an exception that does not carry one itself."""
    if isinstance(exception, SlackCacheError):
        return exception.category
    if isinstance(exception, MemoryError):
        return ErrorCategory.MEMORY
    if isinstance(exception, TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(exception, (TypeError, ValueError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


class ErrorCollector:
    """
    Record of failures that were swallowed on a degraded path.

    At most ``max_errors`` :class:`ErrorInfo` objects are kept, but
    ``error_counts`` keeps counting past that limit. Suppressed categories are
    neither kept nor counted.
    """

    def __init__(self, max_errors: int = 100) -> None:
        self.max_errors = max_errors
        self.errors: list[ErrorInfo] = []
        self.error_counts: Counter[ErrorCategory] = Counter()
        self.suppressed_categories: set[ErrorCategory] = set()

    def add_error(
        self,
        exception: Exception,
        category: ErrorCategory | None = None,
        severity: ErrorSeverity | None = None,
        context: dict[str, Any] | None = None,
        suggestions: list[str] | None = None,
    ) -> None:
        if isinstance(exception, SlackCacheError):
            category = exception.category
            severity = exception.severity
            suggestions = exception.suggestions or suggestions
            context = {**exception.context, **(context or {})}
        else:
            category = category or classify_exception(exception)

        if category in self.suppressed_categories:
            return

        self.error_counts[category] += 1
        if len(self.errors) >= self.max_errors:
            return

        self.errors.append(
            ErrorInfo(
                category=category,
                severity=severity or ErrorSeverity.MEDIUM,
                message=str(exception),
                exception_type=type(exception).__name__,
                traceback_str=traceback.format_exc() if sys.exc_info()[0] else None,
                context=context or {},
                suggestions=list(suggestions or []),
            )
        )

    def suppress_category(self, category: ErrorCategory) -> None:
        self.suppressed_categories.add(category)

    def unsuppress_category(self, category: ErrorCategory) -> None:
        self.suppressed_categories.discard(category)

    def get_errors_by_category(self, category: ErrorCategory) -> list[ErrorInfo]:
        return [info for info in self.errors if info.category == category]

    def get_errors_by_severity(self, severity: ErrorSeverity) -> list[ErrorInfo]:
        return [info for info in self.errors if info.severity == severity]

    def has_critical_errors(self) -> bool:
        return any(info.severity == ErrorSeverity.CRITICAL for info in self.errors)

    def get_summary(self) -> dict[str, Any]:
        severities = Counter(info.severity for info in self.errors)
        return {
            "total_errors": len(self.errors),
            "by_category": {category.value: n for category, n in self.error_counts.items()},
            "by_severity": {severity.value: severities[severity] for severity in ErrorSeverity},
            "suppressed_categories": sorted(c.value for c in self.suppressed_categories),
            "has_critical": self.has_critical_errors(),
        }

    def clear(self) -> None:
        self.errors.clear()
        self.error_counts.clear()
