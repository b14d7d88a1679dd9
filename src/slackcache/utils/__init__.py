"""
Utility modules for slackcache.

This package contains the ambient support code shared by the cache and
search packages:
- Logging configuration
- Error classification and collection
- Performance monitoring
"""

from .error_handling import (
    ConfigurationError,
    ErrorCategory,
    ErrorCollector,
    ErrorInfo,
    ErrorSeverity,
    QueryNormalizationError,
    QueryParseError,
    ScoringError,
    SlackCacheError,
    ValidationError,
)
from .logging_config import (
    CacheLogger,
    LogFormat,
    LogLevel,
    configure_logging,
    disable_logging,
    enable_debug_logging,
    get_logger,
)
from .performance_monitoring import BenchmarkDataPoint, CachePerformanceMonitor, PerformanceReport

__all__ = [
    # Errors
    "SlackCacheError",
    "ConfigurationError",
    "QueryParseError",
    "QueryNormalizationError",
    "ValidationError",
    "ScoringError",
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorInfo",
    "ErrorCollector",
    # Logging
    "CacheLogger",
    "LogLevel",
    "LogFormat",
    "get_logger",
    "configure_logging",
    "disable_logging",
    "enable_debug_logging",
    # Performance
    "CachePerformanceMonitor",
    "BenchmarkDataPoint",
    "PerformanceReport",
]
