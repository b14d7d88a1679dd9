"""
Logging for the cache and ranking layer.

All slackcache modules log through one shared :class:`CacheLogger`. Keyword
arguments passed to the log methods travel as ``extra`` fields on the record,
so the JSON and structured formats can emit them as separate fields
(``cache_name=channels cache_key=C123``) instead of burying them in text.

Classes:
    LogLevel: Accepted log levels
    LogFormat: Output formats for handlers
    CacheLogger: Logger wrapper with cache-specific helpers
    JsonFormatter: One JSON object per line
    StructuredFormatter: Human-readable line followed by ``key=value`` fields

Example:
    >>> from slackcache.utils.logging_config import LogFormat, configure_logging
    >>> logger = configure_logging(format_type=LogFormat.STRUCTURED)
    >>> logger.info("Cache service ready", caches=5)
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
import time
from enum import Enum
from pathlib import Path
from typing import Any

import orjson


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def number(self) -> int:
        return int(getattr(logging, self.value))


class LogFormat(str, Enum):
    SIMPLE = "simple"
    DETAILED = "detailed"
    JSON = "json"
    STRUCTURED = "structured"


_PLAIN_FORMATS = {
    LogFormat.SIMPLE: "%(levelname)s: %(message)s",
    LogFormat.DETAILED: "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s",
}

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_STANDARD_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


def record_extras(record: logging.LogRecord) -> dict[str, Any]:
    """Fields attached to ``record`` through ``extra``."""
    return {
        key: value for key, value in record.__dict__.items() if key not in _STANDARD_RECORD_ATTRS
    }


class JsonFormatter(logging.Formatter):
    """Serialize each record, extras included, as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": time.time(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        payload.update(record_extras(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return orjson.dumps(payload, default=str).decode()


class StructuredFormatter(logging.Formatter):
    """``<time> [LEVEL] logger: message | key=value ...``"""

    def format(self, record: logging.LogRecord) -> str:
        line = (
            f"{self.formatTime(record, self.datefmt)} [{record.levelname}] "
            f"{record.name}: {record.getMessage()}"
        )
        extras = record_extras(record)
        if extras:
            line += " | " + " ".join(f"{key}={value}" for key, value in extras.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _make_formatter(format_type: LogFormat) -> logging.Formatter:
    if format_type == LogFormat.JSON:
        return JsonFormatter()
    if format_type == LogFormat.STRUCTURED:
        return StructuredFormatter()
    return logging.Formatter(_PLAIN_FORMATS[format_type])


class CacheLogger:
    """
    Wrapper around a stdlib logger with cache and ranking helpers.

    Creating a CacheLogger for a name replaces any handlers previously
    installed on that logger, so re-configuration never duplicates output.

    Args:
        name: Name of the underlying ``logging`` logger
        level: Minimum level for the logger and its handlers
        format_type: Formatter used by every handler
        log_file: Target of the rotating file handler
        max_file_size: Bytes before the log file is rotated
        backup_count: Rotated files to keep
        enable_console: Attach a stderr handler
        enable_file: Attach the file handler (requires ``log_file``)
    """

    def __init__(
        self,
        name: str = "slackcache",
        level: LogLevel = LogLevel.INFO,
        format_type: LogFormat = LogFormat.SIMPLE,
        log_file: Path | None = None,
        max_file_size: int = 10 * 1024 * 1024,
        backup_count: int = 5,
        enable_console: bool = True,
        enable_file: bool = False,
    ):
        self.name = name
        self.level = level
        self.format_type = format_type
        self.log_file = log_file
        self.max_file_size = max_file_size
        self.backup_count = backup_count
        self.enable_console = enable_console
        self.enable_file = enable_file

        self.logger = logging.getLogger(name)
        self.logger.handlers.clear()
        for handler in self._build_handlers():
            handler.setFormatter(_make_formatter(format_type))
            self.logger.addHandler(handler)
        self.set_level(level)

    def _build_handlers(self) -> list[logging.Handler]:
        handlers: list[logging.Handler] = []
        if self.enable_console:
            handlers.append(logging.StreamHandler(sys.stderr))
        if self.enable_file and self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(
                logging.handlers.RotatingFileHandler(
                    self.log_file,
                    maxBytes=self.max_file_size,
                    backupCount=self.backup_count,
                    encoding="utf-8",
                )
            )
        return handlers

    def set_level(self, level: LogLevel) -> None:
        """Apply ``level`` to the logger and all of its handlers."""
        self.level = level
        self.logger.setLevel(level.number)
        for handler in self.logger.handlers:
            handler.setLevel(level.number)

    def _log(self, level: int, message: str, fields: dict[str, Any], **options: Any) -> None:
        self.logger.log(level, message, extra=fields, stacklevel=3, **options)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, fields)

    def critical(self, message: str, **fields: Any) -> None:
        self._log(logging.CRITICAL, message, fields)

    def exception(self, message: str, **fields: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, message, fields, exc_info=True)

    # -- cache and ranking events -------------------------------------------

    def log_cache_eviction(self, cache_name: str, key: Any, reason: str, **fields: Any) -> None:
        self.debug(
            f"{cache_name} cache disposed: {key} ({reason})",
            operation="cache_dispose",
            cache_name=cache_name,
            cache_key=str(key),
            reason=reason,
            **fields,
        )

    def log_invalidation(self, scope: str, target: str, count: int, **fields: Any) -> None:
        self.debug(
            f"Invalidated {count} cache entries for {scope} {target}",
            operation="cache_invalidate",
            scope=scope,
            target=target,
            invalidated=count,
            **fields,
        )

    def log_ranking_complete(
        self, context: str, result_count: int, elapsed_ms: float, **fields: Any
    ) -> None:
        self.debug(
            f"Relevance scoring completed for {context}: "
            f"results={result_count}, time={elapsed_ms:.2f}ms",
            operation="ranking_complete",
            context=context,
            result_count=result_count,
            elapsed_ms=elapsed_ms,
            **fields,
        )


_global_logger: CacheLogger | None = None


def get_logger() -> CacheLogger:
    """Shared logger used by every slackcache module."""
    global _global_logger
    if _global_logger is None:
        _global_logger = CacheLogger()
    return _global_logger


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    format_type: LogFormat = LogFormat.SIMPLE,
    log_file: Path | None = None,
    enable_console: bool = True,
    enable_file: bool = False,
    **kwargs: Any,
) -> CacheLogger:
    """Replace the shared logger with a newly configured one."""
    global _global_logger
    _global_logger = CacheLogger(
        level=level,
        format_type=format_type,
        log_file=log_file,
        enable_console=enable_console,
        enable_file=enable_file,
        **kwargs,
    )
    return _global_logger


def disable_logging() -> None:
    get_logger().logger.setLevel(logging.CRITICAL + 1)


def enable_debug_logging() -> None:
    get_logger().set_level(LogLevel.DEBUG)
