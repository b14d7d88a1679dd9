"""
Performance monitoring for cache operations.

This module records benchmark timings for cache and ranking operations and
samples the process memory footprint so that slow paths and memory growth
can be spotted from a single report.

Classes:
    BenchmarkDataPoint: One completed timing measurement
    PerformanceReport: Aggregated view over a recent time window
    CachePerformanceMonitor: Benchmark timer and memory sampler

Example:
    >>> from slackcache.utils.performance_monitoring import CachePerformanceMonitor
    >>> monitor = CachePerformanceMonitor()
    >>> benchmark_id = monitor.start_benchmark("search_get")
    >>> elapsed_ms = monitor.end_benchmark(benchmark_id)
    >>> report = monitor.get_performance_report()
"""

from __future__ import annotations

import random
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

import psutil

from .logging_config import get_logger

logger = get_logger()


@dataclass
class BenchmarkDataPoint:
    """A completed benchmark measurement."""

    operation: str
    duration_ms: float
    timestamp: float = field(default_factory=time.time)
    memory_bytes: int = 0


@dataclass
class PerformanceReport:
    """Benchmark statistics for a recent window."""

    window_seconds: float
    total_operations: int
    average_duration_ms: float
    max_duration_ms: float
    min_duration_ms: float
    operations_by_type: dict[str, int] = field(default_factory=dict)
    memory_usage_bytes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "window_seconds": self.window_seconds,
            "total_operations": self.total_operations,
            "average_duration_ms": self.average_duration_ms,
            "max_duration_ms": self.max_duration_ms,
            "min_duration_ms": self.min_duration_ms,
            "operations_by_type": dict(self.operations_by_type),
            "memory_usage_bytes": self.memory_usage_bytes,
        }


class CachePerformanceMonitor:
    """
    Benchmark timer and memory sampler for cache operations.

    Benchmarks are started with a label and finished with the returned id.
    Completed measurements are retained up to ``max_data_points``; the
    oldest are dropped first.
    """

    def __init__(self, max_data_points: int = 1000, report_window: float = 300.0):
        self.max_data_points = max_data_points
        self.report_window = report_window
        self._active: dict[str, tuple[str, float]] = {}
        self._data_points: deque[BenchmarkDataPoint] = deque(maxlen=max_data_points)
        self._process = psutil.Process()

    def start_benchmark(self, operation: str) -> str:
        """Start timing an operation and return its benchmark id."""
        started = time.perf_counter()
        benchmark_id = f"{operation}-{int(time.time() * 1000)}-{random.randrange(16**6):06x}"
        self._active[benchmark_id] = (operation, started)
        return benchmark_id

    def end_benchmark(self, benchmark_id: str) -> float:
        """
        Finish a benchmark and return its duration in milliseconds.

        Raises:
            KeyError: If the id was never started or already finished
        """
        if benchmark_id not in self._active:
            raise KeyError(f"Benchmark {benchmark_id} not found")

        operation, started = self._active.pop(benchmark_id)
        duration_ms = (time.perf_counter() - started) * 1000

        self._data_points.append(
            BenchmarkDataPoint(
                operation=operation,
                duration_ms=duration_ms,
                memory_bytes=self.get_memory_usage(),
            )
        )
        return duration_ms

    def get_memory_usage(self) -> int:
        """Resident set size of the current process in bytes."""
        try:
            return int(self._process.memory_info().rss)
        except (psutil.Error, OSError) as e:
            logger.debug(f"Failed to read process memory: {e}")
            return 0

    @property
    def active_benchmarks(self) -> int:
        return len(self._active)

    def get_data_points(self) -> list[BenchmarkDataPoint]:
        return list(self._data_points)

    def get_performance_report(self) -> PerformanceReport:
        """Aggregate benchmarks completed within the report window."""
        cutoff = time.time() - self.report_window
        recent = [point for point in self._data_points if point.timestamp >= cutoff]

        operations_by_type: dict[str, int] = {}
        for point in recent:
            operations_by_type[point.operation] = operations_by_type.get(point.operation, 0) + 1

        durations = [point.duration_ms for point in recent]

        return PerformanceReport(
            window_seconds=self.report_window,
            total_operations=len(recent),
            average_duration_ms=sum(durations) / len(durations) if durations else 0.0,
            max_duration_ms=max(durations) if durations else 0.0,
            min_duration_ms=min(durations) if durations else 0.0,
            operations_by_type=operations_by_type,
            memory_usage_bytes=self.get_memory_usage(),
        )

    def reset(self) -> None:
        self._active.clear()
        self._data_points.clear()
