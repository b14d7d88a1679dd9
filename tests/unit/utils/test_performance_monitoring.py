"""Tests for slackcache.utils.performance_monitoring module."""

from __future__ import annotations

import time

import pytest

from slackcache.utils.performance_monitoring import CachePerformanceMonitor


class TestBenchmarks:
    """Tests for benchmark timing."""

    def test_benchmark_id_contains_operation(self):
        monitor = CachePerformanceMonitor()
        benchmark_id = monitor.start_benchmark("search_get")
        assert benchmark_id.startswith("search_get-")
        assert monitor.active_benchmarks == 1

    def test_unique_ids(self):
        monitor = CachePerformanceMonitor()
        ids = {monitor.start_benchmark("op") for _ in range(50)}
        assert len(ids) == 50

    def test_end_returns_milliseconds(self):
        monitor = CachePerformanceMonitor()
        benchmark_id = monitor.start_benchmark("sleep")
        time.sleep(0.01)
        elapsed = monitor.end_benchmark(benchmark_id)

        assert elapsed >= 10.0
        assert monitor.active_benchmarks == 0
        assert monitor.get_data_points()[0].operation == "sleep"

    def test_unknown_id_raises(self):
        monitor = CachePerformanceMonitor()
        with pytest.raises(KeyError):
            monitor.end_benchmark("missing")

    def test_end_twice_raises(self):
        monitor = CachePerformanceMonitor()
        benchmark_id = monitor.start_benchmark("op")
        monitor.end_benchmark(benchmark_id)
        with pytest.raises(KeyError):
            monitor.end_benchmark(benchmark_id)

    def test_data_points_bounded(self):
        monitor = CachePerformanceMonitor(max_data_points=3)
        for _ in range(5):
            monitor.end_benchmark(monitor.start_benchmark("op"))
        assert len(monitor.get_data_points()) == 3


class TestReport:
    """Tests for memory sampling and reporting."""

    def test_memory_usage_positive(self):
        assert CachePerformanceMonitor().get_memory_usage() > 0

    def test_report(self):
        monitor = CachePerformanceMonitor()
        for operation in ("get", "get", "set"):
            monitor.end_benchmark(monitor.start_benchmark(operation))

        report = monitor.get_performance_report()
        assert report.total_operations == 3
        assert report.operations_by_type == {"get": 2, "set": 1}
        assert report.min_duration_ms <= report.average_duration_ms <= report.max_duration_ms
        assert report.to_dict()["memory_usage_bytes"] > 0

    def test_empty_report(self):
        report = CachePerformanceMonitor().get_performance_report()
        assert report.total_operations == 0
        assert report.average_duration_ms == 0.0

    def test_reset(self):
        monitor = CachePerformanceMonitor()
        monitor.start_benchmark("pending")
        monitor.end_benchmark(monitor.start_benchmark("done"))
        monitor.reset()
        assert monitor.active_benchmarks == 0
        assert monitor.get_data_points() == []
