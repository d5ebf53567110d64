"""Tests for the performance monitor."""

from __future__ import annotations

import logging
import time
import tracemalloc

import pytest

from schoolcache.services.performance import PerformanceMonitor
from schoolcache.shared.errors import ErrorCode


class TestPerformanceMonitor:
    """Test timers and threshold warnings."""

    def test_end_without_start_returns_none(self):
        assert PerformanceMonitor().end("never_started") is None

    def test_measure_returns_result_and_stats(self):
        result, stats = PerformanceMonitor().measure("sum", lambda: sum(range(100)))

        assert result == 4950
        assert stats.name == "sum"
        assert stats.duration >= 0

    def test_memory_is_zero_without_tracing(self):
        if tracemalloc.is_tracing():
            tracemalloc.stop()

        _, stats = PerformanceMonitor().measure("alloc", lambda: [0] * 10_000)

        assert stats.memory_used == 0

    def test_memory_measured_while_tracing(self):
        tracemalloc.start()
        try:
            monitor = PerformanceMonitor()
            monitor.start("alloc")
            kept = [bytes(1024) for _ in range(200)]
            stats = monitor.end("alloc")
        finally:
            tracemalloc.stop()

        assert len(kept) == 200
        assert stats.memory_used > 100 * 1024

    def test_slow_operation_logged(self, caplog):
        monitor = PerformanceMonitor(time_threshold=0.0)

        with caplog.at_level(logging.WARNING, logger="schoolcache"):
            monitor.measure("report_card_batch", lambda: time.sleep(0.005))

        assert any(
            getattr(record, "error_code", None) == ErrorCode.SLOW_OPERATION.name
            and record.operation == "report_card_batch"
            for record in caplog.records
        )

    def test_fast_operation_not_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="schoolcache"):
            PerformanceMonitor().measure("tiny", lambda: None)

        assert caplog.records == []

    def test_timer_is_consumed(self):
        monitor = PerformanceMonitor()
        monitor.start("op")

        assert monitor.end("op") is not None
        assert monitor.end("op") is None

    def test_measure_survives_nested_timer_with_same_name(self):
        monitor = PerformanceMonitor()

        def nested():
            monitor.start("attendance_import")
            monitor.end("attendance_import")
            return "done"

        result, stats = monitor.measure("attendance_import", nested)

        assert result == "done"
        assert stats.name == "attendance_import"
        assert monitor.end("attendance_import") is None

    def test_measure_logs_even_when_fn_raises(self, caplog):
        monitor = PerformanceMonitor(time_threshold=0.0)

        def failing():
            time.sleep(0.005)
            raise ValueError("bad row")

        with caplog.at_level(logging.WARNING, logger="schoolcache"):
            with pytest.raises(ValueError, match="bad row"):
                monitor.measure("fee_import", failing)

        assert caplog.records[0].operation == "fee_import"
