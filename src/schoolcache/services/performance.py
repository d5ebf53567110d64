"""Timing and memory measurements for named operations."""

from __future__ import annotations

import logging
import time
import tracemalloc
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from schoolcache.shared.constants import Performance
from schoolcache.shared.logging import log_slow_operation

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class OperationStats:
    """Measurement of one finished operation."""

    name: str
    duration: float
    memory_used: int


class PerformanceMonitor:
    """Measures how long operations take and how much memory they allocate.

    Memory deltas come from ``tracemalloc`` and are 0 unless tracing has
    been started by the caller.
    """

    def __init__(
        self,
        time_threshold: float = Performance.TIME_THRESHOLD,
        memory_threshold: int = Performance.MEMORY_THRESHOLD,
    ) -> None:
        self.time_threshold = time_threshold
        self.memory_threshold = memory_threshold
        self._timers: dict[str, tuple[float, int]] = {}

    @staticmethod
    def _current_memory() -> int:
        if not tracemalloc.is_tracing():
            return 0
        current, _peak = tracemalloc.get_traced_memory()
        return current

    def start(self, name: str) -> None:
        self._timers[name] = (time.perf_counter(), self._current_memory())

    def end(self, name: str) -> OperationStats | None:
        """Finish ``name`` and log it if it crossed a threshold.

        Returns:
            The measurement, or None if ``name`` was never started.
        """
        started = self._timers.pop(name, None)
        if started is None:
            logger.debug("No timer running for operation '%s'", name)
            return None
        return self._finish(name, started)

    def _finish(self, name: str, started: tuple[float, int]) -> OperationStats:
        start_time, start_memory = started
        stats = OperationStats(
            name=name,
            duration=time.perf_counter() - start_time,
            memory_used=self._current_memory() - start_memory,
        )

        if stats.duration > self.time_threshold:
            log_slow_operation(
                logger=logger,
                operation=name,
                duration_ms=stats.duration * 1000,
                threshold_ms=self.time_threshold * 1000,
                context={"memory_used": stats.memory_used},
            )
        if stats.memory_used > self.memory_threshold:
            logger.warning(
                "Operation '%s' allocated %.2f MB",
                name,
                stats.memory_used / 1024 / 1024,
                extra={"operation": name, "context": {"memory_used": stats.memory_used}},
            )

        return stats

    def measure(self, name: str, fn: Callable[[], T]) -> tuple[T, OperationStats]:
        """Run ``fn`` under ``name`` and return its result with the measurement.

        The measurement is independent of ``start``/``end`` timers, so ``fn``
        may itself start and end an operation with the same name.
        """
        started = (time.perf_counter(), self._current_memory())
        try:
            result = fn()
        finally:
            stats = self._finish(name, started)
        return result, stats
