"""Performance monitoring utilities for the pricing calculator pipeline."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("cost-allocator.perf")


def timed_async(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for async functions.

    Usage::

        @timed_async
        async def load(...):
            ...
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                f"{func.__qualname__} finished",
                extra={"stage": func.__qualname__, "duration_ms": duration_ms},
            )
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory tracker for pricing-run metrics.

    Tracks:
    - Runs completed and failed
    - Cumulative and average run duration
    - Per-stage durations and error counts
    - Fallback counts by warning code (equal split, missing price, ...)
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._runs_completed: int = 0
        self._runs_failed: int = 0
        self._total_run_duration_ms: float = 0.0
        self._stage_durations: Dict[str, list] = {}   # stage -> [duration_ms, ...]
        self._stage_errors: Dict[str, int] = {}       # stage -> count
        self._fallbacks: Dict[str, int] = {}          # warning code -> count
        self._slowest_stage: Optional[str] = None
        self._slowest_stage_ms: float = 0.0

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_run_complete(self, duration_ms: float) -> None:
        """Call once when a pricing run returns a report."""
        with self._lock:
            self._runs_completed += 1
            self._total_run_duration_ms += duration_ms

    def record_run_failed(self) -> None:
        with self._lock:
            self._runs_failed += 1

    def record_stage_duration(self, stage: str, duration_ms: float) -> None:
        """Record how long a single pipeline stage took."""
        with self._lock:
            self._stage_durations.setdefault(stage, []).append(duration_ms)
            if duration_ms > self._slowest_stage_ms:
                self._slowest_stage_ms = duration_ms
                self._slowest_stage = stage

    def record_stage_error(self, stage: str) -> None:
        with self._lock:
            self._stage_errors[stage] = self._stage_errors.get(stage, 0) + 1

    def record_fallback(self, code: str, count: int = 1) -> None:
        with self._lock:
            self._fallbacks[code] = self._fallbacks.get(code, 0) + count

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            runs_completed          : int
            runs_failed             : int
            avg_run_duration_ms     : float  (0 if none completed)
            slowest_stage           : str | None
            slowest_stage_ms        : float
            stage_avg_durations_ms  : dict  {stage: avg_ms}
            error_count_by_stage    : dict  {stage: count}
            fallback_counts         : dict  {warning_code: count}
        """
        with self._lock:
            avg = (
                round(self._total_run_duration_ms / self._runs_completed, 2)
                if self._runs_completed > 0
                else 0.0
            )
            stage_avgs = {
                stage: round(sum(d) / len(d), 2) if d else 0.0
                for stage, d in self._stage_durations.items()
            }
            return {
                "runs_completed": self._runs_completed,
                "runs_failed": self._runs_failed,
                "avg_run_duration_ms": avg,
                "slowest_stage": self._slowest_stage,
                "slowest_stage_ms": round(self._slowest_stage_ms, 2),
                "stage_avg_durations_ms": stage_avgs,
                "error_count_by_stage": dict(self._stage_errors),
                "fallback_counts": dict(self._fallbacks),
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._runs_completed = 0
            self._runs_failed = 0
            self._total_run_duration_ms = 0.0
            self._stage_durations.clear()
            self._stage_errors.clear()
            self._fallbacks.clear()
            self._slowest_stage = None
            self._slowest_stage_ms = 0.0


# Module-level singleton: import this instance everywhere else.
tracker = PerformanceTracker()
