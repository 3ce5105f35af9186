"""Per-core CPU utilization from cumulative tick counters."""

import threading
from collections.abc import Callable, Sequence

import psutil
from loguru import logger

from socpulse.errors import QueryError
from socpulse.models import CPUTicks

TickReader = Callable[[], Sequence[CPUTicks]]


def read_per_core_ticks() -> tuple[CPUTicks, ...]:
    """
    Read cumulative user/system/idle/nice ticks for every logical core.

    Raises:
        QueryError: if the OS query fails.
    """
    try:
        times = psutil.cpu_times(percpu=True)
    except (OSError, psutil.Error) as e:
        raise QueryError(f"per-core tick query failed: {e}") from e
    return tuple(
        CPUTicks(user=t.user, system=t.system, idle=t.idle, nice=getattr(t, "nice", 0.0))
        for t in times
    )


def core_percent(previous: CPUTicks, current: CPUTicks) -> float:
    """Busy percentage of one core between two tick snapshots, clamped to [0, 100]."""
    active = (
        (current.user - previous.user)
        + (current.system - previous.system)
        + (current.nice - previous.nice)
    )
    total = active + (current.idle - previous.idle)
    if total <= 0:
        return 0.0
    return min(100.0, max(0.0, 100.0 * active / total))


class CPUUtilizationEstimator:
    """
    Stateful estimator turning successive tick snapshots into percentages.

    The first call (and any call after the core count changes) only records
    a baseline and returns zeros. Calls are serialized with a lock so the
    exporter tick and the dashboard can share one instance.
    """

    def __init__(self, read_ticks: TickReader = read_per_core_ticks) -> None:
        """
        Initialize the estimator.

        Args:
            read_ticks: Callable returning the current per-core ticks.
                Must raise QueryError on failure.
        """
        self._read_ticks = read_ticks
        self._lock = threading.Lock()
        self._last: tuple[CPUTicks, ...] | None = None

    @property
    def warmed_up(self) -> bool:
        return self._last is not None

    def get_utilization(self) -> list[float]:
        """
        Return per-core utilization since the previous call.

        Raises:
            QueryError: if the tick query fails; the stored baseline is kept.
        """
        with self._lock:
            current = tuple(self._read_ticks())
            previous = self._last
            self._last = current

            if previous is None:
                return [0.0] * len(current)
            if len(previous) != len(current):
                logger.info(f"core count changed {len(previous)} -> {len(current)}, re-baselining")
                return [0.0] * len(current)

            return [core_percent(p, c) for p, c in zip(previous, current)]

    def reset(self) -> None:
        """Drop the baseline so the next call warms up again."""
        with self._lock:
            self._last = None


def total_usage(percentages: Sequence[float]) -> float:
    """Average utilization across all cores."""
    if not percentages:
        return 0.0
    return sum(percentages) / len(percentages)
