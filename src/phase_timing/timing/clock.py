"""Monotonic clock sources.

Durations are measured on monotonic nanosecond counters so NTP corrections
and DST changes never produce negative or inflated timings.
"""

import threading
import time
from typing import Protocol


class Clock(Protocol):
    """Source of monotonic timestamps in nanoseconds."""

    def now(self) -> int:
        """Return a monotonically non-decreasing timestamp."""
        ...


class MonotonicClock:
    """Clock backed by time.monotonic_ns()."""

    def now(self) -> int:  # noqa: D102
        return time.monotonic_ns()

    def __repr__(self) -> str:  # noqa: D105
        return "MonotonicClock()"


class ManualClock:
    """Deterministic clock that only moves when told to.

    Args:
        start_ns: Initial reading.
    """

    def __init__(self, start_ns: int = 0) -> None:  # noqa: D107
        self._now_ns = start_ns
        self._lock = threading.Lock()

    def now(self) -> int:  # noqa: D102
        with self._lock:
            return self._now_ns

    def advance(self, ms: float) -> int:
        """Move the clock forward.

        Args:
            ms: Milliseconds to advance by.

        Returns:
            The new reading in nanoseconds.

        Raises:
            ValueError: If ms is negative.
        """
        if ms < 0:
            raise ValueError(f"ManualClock cannot move backwards (advance by {ms} ms)")
        with self._lock:
            self._now_ns += int(round(ms * 1_000_000))
            return self._now_ns

    def __repr__(self) -> str:  # noqa: D105
        return f"ManualClock(now_ns={self._now_ns})"


def ns_to_ms(delta_ns: int) -> float:
    """Convert a nanosecond delta to milliseconds."""
    return delta_ns / 1_000_000
