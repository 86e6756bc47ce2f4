"""Per-request phase accumulator.

PhaseAccumulator is a small ledger that sums time and call counts per named
sub-resource ("database", "cache", "view", ...) for a single request. Unlike a
span list it keeps only cumulative figures, which is what a completion record
reports.

Usage:
    acc = PhaseAccumulator()

    with acc.measure("database"):
        rows = cursor.fetchall()

    acc.record("cache", 0.8)
    acc.increment("cache_misses")

    acc.snapshot()  # {"database": PhaseStats(12.4, 1), "cache": PhaseStats(0.8, 1)}
"""

import math
import threading
from contextlib import contextmanager
from types import MappingProxyType
from typing import Generator, Mapping

from phase_timing.timing.clock import Clock, MonotonicClock, ns_to_ms
from phase_timing.timing.errors import InvalidDurationError
from phase_timing.timing.records import Phase, PhaseStats, phase_name


class PhaseAccumulator:
    """Cumulative per-phase timings for one in-flight request.

    Writes are serialised with a lock, so sub-tasks or worker threads fanned
    out by the request may record concurrently. The accumulator never relates
    phase sums to the request's wall-clock total: phases may overlap, and idle
    time is not attributed to any phase.

    Args:
        clock: Clock used by measure(). Defaults to MonotonicClock.
        strict: Whether hook-level helpers raise on invalid durations
            (record() itself always raises).
    """

    def __init__(self, clock: Clock | None = None, *, strict: bool = True) -> None:  # noqa: D107
        self.clock: Clock = clock or MonotonicClock()
        self.strict = strict
        self._lock = threading.Lock()
        self._durations: dict[str, float] = {}
        self._calls: dict[str, int] = {}
        self._counters: dict[str, int] = {}

    def reset(self) -> None:
        """Clear all phase entries and counters."""
        with self._lock:
            self._durations.clear()
            self._calls.clear()
            self._counters.clear()

    def record(self, phase: Phase | str, duration_ms: float) -> None:
        """Add one call of a phase.

        Args:
            phase: Phase name.
            duration_ms: Time spent in this call, in milliseconds.

        Raises:
            InvalidDurationError: If duration_ms is negative or NaN. The
                ledger is left untouched.
        """
        name = phase_name(phase)
        if math.isnan(duration_ms) or duration_ms < 0:
            raise InvalidDurationError(name, duration_ms)
        with self._lock:
            self._durations[name] = self._durations.get(name, 0.0) + duration_ms
            self._calls[name] = self._calls.get(name, 0) + 1

    def increment(self, counter: str, amount: int = 1) -> None:
        """Bump a named counter (e.g. cache_misses).

        Raises:
            ValueError: If amount is negative.
        """
        if amount < 0:
            raise ValueError(f"Counter {counter!r} cannot be decremented (amount={amount})")
        with self._lock:
            self._counters[counter] = self._counters.get(counter, 0) + amount

    def snapshot(self) -> Mapping[str, PhaseStats]:
        """Immutable copy of the ledger at call time."""
        with self._lock:
            return MappingProxyType(
                {name: PhaseStats(self._durations[name], self._calls[name]) for name in self._durations}
            )

    def counters(self) -> Mapping[str, int]:
        """Immutable copy of the counters at call time."""
        with self._lock:
            return MappingProxyType(dict(self._counters))

    def total_recorded(self) -> float:
        """Sum of all phase durations in milliseconds.

        Not the request's total time; that comes from the interceptor's
        start and end timestamps.
        """
        with self._lock:
            return sum(self._durations.values())

    def get(self, phase: Phase | str) -> PhaseStats | None:
        """Stats for one phase, or None if it was never recorded."""
        name = phase_name(phase)
        with self._lock:
            if name not in self._durations:
                return None
            return PhaseStats(self._durations[name], self._calls[name])

    @contextmanager
    def measure(self, phase: Phase | str, *, exclusive: bool = False) -> Generator[None, None, None]:
        """Time a block of code and record it as one call of a phase.

        The call is recorded even when the block raises.

        Args:
            phase: Phase name.
            exclusive: Subtract time recorded into the ledger by other calls
                while the block ran (e.g. database queries issued from a
                template). Only meaningful when those calls are sequential
                with the block; the result is clamped at zero.

        Yields:
            None. Timing is recorded on exit.
        """
        start_ns = self.clock.now()
        recorded_before = self.total_recorded() if exclusive else 0.0
        try:
            yield
        finally:
            elapsed_ms = ns_to_ms(self.clock.now() - start_ns)
            if exclusive:
                nested_ms = self.total_recorded() - recorded_before
                elapsed_ms = max(0.0, elapsed_ms - nested_ms)
            self.record(phase, elapsed_ms)

    def __repr__(self) -> str:  # noqa: D105
        with self._lock:
            phases = len(self._durations)
            total = round(sum(self._durations.values()), 2)
        return f"PhaseAccumulator(phases={phases}, total_recorded_ms={total})"
