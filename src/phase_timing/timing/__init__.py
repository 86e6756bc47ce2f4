"""Phase timing primitives: clocks, the per-request accumulator and records."""

from phase_timing.timing.accumulator import PhaseAccumulator
from phase_timing.timing.clock import Clock, ManualClock, MonotonicClock, ns_to_ms
from phase_timing.timing.errors import (
    InterceptorStateError,
    InvalidDurationError,
    PhaseTimingError,
    ReportingError,
)
from phase_timing.timing.instrumentation import (
    bind_accumulator,
    current_accumulator,
    increment_counter,
    measure_phase,
    record_phase,
    timed,
)
from phase_timing.timing.records import CompletionRecord, Phase, PhaseStats, phase_name

__all__ = [
    "Clock",
    "MonotonicClock",
    "ManualClock",
    "ns_to_ms",
    "PhaseAccumulator",
    "Phase",
    "PhaseStats",
    "phase_name",
    "CompletionRecord",
    "PhaseTimingError",
    "InvalidDurationError",
    "InterceptorStateError",
    "ReportingError",
    "bind_accumulator",
    "current_accumulator",
    "record_phase",
    "increment_counter",
    "measure_phase",
    "timed",
]
