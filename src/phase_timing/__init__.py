"""Phase-attributed request timing.

Splits each request's latency into named phases (database, cache, view, ...)
and emits exactly one completion record per request, even when the handler
raises.
"""

from phase_timing.intercept import (
    InterceptorState,
    PhaseTimingMiddleware,
    RequestInterceptor,
    TimingService,
)
from phase_timing.reporting import CollectingSink, ElasticsearchSink, LogSink, ReportingSink
from phase_timing.timing import (
    CompletionRecord,
    InterceptorStateError,
    InvalidDurationError,
    ManualClock,
    MonotonicClock,
    Phase,
    PhaseAccumulator,
    PhaseStats,
    PhaseTimingError,
    ReportingError,
    current_accumulator,
    increment_counter,
    measure_phase,
    record_phase,
    timed,
)

__version__ = "0.1.0"

__all__ = [
    "CompletionRecord",
    "Phase",
    "PhaseStats",
    "PhaseAccumulator",
    "MonotonicClock",
    "ManualClock",
    "RequestInterceptor",
    "InterceptorState",
    "TimingService",
    "PhaseTimingMiddleware",
    "ReportingSink",
    "LogSink",
    "CollectingSink",
    "ElasticsearchSink",
    "PhaseTimingError",
    "InvalidDurationError",
    "InterceptorStateError",
    "ReportingError",
    "current_accumulator",
    "record_phase",
    "increment_counter",
    "measure_phase",
    "timed",
]
