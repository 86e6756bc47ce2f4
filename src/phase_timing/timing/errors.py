"""Error hierarchy for phase timing.

Handler errors are never wrapped: whatever the request handler raises reaches
the caller as the same object. The classes here cover the library's own
failure modes.
"""

from typing import Any


class PhaseTimingError(Exception):
    """Base exception for all phase timing errors."""

    pass


class InvalidDurationError(PhaseTimingError, ValueError):
    """Raised when a phase duration is negative or not a number."""

    def __init__(self, phase: str, duration_ms: float) -> None:  # noqa: D107
        super().__init__(f"Invalid duration for phase {phase!r}: {duration_ms!r} ms")
        self.phase = phase
        self.duration_ms = duration_ms


class InterceptorStateError(PhaseTimingError, RuntimeError):
    """Raised when an interceptor is used outside its IDLE state."""

    pass


class ReportingError(PhaseTimingError):
    """Raised when a reporting sink fails to accept a completion record.

    The sink's own exception is chained as ``__cause__``.

    Attributes:
        record: The CompletionRecord the sink rejected, if one was built.
        sink: The sink that failed.
        outcome: The handler outcome, set when the error is raised in place of
            returning it.
    """

    def __init__(  # noqa: D107
        self,
        message: str,
        *,
        record: Any = None,
        sink: Any = None,
        outcome: Any = None,
    ) -> None:
        super().__init__(message)
        self.record = record
        self.sink = sink
        self.outcome = outcome
