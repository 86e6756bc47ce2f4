"""Request interceptor.

RequestInterceptor wraps one unit of work (one inbound request) and
guarantees that exactly one CompletionRecord is built and handed to the
reporting sinks, whether the handler returns, raises, or is cancelled. The
handler's result is returned unchanged and its error is re-raised unchanged;
the interceptor only observes.

Usage:
    interceptor = RequestInterceptor([LogSink()])

    def handler(ctx):
        with measure_phase("database"):
            user = load_user(ctx["user_id"])
        return render(user), 200

    body, status = interceptor.intercept({"method": "GET", "path": "/me"}, handler)
    interceptor.record.phases  # {"database": PhaseStats(3.2, 1)}

Interceptors are single-use: create one per request (TimingService does this).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from phase_timing.config import TimingConfig, get_settings
from phase_timing.intercept.fields import RequestFields, extract_request_fields
from phase_timing.reporting.sinks import ReportingSink
from phase_timing.telemetry import (
    REPORTING_FAILED,
    REQUEST_FINALIZE_FAILED,
    REQUEST_STARTED,
    get_logger,
)
from phase_timing.timing.accumulator import PhaseAccumulator
from phase_timing.timing.clock import Clock, MonotonicClock, ns_to_ms
from phase_timing.timing.errors import InterceptorStateError, ReportingError
from phase_timing.timing.instrumentation import bind_accumulator
from phase_timing.timing.records import CompletionRecord

log = get_logger(__name__)

Handler = Callable[[Any], Any]
AsyncHandler = Callable[[Any], Awaitable[Any]]


class InterceptorState(str, Enum):
    """Lifecycle of one interceptor: IDLE -> IN_PROGRESS -> COMPLETED | FAILED."""

    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def status_from_outcome(outcome: Any, default: int) -> int:
    """Read the status of a handler outcome.

    Accepted shapes, in order: a ``(result, status)`` pair, an object with a
    ``status_code`` attribute (ASGI/WSGI responses), an object with a
    ``status`` attribute. Anything else gets the default.
    """
    if isinstance(outcome, tuple) and len(outcome) == 2:
        status = outcome[1]
    else:
        status = getattr(outcome, "status_code", None)
        if status is None:
            status = getattr(outcome, "status", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return int(status)
    return default


def status_for_exception(error: BaseException, config: TimingConfig) -> int:
    """Synthetic status for a handler error.

    Exception class names in ``config.exception_statuses`` are matched along
    the error's MRO, most specific first; otherwise ``config.failure_status``.
    """
    for cls in type(error).__mro__:
        status = config.exception_statuses.get(cls.__name__)
        if status is not None:
            return status
    return config.failure_status


def error_type_name(error: BaseException) -> str:
    """Qualified class name of an error ("TimeoutError", "myapp.errors.Gone")."""
    cls = type(error)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


class RequestInterceptor:
    """Bounds exactly one request's lifecycle and emits its completion record.

    Args:
        sinks: Reporting sinks that receive the record.
        config: Timing configuration; defaults to the settings singleton.
        clock: Clock for the request total and measure() calls.

    Attributes:
        state: Current InterceptorState.
        accumulator: This request's PhaseAccumulator.
        record: The emitted CompletionRecord, once finalized.
        reporting_errors: Sink failures for the emitted record.
    """

    def __init__(  # noqa: D107
        self,
        sinks: Iterable[ReportingSink] = (),
        *,
        config: TimingConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config if config is not None else get_settings()
        self.clock: Clock = clock if clock is not None else MonotonicClock()
        self.sinks = list(sinks)
        self.state = InterceptorState.IDLE
        self.accumulator = PhaseAccumulator(self.clock, strict=self.config.is_strict())
        self.record: CompletionRecord | None = None
        self.reporting_errors: list[ReportingError] = []
        self._fields: RequestFields | None = None
        self._annotations: dict[str, Any] = {}
        self._start_ns = 0
        self._started_at = datetime.now(timezone.utc)

    @property
    def request_id(self) -> str | None:
        """Trace id of the intercepted request, once started."""
        return self._fields.trace.trace_id if self._fields else None

    def annotate(self, **annotations: Any) -> None:
        """Attach custom annotations to the completion record.

        Raises:
            InterceptorStateError: Outside IN_PROGRESS.
        """
        if self.state is not InterceptorState.IN_PROGRESS:
            raise InterceptorStateError(
                f"annotate() needs an in-progress request, interceptor is {self.state.value}"
            )
        self._annotations.update(annotations)

    def intercept(self, context: Any, handler: Handler) -> Any:
        """Run a synchronous handler inside a timed request scope.

        Args:
            context: Request context passed through to the handler.
            handler: Callable returning ``(result, status)`` or a response object.

        Returns:
            The handler's outcome, unchanged.

        Raises:
            InterceptorStateError: If this interceptor was already used.
            ReportingError: Only if ``config.raise_on_report_failure`` is set,
                the handler succeeded and a sink failed; ``.outcome`` holds
                the handler's outcome.
        """
        self._begin(context)
        try:
            with bind_accumulator(self.accumulator):
                outcome = handler(context)
            status = status_from_outcome(outcome, self.config.success_status)
        except BaseException as e:
            self._finish(InterceptorState.FAILED, status_for_exception(e, self.config), e)
            raise
        self._finish(InterceptorState.COMPLETED, status, None, outcome)
        return outcome

    async def intercept_async(self, context: Any, handler: AsyncHandler) -> Any:
        """Await a coroutine handler inside a timed request scope.

        Cancellation of the awaiting task is recorded as a failure and the
        CancelledError propagates. See intercept() for the rest.
        """
        self._begin(context)
        try:
            with bind_accumulator(self.accumulator):
                outcome = await handler(context)
            status = status_from_outcome(outcome, self.config.success_status)
        except BaseException as e:
            self._finish(InterceptorState.FAILED, status_for_exception(e, self.config), e)
            raise
        self._finish(InterceptorState.COMPLETED, status, None, outcome)
        return outcome

    def _begin(self, context: Any) -> None:
        if self.state is not InterceptorState.IDLE:
            raise InterceptorStateError(
                f"Interceptor is {self.state.value}; create one interceptor per request"
            )
        self._fields = extract_request_fields(context, self.config)
        self.state = InterceptorState.IN_PROGRESS
        self._started_at = datetime.now(timezone.utc)
        self._start_ns = self.clock.now()
        self.accumulator.reset()
        log.debug(
            REQUEST_STARTED,
            request_id=self._fields.trace.trace_id,
            label=self._fields.label,
            annotations=self._fields.annotations,
        )

    def _finish(
        self,
        state: InterceptorState,
        status: int,
        error: BaseException | None,
        outcome: Any = None,
    ) -> None:
        fields = self._fields
        if fields is None:
            raise InterceptorStateError("Interceptor finished before it started")
        error_type = error_type_name(error) if error is not None else None
        total_ms = 0.0
        try:
            total_ms = ns_to_ms(self.clock.now() - self._start_ns)
            record = CompletionRecord(
                request_id=fields.trace.trace_id,
                label=fields.label,
                status=status,
                total_ms=total_ms,
                phases=self.accumulator.snapshot(),
                counters=self.accumulator.counters(),
                annotations={**fields.annotations, **self._annotations},
                error_type=error_type,
                started_at=self._started_at,
            )
        except Exception as e:
            self.state = state
            log.error(
                REQUEST_FINALIZE_FAILED,
                request_id=fields.trace.trace_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            # Emit what is known; a handler error still takes precedence
            self.record = CompletionRecord(
                request_id=fields.trace.trace_id,
                label=fields.label,
                status=status,
                total_ms=total_ms if total_ms >= 0 else 0.0,
                annotations={**fields.annotations, "finalization_error": type(e).__name__},
                error_type=error_type,
                started_at=self._started_at,
            )
            self._report(self.record)
            if error is None:
                raise
            return

        self.state = state
        self.record = record
        self._report(record)

        if error is None and self.reporting_errors and self.config.raise_on_report_failure:
            reporting_error = self.reporting_errors[0]
            reporting_error.outcome = outcome
            raise reporting_error

    def _report(self, record: CompletionRecord) -> None:
        """Hand the record to every sink; one failing sink never skips the others."""
        for sink in self.sinks:
            try:
                sink.emit(record)
            except Exception as e:
                if isinstance(e, ReportingError):
                    reporting_error = e
                else:
                    reporting_error = ReportingError(
                        f"{type(sink).__name__} rejected record {record.request_id}: {e}",
                        record=record,
                        sink=sink,
                    )
                    reporting_error.__cause__ = e
                self.reporting_errors.append(reporting_error)
                log.warning(
                    REPORTING_FAILED,
                    sink=type(sink).__name__,
                    request_id=record.request_id,
                    status=record.status,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def __repr__(self) -> str:  # noqa: D105
        return (
            f"RequestInterceptor(state={self.state.value}, request_id={self.request_id!r}, "
            f"sinks={len(self.sinks)})"
        )
