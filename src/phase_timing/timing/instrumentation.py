"""Hooks that let sub-resource clients report phase time to the current request.

The interceptor binds each request's accumulator to a ContextVar. asyncio
tasks created by the request and asyncio.to_thread() calls inherit the
binding; other requests never see it.

Usage:
    @timed(Phase.DATABASE)
    def fetch_user(user_id):
        ...

    with measure_phase("view", exclusive=True):
        html = template.render(...)

    record_phase("cache", elapsed_ms)
    increment_counter("cache_misses")
"""

import functools
import inspect
from contextlib import contextmanager, nullcontext
from contextvars import ContextVar
from typing import Any, Callable, Generator, TypeVar, cast

from phase_timing.telemetry import PHASE_RECORD_REJECTED, PHASE_RECORD_UNBOUND, get_logger
from phase_timing.timing.accumulator import PhaseAccumulator
from phase_timing.timing.errors import InvalidDurationError
from phase_timing.timing.records import Phase, phase_name

log = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_current_accumulator: ContextVar[PhaseAccumulator | None] = ContextVar(
    "phase_timing_accumulator", default=None
)


def current_accumulator() -> PhaseAccumulator | None:
    """The accumulator of the request executing in this context, if any."""
    return _current_accumulator.get()


@contextmanager
def bind_accumulator(accumulator: PhaseAccumulator) -> Generator[PhaseAccumulator, None, None]:
    """Make accumulator the current one for the duration of the block.

    Args:
        accumulator: Accumulator owned by the request being processed.

    Yields:
        The bound accumulator.
    """
    token = _current_accumulator.set(accumulator)
    try:
        yield accumulator
    finally:
        _current_accumulator.reset(token)


def record_phase(phase: Phase | str, duration_ms: float) -> bool:
    """Record one call of a phase into the current request's accumulator.

    Args:
        phase: Phase name.
        duration_ms: Duration in milliseconds.

    Returns:
        True if recorded, False if no request is bound or a lenient
        accumulator rejected the duration.

    Raises:
        InvalidDurationError: If the duration is invalid and the bound
            accumulator is strict.
    """
    accumulator = _current_accumulator.get()
    if accumulator is None:
        log.debug(PHASE_RECORD_UNBOUND, phase=phase_name(phase), duration_ms=duration_ms)
        return False
    try:
        accumulator.record(phase, duration_ms)
    except InvalidDurationError as e:
        if accumulator.strict:
            raise
        log.error(
            PHASE_RECORD_REJECTED,
            phase=e.phase,
            duration_ms=e.duration_ms,
            error=str(e),
            error_type=type(e).__name__,
        )
        return False
    return True


def increment_counter(counter: str, amount: int = 1) -> bool:
    """Bump a counter on the current request's accumulator.

    Returns:
        True if counted, False if no request is bound.
    """
    accumulator = _current_accumulator.get()
    if accumulator is None:
        return False
    accumulator.increment(counter, amount)
    return True


@contextmanager
def measure_phase(phase: Phase | str, *, exclusive: bool = False) -> Generator[None, None, None]:
    """Time a block into the current request's accumulator.

    The block runs untimed when no request is bound.

    Args:
        phase: Phase name.
        exclusive: See PhaseAccumulator.measure().
    """
    accumulator = _current_accumulator.get()
    scope = accumulator.measure(phase, exclusive=exclusive) if accumulator is not None else nullcontext()
    with scope:
        yield


def timed(phase: Phase | str) -> Callable[[F], F]:
    """Decorator recording every call of a function as one call of a phase.

    Works for plain functions and coroutine functions. Calls made outside a
    request are not recorded.

    Args:
        phase: Phase name.
    """

    def decorator(fn: F) -> F:
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with measure_phase(phase):
                    return await fn(*args, **kwargs)

            return cast(F, async_wrapper)

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with measure_phase(phase):
                return fn(*args, **kwargs)

        return cast(F, wrapper)

    return decorator
