"""Request interception: the per-request timing scope and its integrations."""

from phase_timing.intercept.fields import RequestFields, extract_request_fields, read_field
from phase_timing.intercept.interceptor import (
    InterceptorState,
    RequestInterceptor,
    status_for_exception,
    status_from_outcome,
)
from phase_timing.intercept.middleware import PhaseTimingMiddleware, server_timing_header
from phase_timing.intercept.service import TimingService

__all__ = [
    "InterceptorState",
    "RequestInterceptor",
    "TimingService",
    "PhaseTimingMiddleware",
    "RequestFields",
    "extract_request_fields",
    "read_field",
    "server_timing_header",
    "status_for_exception",
    "status_from_outcome",
]
