"""Trace context for request correlation."""

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class TraceContext:
    """Request correlation id carried on every completion record.

    Attributes:
        trace_id: Unique identifier for the request (UUID string unless an
            upstream id was supplied).
    """

    trace_id: str

    @classmethod
    def new_trace(cls) -> "TraceContext":
        """Start a new trace with a generated UUID4 trace_id."""
        return cls(trace_id=str(uuid.uuid4()))

    @classmethod
    def from_request_id(cls, request_id: str | None) -> "TraceContext":
        """Continue an upstream request id, or start a new trace without one.

        Args:
            request_id: Identifier propagated by the caller, if any.

        Returns:
            TraceContext whose trace_id is the upstream id when non-empty.
        """
        if request_id:
            return cls(trace_id=str(request_id))
        return cls.new_trace()
