"""Extraction of labels, ids and annotations from request contexts.

A request context is whatever the host passes to the handler: a mapping, a
framework request object, or any object with attributes. Which fields are
read is decided by TimingConfig, set once at startup.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping

from phase_timing.config import TimingConfig
from phase_timing.telemetry import REQUEST_FIELD_UNREADABLE, TraceContext, get_logger

log = get_logger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class RequestFields:
    """Fields read from a request context at request start.

    Attributes:
        trace: Trace context; continues an upstream request id if one was found.
        label: Record label.
        annotations: Configured annotation fields that were present.
    """

    trace: TraceContext
    label: str
    annotations: dict[str, Any] = field(default_factory=dict)


def read_field(context: Any, name: str) -> Any:
    """Read one field from a mapping or an object.

    A field whose accessor raises counts as missing, so a half-initialised
    request object still yields a record.

    Returns:
        The value, or None when absent or unreadable.
    """
    if context is None:
        return None
    try:
        if isinstance(context, Mapping):
            value = context.get(name, _MISSING)
        else:
            value = getattr(context, name, _MISSING)
    except Exception as e:
        log.debug(REQUEST_FIELD_UNREADABLE, field=name, error=str(e), error_type=type(e).__name__)
        return None
    return None if value is _MISSING else value


def extract_request_fields(context: Any, config: TimingConfig) -> RequestFields:
    """Build the trace context, label and annotations for one request.

    Args:
        context: Request context handed to the handler.
        config: Timing configuration naming the fields to read.

    Returns:
        RequestFields for the completion record.
    """
    parts = [read_field(context, name) for name in config.label_fields]
    present = [str(part) for part in parts if part not in (None, "")]
    label = config.label_separator.join(present) if present else config.default_label

    annotations: dict[str, Any] = {}
    for name in config.annotation_fields:
        value = read_field(context, name)
        if value is not None:
            annotations[name] = value

    request_id = read_field(context, config.request_id_field)
    trace = TraceContext.from_request_id(str(request_id) if request_id else None)
    return RequestFields(trace=trace, label=label, annotations=annotations)
