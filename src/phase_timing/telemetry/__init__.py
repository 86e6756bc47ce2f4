"""Telemetry module for structured logging and trace correlation.

This module provides:
- TraceContext for request correlation
- Structured logging via structlog
- Semantic event constants
"""

from phase_timing.telemetry.events import (
    ELASTICSEARCH_CONNECTED,
    ELASTICSEARCH_CONNECTION_FAILED,
    ELASTICSEARCH_INDEX_FAILED,
    PHASE_RECORD_REJECTED,
    PHASE_RECORD_UNBOUND,
    REPORTING_FAILED,
    REPORTING_TIMEOUT,
    REQUEST_COMPLETED,
    REQUEST_FAILED,
    REQUEST_FIELD_UNREADABLE,
    REQUEST_FINALIZE_FAILED,
    REQUEST_STARTED,
)
from phase_timing.telemetry.logger import configure_logging, get_logger
from phase_timing.telemetry.trace import TraceContext

__all__ = [
    # Core exports
    "TraceContext",
    "get_logger",
    "configure_logging",
    # Event constants
    "REQUEST_STARTED",
    "REQUEST_COMPLETED",
    "REQUEST_FAILED",
    "REQUEST_FINALIZE_FAILED",
    "REQUEST_FIELD_UNREADABLE",
    "PHASE_RECORD_REJECTED",
    "PHASE_RECORD_UNBOUND",
    "REPORTING_FAILED",
    "REPORTING_TIMEOUT",
    "ELASTICSEARCH_CONNECTED",
    "ELASTICSEARCH_CONNECTION_FAILED",
    "ELASTICSEARCH_INDEX_FAILED",
]
