"""Reporting sinks for completion records.

A sink receives each CompletionRecord exactly once. emit() must not block
the request path: sinks that talk to remote systems schedule the delivery and
return (see ElasticsearchSink).
"""

import threading
from typing import Any, Protocol, runtime_checkable

from phase_timing.telemetry import REQUEST_COMPLETED, REQUEST_FAILED, get_logger
from phase_timing.timing.records import CompletionRecord


@runtime_checkable
class ReportingSink(Protocol):
    """Consumer of completion records."""

    def emit(self, record: CompletionRecord) -> None:
        """Accept one record. Raise to signal that it was not accepted."""
        ...


class LogSink:
    """Write completion records as structured log events.

    Successful requests are logged at info level as ``request_completed``,
    failed ones at warning level as ``request_failed``.

    Args:
        logger: structlog logger; defaults to this module's logger.
    """

    def __init__(self, logger: Any = None) -> None:  # noqa: D107
        self._log = logger if logger is not None else get_logger(__name__)

    def emit(self, record: CompletionRecord) -> None:  # noqa: D102
        fields = record.to_log_fields()
        if record.failed:
            self._log.warning(REQUEST_FAILED, **fields)
        else:
            self._log.info(REQUEST_COMPLETED, **fields)


class CollectingSink:
    """Keep completion records in memory, e.g. for tests or debug endpoints.

    Args:
        max_records: Oldest records are dropped beyond this many (None = unbounded).
    """

    def __init__(self, max_records: int | None = None) -> None:  # noqa: D107
        self.max_records = max_records
        self._records: list[CompletionRecord] = []
        self._lock = threading.Lock()

    def emit(self, record: CompletionRecord) -> None:  # noqa: D102
        with self._lock:
            self._records.append(record)
            if self.max_records is not None and len(self._records) > self.max_records:
                del self._records[: len(self._records) - self.max_records]

    @property
    def records(self) -> list[CompletionRecord]:
        """Copy of the collected records, oldest first."""
        with self._lock:
            return list(self._records)

    def clear(self) -> None:
        """Forget all collected records."""
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:  # noqa: D105
        with self._lock:
            return len(self._records)
