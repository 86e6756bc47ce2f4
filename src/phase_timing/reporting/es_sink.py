"""Elasticsearch sink for completion records."""

import asyncio
from datetime import datetime, timezone
from typing import Any

from elasticsearch import AsyncElasticsearch

from phase_timing.telemetry import (
    ELASTICSEARCH_CONNECTED,
    ELASTICSEARCH_CONNECTION_FAILED,
    ELASTICSEARCH_INDEX_FAILED,
    REPORTING_TIMEOUT,
    get_logger,
)
from phase_timing.timing.errors import ReportingError
from phase_timing.timing.records import CompletionRecord

log = get_logger(__name__)


class ElasticsearchSink:
    """Index completion records into daily Elasticsearch indices.

    emit() only schedules the write on the event loop captured by connect(),
    so the request path never waits on Elasticsearch. Calls from worker
    threads (synchronous handlers) are handed to that loop thread-safely.
    Each write is bounded by a timeout. The request id is used as document id, which makes re-delivery idempotent.

    Usage:
        sink = ElasticsearchSink("http://localhost:9200")
        await sink.connect()
        sink.emit(record)
        await sink.flush()

    Args:
        es_url: Elasticsearch URL.
        index_prefix: Index name prefix; indices are "{prefix}-YYYY.MM.DD".
        timeout_seconds: Upper bound for one indexing call.
        max_concurrent_writes: Concurrent index requests allowed.
    """

    def __init__(  # noqa: D107
        self,
        es_url: str = "http://localhost:9200",
        index_prefix: str = "request-timing",
        *,
        timeout_seconds: float = 5.0,
        max_concurrent_writes: int = 10,
    ) -> None:
        self.es_url = es_url
        self.index_prefix = index_prefix
        self.timeout_seconds = timeout_seconds
        self.client: AsyncElasticsearch | None = None
        self.failed_writes = 0
        self._max_concurrent_writes = max_concurrent_writes
        self._write_semaphore: asyncio.Semaphore | None = None
        self._pending: set[asyncio.Task[Any]] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    async def connect(self) -> bool:
        """Connect to Elasticsearch.

        Returns:
            True if connected successfully.
        """
        try:
            self.client = AsyncElasticsearch(
                [self.es_url],
                request_timeout=self.timeout_seconds,
                max_retries=2,
                retry_on_timeout=True,
            )
            self._loop = asyncio.get_running_loop()
            info = await self.client.info()
            log.info(ELASTICSEARCH_CONNECTED, version=info["version"]["number"])
            return True
        except Exception as e:
            log.error(ELASTICSEARCH_CONNECTION_FAILED, error=str(e), error_type=type(e).__name__)
            if self.client is not None:
                await self.client.close()
            self.client = None
            self._loop = None
            return False

    async def disconnect(self) -> None:
        """Wait for scheduled writes, then close the connection."""
        await self.flush()
        if self.client:
            await self.client.close()
            self.client = None
        self._loop = None

    @property
    def connected(self) -> bool:
        """True after a successful connect()."""
        return self.client is not None

    def index_name(self, when: datetime | None = None) -> str:
        """Index name with date suffix (daily rotation)."""
        when = when or datetime.now(timezone.utc)
        return f"{self.index_prefix}-{when.strftime('%Y.%m.%d')}"

    def emit(self, record: CompletionRecord) -> None:
        """Schedule indexing of one record.

        Safe to call from the event loop thread or from any other thread
        while that loop runs.

        Raises:
            ReportingError: If the sink is not connected or its event loop is
                not running.
        """
        if self.client is None:
            raise ReportingError("Elasticsearch sink is not connected", record=record, sink=self)
        try:
            running: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        loop = self._loop if self._loop is not None else running
        if loop is not None and loop is running:
            self._schedule(record)
        elif loop is not None and loop.is_running():
            loop.call_soon_threadsafe(self._schedule, record)
        else:
            raise ReportingError(
                "Elasticsearch sink needs a running event loop", record=record, sink=self
            )

    def _schedule(self, record: CompletionRecord) -> None:
        """Create the indexing task; runs on the sink's event loop."""
        task = asyncio.get_running_loop().create_task(self._index(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _index(self, record: CompletionRecord) -> str | None:
        """Index one record, bounded by timeout_seconds.

        Returns:
            Document id, or None if the write failed.
        """
        if self.client is None:
            return None
        if self._write_semaphore is None:
            self._write_semaphore = asyncio.Semaphore(self._max_concurrent_writes)
        index = self.index_name(record.started_at)
        async with self._write_semaphore:
            try:
                result = await asyncio.wait_for(
                    self.client.index(index=index, id=record.request_id, document=record.to_document()),
                    timeout=self.timeout_seconds,
                )
                return str(result["_id"])
            except asyncio.TimeoutError:
                self.failed_writes += 1
                log.warning(
                    REPORTING_TIMEOUT,
                    sink="elasticsearch",
                    index=index,
                    request_id=record.request_id,
                    timeout_seconds=self.timeout_seconds,
                )
            except Exception as e:
                self.failed_writes += 1
                log.warning(
                    ELASTICSEARCH_INDEX_FAILED,
                    index=index,
                    request_id=record.request_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return None

    async def flush(self) -> None:
        """Wait until every scheduled write has finished."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def __repr__(self) -> str:  # noqa: D105
        return (
            f"ElasticsearchSink(es_url={self.es_url!r}, connected={self.connected}, "
            f"pending={len(self._pending)})"
        )
