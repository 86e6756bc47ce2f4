"""Per-request interceptor factory shared by a whole application."""

from typing import Any, Iterable

from phase_timing.config import TimingConfig, get_settings
from phase_timing.intercept.interceptor import AsyncHandler, Handler, RequestInterceptor
from phase_timing.reporting.es_sink import ElasticsearchSink
from phase_timing.reporting.sinks import LogSink, ReportingSink
from phase_timing.timing.clock import Clock, MonotonicClock


class TimingService:
    """Holds configuration, clock and sinks; builds one interceptor per request.

    The service itself carries no per-request state, so it can be shared by
    every concurrent request of a server.

    Args:
        sinks: Reporting sinks; defaults to a single LogSink.
        config: Timing configuration; defaults to the settings singleton.
        clock: Clock shared by all interceptors.
    """

    def __init__(  # noqa: D107
        self,
        sinks: Iterable[ReportingSink] | None = None,
        *,
        config: TimingConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config if config is not None else get_settings()
        self.sinks: list[ReportingSink] = list(sinks) if sinks is not None else [LogSink()]
        self.clock: Clock = clock if clock is not None else MonotonicClock()

    @classmethod
    def from_settings(cls, config: TimingConfig | None = None) -> "TimingService":
        """Build a service with the sinks the configuration enables.

        Always logs records; indexes them into Elasticsearch when
        ``elasticsearch_enabled`` is set. Call startup() from the event loop
        that should carry the writes; synchronous intercept() calls from worker
        threads then hand their records to that loop.
        """
        config = config if config is not None else get_settings()
        sinks: list[ReportingSink] = [LogSink()]
        if config.elasticsearch_enabled:
            sinks.append(
                ElasticsearchSink(
                    config.elasticsearch_url,
                    config.elasticsearch_index_prefix,
                    timeout_seconds=config.report_timeout_seconds,
                )
            )
        return cls(sinks, config=config)

    def new_interceptor(self) -> RequestInterceptor:
        """Fresh IDLE interceptor for one request."""
        return RequestInterceptor(self.sinks, config=self.config, clock=self.clock)

    def intercept(self, context: Any, handler: Handler) -> Any:
        """Run a synchronous handler in a new interceptor."""
        return self.new_interceptor().intercept(context, handler)

    async def intercept_async(self, context: Any, handler: AsyncHandler) -> Any:
        """Await a coroutine handler in a new interceptor."""
        return await self.new_interceptor().intercept_async(context, handler)

    async def startup(self) -> None:
        """Connect sinks that hold connections."""
        for sink in self.sinks:
            if isinstance(sink, ElasticsearchSink):
                await sink.connect()

    async def shutdown(self) -> None:
        """Drain and close sinks that hold connections."""
        for sink in self.sinks:
            if isinstance(sink, ElasticsearchSink):
                await sink.disconnect()
