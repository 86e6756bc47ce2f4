"""Tests for RequestInterceptor."""

import asyncio
from typing import Any

import pytest

from phase_timing.config import Environment, TimingConfig
from phase_timing.intercept.interceptor import (
    InterceptorState,
    RequestInterceptor,
    error_type_name,
    status_for_exception,
    status_from_outcome,
)
from phase_timing.reporting.sinks import CollectingSink
from phase_timing.timing.clock import ManualClock
from phase_timing.timing.errors import InterceptorStateError, InvalidDurationError, ReportingError
from phase_timing.timing.instrumentation import current_accumulator, measure_phase, record_phase
from phase_timing.timing.records import CompletionRecord


class ExplodingSink:
    """Sink that rejects every record."""

    def __init__(self) -> None:
        self.calls = 0

    def emit(self, record: CompletionRecord) -> None:
        self.calls += 1
        raise ConnectionError("sink offline")


class StateSpySink:
    """Sink that remembers the interceptor state seen at emit time."""

    def __init__(self, interceptor_ref: list[RequestInterceptor]) -> None:
        self.interceptor_ref = interceptor_ref
        self.states: list[InterceptorState] = []

    def emit(self, record: CompletionRecord) -> None:
        self.states.append(self.interceptor_ref[0].state)


@pytest.fixture
def config() -> TimingConfig:
    return TimingConfig(environment=Environment.TEST)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def interceptor(config: TimingConfig, clock: ManualClock, sink: CollectingSink) -> RequestInterceptor:
    return RequestInterceptor([sink], config=config, clock=clock)


class TestSuccessfulRequests:
    """Handlers that return normally."""

    def test_database_and_cache_breakdown(
        self, interceptor: RequestInterceptor, clock: ManualClock, sink: CollectingSink
    ) -> None:
        """12ms database twice, 3ms cache once, 40ms total."""

        def handler(ctx: dict[str, Any]) -> tuple[str, int]:
            record_phase("database", 12.0)
            record_phase("database", 12.0)
            record_phase("cache", 3.0)
            clock.advance(40)
            return "ok", 200

        outcome = interceptor.intercept({"method": "GET", "path": "/items"}, handler)

        assert outcome == ("ok", 200)
        assert interceptor.state is InterceptorState.COMPLETED
        assert len(sink.records) == 1
        record = sink.records[0]
        assert record.status == 200
        assert record.total_ms == 40.0
        assert record.phases == {"database": (24.0, 2), "cache": (3.0, 1)}
        assert record.label == "GET /items"
        assert record.failed is False
        assert interceptor.record is record

    def test_state_transitions(self, config: TimingConfig, clock: ManualClock) -> None:
        ref: list[RequestInterceptor] = []
        spy = StateSpySink(ref)
        interceptor = RequestInterceptor([spy], config=config, clock=clock)
        ref.append(interceptor)
        seen: list[InterceptorState] = []

        def handler(ctx: Any) -> tuple[None, int]:
            seen.append(interceptor.state)
            return None, 200

        assert interceptor.state is InterceptorState.IDLE
        interceptor.intercept({}, handler)

        assert seen == [InterceptorState.IN_PROGRESS]
        assert spy.states == [InterceptorState.COMPLETED]

    def test_handler_receives_context(self, interceptor: RequestInterceptor) -> None:
        context = {"path": "/x"}
        received = []

        def handler(ctx: Any) -> tuple[None, int]:
            received.append(ctx)
            return None, 204

        interceptor.intercept(context, handler)
        assert received == [context]
        assert interceptor.record is not None
        assert interceptor.record.status == 204

    def test_accumulator_bound_only_during_handler(self, interceptor: RequestInterceptor) -> None:
        def handler(ctx: Any) -> tuple[None, int]:
            assert current_accumulator() is interceptor.accumulator
            return None, 200

        interceptor.intercept({}, handler)
        assert current_accumulator() is None

    def test_response_object_status(self, interceptor: RequestInterceptor) -> None:
        class Response:
            status_code = 201

        response = Response()
        assert interceptor.intercept({}, lambda ctx: response) is response
        assert interceptor.record is not None
        assert interceptor.record.status == 201

    def test_default_status(self, interceptor: RequestInterceptor) -> None:
        interceptor.intercept({}, lambda ctx: {"plain": "dict"})
        assert interceptor.record is not None
        assert interceptor.record.status == 200

    def test_annotations(self, interceptor: RequestInterceptor, sink: CollectingSink) -> None:
        def handler(ctx: Any) -> tuple[None, int]:
            interceptor.annotate(user_id=7, cache="warm")
            return None, 200

        interceptor.intercept({"method": "POST", "format": "json"}, handler)
        assert sink.records[0].annotations == {
            "method": "POST",
            "format": "json",
            "user_id": 7,
            "cache": "warm",
        }

    def test_counters_in_record(self, interceptor: RequestInterceptor, sink: CollectingSink) -> None:
        def handler(ctx: Any) -> tuple[None, int]:
            interceptor.accumulator.increment("cache_reads", 3)
            interceptor.accumulator.increment("cache_misses")
            return None, 200

        interceptor.intercept({}, handler)
        assert sink.records[0].counters == {"cache_reads": 3, "cache_misses": 1}

    def test_upstream_request_id(self, interceptor: RequestInterceptor, sink: CollectingSink) -> None:
        interceptor.intercept({"request_id": "edge-9"}, lambda ctx: (None, 200))
        assert sink.records[0].request_id == "edge-9"
        assert interceptor.request_id == "edge-9"

    def test_measured_view_excludes_database(
        self, interceptor: RequestInterceptor, clock: ManualClock, sink: CollectingSink
    ) -> None:
        def handler(ctx: Any) -> tuple[str, int]:
            with measure_phase("view", exclusive=True):
                clock.advance(3)
                with measure_phase("database"):
                    clock.advance(10)
                clock.advance(2)
            return "<html>", 200

        interceptor.intercept({}, handler)
        assert sink.records[0].phases == {"database": (10.0, 1), "view": (5.0, 1)}
        assert sink.records[0].total_ms == 15.0


class TestFailedRequests:
    """Handlers that raise."""

    def test_timeout_error(
        self, interceptor: RequestInterceptor, clock: ManualClock, sink: CollectingSink
    ) -> None:
        """TimeoutError after 5ms of database time."""
        error = TimeoutError("upstream timed out")

        def handler(ctx: Any) -> None:
            record_phase("database", 5.0)
            clock.advance(8)
            raise error

        with pytest.raises(TimeoutError) as exc_info:
            interceptor.intercept({}, handler)

        assert exc_info.value is error
        assert interceptor.state is InterceptorState.FAILED
        assert len(sink.records) == 1
        record = sink.records[0]
        assert record.status == 500
        assert record.phases == {"database": (5.0, 1)}
        assert record.total_ms == 8.0
        assert record.error_type == "TimeoutError"
        assert record.failed is True

    def test_configured_failure_status(self, clock: ManualClock, sink: CollectingSink) -> None:
        config = TimingConfig(failure_status=503)
        interceptor = RequestInterceptor([sink], config=config, clock=clock)

        with pytest.raises(KeyError):
            interceptor.intercept({}, lambda ctx: {}["missing"])

        assert sink.records[0].status == 503

    def test_exception_status_mapping(self, clock: ManualClock, sink: CollectingSink) -> None:
        config = TimingConfig(exception_statuses={"TimeoutError": 504, "LookupError": 404})
        interceptor = RequestInterceptor([sink], config=config, clock=clock)

        def raise_key_error(ctx: Any) -> None:
            raise KeyError("gone")

        with pytest.raises(KeyError):
            interceptor.intercept({}, raise_key_error)

        assert sink.records[0].status == 404

    def test_handler_error_not_altered(self, interceptor: RequestInterceptor) -> None:
        class DomainError(Exception):
            pass

        error = DomainError("nope")

        def handler(ctx: Any) -> None:
            raise error

        with pytest.raises(DomainError) as exc_info:
            interceptor.intercept({}, handler)

        assert exc_info.value is error
        assert exc_info.value.args == ("nope",)
        assert exc_info.value.__cause__ is None

    def test_base_exception_still_recorded(
        self, interceptor: RequestInterceptor, sink: CollectingSink
    ) -> None:
        def handler(ctx: Any) -> None:
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            interceptor.intercept({}, handler)

        assert len(sink.records) == 1
        assert sink.records[0].error_type == "KeyboardInterrupt"

    def test_invalid_duration_inside_handler_fails_request(
        self, interceptor: RequestInterceptor, sink: CollectingSink
    ) -> None:
        def handler(ctx: Any) -> None:
            record_phase("database", -1.0)

        with pytest.raises(InvalidDurationError):
            interceptor.intercept({}, handler)

        assert sink.records[0].status == 500
        assert sink.records[0].phases == {}

    def test_lenient_accumulator_in_production(self, clock: ManualClock, sink: CollectingSink) -> None:
        config = TimingConfig(environment=Environment.PRODUCTION)
        interceptor = RequestInterceptor([sink], config=config, clock=clock)

        def handler(ctx: Any) -> tuple[None, int]:
            record_phase("database", -1.0)
            record_phase("database", 2.0)
            return None, 200

        assert interceptor.intercept({}, handler) == (None, 200)
        assert sink.records[0].phases == {"database": (2.0, 1)}


class TestStateMachine:
    """Single-use interceptor semantics."""

    def test_second_intercept_rejected(self, interceptor: RequestInterceptor, sink: CollectingSink) -> None:
        interceptor.intercept({}, lambda ctx: (None, 200))

        with pytest.raises(InterceptorStateError):
            interceptor.intercept({}, lambda ctx: (None, 200))

        assert len(sink.records) == 1
        assert interceptor.state is InterceptorState.COMPLETED

    def test_reentrant_intercept_rejected(self, interceptor: RequestInterceptor, sink: CollectingSink) -> None:
        def handler(ctx: Any) -> tuple[None, int]:
            interceptor.intercept({}, lambda inner: (None, 200))
            return None, 200

        with pytest.raises(InterceptorStateError):
            interceptor.intercept({}, handler)

        # The outer request still produced exactly one (failed) record
        assert len(sink.records) == 1
        assert sink.records[0].status == 500

    def test_annotate_outside_request(self, interceptor: RequestInterceptor) -> None:
        with pytest.raises(InterceptorStateError):
            interceptor.annotate(a=1)


class TestReporting:
    """Sink failures."""

    def test_sink_failure_does_not_hide_result(self, config: TimingConfig, clock: ManualClock) -> None:
        exploding, collecting = ExplodingSink(), CollectingSink()
        interceptor = RequestInterceptor([exploding, collecting], config=config, clock=clock)

        assert interceptor.intercept({}, lambda ctx: ("body", 200)) == ("body", 200)

        assert exploding.calls == 1
        assert len(collecting.records) == 1
        assert len(interceptor.reporting_errors) == 1
        error = interceptor.reporting_errors[0]
        assert isinstance(error, ReportingError)
        assert isinstance(error.__cause__, ConnectionError)
        assert error.sink is exploding
        assert error.record is collecting.records[0]

    def test_sink_failure_does_not_hide_handler_error(
        self, clock: ManualClock
    ) -> None:
        config = TimingConfig(raise_on_report_failure=True)
        interceptor = RequestInterceptor([ExplodingSink()], config=config, clock=clock)

        def handler(ctx: Any) -> None:
            raise TimeoutError("slow")

        with pytest.raises(TimeoutError):
            interceptor.intercept({}, handler)

        assert len(interceptor.reporting_errors) == 1

    def test_raise_on_report_failure(self, clock: ManualClock) -> None:
        config = TimingConfig(raise_on_report_failure=True)
        interceptor = RequestInterceptor([ExplodingSink()], config=config, clock=clock)

        with pytest.raises(ReportingError) as exc_info:
            interceptor.intercept({}, lambda ctx: ("body", 200))

        assert exc_info.value.outcome == ("body", 200)
        assert interceptor.state is InterceptorState.COMPLETED

    def test_fresh_interceptor_unaffected_by_previous_sink_failure(
        self, config: TimingConfig, clock: ManualClock
    ) -> None:
        flaky = ExplodingSink()
        collecting = CollectingSink()
        RequestInterceptor([flaky, collecting], config=config, clock=clock).intercept(
            {}, lambda ctx: (None, 200)
        )
        second = RequestInterceptor([flaky, collecting], config=config, clock=clock)
        second.intercept({}, lambda ctx: (None, 201))

        assert [r.status for r in collecting.records] == [200, 201]
        assert len(second.reporting_errors) == 1


class TestFinalization:
    """Failures while building the record."""

    def test_snapshot_failure_emits_partial_record(
        self, interceptor: RequestInterceptor, sink: CollectingSink, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken_snapshot() -> None:
            raise RuntimeError("ledger corrupted")

        monkeypatch.setattr(interceptor.accumulator, "snapshot", broken_snapshot)

        with pytest.raises(RuntimeError, match="ledger corrupted"):
            interceptor.intercept({}, lambda ctx: (None, 200))

        assert len(sink.records) == 1
        assert sink.records[0].annotations["finalization_error"] == "RuntimeError"
        assert sink.records[0].phases == {}
        assert interceptor.state is InterceptorState.COMPLETED

    def test_handler_error_wins_over_snapshot_failure(
        self, interceptor: RequestInterceptor, sink: CollectingSink, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        error = TimeoutError("upstream timed out")

        def broken_snapshot() -> None:
            raise RuntimeError("ledger corrupted")

        def handler(ctx: Any) -> None:
            raise error

        monkeypatch.setattr(interceptor.accumulator, "snapshot", broken_snapshot)

        with pytest.raises(TimeoutError) as exc_info:
            interceptor.intercept({}, handler)

        assert exc_info.value is error
        assert interceptor.state is InterceptorState.FAILED
        assert len(sink.records) == 1
        assert sink.records[0].status == 500
        assert sink.records[0].error_type == "TimeoutError"
        assert sink.records[0].annotations["finalization_error"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_async_handler_error_wins_over_snapshot_failure(
        self, interceptor: RequestInterceptor, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        error = ValueError("bad input")

        def broken_snapshot() -> None:
            raise RuntimeError("ledger corrupted")

        async def handler(ctx: Any) -> None:
            raise error

        monkeypatch.setattr(interceptor.accumulator, "snapshot", broken_snapshot)

        with pytest.raises(ValueError) as exc_info:
            await interceptor.intercept_async({}, handler)

        assert exc_info.value is error


class TestAsync:
    """intercept_async()."""

    @pytest.mark.asyncio
    async def test_async_handler(
        self, interceptor: RequestInterceptor, clock: ManualClock, sink: CollectingSink
    ) -> None:
        async def handler(ctx: Any) -> tuple[str, int]:
            await asyncio.sleep(0)
            record_phase("database", 12.0)
            record_phase("database", 12.0)
            record_phase("cache", 3.0)
            clock.advance(40)
            return "ok", 200

        assert await interceptor.intercept_async({}, handler) == ("ok", 200)
        record = sink.records[0]
        assert record.total_ms == 40.0
        assert record.phases == {"database": (24.0, 2), "cache": (3.0, 1)}

    @pytest.mark.asyncio
    async def test_async_failure(self, interceptor: RequestInterceptor, sink: CollectingSink) -> None:
        async def handler(ctx: Any) -> None:
            record_phase("database", 5.0)
            raise TimeoutError

        with pytest.raises(TimeoutError):
            await interceptor.intercept_async({}, handler)

        assert sink.records[0].status == 500
        assert sink.records[0].phases == {"database": (5.0, 1)}

    @pytest.mark.asyncio
    async def test_fan_out_within_request(
        self, interceptor: RequestInterceptor, sink: CollectingSink
    ) -> None:
        async def lookup(shard: int) -> None:
            for _ in range(25):
                await asyncio.sleep(0)
                record_phase("database", 1.0)

        async def handler(ctx: Any) -> tuple[None, int]:
            await asyncio.gather(*(lookup(shard) for shard in range(8)))
            return None, 200

        await interceptor.intercept_async({}, handler)
        assert sink.records[0].phases == {"database": (200.0, 200)}

    @pytest.mark.asyncio
    async def test_cancellation_still_emits_record(
        self, interceptor: RequestInterceptor, sink: CollectingSink
    ) -> None:
        started = asyncio.Event()

        async def handler(ctx: Any) -> None:
            record_phase("external", 1.0)
            started.set()
            await asyncio.sleep(60)

        task = asyncio.create_task(interceptor.intercept_async({}, handler))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert interceptor.state is InterceptorState.FAILED
        assert len(sink.records) == 1
        assert sink.records[0].error_type.endswith("CancelledError")
        assert sink.records[0].phases == {"external": (1.0, 1)}

    @pytest.mark.asyncio
    async def test_concurrent_requests_are_isolated(
        self, config: TimingConfig, clock: ManualClock, sink: CollectingSink
    ) -> None:
        async def handler(ctx: dict[str, Any]) -> tuple[None, int]:
            for _ in range(10):
                await asyncio.sleep(0)
                record_phase(ctx["phase"], ctx["ms"])
            return None, ctx["status"]

        first = RequestInterceptor([sink], config=config, clock=clock)
        second = RequestInterceptor([sink], config=config, clock=clock)
        await asyncio.gather(
            first.intercept_async(
                {"path": "/a", "request_id": "a", "phase": "database", "ms": 1.0, "status": 200}, handler
            ),
            second.intercept_async(
                {"path": "/b", "request_id": "b", "phase": "cache", "ms": 2.0, "status": 201}, handler
            ),
        )

        records = {record.request_id: record for record in sink.records}
        assert records["a"].phases == {"database": (10.0, 10)}
        assert records["a"].status == 200
        assert records["b"].phases == {"cache": (20.0, 10)}
        assert records["b"].status == 201


class TestHelpers:
    """Module-level helpers."""

    @pytest.mark.parametrize(
        ("outcome", "expected"),
        [
            (("body", 404), 404),
            (("body", "not-a-status"), 200),
            (("a", "b", "c"), 200),
            (None, 200),
            (True, 200),
        ],
    )
    def test_status_from_outcome(self, outcome: Any, expected: int) -> None:
        assert status_from_outcome(outcome, 200) == expected

    def test_status_attribute(self) -> None:
        class Result:
            status = 202

        assert status_from_outcome(Result(), 200) == 202

    def test_status_for_exception_walks_mro(self) -> None:
        config = TimingConfig(exception_statuses={"OSError": 502})
        assert status_for_exception(ConnectionResetError(), config) == 502
        assert status_for_exception(ValueError(), config) == 500

    def test_error_type_name(self) -> None:
        class LocalError(Exception):
            pass

        assert error_type_name(TimeoutError()) == "TimeoutError"
        assert error_type_name(LocalError()).endswith("LocalError")
        assert error_type_name(LocalError()).startswith(__name__)
