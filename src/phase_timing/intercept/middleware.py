"""ASGI middleware that times every HTTP request.

Usage:
    service = TimingService.from_settings()
    app = FastAPI(lifespan=...)  # await service.startup() / shutdown()
    app.add_middleware(PhaseTimingMiddleware, service=service)

Endpoints and the clients they call report phases through
phase_timing.timing.instrumentation (record_phase, measure_phase, timed).
"""

import re
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from phase_timing.intercept.service import TimingService
from phase_timing.timing.records import CompletionRecord

_INVALID_TOKEN_CHARS = re.compile(r"[^A-Za-z0-9!#$%&'*+.^_`|~-]")


def response_format(accept: str | None) -> str | None:
    """Short format name of the first media type in an Accept header.

    "application/json, text/html" gives "json"; wildcards give None.
    """
    if not accept:
        return None
    media_type = accept.split(",")[0].split(";")[0].strip()
    subtype = media_type.partition("/")[2]
    if not subtype or subtype == "*":
        return None
    return subtype.rpartition("+")[2]


def server_timing_header(record: CompletionRecord) -> str:
    """Server-Timing header value: one entry per phase plus the total.

    Example: ``database;dur=24.0;desc="2 calls", total;dur=40.0``
    """
    entries = []
    for name, stats in record.phases.items():
        token = _INVALID_TOKEN_CHARS.sub("_", name)
        entries.append(f'{token};dur={stats.duration_ms:.1f};desc="{stats.calls} calls"')
    entries.append(f"total;dur={record.total_ms:.1f}")
    return ", ".join(entries)


class PhaseTimingMiddleware(BaseHTTPMiddleware):
    """Wrap each request in a RequestInterceptor and emit its completion record.

    Args:
        app: Downstream ASGI application.
        service: Timing service; defaults to TimingService.from_settings().
    """

    def __init__(self, app: ASGIApp, service: TimingService | None = None) -> None:  # noqa: D107
        super().__init__(app)
        self.service = service if service is not None else TimingService.from_settings()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Time one request; errors from downstream propagate unchanged."""
        config = self.service.config
        context: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "format": response_format(request.headers.get("accept")),
            config.request_id_field: request.headers.get(config.request_id_header),
        }
        interceptor = self.service.new_interceptor()

        async def handler(_: Any) -> tuple[Response, int]:
            response = await call_next(request)
            return response, response.status_code

        response, _ = await interceptor.intercept_async(context, handler)

        record = interceptor.record
        if record is not None:
            response.headers[config.request_id_header] = record.request_id
            if config.server_timing_header:
                response.headers["Server-Timing"] = server_timing_header(record)
        return response
