"""Request middleware for tracing and logging."""

import time
import uuid
from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from toolproxy.logging import bind_context, clear_context, get_logger
from toolproxy.metrics import record_request

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_ID_HEADER = "X-Correlation-ID"


def _short_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Tag every HTTP request with ids, log it, and time it.

    - ``request_id`` is generated per request
    - ``correlation_id`` comes from ``X-Correlation-ID`` or is generated
    - both are bound to the structlog context and echoed as response headers
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = _short_id()
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or _short_id()

        clear_context()
        bind_context(
            request_id=request_id,
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
        )
        request.state.request_id = request_id
        request.state.correlation_id = correlation_id

        logger.debug(
            "request_started",
            client_host=request.client.host if request.client else None,
        )
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        finally:
            clear_context()

        duration = time.perf_counter() - start
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            request_id=request_id,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
        # Scrapes of /metrics would otherwise dominate the request counters
        if not request.url.path.startswith("/metrics"):
            record_request(request.method, request.url.path, response.status_code, duration)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
