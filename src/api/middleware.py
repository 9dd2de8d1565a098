"""
Request tagging and access logging for the reporting API.
"""

import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.utils.logging import get_logger, log_context

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probe and scrape traffic is not access-logged
_UNLOGGED_PREFIXES = ("/health", "/metrics")

CallNext = Callable[[Request], Awaitable[Response]]


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Propagate or mint a request id and bind it to every log line of the request."""

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        with log_context(request_id=request_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


async def request_timing_middleware(request: Request, call_next: CallNext) -> Response:
    """Add X-Response-Time and access-log reporting requests."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"

    path = request.url.path
    if not path.startswith(_UNLOGGED_PREFIXES):
        logger.info(
            "Report served",
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=round(elapsed_ms, 2),
            request_id=getattr(request.state, "request_id", None),
        )
    return response
