"""Request logging middleware."""

import time
from collections.abc import Callable
from uuid import uuid7

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Assigns a request id and logs each request once it completes.

    The request id is bound into structlog's contextvars so every log line
    emitted while handling the request carries it.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid7())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000

            if request.url.path not in ("/health", "/metrics"):
                logger.info(
                    "api_request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration_ms, 2),
                    actor=getattr(request.state, "actor", None),
                )

        response.headers["X-Request-ID"] = request_id
        return response
