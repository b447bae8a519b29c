"""
Request middleware: correlation ID, timing, one log line per request.

X-Request-ID is echoed when the client sends one, generated otherwise.
Probes, docs and the high-frequency live list polls are logged at DEBUG
so the refresh and dispatch lines stay readable.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backend.app.core.logging_config import bind_context, clear_context

logger = logging.getLogger(__name__)

QUIET_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health")
POLLED_PATHS = ("/api/v1/alerts", "/api/v1/alerts/scrape/status")


def _log_level(request: Request, status_code: int) -> int:
    path = request.url.path
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    if path.startswith(QUIET_PREFIXES) or (request.method == "GET" and path in POLLED_PATHS):
        return logging.DEBUG
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        path = request.url.path
        bind_context(
            request_id=request_id,
            method=request.method,
            endpoint=path,
            client_ip=request.client.host if request.client else "unknown",
        )

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{(time.perf_counter() - start) * 1000:.1f}ms"
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.log(
                _log_level(request, status_code),
                "%s %s -> %d (%.1fms)",
                request.method, path, status_code, duration_ms,
                extra={"duration_ms": duration_ms, "status_code": status_code, "endpoint": path},
            )
            clear_context()
