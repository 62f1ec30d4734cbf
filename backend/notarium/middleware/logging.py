"""
Notarium Backend — Request Logging Middleware
===============================================

What:  One access-log line per HTTP request.
Why:   Monitoring and debugging: which endpoint, which status, how slow, and
       which request ID to grep for.
How:   Measures the time around call_next and logs through the
       "notarium.access" logger, choosing the level from the status class.

Logged:        method, path, status, duration, request ID, client IP
Never logged:  request bodies (passwords, note text, images), auth headers
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from notarium.middleware.request_id import request_id_var

logger = logging.getLogger("notarium.access")

# Polled by load balancers every few seconds
QUIET_PATHS = {"/health"}


def client_ip_of(request: Request) -> str:
    return getattr(request.client, "host", "unknown") if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs method, path, status and duration of each request.

    5xx → ERROR, 4xx → WARNING, everything else → INFO. Upload and AI
    endpoints dominate the durations (Gemini calls take seconds).
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        method = request.method
        client_ip = client_ip_of(request)
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
