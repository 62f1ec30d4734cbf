"""
Notarium Backend — Request ID Middleware
==========================================

What:  Assigns a short correlation ID to each request and echoes it back.
Why:   Every log line and error body of one request shares the same ID, so a
       student reporting "upload failed, id a1b2c3d4" can be traced directly.
How:   Reuses the client's X-Request-ID header when sent, otherwise generates
       the first 8 characters of a UUID4. Stored in a ContextVar (coroutine
       local) and in request.state.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id() -> str:
    return str(uuid.uuid4())[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Sets request_id_var and the X-Request-ID response header."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or new_request_id()

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
