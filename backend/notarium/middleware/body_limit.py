"""
Notarium Backend — Request Size Middleware
============================================

Rejects requests whose declared Content-Length exceeds max_request_size
with 413 before the body is read. Base64 note uploads are the main reason
this exists: a 30-image upload can otherwise be buffered in full.

Runs outside FastAPI's exception handlers, so the error body is built here
from PayloadTooLargeError instead of being raised.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from notarium.config import settings
from notarium.exceptions import PayloadTooLargeError
from notarium.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


class BodySizeLimitMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > settings.max_request_size:
            logger.warning(
                "Rejected %s %s: body of %s bytes exceeds %d",
                request.method,
                request.url.path,
                declared,
                settings.max_request_size,
            )
            max_mb = settings.max_request_size / (1024 * 1024)
            exc = PayloadTooLargeError(
                message=f"Request too large. Maximum size is {max_mb:.0f}MB.",
                max_size=settings.max_request_size,
            )
            return JSONResponse(
                status_code=413,
                content={
                    "error": "payload_too_large",
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": request_id_var.get(""),
                },
            )
        return await call_next(request)
