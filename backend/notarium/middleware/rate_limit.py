"""
Notarium Backend — Rate Limiting Middleware
=============================================

What:  Per-IP sliding window rate limiter with a stricter bucket for
       credential endpoints.
Why:   Protects the API (and the Gemini quota) from abuse, and slows down
       password guessing on login, signup and admin login.
How:   In-memory timestamp lists. General traffic is keyed by client IP;
       credential endpoints are keyed by (IP, path) so five failed logins do
       not also lock the student out of signup.

Algorithm: Sliding Window Counter
    1. Each key gets a list of request timestamps
    2. On each request, drop timestamps older than the window
    3. If the remaining count reaches the limit, reject with 429
    4. Otherwise record the current timestamp and let the request through

    Retry-After is the number of seconds until the oldest timestamp in the
    window expires.

State lives in the middleware instance, so it is per process: each app
instance (and each test app) starts with empty buckets.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, Hashable, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from notarium.config import settings
from notarium.exceptions import RateLimitExceededError
from notarium.middleware.request_id import request_id_var
from notarium.middleware.logging import client_ip_of

logger = logging.getLogger(__name__)

AUTH_LIMIT_MESSAGE = "Too many login attempts. Please try again in 15 minutes."


class SlidingWindow:
    """Timestamp buckets for one (limit, window) policy."""

    def __init__(self, limit: int, window: int):
        self.limit = limit
        self.window = window
        self._hits: Dict[Hashable, List[float]] = defaultdict(list)
        self._recorded = 0

    def hit(self, key: Hashable, now: Optional[float] = None) -> int:
        """
        Records a request for key.

        Returns 0 when allowed, otherwise the Retry-After in seconds (the
        request is then NOT recorded).
        """
        now = time.time() if now is None else now
        window_start = now - self.window

        hits = [ts for ts in self._hits[key] if ts > window_start]
        self._hits[key] = hits

        if len(hits) >= self.limit:
            return int(hits[0] + self.window - now) + 1

        hits.append(now)
        self._recorded += 1
        if self._recorded % 1000 == 0:
            self._cleanup_inactive(window_start)
        return 0

    def _cleanup_inactive(self, window_start: float) -> None:
        """Drops keys with no requests in the current window."""
        inactive = [
            key for key, timestamps in self._hits.items()
            if not timestamps or max(timestamps) < window_start
        ]
        for key in inactive:
            del self._hits[key]
        if inactive:
            logger.debug("Cleaned up %d inactive rate-limit entries", len(inactive))


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding window limits for every request plus the credential endpoints.

    Configuration (from settings):
        rate_limit_requests / rate_limit_window: general per-IP budget
        auth_rate_limit_attempts / auth_rate_limit_window: per (IP, path)
            budget for POSTs to AUTH_PATHS (default 5 per 15 minutes)

    Excluded paths: /health and the API docs are always reachable.
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}
    AUTH_PATHS = {"/api/auth/login", "/api/auth/signup", "/api/auth/admin-login"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._general = SlidingWindow(settings.rate_limit_requests, settings.rate_limit_window)
        self._auth = SlidingWindow(settings.auth_rate_limit_attempts, settings.auth_rate_limit_window)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = client_ip_of(request)

        if request.method == "POST" and path in self.AUTH_PATHS:
            retry_after = self._auth.hit((client_ip, path))
            if retry_after:
                logger.warning(
                    "Auth rate limit exceeded for IP %s on %s", client_ip, path
                )
                return self._too_many(retry_after, AUTH_LIMIT_MESSAGE)

        retry_after = self._general.hit(client_ip)
        if retry_after:
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                settings.rate_limit_requests,
                settings.rate_limit_window,
            )
            return self._too_many(
                retry_after,
                f"Too many requests. Please wait {retry_after} seconds before retrying.",
            )

        return await call_next(request)

    @staticmethod
    def _too_many(retry_after: int, message: str) -> JSONResponse:
        exc = RateLimitExceededError(retry_after=retry_after, message=message)
        return JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "message": exc.message,
                "details": exc.context,
                "request_id": request_id_var.get(""),
            },
            headers={"Retry-After": str(exc.retry_after)},
        )
