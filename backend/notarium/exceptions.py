"""
Notarium Backend — Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions for each error scenario.
Why:   Targeted error handling with the right HTTP status code and a message
       that is safe to show to students, instead of leaking internals.
How:   Each exception carries a message and optional context dict. Global
       handlers (registered in main.py) turn them into JSON error responses.
Who:   Raised by services, dependencies and middleware; caught by handlers.

Exception Hierarchy:
    NotariumError (base)
    ├── ValidationError          → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── PermissionDeniedError    → 403 Forbidden
    │   └── AccountSuspendedError → 403 Forbidden (with suspension details)
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    ├── PayloadTooLargeError     → 413 Payload Too Large
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 Internal Server Error
    ├── DatabaseError            → 500 Internal Server Error
    ├── LLMServiceError          → 503 Service Unavailable
    └── CircuitBreakerOpenError  → 503 Service Unavailable
"""

from datetime import datetime
from typing import Any, Dict, Optional


class NotariumError(Exception):
    """
    Base exception for all Notarium application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info; some handlers return it as `details`,
                  the server-error handlers only log it
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NotariumError):
    """
    Client input failed a business rule (unknown subject, bad image, empty
    update, invalid class). Schema-level problems are still FastAPI's 422.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.field = field
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(NotariumError):
    """Missing, malformed or expired credentials. HTTP 401."""

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PermissionDeniedError(NotariumError):
    """Authenticated, but not allowed to touch this resource. HTTP 403."""

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AccountSuspendedError(PermissionDeniedError):
    """
    The account is under an active suspension.

    The response carries the end date, the reason and the number of whole
    days remaining (rounded up) so the client can explain the lockout.
    """

    def __init__(
        self,
        suspension_end_date: Optional[datetime] = None,
        reason: Optional[str] = None,
        days_remaining: int = 0,
    ):
        self.suspension_end_date = suspension_end_date
        self.reason = reason or "Suspended by admin"
        self.days_remaining = days_remaining
        super().__init__(
            message="Account suspended",
            context={
                "suspended": True,
                "suspension_end_date": (
                    suspension_end_date.isoformat() if suspension_end_date else None
                ),
                "suspension_reason": self.reason,
                "days_remaining": days_remaining,
            },
        )


class NotFoundError(NotariumError):
    """
    Raised when a requested resource does not exist (or is not visible to
    the caller, which is reported the same way).
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(NotariumError):
    """A uniqueness rule would be broken (e.g. email already registered). HTTP 409."""

    def __init__(
        self,
        message: str = "The resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PayloadTooLargeError(NotariumError):
    """Request body or a single upload exceeds the configured limit. HTTP 413."""

    def __init__(
        self,
        message: str = "Request too large",
        max_size: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if max_size is not None:
            ctx["max_size"] = max_size
        super().__init__(message=message, context=ctx)


class FileStorageError(NotariumError):
    """
    Raised when file system operations fail (disk full, permission denied).
    The client only ever sees the generic message.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class LLMServiceError(NotariumError):
    """
    Raised when Gemini fails after all retries or returns something unusable.

    HTTP 503: the upstream service is temporarily unavailable and the client
    should retry later.
    """

    def __init__(
        self,
        message: str = "The AI service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(NotariumError):
    """
    Raised when the circuit breaker is OPEN after repeated Gemini failures.

        CLOSED → (N failures) → OPEN → (recovery timeout) → HALF_OPEN
        HALF_OPEN → success → CLOSED, failure → OPEN
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"AI service is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class DatabaseError(NotariumError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; the SQL error is
    logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(NotariumError):
    """Client exceeded a rate limit window. HTTP 429 with Retry-After."""

    def __init__(
        self,
        retry_after: int = 60,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = message or (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
