"""
Notarium Backend — Shared Response Schemas
============================================

Error and health payloads shared by every router, plus the plain
{"success": true} acknowledgement most mutations return.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    What:  Standardized error body for all API errors.
    Why:   The frontend shows `message` and reports `request_id` to admins.

    Example:
        {
            "error": "account_suspended",
            "message": "Account suspended",
            "details": {"suspended": true, "days_remaining": 3, ...},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for monitoring and load balancer checks.
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    gemini: str = Field(description="Gemini API status: available, unavailable, circuit_open")
    storage: str = Field(description="Image storage: writable, unavailable")
    uptime_seconds: float = Field(description="Seconds since service started")
