"""
Notarium Backend — Health Route
=================================

GET /health for Docker health checks and load balancers.

    database  SELECT 1 on a pooled connection
    gemini    circuit breaker state, then a model listing (no quota used)
    storage   the image directory exists and is writable

A database outage makes the service unhealthy (503). Losing Gemini or
storage only degrades it: login, browsing and moderation keep working.
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text

from notarium import __version__
from notarium.database import engine
from notarium.schemas.common import HealthResponse
from notarium.services.file_service import file_service
from notarium.services.gemini_service import gemini_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

STARTED_AT = time.time()


async def database_status() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Health: database check failed: %s", str(e))
        return "disconnected"
    return "connected"


async def gemini_status() -> str:
    if gemini_service.circuit_breaker.state == "open":
        return "circuit_open"
    if not await gemini_service.health_check():
        return "unavailable"
    return "available"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Database, Gemini and image storage status. 503 only when the database is down.",
)
async def health_check(response: Response) -> HealthResponse:
    database = await database_status()
    gemini = await gemini_status()
    storage = "writable" if file_service.is_writable() else "unavailable"

    if database != "connected":
        status = "unhealthy"
        response.status_code = 503
    elif gemini != "available" or storage != "writable":
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        version=__version__,
        database=database,
        gemini=gemini,
        storage=storage,
        uptime_seconds=round(time.time() - STARTED_AT, 2),
    )
