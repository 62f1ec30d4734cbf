"""
Notarium Backend — FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes app configuration, middleware registration, route mounting,
       and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn notarium.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                         FastAPI App                          │
    │                                                              │
    │  Middleware Chain:                                           │
    │  RateLimit → BodyLimit → RequestID → Logging → GZip → CORS   │
    │                                                              │
    │  Routes:                                                     │
    │  /api/auth  /api/subjects  /api/notes  /api/files            │
    │  /api/gemini  /api/chat  /api/admin  /api/leaderboard        │
    │  /health                                                     │
    │                                                              │
    │  Exception Handlers:                                         │
    │  Validation→400  Auth→401  Permission/Suspended→403          │
    │  NotFound→404  Conflict→409                                  │
    │  LLM/Circuit→503  Database/Storage→500                       │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (logged, not fatal)
    3. Create the storage directory
    4. Seed missing default subjects
    5. Start the scheduled publisher

    Shutdown:
    1. Cancel the scheduled publisher
    2. Dispose database engine (close all connections)
"""

import asyncio
import contextlib
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from notarium import __version__
from notarium.config import settings
from notarium.database import async_session_factory, dispose_engine
from notarium.exceptions import (
    AccountSuspendedError,
    AuthenticationError,
    CircuitBreakerOpenError,
    ConflictError,
    DatabaseError,
    FileStorageError,
    LLMServiceError,
    NotariumError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from notarium.middleware.body_limit import BodySizeLimitMiddleware
from notarium.middleware.logging import RequestLoggingMiddleware
from notarium.middleware.rate_limit import RateLimitMiddleware
from notarium.middleware.request_id import RequestIDMiddleware, request_id_var
from notarium.routes import admin, ai, auth, chat, health, notes, subjects
from notarium.services.publisher import run_publisher
from notarium.services.subject_service import subject_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Request IDs are included in messages by the code that logs them.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

async def seed_subjects() -> None:
    try:
        async with async_session_factory() as session:
            await subject_service.ensure_default_subjects(session)
            await session.commit()
    except SQLAlchemyError as e:
        # Tables may not exist yet (migrations not applied)
        logger.error("Could not seed default subjects: %s", str(e))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Notarium Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())

    await seed_subjects()
    publisher = asyncio.create_task(run_publisher())

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Notarium Backend shutting down...")
    publisher.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await publisher
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_response(status_code: int, error: str, message: str, details=None, headers=None) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and one error body shape:
    {"error", "message", "details"?, "request_id"}.

    Security: handlers never expose stack traces, file paths or SQL in the
    response. Details are logged server-side.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return error_response(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return error_response(401, "unauthorized", exc.message)

    @app.exception_handler(AccountSuspendedError)
    async def handle_account_suspended(request: Request, exc: AccountSuspendedError):
        return error_response(403, "account_suspended", exc.message, exc.context)

    @app.exception_handler(PermissionDeniedError)
    async def handle_permission_denied(request: Request, exc: PermissionDeniedError):
        logger.warning("[%s] Permission denied: %s", request_id_var.get(""), exc.message)
        return error_response(403, "forbidden", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return error_response(404, "not_found", exc.message)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        return error_response(409, "conflict", exc.message)

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return error_response(
            503,
            "service_unavailable",
            exc.message,
            {"recovery_time": exc.recovery_time},
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(LLMServiceError)
    async def handle_llm_error(request: Request, exc: LLMServiceError):
        logger.error("[%s] LLM service error: %s", request_id_var.get(""), exc.message)
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return error_response(503, "llm_service_error", exc.message, exc.context, headers=headers)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        return error_response(500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error(
            "[%s] File storage error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        return error_response(500, "server_error", exc.message)

    @app.exception_handler(NotariumError)
    async def handle_notarium_error(request: Request, exc: NotariumError):
        logger.error("[%s] Unhandled application error: %s", request_id_var.get(""), exc.message)
        return error_response(500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Tests build a fresh app per test and override get_db_session.
    """
    app = FastAPI(
        title="Notarium API",
        description=(
            "Student note-sharing backend: scanned notes with OCR, likes and a "
            "leaderboard, AI study tools and tutor, and admin moderation."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition, so the chain is
    # CORS → RequestID → Logging → RateLimit → BodyLimit → GZip. The early
    # 429/413 responses still get CORS headers and a request ID.
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(BodySizeLimitMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(subjects.router)
    app.include_router(notes.router)
    app.include_router(ai.router)
    app.include_router(chat.router)
    app.include_router(admin.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expects `notarium.main:app` to be importable
app = create_app()
