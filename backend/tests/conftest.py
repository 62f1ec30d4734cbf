"""
Notarium Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Service tests run against a real (SQLite) schema so counter and
       visibility rules are checked end to end; route tests drive the app
       through HTTPX without starting a server.
How:   Environment variables are set BEFORE any notarium import, because
       settings, the engine and the Gemini retry policy are all built at
       import time.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── database: drops and recreates every table, seeds subjects
    │   └── db_session: AsyncSession on the test database
    ├── student / classmate / outsider / admin: persisted users
    ├── user_factory: more users on demand
    ├── headers_for: user → Authorization header
    ├── subject: the "Fisika" subject
    ├── mock_db_session: AsyncMock session for pure unit tests
    ├── sample_image_bytes / image_b64: a real PNG
    ├── temp_storage: private storage directory
    └── client: HTTPX AsyncClient on a fresh app instance
"""

import base64
import os
import tempfile
from io import BytesIO
from unittest.mock import AsyncMock, MagicMock

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup (must run before notarium is imported)
# ══════════════════════════════════════════════════════════════════════════

_test_dir = tempfile.mkdtemp(prefix="notarium_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_test_dir}/notarium_test.db"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["STORAGE_ROOT"] = os.path.join(_test_dir, "storage")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["ADMIN_PASSWORD"] = "admin-secret-pass"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RETRY_MAX_ATTEMPTS"] = "1"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from PIL import Image  # noqa: E402
from sqlalchemy import event, select  # noqa: E402

from notarium.database import Base, async_session_factory, engine  # noqa: E402
import notarium.models  # noqa: E402,F401
from notarium.models.subject import Subject  # noqa: E402
from notarium.models.user import ROLE_ADMIN, ROLE_STUDENT, User  # noqa: E402
from notarium.security import create_access_token, hash_password  # noqa: E402
from notarium.services.subject_service import subject_service  # noqa: E402

TEST_PASSWORD = "correct-horse-battery"


# pysqlite/aiosqlite defer BEGIN, which breaks SAVEPOINTs (the activity log
# writes inside one). Let SQLAlchemy emit BEGIN itself.
@event.listens_for(engine.sync_engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine.sync_engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database():
    """Fresh schema with the default subjects for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with async_session_factory() as session:
        await subject_service.ensure_default_subjects(session)
        await session.commit()
    yield engine
    # Pooled aiosqlite connections are bound to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with async_session_factory() as session:
        yield session
        await session.rollback()


async def make_user(
    session,
    email: str,
    name: str = "Student",
    user_class=None,
    role: str = ROLE_STUDENT,
    password: str = TEST_PASSWORD,
) -> User:
    user = User(
        email=email,
        display_name=name,
        password_hash=hash_password(password),
        user_class=user_class,
        role=role,
    )
    session.add(user)
    await session.flush()
    return user


def token_for(user: User) -> str:
    return create_access_token(user.id, user.email, user.role)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def user_factory(db_session):
    """await user_factory("x@example.com", "Name", "10.1") → persisted User"""
    async def factory(email: str, name: str = "Student", user_class=None, role: str = ROLE_STUDENT):
        return await make_user(db_session, email, name, user_class, role)
    return factory


@pytest.fixture
def headers_for():
    return auth_headers


@pytest_asyncio.fixture
async def student(db_session):
    return await make_user(db_session, "ani@example.com", "Ani", "10.1")


@pytest_asyncio.fixture
async def classmate(db_session):
    return await make_user(db_session, "budi@example.com", "Budi", "10.1")


@pytest_asyncio.fixture
async def outsider(db_session):
    return await make_user(db_session, "citra@example.com", "Citra", "10.2")


@pytest_asyncio.fixture
async def admin(db_session):
    return await make_user(db_session, "guru@notarium.site", "Admin", "10.1", ROLE_ADMIN)


@pytest_asyncio.fixture
async def subject(db_session):
    result = await db_session.execute(select(Subject).where(Subject.name == "Fisika"))
    return result.scalar_one()


# ══════════════════════════════════════════════════════════════════════════
# Unit-Test Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A mock async database session for tests that must not touch SQLite.

    Usage:
        mock_db_session.get.return_value = note
        await service.get_note_or_404(mock_db_session, 1)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


def png_bytes(width: int = 64, height: int = 48, color=(200, 120, 40)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def sample_image_bytes():
    """A real PNG, so libmagic and Pillow both accept it."""
    return png_bytes()


@pytest.fixture
def image_b64(sample_image_bytes):
    return "data:image/png;base64," + base64.b64encode(sample_image_bytes).decode("ascii")


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def client(database):
    """
    HTTPX AsyncClient on a fresh app (fresh rate-limit buckets).

    ASGITransport does not run the lifespan, so the scheduled publisher is
    not started during tests.
    """
    from notarium.main import create_app

    transport = ASGITransport(app=create_app())
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
