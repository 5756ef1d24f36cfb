"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test settings before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ["ENVIRONMENT"] = "test"

import uuid
from datetime import datetime, time, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from werkzeug.security import generate_password_hash

from manahr.auth import service as auth_service
from manahr.common.constants import RoleLevel, UserStatus
from manahr.config import settings
from manahr.database import Base, get_db
from manahr.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module foreign keys
import manahr.attendance.models  # noqa: F401
import manahr.auth.models  # noqa: F401
import manahr.common.audit  # noqa: F401
import manahr.core_hr.models  # noqa: F401
import manahr.leave.models  # noqa: F401
import manahr.payroll.models  # noqa: F401
import manahr.roles.models  # noqa: F401
from manahr.auth.models import UserSession
from manahr.core_hr.models import Organization, User

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import INET, JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(INET, "sqlite")
def _inet_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and gen_random_uuid() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "gen_random_uuid", 0, lambda: str(uuid.uuid4()),
    )


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)

TEST_PASSWORD = "Password123!"
# Cheap hash for fixtures; production uses werkzeug's default method
_PASSWORD_HASH = generate_password_hash(TEST_PASSWORD, method="pbkdf2:sha256:1000")


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

async def make_org(
    db: AsyncSession,
    *,
    code: str = "ACME",
    name: Optional[str] = None,
    tz: str = "UTC",
    work_start: time = time(9, 0),
) -> Organization:
    org = Organization(code=code, name=name or f"{code} Corp", timezone=tz, work_start_time=work_start)
    db.add(org)
    await db.flush()
    return org


async def make_user(
    db: AsyncSession,
    *,
    org: str = "ACME",
    role: int = int(RoleLevel.EMPLOYEE),
    email: Optional[str] = None,
    full_name: str = "Test User",
    employee_code: Optional[str] = None,
    status: UserStatus = UserStatus.active,
    salary_structure: Optional[dict] = None,
) -> User:
    suffix = uuid.uuid4().hex[:6]
    user = User(
        full_name=full_name,
        email=email or f"user.{suffix}@example.com",
        password_hash=_PASSWORD_HASH,
        role=int(role),
        status=status,
        organization_code=org,
        employee_code=employee_code,
        salary_structure=salary_structure,
    )
    db.add(user)
    await db.flush()
    return user


# ── Auth helpers ────────────────────────────────────────────────────

async def auth_headers_for(db: AsyncSession, user: User) -> dict[str, str]:
    """Bearer + organization headers backed by a persisted session row."""
    token, _ = auth_service.create_access_token(user)
    db.add(
        UserSession(
            user_id=user.id,
            token_hash=auth_service.hash_token(token),
            expires_at=datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS),
            is_revoked=False,
        )
    )
    await db.flush()
    return {
        "Authorization": f"Bearer {token}",
        "X-Organization-Code": user.organization_code,
    }


# ── Common fixtures ─────────────────────────────────────────────────

@pytest.fixture
async def org(db) -> Organization:
    return await make_org(db)


@pytest.fixture
async def employee(db, org) -> User:
    return await make_user(
        db, full_name="Asha Employee", email="asha@acme.com", employee_code="E001",
    )


@pytest.fixture
async def manager(db, org) -> User:
    return await make_user(
        db,
        role=RoleLevel.MANAGER,
        full_name="Maya Manager",
        email="maya@acme.com",
        employee_code="M001",
    )


@pytest.fixture
async def hr_user(db, org) -> User:
    return await make_user(
        db, role=RoleLevel.HR, full_name="Hari HR", email="hari@acme.com", employee_code="H001",
    )


@pytest.fixture
async def admin(db, org) -> User:
    return await make_user(
        db, role=RoleLevel.ADMIN, full_name="Ada Admin", email="ada@acme.com",
    )


@pytest.fixture
async def employee_headers(db, employee) -> dict[str, str]:
    headers = await auth_headers_for(db, employee)
    await db.commit()
    return headers


@pytest.fixture
async def hr_headers(db, hr_user) -> dict[str, str]:
    headers = await auth_headers_for(db, hr_user)
    await db.commit()
    return headers


@pytest.fixture
async def admin_headers(db, admin) -> dict[str, str]:
    headers = await auth_headers_for(db, admin)
    await db.commit()
    return headers
