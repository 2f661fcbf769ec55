"""Pytest configuration and fixtures for POS Admin tests.

Provides reusable fixtures for the database, organizations, users and
authentication. API tests run against an in-memory SQLite database with
Redis caching switched off.
"""

import os

os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DEBUG", "false")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.jwt import create_access_token
from app.auth.permission_defaults import default_organization_permissions
from app.database import Base, get_db
from app.main import app
from app.models.public.organization import Organization
from app.models.public.user import User
from app.schemas.permissions import OrganizationPermissions, UserRole
from app.services.organization_permissions import create_organization

TEST_DATABASE_URL = "sqlite+aiosqlite://"


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """In-memory database shared by every connection of one test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database dependency."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest.fixture
def default_permissions() -> OrganizationPermissions:
    return default_organization_permissions()


@pytest_asyncio.fixture
async def organization(db_session: AsyncSession) -> Organization:
    """Organization seeded with the default permission template."""
    return await create_organization(db_session, "Test Organization")


@pytest_asyncio.fixture
async def other_organization(db_session: AsyncSession) -> Organization:
    return await create_organization(db_session, "Other Organization")


@pytest.fixture
def make_user(db_session: AsyncSession, organization: Organization):
    """Factory: create a user with the given role (default organization)."""
    counter = 0

    async def _make(role: UserRole, org: Organization | None = None) -> User:
        nonlocal counter
        counter += 1
        user = User(
            email=f"{role.value}{counter}@example.com",
            full_name=f"Test {role.value.title()} {counter}",
            role=role,
            is_active=True,
            organization_id=(org or organization).id,
        )
        db_session.add(user)
        await db_session.flush()
        await db_session.refresh(user)
        return user

    return _make


@pytest_asyncio.fixture
async def admin_user(make_user) -> User:
    return await make_user(UserRole.ADMIN)


@pytest_asyncio.fixture
async def manager_user(make_user) -> User:
    return await make_user(UserRole.MANAGER)


@pytest_asyncio.fixture
async def basic_user(make_user) -> User:
    return await make_user(UserRole.USER)


def headers_for(user: User) -> dict:
    """Authorization headers carrying a fresh access token for `user`."""
    token = create_access_token(
        user_id=user.id,
        role=user.role.value,
        organization_id=user.organization_id,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers_for():
    return headers_for


@pytest.fixture
def auth_headers(admin_user: User) -> dict:
    """Authorization headers for the organization admin."""
    return headers_for(admin_user)


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "permissions: Permission engine tests")
    config.addinivalue_line("markers", "cache: Cache utility tests")
    config.addinivalue_line("markers", "slow: Slow tests")
