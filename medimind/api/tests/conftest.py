"""
Test Configuration and Fixtures

Shared fixtures for MediMind API tests.
Provides an isolated database, per-role users and authenticated clients.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from medimind.api.main import create_app
from medimind.api.db.models import Base, User
from medimind.api.db.session import get_db
from medimind.api.dependencies import get_audit_session_maker
from medimind.api.auth.jwt import create_access_token


# ==================== Database Fixtures ====================


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(async_engine) -> async_sessionmaker:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    async with session_maker() as session:
        yield session
        await session.rollback()


# ==================== Application Fixtures ====================


@pytest.fixture(scope="function")
def app(db_session, session_maker) -> FastAPI:
    """Create FastAPI app with test database."""
    test_app = create_app()

    async def override_get_db():
        yield db_session

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_audit_session_maker] = lambda: session_maker
    return test_app


@pytest_asyncio.fixture(scope="function")
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ==================== User Fixtures ====================


async def _create_user(db_session: AsyncSession, user_id: str, role: str) -> User:
    user = User(
        id=user_id,
        email=f"{user_id}@medimind.test",
        first_name=role.title(),
        last_name="User",
        role=role,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture(scope="function")
async def admin_user(db_session) -> User:
    return await _create_user(db_session, "admin-1", "admin")


@pytest_asyncio.fixture(scope="function")
async def super_admin_user(db_session) -> User:
    return await _create_user(db_session, "superadmin-1", "super-admin")


@pytest_asyncio.fixture(scope="function")
async def doctor_user(db_session) -> User:
    return await _create_user(db_session, "doctor-1", "doctor")


@pytest_asyncio.fixture(scope="function")
async def patient_user(db_session) -> User:
    return await _create_user(db_session, "patient-1", "patient")


def _headers(user: User) -> dict:
    token = create_access_token(user_id=user.id, email=user.email, role=user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def admin_headers(admin_user) -> dict:
    """Authorization headers for admin user."""
    return _headers(admin_user)


@pytest.fixture(scope="function")
def super_admin_headers(super_admin_user) -> dict:
    return _headers(super_admin_user)


@pytest.fixture(scope="function")
def doctor_headers(doctor_user) -> dict:
    return _headers(doctor_user)


@pytest.fixture(scope="function")
def patient_headers(patient_user) -> dict:
    return _headers(patient_user)
