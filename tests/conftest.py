"""
UnitTrack - Test Configuration

Pytest fixtures and configuration.
"""

import os

# Settings are read once at import time; configure the environment first.
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL_ASYNC"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unittrack"
os.environ["REMOTE_API_BASE_URL"] = "https://remote-inventory.test"
os.environ["REMOTE_AUTH_HEADER"] = "Bearer partner-token, User user-token"
os.environ["REMOTE_ACCEPT_HEADER"] = "application/vnd.api.v2+json"
os.environ["REMOTE_DEFAULT_MASTER_ID"] = "77"
os.environ["ENABLE_REMOTE_REPLICATION"] = "true"

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_async_session
from app.dependencies import get_session_user
from app.models.warehouse import Cabinet, Warehouse
from app.schemas.auth import SessionUser, UserRole
from app.services.remote_inventory_client import RemoteInventoryClient
from main import app
from tests.fixtures.factories import (
    CONSUMABLES_STORAGE_A,
    CONSUMABLES_STORAGE_B,
    CONSUMABLES_STORAGE_DC,
    create_cabinet,
    create_warehouse,
)
from tests.fixtures.remote_inventory_mock import (
    ACCEPT_HEADER,
    AUTH_HEADER,
    MockRemoteInventoryServer,
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh in-memory database and session for each test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def remote_server() -> MockRemoteInventoryServer:
    """Mock remote inventory API, active for the whole test."""
    server = MockRemoteInventoryServer()
    with server.activate():
        yield server


@pytest.fixture
def remote_client() -> RemoteInventoryClient:
    return RemoteInventoryClient(
        auth_header=AUTH_HEADER,
        accept_header=ACCEPT_HEADER,
        base_url=MockRemoteInventoryServer.BASE_URL,
        timeout=5,
        default_master_id=77,
    )


# ===========================================
# USERS
# ===========================================

class ActingUser:
    """Holder the auth override reads on every request; tests swap ``user``."""

    def __init__(self, user: SessionUser):
        self.user = user


@pytest.fixture
def admin_user() -> SessionUser:
    return SessionUser(user_id="admin-1", role=UserRole.ADMIN)


@pytest.fixture
def acting_user(admin_user: SessionUser) -> ActingUser:
    return ActingUser(admin_user)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, acting_user: ActingUser) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session and session user overrides."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_session_user] = lambda: acting_user.user

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def anonymous_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Test client that goes through real token verification."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def warehouse_a(db_session: AsyncSession) -> Warehouse:
    """Branch warehouse mapped to remote company 501."""
    return await create_warehouse(
        db_session, "Branch North", location_id=501, storage_id=CONSUMABLES_STORAGE_A,
        timezone="America/Mexico_City",
    )


@pytest_asyncio.fixture
async def warehouse_b(db_session: AsyncSession) -> Warehouse:
    """Branch warehouse mapped to remote company 502."""
    return await create_warehouse(
        db_session, "Branch South", location_id=502, storage_id=CONSUMABLES_STORAGE_B,
    )


@pytest_asyncio.fixture
async def distribution_center(db_session: AsyncSession) -> Warehouse:
    return await create_warehouse(
        db_session, "Central DC", location_id=500, storage_id=CONSUMABLES_STORAGE_DC,
        is_distribution_center=True,
    )


@pytest_asyncio.fixture
async def cabinet_a(db_session: AsyncSession, warehouse_a: Warehouse) -> Cabinet:
    return await create_cabinet(db_session, warehouse_a)
