"""Pytest fixtures for AutoHaul tests."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.app import app
from src.database.base import Base
from src.database.session import get_db
from src.modules.tms.client import TmsClient, get_tms_client

# Use SQLite for lightweight in-process testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///file::memory:?cache=shared&uri=true"


@pytest_asyncio.fixture
async def async_test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def async_test_session(async_test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        async_test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_tms_client():
    client = AsyncMock(spec=TmsClient)
    client.get_order.return_value = None
    return client


@pytest_asyncio.fixture
async def async_client(
    async_test_session: AsyncSession, mock_tms_client
) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient wired to the FastAPI app with a test DB session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield async_test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_tms_client] = lambda: mock_tms_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
