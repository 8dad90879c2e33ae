"""Integration test fixtures: the FastAPI app on the shared in-memory database."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nomina_engine.api.app import create_app
from nomina_engine.api.dependencies import get_db_session
from nomina_engine.models import Company
from nomina_engine.services.locking_service import (
    PeriodLockManager,
    get_lock_manager,
    set_lock_manager,
)


@pytest.fixture
def api_lock_manager() -> PeriodLockManager:
    """Fresh process-wide lock manager for each test."""
    previous = get_lock_manager()
    manager = PeriodLockManager()
    set_lock_manager(manager)
    yield manager
    set_lock_manager(previous)


@pytest.fixture
def app(session_factory: async_sessionmaker[AsyncSession], api_lock_manager) -> FastAPI:
    """Application whose requests use the test database."""
    app = create_app()

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def headers(test_company: Company) -> dict[str, str]:
    """Headers identifying the test company and an acting user."""
    return {"X-Company-ID": str(test_company.company_id), "X-Actor-ID": "api-tester"}
