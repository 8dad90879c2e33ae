"""Pytest fixtures for nomina engine tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from nomina_engine.config import Settings
from nomina_engine.models import Base, Company, Employee, PayrollPeriod, PayrollRecord
from nomina_engine.periods.strategy import get_strategy
from nomina_engine.services.liquidation_service import LiquidationService, LiquidationStatus
from nomina_engine.services.locking_service import PeriodLockManager
from nomina_engine.services.period_service import PeriodService

# In-memory SQLite shared through a single connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SMMLV_2025 = Decimal("1423500")


@pytest_asyncio.fixture
async def db_engine():
    """Create test database engine with a fresh schema."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the process environment."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="DEBUG",
    )


@pytest.fixture
def lock_manager() -> PeriodLockManager:
    return PeriodLockManager()


@pytest.fixture
def period_service(session: AsyncSession, lock_manager: PeriodLockManager) -> PeriodService:
    return PeriodService(session, lock_manager=lock_manager)


@pytest_asyncio.fixture
async def test_company(session: AsyncSession) -> Company:
    """Create a biweekly test company."""
    company = Company(
        company_id=uuid4(),
        name="Comercializadora Andina SAS",
        nit="900123456-7",
        periodicity="biweekly",
        status="active",
    )
    session.add(company)
    await session.commit()
    return company


@pytest_asyncio.fixture
async def test_employees(session: AsyncSession, test_company: Company) -> list[Employee]:
    """Three active employees: minimum wage, mid salary and high salary."""
    employees = []
    for i, (first_name, last_name, salary) in enumerate([
        ("Ana", "Gómez", SMMLV_2025),
        ("Carlos", "Pérez", Decimal("3000000")),
        ("Diana", "Rojas", Decimal("40000000")),
    ], start=1):
        employee = Employee(
            employee_id=uuid4(),
            company_id=test_company.company_id,
            document_number=f"1000{i:04d}",
            first_name=first_name,
            last_name=last_name,
            email=f"{first_name.lower()}@andina.test",
            base_salary=salary,
            status="active",
            hire_date=date(2023, 1, 1),
        )
        session.add(employee)
        employees.append(employee)

    await session.commit()
    return employees


@pytest_asyncio.fixture
async def test_period(session: AsyncSession, test_company: Company) -> PayrollPeriod:
    """First biweekly period of 2025 (Jan 1-15), in draft."""
    bounds = get_strategy("biweekly").bounds_for_number(2025, 1)
    period = PayrollPeriod(
        period_id=uuid4(),
        company_id=test_company.company_id,
        start_date=bounds.start,
        end_date=bounds.end,
        periodicity="biweekly",
        period_year=bounds.year,
        sequence_number=bounds.sequence_number,
        label=bounds.label,
        state="draft",
    )
    session.add(period)
    await session.commit()
    return period


@pytest_asyncio.fixture
async def loaded_period(
    session: AsyncSession,
    period_service: PeriodService,
    test_period: PayrollPeriod,
    test_employees: list[Employee],
) -> PayrollPeriod:
    """Draft period with every test employee attached."""
    await period_service.load_employees(test_period)
    await session.commit()
    return test_period


@pytest.fixture
def make_record(session: AsyncSession):
    """Attach a record directly, bypassing load_employees."""

    async def _make(period: PayrollPeriod, employee: Employee, **overrides) -> PayrollRecord:
        values = {
            "period_id": period.period_id,
            "employee_id": employee.employee_id,
            "base_salary": employee.base_salary,
            "worked_days": 15,
            "status": "draft",
            "is_stale": False,
        }
        values.update(overrides)
        record = PayrollRecord(**values)
        session.add(record)
        await session.flush()
        return record

    return _make


@pytest_asyncio.fixture
async def liquidated_period(
    session: AsyncSession,
    period_service: PeriodService,
    settings: Settings,
    loaded_period: PayrollPeriod,
) -> PayrollPeriod:
    """Loaded period run through a completed liquidation (closed, vouchers issued)."""
    service = LiquidationService(session, period_service, settings=settings)
    result = await service.execute_atomic_liquidation(
        loaded_period.period_id, loaded_period.company_id, actor_id="setup"
    )
    assert result.status == LiquidationStatus.COMPLETED
    return loaded_period
