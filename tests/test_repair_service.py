"""Tests for period repair."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from nomina_engine.errors import ClosedPeriodError, PeriodLockedError, PeriodNotFoundError
from nomina_engine.models import AuditEvent
from nomina_engine.services.repair_service import RepairService


@pytest.fixture
def service(session, period_service) -> RepairService:
    return RepairService(session, period_service)


class TestRepairPeriod:
    async def test_recomputes_records_and_totals(self, session, service, loaded_period):
        period_id = loaded_period.period_id

        outcome = await service.repair_period(period_id, loaded_period.company_id, actor_id="ops")

        assert outcome["employees_count"] == 3
        assert outcome["totals_updated"] is True
        assert outcome["totals"]["total_net"] == Decimal("17342952")
        assert len(outcome["repair_log"]) == 4
        assert loaded_period.total_gross == Decimal("22311750")
        assert loaded_period.state == "draft"

        steps = (await session.execute(
            select(AuditEvent.step)
            .where(AuditEvent.period_id == period_id)
            .order_by(AuditEvent.sequence)
        )).scalars().all()
        assert steps == ["records_recalculated", "totals_updated"]

    async def test_picks_up_new_novedades(
        self, session, service, period_service, loaded_period, test_employees
    ):
        await service.repair_period(loaded_period.period_id, loaded_period.company_id)
        await period_service.add_event(
            loaded_period, test_employees[0].employee_id, "libranza", Decimal("50000")
        )
        await session.commit()

        outcome = await service.repair_period(loaded_period.period_id, loaded_period.company_id)

        assert outcome["totals"]["total_net"] == Decimal("17292952")
        records = await period_service.get_records(loaded_period.period_id)
        assert not any(r.is_stale for r in records)

    async def test_invalid_record_is_marked(self, session, service, loaded_period):
        records = await service.period_service.get_records(loaded_period.period_id)
        records[0].base_salary = Decimal("0")
        await session.commit()

        outcome = await service.repair_period(loaded_period.period_id, loaded_period.company_id)

        assert outcome["employees_count"] == 2
        assert records[0].status == "error"
        assert any("must be positive" in line for line in outcome["repair_log"])

    async def test_closed_period_is_refused(self, session, service, loaded_period):
        loaded_period.state = "closed"
        await session.commit()

        with pytest.raises(ClosedPeriodError):
            await service.repair_period(loaded_period.period_id, loaded_period.company_id)

    async def test_unknown_period(self, service, test_company):
        with pytest.raises(PeriodNotFoundError):
            await service.repair_period(uuid4(), test_company.company_id)

    async def test_busy_period(self, service, lock_manager, loaded_period):
        async with lock_manager.try_hold(loaded_period.period_id):
            with pytest.raises(PeriodLockedError):
                await service.repair_period(loaded_period.period_id, loaded_period.company_id)
