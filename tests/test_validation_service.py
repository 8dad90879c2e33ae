"""Tests for pre-liquidation validation."""

from decimal import Decimal
from uuid import uuid4

import pytest

from nomina_engine.services.validation_service import (
    CHECK_WEIGHTS,
    CheckCategory,
    ValidationCheck,
    ValidationEngine,
    compute_score,
)


@pytest.fixture
def engine(session, period_service, settings) -> ValidationEngine:
    return ValidationEngine(session, period_service, settings)


def test_weights_cover_three_tiers():
    categories = {category for category, _ in CHECK_WEIGHTS.values()}
    assert categories == set(CheckCategory)
    assert sum(weight for _, weight in CHECK_WEIGHTS.values()) == 154


def test_compute_score():
    checks = [
        ValidationCheck("a", CheckCategory.CRITICAL, 30, True, ""),
        ValidationCheck("b", CheckCategory.MINOR, 10, False, ""),
    ]
    assert compute_score(checks) == 75
    assert compute_score([]) == 0


class TestValidate:
    async def test_loaded_period_scores_full(self, engine, loaded_period):
        report = await engine.validate(loaded_period.period_id, loaded_period.company_id)

        assert report.score == 100
        assert report.can_proceed is True
        assert report.must_repair == []
        assert report.summary["critical"] == {"passed": 5, "total": 5}

    async def test_missing_period(self, engine, test_company):
        report = await engine.validate(uuid4(), test_company.company_id)

        assert report.score == 0
        assert report.can_proceed is False
        assert report.get("period_exists").passed is False
        assert len(report.checks) == len(CHECK_WEIGHTS)

    async def test_period_of_another_company_is_missing(self, engine, loaded_period):
        report = await engine.validate(loaded_period.period_id, uuid4())
        assert report.get("period_exists").passed is False

    async def test_no_employees_is_critical(self, engine, test_period):
        report = await engine.validate(test_period.period_id, test_period.company_id)

        assert report.can_proceed is False
        check = report.get("employees_loaded")
        assert check.passed is False
        assert check.auto_repairable is True

    async def test_stale_record_only_costs_its_weight(
        self, engine, period_service, loaded_period, test_employees
    ):
        await period_service.add_event(
            loaded_period, test_employees[0].employee_id, "bonificacion", Decimal("50000")
        )

        report = await engine.validate(loaded_period.period_id, loaded_period.company_id)

        assert report.get("novedades_processed").passed is False
        # 146 of 154
        assert report.score == 95
        assert report.can_proceed is True
        assert report.warnings

    async def test_below_minimum_wage(self, session, engine, loaded_period):
        records = await engine.period_service.get_records(loaded_period.period_id)
        records[0].base_salary = Decimal("900000")
        await session.flush()

        report = await engine.validate(loaded_period.period_id, loaded_period.company_id)

        assert report.get("legal_compliance").passed is False
        assert report.critical_passed is True

    async def test_invalid_salary_blocks(self, session, engine, loaded_period):
        records = await engine.period_service.get_records(loaded_period.period_id)
        records[0].base_salary = Decimal("0")
        await session.flush()

        report = await engine.validate(loaded_period.period_id, loaded_period.company_id)

        assert report.get("valid_salaries").passed is False
        assert report.can_proceed is False
        assert "valid_salaries" in report.to_dict()["must_repair"]

    async def test_closed_period_offers_reopen(self, session, engine, loaded_period):
        loaded_period.state = "closed"
        await session.commit()

        report = await engine.validate(loaded_period.period_id, loaded_period.company_id)

        check = report.get("period_state")
        assert check.passed is False
        assert check.auto_repairable is True


class TestAutoRepair:
    async def test_duplicates_keep_latest(
        self, session, engine, loaded_period, test_employees, make_record
    ):
        employee = test_employees[0]
        newest = await make_record(loaded_period, employee, worked_days=12)
        await session.commit()

        report = await engine.validate_pre_liquidation(
            loaded_period.period_id, loaded_period.company_id, repair=True
        )

        assert report.can_proceed is True
        assert report.repair_outcome.repaired_count == 1
        records = await engine.period_service.get_records(
            loaded_period.period_id, [employee.employee_id]
        )
        assert [r.record_id for r in records] == [newest.record_id]

    async def test_closed_period_is_reopened(self, session, engine, loaded_period):
        loaded_period.state = "closed"
        await session.commit()

        report = await engine.validate_and_repair(
            loaded_period.period_id, loaded_period.company_id, actor_id="ops"
        )

        assert report.can_proceed is True
        period = await engine.period_service.get_period(loaded_period.period_id)
        assert period.state == "processing"
        assert period.reopen_count == 1
        assert period.last_reopened_by == "ops"

    async def test_stale_records_are_recalculated(
        self, session, engine, period_service, loaded_period, test_employees
    ):
        await period_service.add_event(
            loaded_period, test_employees[1].employee_id, "bonificacion", Decimal("50000")
        )
        await session.commit()

        report = await engine.validate_and_repair(loaded_period.period_id, loaded_period.company_id)

        assert report.score == 100
        records = await period_service.get_records(loaded_period.period_id)
        assert all(r.status == "calculated" for r in records)
        assert not any(r.is_stale for r in records)

    async def test_empty_period_loads_employees(self, engine, test_period, test_employees):
        report = await engine.validate_and_repair(test_period.period_id, test_period.company_id)

        assert report.get("employees_loaded").passed is True
        assert report.repair_outcome.success is True

    async def test_failed_repair_is_collected(self, engine, test_period):
        # No employees in the company: the load repair cannot succeed
        report = await engine.validate_and_repair(test_period.period_id, test_period.company_id)

        assert report.can_proceed is False
        assert report.repair_outcome.success is False
        assert report.repair_outcome.errors

    async def test_without_repair_returns_plain_validation(self, engine, loaded_period):
        report = await engine.validate_pre_liquidation(loaded_period.period_id, loaded_period.company_id)
        assert report.repair_outcome is None
