"""Pre-liquidation validation with weighted scoring and auto-repair."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.calculators import get_statutory_values
from nomina_engine.config import Settings, get_settings
from nomina_engine.models import Employee, PayrollEvent, PayrollPeriod, PayrollRecord
from nomina_engine.periods.strategy import Periodicity, get_strategy
from nomina_engine.services.audit_service import AuditTrail
from nomina_engine.services.period_service import PeriodService
from nomina_engine.services.state_machine import PeriodState, PeriodStateMachine

logger = logging.getLogger(__name__)

RepairAction = Callable[[], Awaitable[str]]


class CheckCategory(str, Enum):
    """Severity tier of a validation check."""

    CRITICAL = "critical"
    IMPORTANT = "important"
    MINOR = "minor"


# check_id -> (category, weight)
CHECK_WEIGHTS: dict[str, tuple[CheckCategory, int]] = {
    "period_exists": (CheckCategory.CRITICAL, 20),
    "period_state": (CheckCategory.CRITICAL, 15),
    "employees_loaded": (CheckCategory.CRITICAL, 25),
    "valid_salaries": (CheckCategory.CRITICAL, 20),
    "no_critical_duplicates": (CheckCategory.CRITICAL, 10),
    "data_integrity": (CheckCategory.IMPORTANT, 10),
    "novedades_processed": (CheckCategory.IMPORTANT, 8),
    "consistent_worked_days": (CheckCategory.IMPORTANT, 8),
    "valid_deductions": (CheckCategory.IMPORTANT, 8),
    "legal_compliance": (CheckCategory.IMPORTANT, 10),
    "data_optimization": (CheckCategory.MINOR, 5),
    "historical_consistency": (CheckCategory.MINOR, 5),
    "performance_indicators": (CheckCategory.MINOR, 3),
    "complete_metadata": (CheckCategory.MINOR, 3),
    "reporting_readiness": (CheckCategory.MINOR, 4),
}


@dataclass
class ValidationCheck:
    """One rule evaluated against a period."""

    check_id: str
    category: CheckCategory
    weight: int
    passed: bool
    message: str
    repair: RepairAction | None = field(default=None, repr=False, compare=False)
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def auto_repairable(self) -> bool:
        return self.repair is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.check_id,
            "category": self.category.value,
            "weight": self.weight,
            "passed": self.passed,
            "message": self.message,
            "auto_repairable": self.auto_repairable,
            "details": self.details,
        }


@dataclass
class RepairOutcome:
    """Result of running the repair actions of failing checks."""

    success: bool = True
    repaired_count: int = 0
    errors: list[str] = field(default_factory=list)
    log: list[str] = field(default_factory=list)


def compute_score(checks: list[ValidationCheck]) -> int:
    """round(100 * passed weight / total weight); 0 without checks."""
    total = sum(c.weight for c in checks)
    if total == 0:
        return 0
    passed = sum(c.weight for c in checks if c.passed)
    return round(100 * passed / total)


@dataclass
class ValidationReport:
    """Scored outcome of a validation pass."""

    period_id: UUID
    company_id: UUID
    checks: list[ValidationCheck]
    min_score: int = 90
    repair_outcome: RepairOutcome | None = None

    @property
    def score(self) -> int:
        return compute_score(self.checks)

    @property
    def critical_passed(self) -> bool:
        return all(c.passed for c in self.checks if c.category == CheckCategory.CRITICAL)

    @property
    def can_proceed(self) -> bool:
        return self.critical_passed and self.score >= self.min_score

    @property
    def is_valid(self) -> bool:
        return self.can_proceed

    @property
    def must_repair(self) -> list[ValidationCheck]:
        return [c for c in self.checks if c.category == CheckCategory.CRITICAL and not c.passed]

    @property
    def errors(self) -> list[str]:
        return [c.message for c in self.must_repair]

    @property
    def warnings(self) -> list[str]:
        return [
            c.message
            for c in self.checks
            if c.category != CheckCategory.CRITICAL and not c.passed
        ]

    @property
    def summary(self) -> dict[str, dict[str, int]]:
        summary = {category.value: {"passed": 0, "total": 0} for category in CheckCategory}
        for check in self.checks:
            summary[check.category.value]["total"] += 1
            if check.passed:
                summary[check.category.value]["passed"] += 1
        return summary

    def get(self, check_id: str) -> ValidationCheck:
        for check in self.checks:
            if check.check_id == check_id:
                return check
        raise KeyError(check_id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "is_valid": self.is_valid,
            "can_proceed": self.can_proceed,
            "score": self.score,
            "checks": [c.to_dict() for c in self.checks],
            "must_repair": [c.check_id for c in self.must_repair],
            "summary": self.summary,
            "errors": self.errors,
            "warnings": self.warnings,
        }
        if self.repair_outcome is not None:
            data["repair"] = {
                "success": self.repair_outcome.success,
                "repaired_count": self.repair_outcome.repaired_count,
                "errors": self.repair_outcome.errors,
                "log": self.repair_outcome.log,
            }
        return data


def _recency(record: PayrollRecord) -> datetime:
    stamp = record.updated_at or record.created_at
    if stamp is None:
        return datetime.min
    if stamp.tzinfo is not None:
        stamp = stamp.astimezone(timezone.utc).replace(tzinfo=None)
    return stamp


class ValidationEngine:
    """Gate liquidation behind a scored three-tier validation pass.

    Operations:
    - validate: run every check and score the period
    - auto_repair: run repair actions of failing checks, one commit each
    - validate_and_repair: validate, repair, then validate again
    - validate_pre_liquidation: entry point used before liquidating
    """

    def __init__(
        self,
        session: AsyncSession,
        period_service: PeriodService | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.period_service = period_service or PeriodService(session)
        self.settings = settings or get_settings()

    def _check(
        self,
        check_id: str,
        passed: bool,
        message: str,
        repair: RepairAction | None = None,
        **details: Any,
    ) -> ValidationCheck:
        category, weight = CHECK_WEIGHTS[check_id]
        return ValidationCheck(
            check_id=check_id,
            category=category,
            weight=weight,
            passed=passed,
            message=message,
            repair=None if passed else repair,
            details=details,
        )

    async def validate(
        self, period_id: UUID, company_id: UUID, actor_id: str | None = None
    ) -> ValidationReport:
        """Run all checks against the period.

        `actor_id` is recorded on audit entries written by repair actions.
        """
        period = await self.period_service.get_period(period_id, company_id)
        if period is None:
            checks = [self._check("period_exists", False, "Período no encontrado")]
            checks += [
                self._check(check_id, False, "Período no encontrado")
                for check_id in CHECK_WEIGHTS
                if check_id != "period_exists"
            ]
            return ValidationReport(period_id, company_id, checks, self.settings.liquidation_min_score)

        records = await self.period_service.get_records(period_id)
        events = await self.period_service.get_events(period_id)
        employees = await self._company_employees(company_id, {r.employee_id for r in records})

        checks = [self._check("period_exists", True, "Período encontrado")]
        checks += self._critical_checks(period, records, actor_id)
        checks += self._important_checks(period, records, employees)
        checks += await self._minor_checks(period, records, events)

        report = ValidationReport(period_id, company_id, checks, self.settings.liquidation_min_score)
        logger.info(
            "Validated period %s: score=%d can_proceed=%s failed=%s",
            period_id,
            report.score,
            report.can_proceed,
            [c.check_id for c in checks if not c.passed],
        )
        return report

    async def auto_repair(self, report: ValidationReport) -> RepairOutcome:
        """Run each failing check's repair; each commits or rolls back alone.

        Errors are collected, never raised.
        """
        outcome = RepairOutcome()
        for check in report.checks:
            if check.passed or check.repair is None:
                continue
            try:
                description = await check.repair()
                await self.session.commit()
                outcome.repaired_count += 1
                outcome.log.append(f"{check.check_id}: {description}")
            except Exception as exc:
                logger.exception("Repair of %s failed for period %s", check.check_id, report.period_id)
                await self.session.rollback()
                outcome.errors.append(f"{check.check_id}: {exc}")
        outcome.success = not outcome.errors
        return outcome

    async def validate_and_repair(
        self, period_id: UUID, company_id: UUID, actor_id: str | None = None
    ) -> ValidationReport:
        """Validate, repair what can be repaired, then validate again."""
        first = await self.validate(period_id, company_id, actor_id)
        if not any(c.repair for c in first.checks):
            return first
        outcome = await self.auto_repair(first)
        final = await self.validate(period_id, company_id)
        final.repair_outcome = outcome
        return final

    async def validate_pre_liquidation(
        self,
        period_id: UUID,
        company_id: UUID,
        repair: bool = False,
        actor_id: str | None = None,
    ) -> ValidationReport:
        """Score a period before liquidation, optionally repairing it first."""
        if repair:
            return await self.validate_and_repair(period_id, company_id, actor_id)
        return await self.validate(period_id, company_id, actor_id)

    # ----- check groups -----

    def _critical_checks(
        self, period: PayrollPeriod, records: list[PayrollRecord], actor_id: str | None
    ) -> list[ValidationCheck]:
        period_id, company_id = period.period_id, period.company_id
        checks: list[ValidationCheck] = []

        editable = PeriodStateMachine.is_editable(period.state)
        checks.append(self._check(
            "period_state",
            editable,
            f"Estado del período: {period.state}",
            repair=(
                self._reopen_repair(period_id, company_id, actor_id)
                if period.state == PeriodState.CLOSED
                else None
            ),
            state=period.state,
        ))

        checks.append(self._check(
            "employees_loaded",
            len(records) > 0,
            f"{len(records)} empleado(s) cargado(s)",
            repair=self._load_employees_repair(period_id, company_id) if editable else None,
            count=len(records),
        ))

        bad_salaries = [str(r.employee_id) for r in records if r.base_salary is None or r.base_salary <= 0]
        checks.append(self._check(
            "valid_salaries",
            not bad_salaries,
            "Salarios válidos" if not bad_salaries else f"{len(bad_salaries)} empleado(s) sin salario base válido",
            employees=bad_salaries,
        ))

        counts = Counter(r.employee_id for r in records)
        duplicated = [employee_id for employee_id, n in counts.items() if n > 1]
        checks.append(self._check(
            "no_critical_duplicates",
            not duplicated,
            "Sin duplicados" if not duplicated else f"{len(duplicated)} empleado(s) duplicado(s)",
            repair=self._dedupe_repair(period_id, company_id) if editable else None,
            employees=[str(e) for e in duplicated],
        ))
        return checks

    def _important_checks(
        self,
        period: PayrollPeriod,
        records: list[PayrollRecord],
        employees: dict[UUID, Employee],
    ) -> list[ValidationCheck]:
        period_id, company_id = period.period_id, period.company_id
        editable = PeriodStateMachine.is_editable(period.state)
        checks: list[ValidationCheck] = []

        orphans = [str(r.employee_id) for r in records if r.employee_id not in employees]
        checks.append(self._check(
            "data_integrity",
            not orphans,
            "Integridad referencial correcta" if not orphans
            else f"{len(orphans)} registro(s) sin empleado válido de la empresa",
            employees=orphans,
        ))

        stale = [r for r in records if r.is_stale]
        checks.append(self._check(
            "novedades_processed",
            not stale,
            "Novedades procesadas" if not stale
            else f"{len(stale)} registro(s) con novedades pendientes de calcular",
            repair=self._recalculate_stale_repair(period_id, company_id) if editable else None,
            employees=[str(r.employee_id) for r in stale],
        ))

        max_days = get_strategy(period.periodicity).standard_days(period.start_date, period.end_date)
        bad_days = [
            str(r.employee_id) for r in records if not 0 < r.worked_days <= min(max_days, 30)
        ]
        checks.append(self._check(
            "consistent_worked_days",
            not bad_days,
            "Días trabajados consistentes" if not bad_days
            else f"{len(bad_days)} registro(s) con días trabajados fuera de 1..{max_days}",
            employees=bad_days,
        ))

        bad_deductions = [
            str(r.employee_id)
            for r in records
            if r.status == "calculated"
            and not (0 <= r.total_deductions <= r.gross_pay)
        ]
        checks.append(self._check(
            "valid_deductions",
            not bad_deductions,
            "Deducciones dentro de rango" if not bad_deductions
            else f"{len(bad_deductions)} registro(s) con deducciones fuera de rango",
            employees=bad_deductions,
        ))

        smmlv = get_statutory_values(period.period_year).smmlv
        below_minimum = [
            str(r.employee_id) for r in records if r.base_salary is not None and 0 < r.base_salary < smmlv
        ]
        checks.append(self._check(
            "legal_compliance",
            not below_minimum,
            "Cumple salario mínimo" if not below_minimum
            else f"{len(below_minimum)} empleado(s) por debajo del SMMLV ({smmlv})",
            employees=below_minimum,
        ))
        return checks

    async def _minor_checks(
        self,
        period: PayrollPeriod,
        records: list[PayrollRecord],
        events: dict[UUID, list[PayrollEvent]],
    ) -> list[ValidationCheck]:
        checks: list[ValidationCheck] = []

        with_record = {r.employee_id for r in records}
        unattached = [str(e) for e in events if e not in with_record]
        checks.append(self._check(
            "data_optimization",
            not unattached,
            "Sin novedades huérfanas" if not unattached
            else f"{len(unattached)} empleado(s) con novedades sin registro de nómina",
            employees=unattached,
        ))

        result = await self.session.execute(
            select(PayrollPeriod.period_id, PayrollPeriod.label).where(
                PayrollPeriod.company_id == period.company_id,
                PayrollPeriod.period_id != period.period_id,
                PayrollPeriod.start_date <= period.end_date,
                PayrollPeriod.end_date >= period.start_date,
            )
        )
        overlapping = [row.label for row in result]
        checks.append(self._check(
            "historical_consistency",
            not overlapping,
            "Sin superposición con otros períodos" if not overlapping
            else f"Se superpone con: {', '.join(overlapping)}",
        ))

        limit = self.settings.max_employees_per_period
        checks.append(self._check(
            "performance_indicators",
            len(records) <= limit,
            f"{len(records)} registro(s) (límite {limit})",
        ))

        complete = bool(period.label) and period.sequence_number >= 1 and period.periodicity in {
            p.value for p in Periodicity
        }
        checks.append(self._check(
            "complete_metadata",
            complete,
            "Metadatos completos" if complete else "Faltan metadatos del período",
        ))

        coherent = get_strategy(period.periodicity).is_coherent(
            period.start_date, period.end_date, period.sequence_number
        )
        checks.append(self._check(
            "reporting_readiness",
            coherent,
            "Fechas estándar del período" if coherent
            else "Las fechas no coinciden con un período estándar",
        ))
        return checks

    async def _company_employees(
        self, company_id: UUID, employee_ids: set[UUID]
    ) -> dict[UUID, Employee]:
        if not employee_ids:
            return {}
        result = await self.session.execute(
            select(Employee).where(
                Employee.company_id == company_id,
                Employee.employee_id.in_(employee_ids),
            )
        )
        return {e.employee_id: e for e in result.scalars().all()}

    # ----- repairs -----

    def _reopen_repair(
        self, period_id: UUID, company_id: UUID, actor_id: str | None
    ) -> RepairAction:
        async def repair() -> str:
            period = await self.period_service.require_period(period_id, company_id)
            if period.state != PeriodState.CLOSED:
                return "already editable"
            audit = AuditTrail(
                self.session,
                company_id=company_id,
                period_id=period_id,
                operation="repair",
                actor_id=actor_id,
            )
            await self.period_service.transition(
                period,
                PeriodState.PROCESSING,
                audit,
                reason="auto_repair: period reopened to allow liquidation",
            )
            return "period reopened to processing"

        return repair

    def _load_employees_repair(self, period_id: UUID, company_id: UUID) -> RepairAction:
        async def repair() -> str:
            period = await self.period_service.require_period(period_id, company_id)
            created = await self.period_service.load_employees(period)
            if not created:
                raise RuntimeError("no active employees to load")
            return f"{len(created)} employee(s) loaded"

        return repair

    def _dedupe_repair(self, period_id: UUID, company_id: UUID) -> RepairAction:
        async def repair() -> str:
            period = await self.period_service.require_period(period_id, company_id)
            self.period_service.ensure_editable(period, "deduplicate")
            records = await self.period_service.get_records(period_id)
            by_employee: dict[UUID, list[PayrollRecord]] = {}
            for record in records:
                by_employee.setdefault(record.employee_id, []).append(record)

            to_delete: list[UUID] = []
            for group in by_employee.values():
                if len(group) < 2:
                    continue
                group.sort(key=_recency)
                to_delete.extend(r.record_id for r in group[:-1])

            if to_delete:
                await self.session.execute(
                    delete(PayrollRecord)
                    .where(PayrollRecord.record_id.in_(to_delete))
                    .execution_options(synchronize_session=False)
                )
                for record in records:
                    if record.record_id in to_delete:
                        self.session.expunge(record)
            return f"{len(to_delete)} duplicate record(s) removed"

        return repair

    def _recalculate_stale_repair(self, period_id: UUID, company_id: UUID) -> RepairAction:
        async def repair() -> str:
            period = await self.period_service.require_period(period_id, company_id)
            self.period_service.ensure_editable(period, "recalculate")
            records = await self.period_service.get_records(period_id)
            events = await self.period_service.get_events(period_id)
            recalculated = 0
            for record in records:
                if record.is_stale:
                    await self.period_service.recalculate_record(
                        period, record, events.get(record.employee_id, [])
                    )
                    recalculated += 1
            await self.period_service.recompute_totals(period, records)
            return f"{recalculated} record(s) recalculated"

        return repair
