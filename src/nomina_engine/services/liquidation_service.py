"""Period liquidation: validate, compute, persist, aggregate, close, issue vouchers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.config import Settings, get_settings
from nomina_engine.errors import CalculationError
from nomina_engine.models import PayrollPeriod, PayrollRecord
from nomina_engine.services.audit_service import AuditTrail, to_jsonable
from nomina_engine.services.locking_service import PeriodLockManager
from nomina_engine.services.period_service import PeriodService, PeriodTotals
from nomina_engine.services.state_machine import PeriodState
from nomina_engine.services.validation_service import ValidationEngine, ValidationReport
from nomina_engine.services.voucher_service import DatabaseVoucherGenerator, VoucherGenerator

logger = logging.getLogger(__name__)


class LiquidationStatus(str, Enum):
    """Outcome of a liquidation request."""

    REJECTED = "rejected"  # validation failed, nothing attempted
    COMPLETED = "completed"
    PARTIAL = "partial"  # closed, but some employees or vouchers failed
    FAILED = "failed"  # a transactional step raised; rolled back


@dataclass
class LiquidationResult:
    """Structured result of execute_atomic_liquidation."""

    period_id: UUID
    status: LiquidationStatus
    employees_processed: int = 0
    vouchers_generated: int = 0
    totals: PeriodTotals | None = None
    audit_log: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    validation: ValidationReport | None = None

    @property
    def success(self) -> bool:
        return self.status in (LiquidationStatus.COMPLETED, LiquidationStatus.PARTIAL)

    @property
    def attempted(self) -> bool:
        return self.status != LiquidationStatus.REJECTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_id": str(self.period_id),
            "status": self.status.value,
            "employees_processed": self.employees_processed,
            "vouchers_generated": self.vouchers_generated,
            "totals": to_jsonable(self.totals.to_dict()) if self.totals else None,
            "audit_log": self.audit_log,
            "errors": self.errors,
            "validation": self.validation.to_dict() if self.validation else None,
        }


class LiquidationService:
    """Turn a draft/processing period into a closed, paid period.

    Steps:
    1. validate (rejected results write one audit entry and stop)
    2. draft → processing
    3. load records and novedades
    4. compute each employee; failures are isolated and excluded from totals
    5. aggregate totals onto the period
    6. processing → closed, then commit
    7. issue vouchers after the commit (failures never reopen the period)

    Steps 2-6 share one database transaction. If any of them raises, the
    transaction is rolled back and an audit 'error' step is committed.
    The whole operation holds the period lock so concurrent liquidations
    of the same period are rejected.
    """

    def __init__(
        self,
        session: AsyncSession,
        period_service: PeriodService | None = None,
        validation: ValidationEngine | None = None,
        vouchers: VoucherGenerator | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.period_service = period_service or PeriodService(session)
        self.validation = validation or ValidationEngine(session, self.period_service, self.settings)
        self.vouchers = vouchers or DatabaseVoucherGenerator(session)

    @property
    def lock_manager(self) -> PeriodLockManager:
        return self.period_service.lock_manager

    async def execute_atomic_liquidation(
        self,
        period_id: UUID,
        company_id: UUID,
        actor_id: str | None = None,
    ) -> LiquidationResult:
        """Liquidate a period.

        Raises PeriodLockedError if another operation holds the period.
        """
        async with self.lock_manager.try_hold(period_id):
            return await self._liquidate(period_id, company_id, actor_id)

    async def _liquidate(
        self, period_id: UUID, company_id: UUID, actor_id: str | None
    ) -> LiquidationResult:
        report = await self.validation.validate(period_id, company_id, actor_id)
        audit = AuditTrail(
            self.session,
            company_id=company_id,
            period_id=period_id,
            operation="liquidation",
            actor_id=actor_id,
        )

        if not report.can_proceed:
            audit.record(
                "rejected",
                {
                    "score": report.score,
                    "must_repair": [c.check_id for c in report.must_repair],
                },
            )
            await audit.commit()
            logger.info("Liquidation of %s rejected (score %d)", period_id, report.score)
            return LiquidationResult(
                period_id=period_id,
                status=LiquidationStatus.REJECTED,
                audit_log=audit.as_list(),
                errors=[{"stage": "validation", "message": m} for m in report.errors],
                validation=report,
            )

        audit.record("start", {"score": report.score})
        employee_errors: list[dict[str, Any]] = []
        computed: dict[UUID, UUID] = {}  # record_id -> employee_id
        step = "preparation"
        try:
            period = await self.period_service.require_period(period_id, company_id)
            if period.state == PeriodState.DRAFT:
                await self.period_service.transition(period, PeriodState.PROCESSING, audit)

            step = "data_loading"
            records = await self.period_service.get_records(period_id)
            events = await self.period_service.get_events(period_id)
            audit.record(
                "data_loaded",
                {"employees": len(records), "events": sum(len(v) for v in events.values())},
            )

            step = "calculation"
            for record in records:
                outcome = self._compute(period, record, events.get(record.employee_id, []))
                if outcome is None:
                    computed[record.record_id] = record.employee_id
                else:
                    employee_errors.append(outcome)
            audit.record(
                "calculations_completed",
                {"processed": len(computed), "errors": len(employee_errors)},
            )
            if not computed:
                raise CalculationError("no employee could be calculated")

            step = "persistence"
            await self.session.flush()

            step = "totals"
            totals = await self.period_service.recompute_totals(period, records)
            audit.record("totals_updated", totals.to_dict())

            step = "closing"
            await self.period_service.transition(
                period, PeriodState.CLOSED, audit, reason="liquidation completed"
            )
            await audit.commit()
        except Exception as exc:
            logger.exception("Liquidation of %s failed during %s", period_id, step)
            rolled_back = audit.pending_steps()
            await self.session.rollback()
            audit.restore()
            audit.error(step, exc, rolled_back_steps=rolled_back)
            await audit.commit()
            return LiquidationResult(
                period_id=period_id,
                status=LiquidationStatus.FAILED,
                audit_log=audit.as_list(),
                errors=employee_errors + [{"stage": step, "message": str(exc)}],
                validation=report,
            )

        logger.info(
            "Period %s closed: %d employee(s), %d error(s)",
            period_id,
            len(computed),
            len(employee_errors),
        )

        vouchers_generated, voucher_errors = await self._issue_vouchers(period_id, computed, audit)
        audit.record("completed", {"employees": len(computed), "vouchers": vouchers_generated})
        await audit.commit()

        errors = employee_errors + voucher_errors
        return LiquidationResult(
            period_id=period_id,
            status=LiquidationStatus.PARTIAL if errors else LiquidationStatus.COMPLETED,
            employees_processed=len(computed),
            vouchers_generated=vouchers_generated,
            totals=totals,
            audit_log=audit.as_list(),
            errors=errors,
            validation=report,
        )

    def _compute(
        self, period: PayrollPeriod, record: PayrollRecord, events: list
    ) -> dict[str, Any] | None:
        """Compute one employee; return an error dict instead of raising."""
        try:
            result = self.period_service.calculate(period, record, events)
        except CalculationError as exc:
            logger.warning("Employee %s not calculated: %s", record.employee_id, exc)
            PeriodService.mark_error(record, str(exc))
            return {"stage": "calculation", "employee_id": str(record.employee_id), "message": str(exc)}
        except Exception as exc:
            logger.exception("Unexpected error calculating employee %s", record.employee_id)
            PeriodService.mark_error(record, str(exc))
            return {"stage": "calculation", "employee_id": str(record.employee_id), "message": str(exc)}
        PeriodService.apply_result(record, result)
        return None

    async def _issue_vouchers(
        self, period_id: UUID, computed: dict[UUID, UUID], audit: AuditTrail
    ) -> tuple[int, list[dict[str, Any]]]:
        """Issue a voucher per computed employee; each one commits alone."""
        generated = 0
        failures: list[dict[str, Any]] = []
        for record_id, employee_id in computed.items():
            try:
                period = await self.session.get(PayrollPeriod, period_id)
                record = await self.session.get(PayrollRecord, record_id)
                await self.vouchers.generate(period, record)
                await audit.commit()
                generated += 1
            except Exception as exc:
                logger.exception("Voucher for employee %s failed", employee_id)
                await self.session.rollback()
                audit.restore()
                failures.append(
                    {"stage": "vouchers", "employee_id": str(employee_id), "message": str(exc)}
                )

        if failures:
            audit.error(
                "vouchers",
                RuntimeError(f"{len(failures)} voucher(s) failed"),
                employees=[f["employee_id"] for f in failures],
            )
        audit.record("vouchers_generated", {"generated": generated, "failed": len(failures)})
        return generated, failures
