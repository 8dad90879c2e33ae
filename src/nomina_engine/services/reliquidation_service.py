"""Reliquidation of already-liquidated periods after pending adjustments."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.config import Settings, get_settings
from nomina_engine.errors import CalculationError
from nomina_engine.models import PayrollPeriod, PayrollRecord, PeriodCorrection
from nomina_engine.services.audit_service import AuditTrail, to_jsonable
from nomina_engine.services.period_service import PeriodService
from nomina_engine.services.state_machine import PeriodState
from nomina_engine.services.voucher_service import DatabaseVoucherGenerator, VoucherGenerator

logger = logging.getLogger(__name__)

RELIQUIDATION_CONCEPT = "Reliquidación por aplicación de ajustes pendientes"


class ReliquidationScope(str, Enum):
    AFFECTED = "affected"
    ALL = "all"


@dataclass
class ReliquidationResult:
    """Outcome of reliquidate_period."""

    period_id: UUID
    status: str = "completed"
    employees_affected: int = 0
    corrections_applied: int = 0
    vouchers_regenerated: int = 0
    period_reopened: bool = False
    period_reclosed: bool = False
    errors: list[dict[str, Any]] = field(default_factory=list)
    audit_log: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status in ("completed", "partial")

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(
            {
                "period_id": self.period_id,
                "status": self.status,
                "success": self.success,
                "employees_affected": self.employees_affected,
                "corrections_applied": self.corrections_applied,
                "vouchers_regenerated": self.vouchers_regenerated,
                "period_reopened": self.period_reopened,
                "period_reclosed": self.period_reclosed,
                "errors": self.errors,
                "audit_log": self.audit_log,
            }
        )


class ReliquidationService:
    """Recompute a period's records in place and record the differences.

    A closed period is reopened (audited, committed), recomputed, then
    closed again. Each employee whose net pay moves by more than the
    correction epsilon gets a PeriodCorrection row with the signed
    difference. An employee whose recalculation fails is marked as an error,
    left out of totals, corrections and vouchers, and the rest carry on
    (status 'partial'). If anything else fails after the reopen, the pending
    work is rolled back and the period stays reopened for manual follow-up.
    """

    def __init__(
        self,
        session: AsyncSession,
        period_service: PeriodService | None = None,
        vouchers: VoucherGenerator | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.period_service = period_service or PeriodService(session)
        self.vouchers = vouchers or DatabaseVoucherGenerator(session)

    async def reliquidate_period(
        self,
        period_id: UUID,
        company_id: UUID,
        justification: str,
        scope: ReliquidationScope | str = ReliquidationScope.AFFECTED,
        affected_employee_ids: list[UUID] | None = None,
        regenerate_vouchers: bool | None = None,
        actor_id: str | None = None,
    ) -> ReliquidationResult:
        """Reliquidate a period.

        Raises:
            ValueError: missing justification, or scope 'affected' without ids
            PeriodLockedError: another operation holds the period
            PeriodNotFoundError: unknown period for this company
        """
        async with self.period_service.lock_manager.try_hold(period_id):
            return await self.reliquidate_held(
                period_id,
                company_id,
                justification,
                scope=scope,
                affected_employee_ids=affected_employee_ids,
                regenerate_vouchers=regenerate_vouchers,
                actor_id=actor_id,
            )

    async def reliquidate_held(
        self,
        period_id: UUID,
        company_id: UUID,
        justification: str,
        scope: ReliquidationScope | str = ReliquidationScope.AFFECTED,
        affected_employee_ids: list[UUID] | None = None,
        regenerate_vouchers: bool | None = None,
        actor_id: str | None = None,
        audit: AuditTrail | None = None,
        source_correction_id: UUID | None = None,
    ) -> ReliquidationResult:
        """Same as reliquidate_period; the caller already holds the period lock.

        `source_correction_id` links the corrections written here to the
        adjustment that caused them.
        """
        scope = ReliquidationScope(scope)
        if not justification or not justification.strip():
            raise ValueError("A justification is required to reliquidate a period")
        if scope == ReliquidationScope.AFFECTED and not affected_employee_ids:
            raise ValueError("scope 'affected' requires affected_employee_ids")
        if regenerate_vouchers is None:
            regenerate_vouchers = self.settings.regenerate_vouchers_default

        ps = self.period_service
        period = await ps.require_period(period_id, company_id)
        employee_ids = list(affected_employee_ids) if scope == ReliquidationScope.AFFECTED else None

        errors: list[dict[str, Any]] = []
        if employee_ids is not None:
            present = {r.employee_id for r in await ps.get_records(period_id, employee_ids)}
            missing = [e for e in employee_ids if e not in present]
            if len(missing) == len(employee_ids):
                raise ValueError("None of the affected employees has a record in this period")
            errors.extend(
                {"stage": "scope", "employee_id": str(e), "message": "no record in period"}
                for e in missing
            )

        audit = audit or AuditTrail(
            self.session,
            company_id=company_id,
            period_id=period_id,
            operation="reliquidation",
            actor_id=actor_id,
        )
        audit.record(
            "start",
            {
                "scope": scope.value,
                "employee_ids": employee_ids or [],
                "justification": justification,
                "regenerate_vouchers": regenerate_vouchers,
            },
        )

        was_closed = period.state == PeriodState.CLOSED
        if was_closed:
            await ps.transition(
                period, PeriodState.PROCESSING, audit, reason=justification, step="reopen_for_adjustment"
            )
            await audit.commit()
            logger.info("Period %s reopened for adjustment", period_id)

        result = ReliquidationResult(period_id=period_id, period_reopened=was_closed, errors=errors)
        epsilon = self.settings.correction_epsilon
        step = "recalculation"
        try:
            records = await ps.get_records(period_id, employee_ids)
            events = await ps.get_events(period_id, employee_ids)
            recalculated: list[PayrollRecord] = []
            for record in records:
                previous_net = record.net_pay
                failure = self._recalculate(period, record, events.get(record.employee_id, []))
                if failure is not None:
                    result.errors.append(failure)
                    continue
                difference = record.net_pay - previous_net
                if abs(difference) > epsilon:
                    self.session.add(
                        PeriodCorrection(
                            period_id=period_id,
                            employee_id=record.employee_id,
                            correction_type="reliquidation",
                            concept=RELIQUIDATION_CONCEPT,
                            previous_value=previous_net,
                            new_value=record.net_pay,
                            value_difference=difference,
                            justification=justification,
                            created_by=actor_id,
                            source_correction_id=source_correction_id,
                        )
                    )
                    result.corrections_applied += 1
                recalculated.append(record)
            if records and not recalculated:
                raise CalculationError("no employee could be recalculated")
            result.employees_affected = len(recalculated)
            audit.record(
                "employees_recalculated",
                {
                    "employees": len(recalculated),
                    "corrections": result.corrections_applied,
                    "failed": len(records) - len(recalculated),
                },
            )

            step = "totals"
            await self.session.flush()
            totals = await ps.recompute_totals(period)
            audit.record("totals_updated", totals.to_dict())

            step = "vouchers"
            if regenerate_vouchers and recalculated:
                superseded = await self.vouchers.supersede(
                    period_id, [r.employee_id for r in recalculated]
                )
                for record in recalculated:
                    await self.vouchers.generate(period, record)
                    result.vouchers_regenerated += 1
                audit.record(
                    "vouchers_regenerated",
                    {"superseded": superseded, "generated": result.vouchers_regenerated},
                )

            step = "closing"
            if was_closed:
                await ps.transition(
                    period, PeriodState.CLOSED, audit, reason=justification, step="close_after_adjustment"
                )
                result.period_reclosed = True
            audit.record(
                "completed",
                {
                    "employees_affected": result.employees_affected,
                    "corrections_applied": result.corrections_applied,
                },
            )
            if len(recalculated) < len(records):
                result.status = "partial"
            await audit.commit()
        except Exception as exc:
            logger.exception("Reliquidation of %s failed during %s", period_id, step)
            rolled_back = audit.pending_steps()
            await self.session.rollback()
            audit.restore()
            audit.error(step, exc, rolled_back_steps=rolled_back, period_left_open=was_closed)
            await audit.commit()
            result.status = "failed"
            result.period_reclosed = False
            result.corrections_applied = 0
            result.vouchers_regenerated = 0
            result.errors.append({"stage": step, "message": str(exc)})

        result.audit_log = audit.as_list()
        logger.info(
            "Reliquidation of %s %s: %d employee(s), %d correction(s)",
            period_id,
            result.status,
            result.employees_affected,
            result.corrections_applied,
        )
        return result

    def _recalculate(
        self, period: PayrollPeriod, record: PayrollRecord, events: list
    ) -> dict[str, Any] | None:
        """Recompute one employee; return an error dict instead of raising."""
        try:
            outcome = self.period_service.calculate(period, record, events)
        except CalculationError as exc:
            logger.warning("Employee %s not recalculated: %s", record.employee_id, exc)
            PeriodService.mark_error(record, str(exc))
            return {"stage": "recalculation", "employee_id": str(record.employee_id), "message": str(exc)}
        PeriodService.apply_result(record, outcome)
        return None
