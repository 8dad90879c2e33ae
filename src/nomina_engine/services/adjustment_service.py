"""Adjustments on liquidated periods: corrective or compensatory."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.calculators import EventType
from nomina_engine.models import PayrollEvent, PayrollPeriod, PeriodCorrection
from nomina_engine.services.audit_service import AuditTrail
from nomina_engine.services.period_service import PeriodService
from nomina_engine.services.reliquidation_service import (
    ReliquidationResult,
    ReliquidationScope,
    ReliquidationService,
)
from nomina_engine.services.state_machine import PeriodState, PeriodStateMachine

logger = logging.getLogger(__name__)


def adjustment_event_type(amount: Decimal) -> EventType:
    """Positive adjustments pay a bonus; negative ones are a deduction."""
    return EventType.BONIFICACION if amount > 0 else EventType.DESCUENTO_VOLUNTARIO


class AdjustmentService:
    """Apply a late change to an employee's pay.

    Operations:
    - apply_corrective_adjustment: fix the closed period itself, then
      reliquidate that employee
    - apply_compensatory_adjustment: carry the amount into the company's
      earliest open period instead
    - correction_history: corrections recorded against a period
    """

    def __init__(
        self,
        session: AsyncSession,
        period_service: PeriodService | None = None,
        reliquidation: ReliquidationService | None = None,
    ):
        self.session = session
        self.period_service = period_service or PeriodService(session)
        self.reliquidation = reliquidation or ReliquidationService(
            session, period_service=self.period_service
        )

    async def apply_corrective_adjustment(
        self,
        period_id: UUID,
        company_id: UUID,
        employee_id: UUID,
        amount: Decimal,
        concept: str,
        justification: str,
        actor_id: str | None = None,
        regenerate_vouchers: bool | None = None,
    ) -> ReliquidationResult:
        """Insert a non-constitutive novedad on a closed period and reliquidate.

        The adjustment is recorded as a 'corrective_adjustment' correction
        (0 to amount). The reliquidation correction for the resulting net pay
        change carries its id in source_correction_id, so the pair reads as
        one change: what was requested and what it did to net pay.

        Raises ValueError for a zero amount, a missing justification or a
        period that is still open (use an ordinary novedad there).
        """
        amount = Decimal(amount)
        if amount == 0:
            raise ValueError("Adjustment amount must not be zero")
        if not justification or not justification.strip():
            raise ValueError("A justification is required for a corrective adjustment")

        ps = self.period_service
        async with ps.lock_manager.try_hold(period_id):
            period = await ps.require_period(period_id, company_id)
            if period.state != PeriodState.CLOSED:
                raise ValueError("Period is still open; add the novedad as an ordinary edit")
            if not await ps.get_records(period_id, [employee_id]):
                raise ValueError(f"Employee {employee_id} has no record in period {period_id}")

            audit = AuditTrail(
                self.session,
                company_id=company_id,
                period_id=period_id,
                operation="corrective_adjustment",
                actor_id=actor_id,
            )
            await ps.add_event(
                period,
                employee_id,
                adjustment_event_type(amount),
                abs(amount),
                constitutive_of_salary=False,
                description=concept,
                created_by=actor_id,
                audit=audit,
            )
            adjustment = PeriodCorrection(
                correction_id=uuid4(),
                period_id=period_id,
                employee_id=employee_id,
                correction_type="corrective_adjustment",
                concept=concept,
                previous_value=Decimal("0"),
                new_value=amount,
                value_difference=amount,
                justification=justification,
                created_by=actor_id,
            )
            self.session.add(adjustment)
            logger.info("Corrective adjustment of %s on period %s for %s", amount, period_id, employee_id)

            return await self.reliquidation.reliquidate_held(
                period_id,
                company_id,
                justification,
                scope=ReliquidationScope.AFFECTED,
                affected_employee_ids=[employee_id],
                regenerate_vouchers=regenerate_vouchers,
                actor_id=actor_id,
                audit=audit,
                source_correction_id=adjustment.correction_id,
            )

    async def apply_compensatory_adjustment(
        self,
        company_id: UUID,
        employee_id: UUID,
        amount: Decimal,
        concept: str,
        actor_id: str | None = None,
    ) -> PayrollEvent:
        """Add the adjustment to the earliest draft/processing period.

        Raises LookupError when the company has no open period.
        """
        amount = Decimal(amount)
        if amount == 0:
            raise ValueError("Adjustment amount must not be zero")

        result = await self.session.execute(
            select(PayrollPeriod)
            .where(
                PayrollPeriod.company_id == company_id,
                PayrollPeriod.state.in_(sorted(s.value for s in PeriodStateMachine.EDITABLE)),
            )
            .order_by(PayrollPeriod.start_date)
            .limit(1)
        )
        period = result.scalar_one_or_none()
        if period is None:
            raise LookupError("No open period to carry the adjustment into")

        event = await self.period_service.add_event(
            period,
            employee_id,
            adjustment_event_type(amount),
            abs(amount),
            constitutive_of_salary=False,
            description=concept,
            created_by=actor_id,
        )
        await self.session.commit()
        logger.info(
            "Compensatory adjustment of %s carried into period %s for %s",
            amount,
            period.period_id,
            employee_id,
        )
        return event

    async def correction_history(self, period_id: UUID) -> list[PeriodCorrection]:
        result = await self.session.execute(
            select(PeriodCorrection)
            .where(PeriodCorrection.period_id == period_id)
            .order_by(PeriodCorrection.created_at)
        )
        return list(result.scalars().all())
