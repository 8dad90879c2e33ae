"""Period service: lookups, ordinary edits, transitions and record computation."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.calculators import (
    CalculationInput,
    CalculationResult,
    EventInput,
    EventType,
    PayrollCalculator,
)
from nomina_engine.errors import ClosedPeriodError, InvalidTransitionError, PeriodNotFoundError
from nomina_engine.models import (
    Employee,
    PayrollEvent,
    PayrollPeriod,
    PayrollRecord,
    utcnow,
)
from nomina_engine.periods.strategy import get_strategy
from nomina_engine.services.audit_service import AuditTrail
from nomina_engine.services.locking_service import PeriodLockManager, get_lock_manager
from nomina_engine.services.state_machine import PeriodState, PeriodStateMachine

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Fields a draft save may change on a record
DRAFT_EDITABLE_FIELDS = frozenset({"worked_days", "base_salary"})


@dataclass(frozen=True)
class ResumePeriodIntent:
    """Request to continue editing a specific period."""

    company_id: UUID
    period_id: UUID


@dataclass(frozen=True)
class PeriodTotals:
    """Aggregates written onto a period."""

    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    employees_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_gross": self.total_gross,
            "total_deductions": self.total_deductions,
            "total_net": self.total_net,
            "employees_count": self.employees_count,
        }


class PeriodService:
    """Service for period lookups and ordinary edits.

    Operations:
    - resume: reopen the editing context of a period from an explicit intent
    - load_employees: attach a draft record per active employee
    - add_event / save_draft_record: ordinary edits (draft/processing only)
    - transition: audited, guarded state change
    - recalculate_record / recompute_totals: shared by liquidation, repair
      and reliquidation
    """

    def __init__(
        self,
        session: AsyncSession,
        calculator: PayrollCalculator | None = None,
        lock_manager: PeriodLockManager | None = None,
    ):
        self.session = session
        self.calculator = calculator or PayrollCalculator()
        self.lock_manager = lock_manager or get_lock_manager()

    # ----- lookups -----

    async def get_period(
        self, period_id: UUID, company_id: UUID | None = None
    ) -> PayrollPeriod | None:
        """Load a period, optionally scoped to a company."""
        query = select(PayrollPeriod).where(PayrollPeriod.period_id == period_id)
        if company_id is not None:
            query = query.where(PayrollPeriod.company_id == company_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def require_period(self, period_id: UUID, company_id: UUID | None = None) -> PayrollPeriod:
        period = await self.get_period(period_id, company_id)
        if period is None:
            raise PeriodNotFoundError(period_id)
        return period

    async def get_records(
        self, period_id: UUID, employee_ids: list[UUID] | None = None
    ) -> list[PayrollRecord]:
        query = select(PayrollRecord).where(PayrollRecord.period_id == period_id)
        if employee_ids is not None:
            query = query.where(PayrollRecord.employee_id.in_(employee_ids))
        result = await self.session.execute(query.order_by(PayrollRecord.created_at))
        return list(result.scalars().all())

    async def get_events(
        self, period_id: UUID, employee_ids: list[UUID] | None = None
    ) -> dict[UUID, list[PayrollEvent]]:
        """Novedades of a period grouped by employee."""
        query = select(PayrollEvent).where(PayrollEvent.period_id == period_id)
        if employee_ids is not None:
            query = query.where(PayrollEvent.employee_id.in_(employee_ids))
        result = await self.session.execute(query.order_by(PayrollEvent.created_at))
        grouped: dict[UUID, list[PayrollEvent]] = defaultdict(list)
        for event in result.scalars().all():
            grouped[event.employee_id].append(event)
        return grouped

    async def resume(self, intent: ResumePeriodIntent) -> PayrollPeriod:
        """Return the period named by the intent if it can still be edited."""
        period = await self.require_period(intent.period_id, intent.company_id)
        self.ensure_editable(period, "resume")
        return period

    # ----- ordinary edits -----

    def ensure_editable(self, period: PayrollPeriod, action: str = "edit") -> None:
        if not PeriodStateMachine.is_editable(period.state):
            raise ClosedPeriodError(period.period_id, action)

    async def load_employees(self, period: PayrollPeriod) -> list[PayrollRecord]:
        """Attach a draft record for every active employee not yet in the period."""
        self.ensure_editable(period, "load_employees")

        attached = {r.employee_id for r in await self.get_records(period.period_id)}
        result = await self.session.execute(
            select(Employee)
            .where(Employee.company_id == period.company_id, Employee.status == "active")
            .order_by(Employee.last_name, Employee.first_name)
        )
        worked_days = get_strategy(period.periodicity).standard_days(
            period.start_date, period.end_date
        )

        created: list[PayrollRecord] = []
        for employee in result.scalars().all():
            if employee.employee_id in attached:
                continue
            record = PayrollRecord(
                period_id=period.period_id,
                employee_id=employee.employee_id,
                base_salary=employee.base_salary,
                worked_days=worked_days,
                status="draft",
                is_stale=False,
            )
            self.session.add(record)
            created.append(record)

        await self.session.flush()
        logger.info("Attached %d employee(s) to period %s", len(created), period.period_id)
        return created

    async def add_event(
        self,
        period: PayrollPeriod,
        employee_id: UUID,
        event_type: EventType | str,
        value: Decimal = ZERO,
        *,
        subtype: str | None = None,
        days: int | None = None,
        hours: Decimal | None = None,
        constitutive_of_salary: bool | None = None,
        description: str | None = None,
        created_by: str | None = None,
        audit: AuditTrail | None = None,
    ) -> PayrollEvent:
        """Add a novedad and mark the employee's record stale.

        Closed periods accept novedades only inside an audited adjustment
        (an AuditTrail must be passed).
        """
        if audit is None:
            self.ensure_editable(period, "add_event")

        event = PayrollEvent(
            period_id=period.period_id,
            employee_id=employee_id,
            event_type=EventType(event_type).value,
            subtype=subtype,
            value=Decimal(value),
            days=days,
            hours=hours,
            constitutive_of_salary=constitutive_of_salary,
            description=description,
            created_by=created_by,
        )
        self.session.add(event)

        for record in await self.get_records(period.period_id, [employee_id]):
            record.is_stale = True

        await self.session.flush()
        if audit is not None:
            audit.record(
                "adjustment_event_added",
                {
                    "event_id": event.event_id,
                    "employee_id": employee_id,
                    "event_type": event.event_type,
                    "value": event.value,
                },
            )
        return event

    async def save_draft_record(
        self, period: PayrollPeriod, employee_id: UUID, changes: dict[str, Any]
    ) -> PayrollRecord:
        """Auto-save draft edits to a record.

        Saves for the same period are serialized: each waits for the previous
        one to commit before reading the record.
        """
        unknown = set(changes) - DRAFT_EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        async with self.lock_manager.hold(period.period_id):
            await self.session.refresh(period)
            self.ensure_editable(period, "save_draft_record")

            records = await self.get_records(period.period_id, [employee_id])
            if not records:
                raise LookupError(f"Employee {employee_id} has no record in period {period.period_id}")
            record = records[-1]
            await self.session.refresh(record)

            if "worked_days" in changes:
                worked_days = int(changes["worked_days"])
                if not 0 <= worked_days <= 30:
                    raise ValueError("worked_days must be between 0 and 30")
                record.worked_days = worked_days
            if "base_salary" in changes:
                record.base_salary = Decimal(changes["base_salary"])
            record.is_stale = True

            await self.session.commit()
        return record

    # ----- transitions -----

    async def transition(
        self,
        period: PayrollPeriod,
        to_state: PeriodState | str,
        audit: AuditTrail,
        reason: str | None = None,
        step: str | None = None,
    ) -> PayrollPeriod:
        """Move a period to a new state.

        The change is a conditional UPDATE on the current state so a
        concurrent writer that already moved the period makes this fail.
        Every transition is audited; crossing 'closed' requires a reason.

        Raises InvalidTransitionError if the transition is not allowed.
        """
        from_state = period.state
        to_state = PeriodState(to_state).value
        PeriodStateMachine.validate_transition(from_state, to_state, reason)

        values: dict[str, Any] = {"state": to_state}
        if to_state == PeriodState.CLOSED:
            values["closed_at"] = utcnow()
        if PeriodStateMachine.is_reopen(from_state, to_state):
            values["closed_at"] = None
            values["reopen_count"] = (period.reopen_count or 0) + 1
            values["last_reopened_by"] = audit.actor_id

        result = await self.session.execute(
            update(PayrollPeriod)
            .where(
                PayrollPeriod.period_id == period.period_id,
                PayrollPeriod.state == from_state,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransitionError(
                from_state, to_state, "period was modified concurrently"
            )
        for key, value in values.items():
            setattr(period, key, value)

        audit.record(
            step or f"transition:{from_state}:{to_state}",
            {"period_id": period.period_id},
            previous_state=from_state,
            new_state=to_state,
            reason=reason,
        )
        return period

    # ----- computation -----

    def build_input(
        self, period: PayrollPeriod, record: PayrollRecord, events: list[PayrollEvent]
    ) -> CalculationInput:
        return CalculationInput(
            base_salary=Decimal(record.base_salary),
            worked_days=record.worked_days,
            year=period.period_year,
            events=tuple(EventInput.from_row(e) for e in events),
            employee_id=record.employee_id,
            incapacity_policy=self.calculator.incapacity_policy,
        )

    def calculate(
        self, period: PayrollPeriod, record: PayrollRecord, events: list[PayrollEvent]
    ) -> CalculationResult:
        return self.calculator.calculate(self.build_input(period, record, events))

    @staticmethod
    def apply_result(record: PayrollRecord, result: CalculationResult) -> None:
        record.gross_pay = result.gross_pay
        record.total_deductions = result.total_deductions
        record.ibc = result.ibc
        record.employer_contributions = result.employer_contributions
        record.transport_allowance = result.transport_allowance
        record.status = "calculated"
        record.error_message = None
        record.is_stale = False
        record.calculated_at = utcnow()

    @staticmethod
    def mark_error(record: PayrollRecord, message: str) -> None:
        record.status = "error"
        record.error_message = message
        record.calculated_at = utcnow()

    async def recalculate_record(
        self,
        period: PayrollPeriod,
        record: PayrollRecord,
        events: list[PayrollEvent] | None = None,
    ) -> CalculationResult:
        """Recompute one record from its current novedades and store the result."""
        if events is None:
            grouped = await self.get_events(period.period_id, [record.employee_id])
            events = grouped.get(record.employee_id, [])
        result = self.calculate(period, record, events)
        self.apply_result(record, result)
        return result

    async def recompute_totals(
        self, period: PayrollPeriod, records: list[PayrollRecord] | None = None
    ) -> PeriodTotals:
        """Aggregate calculated records onto the period (errored ones excluded)."""
        if records is None:
            records = await self.get_records(period.period_id)
        calculated = [r for r in records if r.status == "calculated"]

        totals = PeriodTotals(
            total_gross=sum((Decimal(r.gross_pay) for r in calculated), ZERO),
            total_deductions=sum((Decimal(r.total_deductions) for r in calculated), ZERO),
            total_net=sum((r.net_pay for r in calculated), ZERO),
            employees_count=len(calculated),
        )
        period.total_gross = totals.total_gross
        period.total_deductions = totals.total_deductions
        period.total_net = totals.total_net
        period.employees_count = totals.employees_count
        return totals
