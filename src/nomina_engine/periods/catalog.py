"""Period catalog: expected slots of a year merged with persisted periods."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.errors import DuplicatePeriodError
from nomina_engine.models import PayrollPeriod
from nomina_engine.periods.strategy import PeriodBounds, PeriodStrategy
from nomina_engine.services.locking_service import PeriodLockManager, get_lock_manager

logger = logging.getLogger(__name__)

CLOSED_REASON = "Período ya liquidado"


class SlotStatus(str, Enum):
    """Classification of one expected period slot."""

    AVAILABLE = "available"
    CLOSED = "closed"
    TO_CREATE = "to_create"


@dataclass
class PeriodSlot:
    """One expected period of the year, persisted or not."""

    bounds: PeriodBounds
    status: SlotStatus
    period: PayrollPeriod | None = None

    @property
    def can_select(self) -> bool:
        return self.status != SlotStatus.CLOSED

    @property
    def reason(self) -> str | None:
        return CLOSED_REASON if self.status == SlotStatus.CLOSED else None

    @property
    def sequence_number(self) -> int:
        return self.bounds.sequence_number


@dataclass
class EnsureYearResult:
    """Outcome of materializing every slot of a year."""

    generated: int = 0
    existing: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.generated + self.existing

    @property
    def success(self) -> bool:
        return self.failed == 0


class PeriodCatalog:
    """Enumerate and materialize the period slots of a company's year.

    Slots without a row stay in memory until selected; `create_slot` is the
    only path that inserts, and it is idempotent per
    (company, year, periodicity, sequence number).
    """

    def __init__(
        self,
        session: AsyncSession,
        strategy: PeriodStrategy,
        lock_manager: PeriodLockManager | None = None,
    ):
        self.session = session
        self.strategy = strategy
        self.lock_manager = lock_manager or get_lock_manager()

    async def persisted_periods(self, company_id: UUID, year: int) -> dict[int, PayrollPeriod]:
        result = await self.session.execute(
            select(PayrollPeriod).where(
                PayrollPeriod.company_id == company_id,
                PayrollPeriod.period_year == year,
                PayrollPeriod.periodicity == self.strategy.periodicity.value,
            )
        )
        return {p.sequence_number: p for p in result.scalars().all()}

    async def list_year(self, company_id: UUID, year: int) -> list[PeriodSlot]:
        """Every expected slot of the year, in order."""
        persisted = await self.persisted_periods(company_id, year)
        slots: list[PeriodSlot] = []
        for bounds in self.strategy.periods_in_year(year):
            period = persisted.get(bounds.sequence_number)
            if period is None:
                slots.append(PeriodSlot(bounds, SlotStatus.TO_CREATE))
            elif period.state == "closed":
                slots.append(PeriodSlot(bounds, SlotStatus.CLOSED, period))
            else:
                slots.append(PeriodSlot(bounds, SlotStatus.AVAILABLE, period))
        return slots

    async def next_available(self, company_id: UUID, year: int) -> PeriodSlot | None:
        """Lowest-numbered selectable slot of the year."""
        for slot in await self.list_year(company_id, year):
            if slot.can_select:
                return slot
        return None

    async def create_slot(self, company_id: UUID, year: int, sequence_number: int) -> PayrollPeriod:
        """Materialize one slot, returning the existing row if already there."""
        bounds = self.strategy.bounds_for_number(year, sequence_number)
        key = f"slot:{company_id}:{year}:{self.strategy.periodicity.value}:{sequence_number}"

        async with self.lock_manager.hold(key):
            existing = await self._find_slot(company_id, year, sequence_number)
            if existing is not None:
                return existing

            period = PayrollPeriod(
                company_id=company_id,
                start_date=bounds.start,
                end_date=bounds.end,
                periodicity=self.strategy.periodicity.value,
                period_year=year,
                sequence_number=sequence_number,
                label=bounds.label,
                state="draft",
            )
            self.session.add(period)
            try:
                await self.session.flush()
            except IntegrityError as exc:
                # Another process inserted the same slot between check and insert
                await self.session.rollback()
                raise DuplicatePeriodError(
                    company_id, year, self.strategy.periodicity.value, sequence_number
                ) from exc

        logger.info("Created period %s (%s) for company %s", bounds.label, period.period_id, company_id)
        return period

    async def ensure_complete_year(self, company_id: UUID, year: int) -> EnsureYearResult:
        """Materialize every missing slot, continuing past individual failures.

        Each created slot is committed on its own so a later failure cannot
        undo earlier ones.
        """
        outcome = EnsureYearResult()
        persisted = await self.persisted_periods(company_id, year)

        for bounds in self.strategy.periods_in_year(year):
            if bounds.sequence_number in persisted:
                outcome.existing += 1
                continue
            try:
                await self.create_slot(company_id, year, bounds.sequence_number)
                await self.session.commit()
                outcome.generated += 1
            except DuplicatePeriodError:
                outcome.existing += 1
            except Exception as exc:
                logger.exception("Failed to create %s", bounds.label)
                await self.session.rollback()
                outcome.failed += 1
                outcome.errors.append(f"{bounds.label}: {exc}")

        logger.info(
            "Ensured %d %s periods for %s: %d generated, %d existing, %d failed",
            outcome.total,
            self.strategy.periodicity.value,
            year,
            outcome.generated,
            outcome.existing,
            outcome.failed,
        )
        return outcome

    async def _find_slot(
        self, company_id: UUID, year: int, sequence_number: int
    ) -> PayrollPeriod | None:
        result = await self.session.execute(
            select(PayrollPeriod).where(
                PayrollPeriod.company_id == company_id,
                PayrollPeriod.period_year == year,
                PayrollPeriod.periodicity == self.strategy.periodicity.value,
                PayrollPeriod.sequence_number == sequence_number,
            )
        )
        return result.scalar_one_or_none()
