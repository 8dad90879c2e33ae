"""Classify a user-chosen date range against a company's periods."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.errors import DuplicatePeriodError
from nomina_engine.models import PayrollPeriod
from nomina_engine.periods.strategy import PeriodStrategy
from nomina_engine.services.state_machine import PeriodStateMachine

logger = logging.getLogger(__name__)

INCOHERENT_WARNING = (
    "Las fechas seleccionadas no corresponden exactamente a un período "
    "{periodicity} estándar ({expected}). Se creará el período con las "
    "fechas seleccionadas."
)


class DetectionAction(str, Enum):
    """What the caller should do with the chosen range."""

    CONTINUE = "continue"
    CREATE = "create"
    CONFLICT = "conflict"
    INVALID = "invalid"


@dataclass
class DetectionResult:
    """Outcome of classifying a (start, end) range."""

    action: DetectionAction
    start: date
    end: date
    message: str
    period: PayrollPeriod | None = None
    year: int | None = None
    sequence_number: int | None = None
    label: str | None = None
    is_coherent: bool = True
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class PeriodDetector:
    """Decide between continue / create / conflict for a chosen range.

    Exact matches continue with the existing period. Overlaps with a
    draft or processing period are conflicts, and so is a range whose slot
    (year and sequence number) is already held by another period, closed or
    not. Otherwise a closed period overlapping the range is history and does
    not block it. A range that is not a canonical slot is still
    creatable with its literal dates, with a warning.
    """

    def __init__(self, session: AsyncSession, strategy: PeriodStrategy):
        self.session = session
        self.strategy = strategy

    async def detect(self, company_id: UUID, start: date, end: date) -> DetectionResult:
        range_check = self.strategy.validate_business_range(start, end)
        if not range_check.valid:
            return DetectionResult(
                action=DetectionAction.INVALID,
                start=start,
                end=end,
                message="; ".join(range_check.errors),
                errors=range_check.errors,
                warnings=range_check.warnings,
            )

        result = await self.session.execute(
            select(PayrollPeriod)
            .where(PayrollPeriod.company_id == company_id)
            .order_by(PayrollPeriod.start_date)
        )
        periods = list(result.scalars().all())

        for period in periods:
            if period.start_date == start and period.end_date == end:
                return DetectionResult(
                    action=DetectionAction.CONTINUE,
                    start=start,
                    end=end,
                    message=f"Continuar con el período existente: {period.label}",
                    period=period,
                    year=period.period_year,
                    sequence_number=period.sequence_number,
                    label=period.label,
                )

        for period in periods:
            if PeriodStateMachine.is_editable(period.state) and period.overlaps(start, end):
                return DetectionResult(
                    action=DetectionAction.CONFLICT,
                    start=start,
                    end=end,
                    message=(
                        f"El rango se superpone con el período abierto {period.label} "
                        f"({period.start_date} a {period.end_date})"
                    ),
                    period=period,
                )

        year, number = self.strategy.locate(start)
        coherent = self.strategy.is_coherent(start, end)
        warnings = list(range_check.warnings)
        if coherent:
            label = self.strategy.bounds_for_number(year, number).label
        else:
            expected = self.strategy.bounds_for_number(year, number)
            warnings.append(
                INCOHERENT_WARNING.format(
                    periodicity=self.strategy.periodicity.value,
                    expected=f"{expected.start} a {expected.end}",
                )
            )
            label = self.strategy.label_for_range(start, end)

        for period in periods:
            if (
                period.period_year == year
                and period.periodicity == self.strategy.periodicity.value
                and period.sequence_number == number
            ):
                return DetectionResult(
                    action=DetectionAction.CONFLICT,
                    start=start,
                    end=end,
                    message=(
                        f"Ya existe el período número {number} del {year} "
                        f"({period.label}, {period.start_date} a {period.end_date})"
                    ),
                    period=period,
                    year=year,
                    sequence_number=number,
                    label=label,
                    is_coherent=coherent,
                    warnings=warnings,
                )

        return DetectionResult(
            action=DetectionAction.CREATE,
            start=start,
            end=end,
            message=f"Se creará el período {label}",
            year=year,
            sequence_number=number,
            label=label,
            is_coherent=coherent,
            warnings=warnings,
        )

    async def create_from_detection(
        self, company_id: UUID, detection: DetectionResult
    ) -> PayrollPeriod:
        """Persist a `create` detection with the user's literal dates."""
        if detection.action != DetectionAction.CREATE:
            raise ValueError(f"Cannot create a period from a '{detection.action.value}' detection")
        if detection.year is None or detection.sequence_number is None:
            raise ValueError("A 'create' detection must carry its year and sequence number")

        periodicity = self.strategy.periodicity.value
        taken = await self.session.execute(
            select(PayrollPeriod.period_id).where(
                PayrollPeriod.company_id == company_id,
                PayrollPeriod.period_year == detection.year,
                PayrollPeriod.periodicity == periodicity,
                PayrollPeriod.sequence_number == detection.sequence_number,
            )
        )
        if taken.first() is not None:
            raise DuplicatePeriodError(company_id, detection.year, periodicity, detection.sequence_number)

        period = PayrollPeriod(
            company_id=company_id,
            start_date=detection.start,
            end_date=detection.end,
            periodicity=periodicity,
            period_year=detection.year,
            sequence_number=detection.sequence_number,
            label=detection.label or self.strategy.label_for_range(detection.start, detection.end),
            state="draft",
        )
        self.session.add(period)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicatePeriodError(
                company_id, detection.year, periodicity, detection.sequence_number
            ) from exc

        if not detection.is_coherent:
            logger.warning(
                "Created non-canonical period %s (%s to %s)",
                period.label,
                period.start_date,
                period.end_date,
            )
        return period
