"""Period strategies: boundaries, labels and sequence numbers per periodicity.

Each periodicity maps to exactly one strategy. Strategies are pure: they
never touch the database and depend only on dates.

Sequence numbers are 1-based within a year:
- biweekly: (month - 1) * 2 + (1 if day <= 15 else 2)
- monthly: month
- weekly: 7-day windows anchored at the first Monday on/after January 1
"""

from __future__ import annotations

import calendar
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum

MONTH_NAMES = (
    "Enero",
    "Febrero",
    "Marzo",
    "Abril",
    "Mayo",
    "Junio",
    "Julio",
    "Agosto",
    "Septiembre",
    "Octubre",
    "Noviembre",
    "Diciembre",
)

MAX_RANGE_DAYS = 35


class Periodicity(str, Enum):
    """Payroll periodicity."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class PeriodBounds:
    """Canonical period slot."""

    start: date
    end: date
    year: int
    sequence_number: int
    label: str

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass
class RangeCheck:
    """Outcome of a business-rule check on a date range."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def month_name(month: int) -> str:
    return MONTH_NAMES[month - 1]


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def describe_range(start: date, end: date) -> str:
    """Human range in Spanish, e.g. '1 al 15 de Enero 2025'."""
    if start.year != end.year:
        return (
            f"{start.day} de {month_name(start.month)} {start.year} al "
            f"{end.day} de {month_name(end.month)} {end.year}"
        )
    if start.month != end.month:
        return (
            f"{start.day} de {month_name(start.month)} al "
            f"{end.day} de {month_name(end.month)} {end.year}"
        )
    return f"{start.day} al {end.day} de {month_name(end.month)} {end.year}"


class PeriodStrategy(ABC):
    """Boundary, label and numbering rules for one periodicity."""

    periodicity: Periodicity
    nominal_days: int
    max_days: int

    @abstractmethod
    def locate(self, reference: date) -> tuple[int, int]:
        """Return (year, sequence_number) of the period containing reference."""

    @abstractmethod
    def bounds_for_number(self, year: int, number: int) -> PeriodBounds:
        """Canonical bounds of period `number` in `year`."""

    @abstractmethod
    def periods_per_year(self, year: int) -> int:
        """How many periods the year holds."""

    @abstractmethod
    def semantic_name(self, year: int, number: int) -> str:
        """Short name, e.g. 'Quincena 3 del 2025'."""

    def sequence_number(self, start: date) -> int:
        return self.locate(start)[1]

    def bounds_for(self, reference: date) -> PeriodBounds:
        return self.bounds_for_number(*self.locate(reference))

    def periods_in_year(self, year: int) -> list[PeriodBounds]:
        return [
            self.bounds_for_number(year, number)
            for number in range(1, self.periods_per_year(year) + 1)
        ]

    def _check_number(self, year: int, number: int) -> None:
        total = self.periods_per_year(year)
        if not 1 <= number <= total:
            raise ValueError(
                f"{self.periodicity.value} period number must be between 1 and {total}, got {number}"
            )

    def is_coherent(self, start: date, end: date, number: int | None = None) -> bool:
        """True iff (start, end) is exactly the canonical period for its number."""
        year, located = self.locate(start)
        if number is not None and number != located:
            return False
        canonical = self.bounds_for_number(year, located)
        return canonical.start == start and canonical.end == end

    def standard_days(self, start: date, end: date) -> int:
        """Worked days for a full period over (start, end)."""
        if self.is_coherent(start, end):
            return self.nominal_days
        return min(30, (end - start).days + 1)

    def label_for_range(self, start: date, end: date) -> str:
        """Label for a user-chosen range that is not a canonical slot."""
        year, number = self.locate(start)
        return f"{self.semantic_name(year, number)} - {describe_range(start, end)}"

    def validate_business_range(self, start: date, end: date) -> RangeCheck:
        """Business limits on a user-chosen range."""
        check = RangeCheck(valid=True)
        if end < start:
            check.errors.append("La fecha final debe ser posterior o igual a la fecha inicial")
        else:
            days = (end - start).days + 1
            if days > MAX_RANGE_DAYS:
                check.errors.append(
                    f"El período no puede exceder {MAX_RANGE_DAYS} días (tiene {days})"
                )
            elif days > self.max_days:
                check.errors.append(
                    f"Un período {self.periodicity.value} no puede exceder "
                    f"{self.max_days} días (tiene {days})"
                )
            elif days < self.nominal_days / 2:
                check.warnings.append(
                    f"El período es inusualmente corto ({days} días) para "
                    f"una periodicidad {self.periodicity.value}"
                )
        check.valid = not check.errors
        return check


class BiweeklyStrategy(PeriodStrategy):
    """Quincenas: 1-15 and 16-end of month."""

    periodicity = Periodicity.BIWEEKLY
    nominal_days = 15
    max_days = 20

    def locate(self, reference: date) -> tuple[int, int]:
        half = 1 if reference.day <= 15 else 2
        return reference.year, (reference.month - 1) * 2 + half

    def bounds_for_number(self, year: int, number: int) -> PeriodBounds:
        self._check_number(year, number)
        month = (number + 1) // 2
        if number % 2 == 1:
            start, end = date(year, month, 1), date(year, month, 15)
        else:
            start = date(year, month, 16)
            end = date(year, month, last_day_of_month(year, month))
        label = f"Quincena {number} - {describe_range(start, end)}"
        return PeriodBounds(start, end, year, number, label)

    def periods_per_year(self, year: int) -> int:
        return 24

    def semantic_name(self, year: int, number: int) -> str:
        return f"Quincena {number} del {year}"


class MonthlyStrategy(PeriodStrategy):
    """Calendar months."""

    periodicity = Periodicity.MONTHLY
    nominal_days = 30
    max_days = 35

    def locate(self, reference: date) -> tuple[int, int]:
        return reference.year, reference.month

    def bounds_for_number(self, year: int, number: int) -> PeriodBounds:
        self._check_number(year, number)
        start = date(year, number, 1)
        end = date(year, number, last_day_of_month(year, number))
        return PeriodBounds(start, end, year, number, self.semantic_name(year, number))

    def periods_per_year(self, year: int) -> int:
        return 12

    def semantic_name(self, year: int, number: int) -> str:
        return f"{month_name(number)} {year}"


class WeeklyStrategy(PeriodStrategy):
    """Monday-anchored weeks.

    Week 1 starts on the first Monday on/after January 1. Days before that
    Monday belong to the last week of the previous year.
    """

    periodicity = Periodicity.WEEKLY
    nominal_days = 7
    max_days = 10

    @staticmethod
    def anchor(year: int) -> date:
        jan_first = date(year, 1, 1)
        return jan_first + timedelta(days=(7 - jan_first.weekday()) % 7)

    def locate(self, reference: date) -> tuple[int, int]:
        year = reference.year
        anchor = self.anchor(year)
        if reference < anchor:
            year -= 1
            anchor = self.anchor(year)
        return year, (reference - anchor).days // 7 + 1

    def bounds_for_number(self, year: int, number: int) -> PeriodBounds:
        self._check_number(year, number)
        start = self.anchor(year) + timedelta(days=7 * (number - 1))
        end = start + timedelta(days=6)
        label = f"Semana {number} - {describe_range(start, end)}"
        return PeriodBounds(start, end, year, number, label)

    def periods_per_year(self, year: int) -> int:
        return (self.anchor(year + 1) - self.anchor(year)).days // 7

    def semantic_name(self, year: int, number: int) -> str:
        return f"Semana {number} del {year}"


_STRATEGIES: dict[Periodicity, PeriodStrategy] = {
    Periodicity.WEEKLY: WeeklyStrategy(),
    Periodicity.BIWEEKLY: BiweeklyStrategy(),
    Periodicity.MONTHLY: MonthlyStrategy(),
}


def get_strategy(periodicity: Periodicity | str) -> PeriodStrategy:
    """Strategy for a periodicity (accepts the enum or its value)."""
    return _STRATEGIES[Periodicity(periodicity)]


def validate_period_coherence(
    start: date, end: date, periodicity: Periodicity | str, number: int
) -> bool:
    """True iff (start, end) equals the canonical bounds of `number`."""
    return get_strategy(periodicity).is_coherent(start, end, number)
