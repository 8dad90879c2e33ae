"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class EventType(str, Enum):
    """Novedad types understood by the calculator."""

    HORAS_EXTRA = "horas_extra"
    RECARGO_NOCTURNO = "recargo_nocturno"
    RECARGO_DOMINICAL = "recargo_dominical"
    RECARGO_FESTIVO = "recargo_festivo"
    BONIFICACION = "bonificacion"
    COMISION = "comision"
    AUXILIO_ALIMENTACION = "auxilio_alimentacion"
    OTROS_DEVENGOS = "otros_devengos"
    VACACIONES = "vacaciones"
    LICENCIA_REMUNERADA = "licencia_remunerada"
    LICENCIA_NO_REMUNERADA = "licencia_no_remunerada"
    AUSENCIA = "ausencia"
    INCAPACIDAD = "incapacidad"
    DESCUENTO_VOLUNTARIO = "descuento_voluntario"
    LIBRANZA = "libranza"
    EMBARGO = "embargo"
    RETENCION = "retencion"


# Types that count toward IBC unless the event says otherwise
CONSTITUTIVE_TYPES = frozenset({
    EventType.HORAS_EXTRA,
    EventType.RECARGO_NOCTURNO,
    EventType.RECARGO_DOMINICAL,
    EventType.RECARGO_FESTIVO,
    EventType.BONIFICACION,
    EventType.COMISION,
    EventType.VACACIONES,
    EventType.LICENCIA_REMUNERADA,
})

DEDUCTION_TYPES = frozenset({
    EventType.DESCUENTO_VOLUNTARIO,
    EventType.LIBRANZA,
    EventType.EMBARGO,
    EventType.RETENCION,
})

# Types whose days are subtracted from paid days
UNPAID_DAY_TYPES = frozenset({
    EventType.LICENCIA_NO_REMUNERADA,
    EventType.AUSENCIA,
})


class IncapacityPolicy(str, Enum):
    """How general-illness incapacity days are paid."""

    STANDARD_2D_100_REST_66 = "standard_2d_100_rest_66"
    FROM_DAY1_66_WITH_FLOOR = "from_day1_66_with_floor"


@dataclass(frozen=True)
class EventInput:
    """A novedad as seen by the calculator."""

    event_type: EventType
    value: Decimal = Decimal("0")
    subtype: str | None = None
    days: int | None = None
    hours: Decimal | None = None
    constitutive_of_salary: bool | None = None

    @property
    def is_constitutive(self) -> bool:
        if self.constitutive_of_salary is not None:
            return self.constitutive_of_salary
        return self.event_type in CONSTITUTIVE_TYPES

    @classmethod
    def from_row(cls, row: Any) -> EventInput:
        """Build from a PayrollEvent row (or any object with the same attributes)."""
        return cls(
            event_type=EventType(row.event_type),
            value=Decimal(row.value or 0),
            subtype=row.subtype,
            days=row.days,
            hours=Decimal(row.hours) if row.hours is not None else None,
            constitutive_of_salary=row.constitutive_of_salary,
        )


@dataclass(frozen=True)
class CalculationInput:
    """Inputs for one employee's period computation."""

    base_salary: Decimal
    worked_days: int
    year: int
    events: tuple[EventInput, ...] = ()
    employee_id: UUID | None = None
    incapacity_policy: IncapacityPolicy = IncapacityPolicy.STANDARD_2D_100_REST_66


@dataclass
class DeductionBreakdown:
    """Employee-side deductions."""

    health: Decimal = Decimal("0")
    pension: Decimal = Decimal("0")
    solidarity_fund: Decimal = Decimal("0")
    withholding: Decimal = Decimal("0")
    other: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.health + self.pension + self.solidarity_fund + self.withholding + self.other


@dataclass
class EmployerBreakdown:
    """Employer-side contributions."""

    health: Decimal = Decimal("0")
    pension: Decimal = Decimal("0")
    arl: Decimal = Decimal("0")
    caja: Decimal = Decimal("0")
    icbf: Decimal = Decimal("0")
    sena: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.health + self.pension + self.arl + self.caja + self.icbf + self.sena


@dataclass
class CalculationResult:
    """Result of computing pay for one employee."""

    base_salary: Decimal
    worked_days: int
    effective_days: int
    regular_pay: Decimal
    extra_pay: Decimal
    incapacity_pay: Decimal
    transport_allowance: Decimal
    gross_pay: Decimal
    ibc: Decimal
    deductions: DeductionBreakdown = field(default_factory=DeductionBreakdown)
    employer: EmployerBreakdown = field(default_factory=EmployerBreakdown)
    employee_id: UUID | None = None

    @property
    def total_deductions(self) -> Decimal:
        return self.deductions.total

    @property
    def net_pay(self) -> Decimal:
        return self.gross_pay - self.total_deductions

    @property
    def employer_contributions(self) -> Decimal:
        return self.employer.total
