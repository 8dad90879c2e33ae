"""Colombian payroll calculator.

Pure computation of one employee's period pay: regular salary, novedades,
incapacity, transport allowance, IBC, employee deductions and employer
contributions. No database access; the liquidation services feed it inputs
and persist its results.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from nomina_engine.calculators.statutory import StatutoryValues, get_statutory_values
from nomina_engine.calculators.types import (
    DEDUCTION_TYPES,
    UNPAID_DAY_TYPES,
    CalculationInput,
    CalculationResult,
    DeductionBreakdown,
    EmployerBreakdown,
    EventInput,
    EventType,
    IncapacityPolicy,
)
from nomina_engine.errors import CalculationError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
DAYS_PER_MONTH = 30
HOURS_PER_MONTH = Decimal("240")

# Employee contributions
HEALTH_EMPLOYEE_RATE = Decimal("0.04")
PENSION_EMPLOYEE_RATE = Decimal("0.04")

# Employer contributions
HEALTH_EMPLOYER_RATE = Decimal("0.085")
PENSION_EMPLOYER_RATE = Decimal("0.12")
ARL_RATE = Decimal("0.00522")
CAJA_RATE = Decimal("0.04")
ICBF_RATE = Decimal("0.03")
SENA_RATE = Decimal("0.02")
EXONERATION_SMMLV = 10

INCAPACITY_RATE = Decimal("0.6667")
INCAPACITY_FULL_PAY_DAYS = 2

WITHHOLDING_EXEMPT_UVT = 95
WITHHOLDING_RATE = Decimal("0.19")

# (lower bound in SMMLV, rate) ordered high to low
SOLIDARITY_FUND_BRACKETS: tuple[tuple[int, Decimal], ...] = (
    (20, Decimal("0.02")),
    (19, Decimal("0.018")),
    (18, Decimal("0.016")),
    (17, Decimal("0.014")),
    (16, Decimal("0.012")),
    (4, Decimal("0.01")),
)

OVERTIME_FACTORS: dict[str, Decimal] = {
    "diurna": Decimal("1.25"),
    "nocturna": Decimal("1.75"),
    "dominical": Decimal("1.75"),
    "festiva": Decimal("1.75"),
    "dominical_diurna": Decimal("2.0"),
    "dominical_nocturna": Decimal("2.5"),
}

SURCHARGE_FACTORS: dict[EventType, Decimal] = {
    EventType.RECARGO_NOCTURNO: Decimal("0.35"),
    EventType.RECARGO_DOMINICAL: Decimal("0.75"),
    EventType.RECARGO_FESTIVO: Decimal("0.75"),
}


def round_pesos(amount: Decimal) -> Decimal:
    """Round to whole pesos."""
    return amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def clamp_ibc(raw_ibc: Decimal, worked_days: int, values: StatutoryValues) -> Decimal:
    """Clamp a period IBC to [1, 25] SMMLV prorated to the worked days."""
    if worked_days <= 0:
        return ZERO
    fraction = Decimal(min(worked_days, DAYS_PER_MONTH)) / DAYS_PER_MONTH
    floor = values.smmlv * fraction
    ceiling = values.ibc_ceiling * fraction
    return round_pesos(min(max(raw_ibc, floor), ceiling))


class PayrollCalculator:
    """Calculate one employee's pay for a period.

    Operations:
    - calculate: full computation from (base salary, worked days, novedades)
    - incapacity_value: pay for an incapacity novedad under the active policy
    """

    def __init__(
        self,
        incapacity_policy: IncapacityPolicy | str = IncapacityPolicy.STANDARD_2D_100_REST_66,
    ):
        self.incapacity_policy = IncapacityPolicy(incapacity_policy)

    def calculate(self, calc_input: CalculationInput) -> CalculationResult:
        """Compute gross, deductions, IBC and employer contributions.

        Raises CalculationError for inputs that cannot produce a valid result.
        """
        base_salary = Decimal(calc_input.base_salary)
        if base_salary <= 0:
            raise CalculationError(
                f"Base salary must be positive (got {base_salary})",
                calc_input.employee_id,
            )
        if calc_input.worked_days < 0:
            raise CalculationError(
                f"Worked days cannot be negative (got {calc_input.worked_days})",
                calc_input.employee_id,
            )

        values = get_statutory_values(calc_input.year)
        worked_days = min(calc_input.worked_days, DAYS_PER_MONTH)
        daily = base_salary / DAYS_PER_MONTH
        events = calc_input.events

        incapacity_days = sum(e.days or 0 for e in events if e.event_type == EventType.INCAPACIDAD)
        unpaid_days = sum(e.days or 0 for e in events if e.event_type in UNPAID_DAY_TYPES)
        effective_days = max(0, min(worked_days - incapacity_days - unpaid_days, DAYS_PER_MONTH))

        # Unpaid novedades without days carry a peso amount instead
        absence_amount = sum(
            (e.value for e in events if e.event_type in UNPAID_DAY_TYPES and not e.days),
            ZERO,
        )
        regular_pay = max(ZERO, round_pesos(daily * effective_days - absence_amount))

        extra_pay = ZERO
        constitutive = ZERO
        other_deductions = ZERO
        incapacity_pay = ZERO
        for event in events:
            if event.event_type in UNPAID_DAY_TYPES:
                continue
            if event.event_type in DEDUCTION_TYPES:
                other_deductions += round_pesos(event.value)
            elif event.event_type == EventType.INCAPACIDAD:
                incapacity_pay += self.incapacity_value(event, daily, values)
            else:
                amount = self._earning_value(event, base_salary)
                extra_pay += amount
                if event.is_constitutive:
                    constitutive += amount

        transport = ZERO
        if base_salary <= values.transport_threshold:
            transport = round_pesos(values.transport_allowance / DAYS_PER_MONTH * effective_days)

        gross_pay = regular_pay + extra_pay + incapacity_pay + transport

        ibc = clamp_ibc(regular_pay + constitutive + incapacity_pay, worked_days, values)
        parafiscal_base = min(ibc, regular_pay + constitutive)

        deductions = self._employee_deductions(
            ibc=ibc,
            gross_pay=gross_pay,
            transport=transport,
            worked_days=worked_days,
            values=values,
        )
        deductions.other = other_deductions

        employer = self._employer_contributions(
            base_salary=base_salary,
            ibc=ibc,
            parafiscal_base=parafiscal_base,
            values=values,
        )

        return CalculationResult(
            base_salary=base_salary,
            worked_days=worked_days,
            effective_days=effective_days,
            regular_pay=regular_pay,
            extra_pay=extra_pay,
            incapacity_pay=incapacity_pay,
            transport_allowance=transport,
            gross_pay=gross_pay,
            ibc=ibc,
            deductions=deductions,
            employer=employer,
            employee_id=calc_input.employee_id,
        )

    def incapacity_value(
        self, event: EventInput, daily: Decimal, values: StatutoryValues
    ) -> Decimal:
        """Pay for one incapacity novedad.

        An explicit value wins. Work-related (laboral) incapacity is paid in
        full; general illness follows the configured policy, never below the
        daily minimum wage.
        """
        if event.value:
            return round_pesos(event.value)

        days = event.days or 0
        if days <= 0:
            return ZERO
        if (event.subtype or "").lower() == "laboral":
            return round_pesos(daily * days)

        reduced_daily = max(daily * INCAPACITY_RATE, values.smmlv / DAYS_PER_MONTH)
        if self.incapacity_policy == IncapacityPolicy.STANDARD_2D_100_REST_66:
            full_days = min(days, INCAPACITY_FULL_PAY_DAYS)
            return round_pesos(daily * full_days + reduced_daily * (days - full_days))
        return round_pesos(reduced_daily * days)

    def _earning_value(self, event: EventInput, base_salary: Decimal) -> Decimal:
        if event.value or not event.hours:
            return round_pesos(event.value)

        hourly = base_salary / HOURS_PER_MONTH
        if event.event_type == EventType.HORAS_EXTRA:
            factor = OVERTIME_FACTORS.get((event.subtype or "diurna").lower(), OVERTIME_FACTORS["diurna"])
        else:
            factor = SURCHARGE_FACTORS.get(event.event_type, ZERO)
        return round_pesos(hourly * factor * event.hours)

    def _employee_deductions(
        self,
        *,
        ibc: Decimal,
        gross_pay: Decimal,
        transport: Decimal,
        worked_days: int,
        values: StatutoryValues,
    ) -> DeductionBreakdown:
        health = round_pesos(ibc * HEALTH_EMPLOYEE_RATE)
        pension = round_pesos(ibc * PENSION_EMPLOYEE_RATE)

        solidarity = ZERO
        if worked_days > 0:
            monthly_ibc = ibc * DAYS_PER_MONTH / worked_days
            for lower_bound, rate in SOLIDARITY_FUND_BRACKETS:
                if monthly_ibc >= values.smmlv * lower_bound:
                    solidarity = round_pesos(ibc * rate)
                    break

        withholding = ZERO
        if worked_days > 0:
            taxable = gross_pay - transport - health - pension - solidarity
            monthly_taxable = taxable * DAYS_PER_MONTH / worked_days
            exempt = values.uvt * WITHHOLDING_EXEMPT_UVT
            if monthly_taxable > exempt:
                monthly_withholding = (monthly_taxable - exempt) * WITHHOLDING_RATE
                withholding = round_pesos(monthly_withholding * worked_days / DAYS_PER_MONTH)

        return DeductionBreakdown(
            health=health,
            pension=pension,
            solidarity_fund=solidarity,
            withholding=withholding,
        )

    def _employer_contributions(
        self,
        *,
        base_salary: Decimal,
        ibc: Decimal,
        parafiscal_base: Decimal,
        values: StatutoryValues,
    ) -> EmployerBreakdown:
        exonerated = base_salary < values.smmlv * EXONERATION_SMMLV
        return EmployerBreakdown(
            health=ZERO if exonerated else round_pesos(ibc * HEALTH_EMPLOYER_RATE),
            pension=round_pesos(ibc * PENSION_EMPLOYER_RATE),
            arl=round_pesos(ibc * ARL_RATE),
            caja=round_pesos(parafiscal_base * CAJA_RATE),
            icbf=ZERO if exonerated else round_pesos(parafiscal_base * ICBF_RATE),
            sena=ZERO if exonerated else round_pesos(parafiscal_base * SENA_RATE),
        )
