"""Payroll calculation engine."""

from nomina_engine.calculators.engine import PayrollCalculator, clamp_ibc, round_pesos
from nomina_engine.calculators.statutory import StatutoryValues, get_statutory_values
from nomina_engine.calculators.types import (
    CalculationInput,
    CalculationResult,
    EventInput,
    EventType,
    IncapacityPolicy,
)

__all__ = [
    "CalculationInput",
    "CalculationResult",
    "EventInput",
    "EventType",
    "IncapacityPolicy",
    "PayrollCalculator",
    "StatutoryValues",
    "clamp_ibc",
    "get_statutory_values",
    "round_pesos",
]
