"""Period strategies, catalog and range detection."""

from nomina_engine.periods.catalog import EnsureYearResult, PeriodCatalog, PeriodSlot, SlotStatus
from nomina_engine.periods.detector import DetectionAction, DetectionResult, PeriodDetector
from nomina_engine.periods.strategy import (
    BiweeklyStrategy,
    MonthlyStrategy,
    PeriodBounds,
    Periodicity,
    PeriodStrategy,
    RangeCheck,
    WeeklyStrategy,
    get_strategy,
    validate_period_coherence,
)

__all__ = [
    "BiweeklyStrategy",
    "DetectionAction",
    "DetectionResult",
    "EnsureYearResult",
    "MonthlyStrategy",
    "PeriodBounds",
    "PeriodCatalog",
    "PeriodDetector",
    "PeriodSlot",
    "PeriodStrategy",
    "Periodicity",
    "RangeCheck",
    "SlotStatus",
    "WeeklyStrategy",
    "get_strategy",
    "validate_period_coherence",
]
