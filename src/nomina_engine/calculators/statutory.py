"""Statutory Colombian payroll values by year."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatutoryValues:
    """Yearly figures set by decree."""

    year: int
    smmlv: Decimal  # Salario mínimo mensual legal vigente
    transport_allowance: Decimal
    uvt: Decimal

    @property
    def ibc_ceiling(self) -> Decimal:
        """Monthly IBC ceiling (25 SMMLV)."""
        return self.smmlv * 25

    @property
    def transport_threshold(self) -> Decimal:
        """Salaries up to 2 SMMLV receive the transport allowance."""
        return self.smmlv * 2


STATUTORY_VALUES: dict[int, StatutoryValues] = {
    2024: StatutoryValues(
        year=2024,
        smmlv=Decimal("1300000"),
        transport_allowance=Decimal("162000"),
        uvt=Decimal("47065"),
    ),
    2025: StatutoryValues(
        year=2025,
        smmlv=Decimal("1423500"),
        transport_allowance=Decimal("200000"),
        uvt=Decimal("49799"),
    ),
}


def get_statutory_values(year: int) -> StatutoryValues:
    """Return the values for a year.

    Years without a decree on file use the latest earlier year; years before
    the table use the earliest one.
    """
    if year in STATUTORY_VALUES:
        return STATUTORY_VALUES[year]

    known = sorted(STATUTORY_VALUES)
    earlier = [y for y in known if y < year]
    fallback = earlier[-1] if earlier else known[0]
    logger.warning(
        "No statutory values for %s; using %s figures", year, fallback
    )
    return STATUTORY_VALUES[fallback]
