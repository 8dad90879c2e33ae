"""ORM models."""

from nomina_engine.models.base import Base, TimestampMixin, UpdatedAtMixin, utcnow
from nomina_engine.models.company import Company
from nomina_engine.models.employee import Employee
from nomina_engine.models.payroll import (
    AuditEvent,
    PayrollEvent,
    PayrollPeriod,
    PayrollRecord,
    PayrollVoucher,
    PeriodCorrection,
)

__all__ = [
    "AuditEvent",
    "Base",
    "Company",
    "Employee",
    "PayrollEvent",
    "PayrollPeriod",
    "PayrollRecord",
    "PayrollVoucher",
    "PeriodCorrection",
    "TimestampMixin",
    "UpdatedAtMixin",
    "utcnow",
]
