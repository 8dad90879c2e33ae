"""Payroll period, record, novedad, correction, voucher and audit models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nomina_engine.models.base import Base, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from nomina_engine.models.employee import Employee

ZERO = Decimal("0")


# ===== Periods =====


class PayrollPeriod(Base, UpdatedAtMixin):
    """One payroll cycle (week, biweek or month) for one company."""

    __tablename__ = "payroll_period"

    period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    periodicity: Mapped[str] = mapped_column(String, nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str] = mapped_column(String, nullable=False)
    state: Mapped[str] = mapped_column(String, nullable=False, default="draft")

    total_gross: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=ZERO)
    total_net: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=ZERO)
    employees_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reopen_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reopened_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "company_id",
            "period_year",
            "periodicity",
            "sequence_number",
            name="payroll_period_slot_unique",
        ),
        CheckConstraint("end_date >= start_date", name="payroll_period_dates_check"),
        CheckConstraint(
            "state IN ('draft', 'processing', 'closed')",
            name="payroll_period_state_check",
        ),
        CheckConstraint(
            "periodicity IN ('weekly', 'biweekly', 'monthly')",
            name="payroll_period_periodicity_check",
        ),
        CheckConstraint("sequence_number >= 1", name="payroll_period_sequence_check"),
    )

    # Relationships
    records: Mapped[list[PayrollRecord]] = relationship(back_populates="period")

    def overlaps(self, start: date, end: date) -> bool:
        """Inclusive range overlap with [start, end]."""
        return start <= self.end_date and end >= self.start_date


# ===== Per-employee computation =====


class PayrollRecord(Base, UpdatedAtMixin):
    """One employee's pay computation within one period."""

    __tablename__ = "payroll_record"

    record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    base_salary: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    worked_days: Mapped[int] = mapped_column(Integer, nullable=False)
    gross_pay: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    ibc: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    employer_contributions: Mapped[Decimal] = mapped_column(
        Numeric(16, 2), nullable=False, default=ZERO
    )
    transport_allowance: Mapped[Decimal] = mapped_column(
        Numeric(16, 2), nullable=False, default=ZERO
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_stale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'calculated', 'error')",
            name="payroll_record_status_check",
        ),
        CheckConstraint("worked_days >= 0", name="payroll_record_worked_days_check"),
    )

    # Relationships
    period: Mapped[PayrollPeriod] = relationship(back_populates="records")
    employee: Mapped[Employee] = relationship()

    @property
    def net_pay(self) -> Decimal:
        """Net pay is always derived from gross and deductions."""
        return (self.gross_pay or ZERO) - (self.total_deductions or ZERO)


class PayrollEvent(Base, UpdatedAtMixin):
    """Novedad: ad-hoc adjustment for one employee within one period."""

    __tablename__ = "payroll_event"

    event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    subtype: Mapped[str | None] = mapped_column(String, nullable=True)
    value: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    constitutive_of_salary: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)


# ===== Corrections & vouchers =====


class PeriodCorrection(Base, TimestampMixin):
    """Signed correction recorded when a closed period's figures change."""

    __tablename__ = "period_correction"

    correction_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    correction_type: Mapped[str] = mapped_column(String, nullable=False)
    concept: Mapped[str] = mapped_column(String, nullable=False)
    previous_value: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    new_value: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    value_difference: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    justification: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    # Reliquidation rows triggered by a corrective adjustment point at it
    source_correction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("period_correction.correction_id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "correction_type IN ('reliquidation', 'corrective_adjustment')",
            name="period_correction_type_check",
        ),
    )


class PayrollVoucher(Base, TimestampMixin):
    """Record of a voucher generated for one employee's period pay."""

    __tablename__ = "payroll_voucher"

    voucher_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    record_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_record.record_id", ondelete="CASCADE"),
        nullable=False,
    )
    net_pay: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="generated")
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('generated', 'superseded', 'failed')",
            name="payroll_voucher_status_check",
        ),
    )


# ===== Audit =====


class AuditEvent(Base, TimestampMixin):
    """Append-only audit trail entry for one step of a period operation."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(nullable=False)
    period_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)
    operation_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    step: Mapped[str] = mapped_column(String, nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String, nullable=True)
    previous_state: Mapped[str | None] = mapped_column(String, nullable=True)
    new_state: Mapped[str | None] = mapped_column(String, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
