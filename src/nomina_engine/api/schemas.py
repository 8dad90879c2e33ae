"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from nomina_engine.calculators import EventType


# ============================================================================
# Period schemas
# ============================================================================


class PeriodResponse(BaseModel):
    """Schema for period response."""

    model_config = ConfigDict(from_attributes=True)

    period_id: UUID
    company_id: UUID
    start_date: date
    end_date: date
    periodicity: str
    period_year: int
    sequence_number: int
    label: str
    state: str
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    employees_count: int
    closed_at: datetime | None = None
    reopen_count: int
    last_reopened_by: str | None = None
    created_at: datetime


class PeriodCreate(BaseModel):
    """Create a period from a catalog slot or from a detected date range.

    Either (year, sequence_number) or (start_date, end_date) must be given.
    """

    year: int | None = Field(default=None, ge=2000, le=2100)
    sequence_number: int | None = Field(default=None, ge=1)
    start_date: date | None = None
    end_date: date | None = None


# ============================================================================
# Catalog schemas
# ============================================================================


class PeriodSlotResponse(BaseModel):
    """One expected period of the year."""

    sequence_number: int
    label: str
    start_date: date
    end_date: date
    status: str
    can_select: bool
    reason: str | None = None
    period_id: UUID | None = None


class CatalogResponse(BaseModel):
    year: int
    periodicity: str
    slots: list[PeriodSlotResponse]


class EnsureYearResponse(BaseModel):
    year: int
    generated: int
    existing: int
    failed: int
    total: int
    success: bool
    errors: list[str] = []


# ============================================================================
# Detection schemas
# ============================================================================


class DetectRequest(BaseModel):
    start_date: date
    end_date: date


class DetectionResponse(BaseModel):
    """What the engine would do with a user-chosen range."""

    action: str
    message: str
    start_date: date
    end_date: date
    period_id: UUID | None = None
    year: int | None = None
    sequence_number: int | None = None
    label: str | None = None
    is_coherent: bool = True
    warnings: list[str] = []
    errors: list[str] = []


# ============================================================================
# Record and novedad schemas
# ============================================================================


class RecordResponse(BaseModel):
    """Schema for a payroll record."""

    model_config = ConfigDict(from_attributes=True)

    record_id: UUID
    period_id: UUID
    employee_id: UUID
    base_salary: Decimal
    worked_days: int
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    ibc: Decimal
    employer_contributions: Decimal
    transport_allowance: Decimal
    status: str
    error_message: str | None = None
    is_stale: bool


class LoadEmployeesResponse(BaseModel):
    period_id: UUID
    created: int
    records: list[RecordResponse]


class EventCreate(BaseModel):
    """Schema for adding a novedad."""

    employee_id: UUID
    event_type: EventType
    value: Decimal = Decimal("0")
    subtype: str | None = None
    days: int | None = Field(default=None, ge=0, le=30)
    hours: Decimal | None = Field(default=None, ge=0)
    constitutive_of_salary: bool | None = None
    description: str | None = None


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_id: UUID
    period_id: UUID
    employee_id: UUID
    event_type: str
    subtype: str | None = None
    value: Decimal
    days: int | None = None
    hours: Decimal | None = None
    constitutive_of_salary: bool | None = None
    description: str | None = None


class RecordUpdate(BaseModel):
    """Draft auto-save payload."""

    worked_days: int | None = Field(default=None, ge=0, le=30)
    base_salary: Decimal | None = Field(default=None, gt=0)


# ============================================================================
# Validation schemas
# ============================================================================


class CheckResponse(BaseModel):
    id: str
    category: str
    weight: int
    passed: bool
    message: str
    auto_repairable: bool
    details: dict[str, Any] = {}


class RepairSummary(BaseModel):
    success: bool
    repaired_count: int
    errors: list[str]
    log: list[str]


class ValidationResponse(BaseModel):
    """Weighted validation report."""

    is_valid: bool
    can_proceed: bool
    score: int
    checks: list[CheckResponse]
    must_repair: list[str]
    summary: dict[str, dict[str, int]]
    errors: list[str]
    warnings: list[str]
    repair: RepairSummary | None = None


# ============================================================================
# Liquidation schemas
# ============================================================================


class TotalsResponse(BaseModel):
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    employees_count: int


class LiquidationResponse(BaseModel):
    """Result of a liquidation request."""

    period_id: UUID
    status: str
    employees_processed: int
    vouchers_generated: int
    totals: TotalsResponse | None = None
    audit_log: list[dict[str, Any]]
    errors: list[dict[str, Any]]
    validation: ValidationResponse | None = None


class RepairPeriodResponse(BaseModel):
    employees_count: int
    totals_updated: bool
    totals: TotalsResponse
    repair_log: list[str]


class ReliquidationRequest(BaseModel):
    justification: str = Field(min_length=1)
    scope: Literal["affected", "all"] = "affected"
    affected_employee_ids: list[UUID] | None = None
    regenerate_vouchers: bool | None = None


class ReliquidationResponse(BaseModel):
    period_id: UUID
    status: str
    success: bool
    employees_affected: int
    corrections_applied: int
    vouchers_regenerated: int
    period_reopened: bool
    period_reclosed: bool
    errors: list[dict[str, Any]]
    audit_log: list[dict[str, Any]]


class AdjustmentRequest(BaseModel):
    """Late change to an employee's pay on a liquidated period."""

    kind: Literal["corrective", "compensatory"] = "corrective"
    employee_id: UUID
    amount: Decimal
    concept: str = Field(min_length=1)
    justification: str | None = None
    regenerate_vouchers: bool | None = None


class AdjustmentResponse(BaseModel):
    kind: str
    event: EventResponse | None = None
    reliquidation: ReliquidationResponse | None = None


# ============================================================================
# Audit and correction schemas
# ============================================================================


class CorrectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    correction_id: UUID
    period_id: UUID
    employee_id: UUID
    correction_type: str
    concept: str
    previous_value: Decimal
    new_value: Decimal
    value_difference: Decimal
    justification: str
    created_by: str | None = None
    source_correction_id: UUID | None = None
    created_at: datetime


class AuditEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    audit_event_id: UUID
    operation_id: UUID
    operation: str
    sequence: int
    step: str
    actor_id: str | None = None
    previous_state: str | None = None
    new_state: str | None = None
    reason: str | None = None
    payload_json: dict[str, Any]
    created_at: datetime


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
