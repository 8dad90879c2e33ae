"""Period catalog, detection and ordinary-edit endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, Response, status

from nomina_engine.api.dependencies import ActorId, CompanyId, CompanyStrategy, DbSession
from nomina_engine.api.schemas import (
    AuditEventResponse,
    CatalogResponse,
    CorrectionResponse,
    DetectionResponse,
    DetectRequest,
    EnsureYearResponse,
    ErrorResponse,
    EventCreate,
    EventResponse,
    LoadEmployeesResponse,
    PeriodCreate,
    PeriodResponse,
    PeriodSlotResponse,
    RecordResponse,
    RecordUpdate,
)
from nomina_engine.periods import (
    DetectionAction,
    DetectionResult,
    PeriodCatalog,
    PeriodDetector,
    PeriodSlot,
)
from nomina_engine.services.adjustment_service import AdjustmentService
from nomina_engine.services.audit_service import list_for_period
from nomina_engine.services.period_service import PeriodService

router = APIRouter(prefix="/periods", tags=["periods"])


def _slot_response(slot: PeriodSlot) -> PeriodSlotResponse:
    return PeriodSlotResponse(
        sequence_number=slot.sequence_number,
        label=slot.bounds.label,
        start_date=slot.bounds.start,
        end_date=slot.bounds.end,
        status=slot.status.value,
        can_select=slot.can_select,
        reason=slot.reason,
        period_id=slot.period.period_id if slot.period else None,
    )


def _detection_response(detection: DetectionResult) -> DetectionResponse:
    return DetectionResponse(
        action=detection.action.value,
        message=detection.message,
        start_date=detection.start,
        end_date=detection.end,
        period_id=detection.period.period_id if detection.period else None,
        year=detection.year,
        sequence_number=detection.sequence_number,
        label=detection.label,
        is_coherent=detection.is_coherent,
        warnings=detection.warnings,
        errors=detection.errors,
    )


# ============================================================================
# Catalog
# ============================================================================


@router.get("/catalog", response_model=CatalogResponse)
async def get_catalog(
    db: DbSession,
    company_id: CompanyId,
    strategy: CompanyStrategy,
    year: Annotated[int, Query(ge=2000, le=2100)],
) -> CatalogResponse:
    """List every expected period of the year with its status."""
    slots = await PeriodCatalog(db, strategy).list_year(company_id, year)
    return CatalogResponse(
        year=year,
        periodicity=strategy.periodicity.value,
        slots=[_slot_response(s) for s in slots],
    )


@router.post("/catalog/ensure", response_model=EnsureYearResponse)
async def ensure_catalog(
    db: DbSession,
    company_id: CompanyId,
    strategy: CompanyStrategy,
    year: Annotated[int, Query(ge=2000, le=2100)],
) -> EnsureYearResponse:
    """Materialize every missing period of the year."""
    outcome = await PeriodCatalog(db, strategy).ensure_complete_year(company_id, year)
    return EnsureYearResponse(
        year=year,
        generated=outcome.generated,
        existing=outcome.existing,
        failed=outcome.failed,
        total=outcome.total,
        success=outcome.success,
        errors=outcome.errors,
    )


@router.get(
    "/catalog/next",
    response_model=PeriodSlotResponse,
    responses={404: {"model": ErrorResponse}},
)
async def next_available_period(
    db: DbSession,
    company_id: CompanyId,
    strategy: CompanyStrategy,
    year: Annotated[int, Query(ge=2000, le=2100)],
) -> PeriodSlotResponse:
    """Lowest-numbered period of the year that can still be selected."""
    slot = await PeriodCatalog(db, strategy).next_available(company_id, year)
    if slot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Every period of {year} is already liquidated",
        )
    return _slot_response(slot)


# ============================================================================
# Detection and creation
# ============================================================================


@router.post("/detect", response_model=DetectionResponse)
async def detect_period(
    db: DbSession,
    company_id: CompanyId,
    strategy: CompanyStrategy,
    payload: DetectRequest,
) -> DetectionResponse:
    """Decide whether a range continues, creates or conflicts with a period."""
    detection = await PeriodDetector(db, strategy).detect(
        company_id, payload.start_date, payload.end_date
    )
    return _detection_response(detection)


@router.post(
    "",
    response_model=PeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_period(
    db: DbSession,
    company_id: CompanyId,
    strategy: CompanyStrategy,
    payload: PeriodCreate,
    response: Response,
) -> PeriodResponse:
    """Create a period from a catalog slot or a detected range."""
    if payload.year is not None and payload.sequence_number is not None:
        period = await PeriodCatalog(db, strategy).create_slot(
            company_id, payload.year, payload.sequence_number
        )
        await db.commit()
        return PeriodResponse.model_validate(period)

    if payload.start_date is None or payload.end_date is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Provide either year and sequence_number or start_date and end_date",
        )

    detector = PeriodDetector(db, strategy)
    detection = await detector.detect(company_id, payload.start_date, payload.end_date)
    if detection.action == DetectionAction.CONTINUE:
        response.status_code = status.HTTP_200_OK
        return PeriodResponse.model_validate(detection.period)
    if detection.action == DetectionAction.CONFLICT:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detection.message)
    if detection.action == DetectionAction.INVALID:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detection.message
        )

    period = await detector.create_from_detection(company_id, detection)
    await db.commit()
    return PeriodResponse.model_validate(period)


# ============================================================================
# Period reads
# ============================================================================


@router.get(
    "/{period_id}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(
    db: DbSession,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
) -> PeriodResponse:
    """Get a specific period by ID."""
    period = await PeriodService(db).require_period(period_id, company_id)
    return PeriodResponse.model_validate(period)


@router.get(
    "/{period_id}/audit",
    response_model=list[AuditEventResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_period_audit(
    db: DbSession,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
) -> list[AuditEventResponse]:
    """Audit trail of a period, oldest first."""
    await PeriodService(db).require_period(period_id, company_id)
    events = await list_for_period(db, period_id)
    return [AuditEventResponse.model_validate(e) for e in events]


@router.get(
    "/{period_id}/corrections",
    response_model=list[CorrectionResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_period_corrections(
    db: DbSession,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
) -> list[CorrectionResponse]:
    """Corrections recorded by reliquidations and adjustments."""
    await PeriodService(db).require_period(period_id, company_id)
    corrections = await AdjustmentService(db).correction_history(period_id)
    return [CorrectionResponse.model_validate(c) for c in corrections]


# ============================================================================
# Ordinary edits
# ============================================================================


@router.post(
    "/{period_id}/employees/load",
    response_model=LoadEmployeesResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def load_employees(
    db: DbSession,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
) -> LoadEmployeesResponse:
    """Attach every active employee not yet in the period."""
    service = PeriodService(db)
    period = await service.require_period(period_id, company_id)
    created = await service.load_employees(period)
    await db.commit()
    records = await service.get_records(period_id)
    return LoadEmployeesResponse(
        period_id=period_id,
        created=len(created),
        records=[RecordResponse.model_validate(r) for r in records],
    )


@router.post(
    "/{period_id}/events",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def add_event(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
    payload: EventCreate,
) -> EventResponse:
    """Add a novedad to an open period."""
    service = PeriodService(db)
    period = await service.require_period(period_id, company_id)
    event = await service.add_event(
        period,
        payload.employee_id,
        payload.event_type,
        payload.value,
        subtype=payload.subtype,
        days=payload.days,
        hours=payload.hours,
        constitutive_of_salary=payload.constitutive_of_salary,
        description=payload.description,
        created_by=actor_id,
    )
    await db.commit()
    return EventResponse.model_validate(event)


@router.patch(
    "/{period_id}/records/{employee_id}",
    response_model=RecordResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_record(
    db: DbSession,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
    employee_id: Annotated[UUID, Path()],
    payload: RecordUpdate,
) -> RecordResponse:
    """Auto-save draft edits of one employee's record."""
    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No changes given",
        )
    service = PeriodService(db)
    period = await service.require_period(period_id, company_id)
    try:
        record = await service.save_draft_record(period, employee_id, changes)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return RecordResponse.model_validate(record)
