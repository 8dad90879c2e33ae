"""Validation, liquidation, repair and reliquidation endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from nomina_engine.api.dependencies import ActorId, CompanyId, DbSession
from nomina_engine.api.schemas import (
    AdjustmentRequest,
    AdjustmentResponse,
    ErrorResponse,
    EventResponse,
    LiquidationResponse,
    ReliquidationRequest,
    ReliquidationResponse,
    RepairPeriodResponse,
    ValidationResponse,
)
from nomina_engine.services.adjustment_service import AdjustmentService
from nomina_engine.services.liquidation_service import LiquidationService
from nomina_engine.services.period_service import PeriodService
from nomina_engine.services.reliquidation_service import ReliquidationService
from nomina_engine.services.repair_service import RepairService
from nomina_engine.services.validation_service import ValidationEngine

router = APIRouter(prefix="/periods", tags=["liquidation"])


@router.post("/{period_id}/validate", response_model=ValidationResponse)
async def validate_period(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
    repair: Annotated[bool, Query()] = False,
) -> ValidationResponse:
    """Score a period's readiness, optionally running auto-repairs first."""
    report = await ValidationEngine(db).validate_pre_liquidation(
        period_id, company_id, repair=repair, actor_id=actor_id
    )
    return ValidationResponse.model_validate(report.to_dict())


@router.post(
    "/{period_id}/liquidate",
    response_model=LiquidationResponse,
    responses={409: {"model": ErrorResponse}},
)
async def liquidate_period(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
) -> LiquidationResponse:
    """Validate, compute and close a period, then issue vouchers."""
    result = await LiquidationService(db).execute_atomic_liquidation(
        period_id, company_id, actor_id
    )
    return LiquidationResponse.model_validate(result.to_dict())


@router.post(
    "/{period_id}/repair",
    response_model=RepairPeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def repair_period(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
) -> RepairPeriodResponse:
    """Recompute every record and the totals of an open period."""
    outcome = await RepairService(db).repair_period(period_id, company_id, actor_id)
    return RepairPeriodResponse.model_validate(outcome)


@router.post(
    "/{period_id}/reliquidate",
    response_model=ReliquidationResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reliquidate_period(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
    payload: ReliquidationRequest,
) -> ReliquidationResponse:
    """Recompute a liquidated period and record the differences."""
    try:
        result = await ReliquidationService(db).reliquidate_period(
            period_id,
            company_id,
            payload.justification,
            scope=payload.scope,
            affected_employee_ids=payload.affected_employee_ids,
            regenerate_vouchers=payload.regenerate_vouchers,
            actor_id=actor_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return ReliquidationResponse.model_validate(result.to_dict())


@router.post(
    "/{period_id}/adjustments",
    response_model=AdjustmentResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def apply_adjustment(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
    payload: AdjustmentRequest,
) -> AdjustmentResponse:
    """Apply a late change on the period itself or carry it forward."""
    service = AdjustmentService(db)
    try:
        if payload.kind == "corrective":
            result = await service.apply_corrective_adjustment(
                period_id,
                company_id,
                payload.employee_id,
                payload.amount,
                payload.concept,
                payload.justification or "",
                actor_id=actor_id,
                regenerate_vouchers=payload.regenerate_vouchers,
            )
            return AdjustmentResponse(
                kind=payload.kind,
                reliquidation=ReliquidationResponse.model_validate(result.to_dict()),
            )

        await PeriodService(db).require_period(period_id, company_id)
        event = await service.apply_compensatory_adjustment(
            company_id,
            payload.employee_id,
            payload.amount,
            payload.concept,
            actor_id=actor_id,
        )
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return AdjustmentResponse(kind=payload.kind, event=EventResponse.model_validate(event))
