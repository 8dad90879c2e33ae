"""Health check endpoints."""

import logging
from datetime import date, datetime, timezone

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from nomina_engine.api.dependencies import DbSession
from nomina_engine.calculators.statutory import STATUTORY_VALUES
from nomina_engine.config import get_settings
from nomina_engine.models import PayrollPeriod
from nomina_engine.services.locking_service import get_lock_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    engine_version: str
    statutory_year: int
    statutory_values_current: bool
    periods_in_progress: int


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession) -> HealthResponse:
    """Database reachability, statutory table coverage and busy periods."""
    db_status = "unhealthy"
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError as e:
        logger.warning("Database health check failed: %s", e)

    current_year = date.today().year
    covered = max((y for y in STATUTORY_VALUES if y <= current_year), default=min(STATUTORY_VALUES))
    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        engine_version=get_settings().engine_version,
        statutory_year=covered,
        statutory_values_current=covered == current_year,
        periods_in_progress=len(get_lock_manager().busy_keys()),
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(db: DbSession) -> dict[str, str]:
    """Ready once the period tables exist."""
    try:
        await db.scalar(select(func.count()).select_from(PayrollPeriod))
    except SQLAlchemyError as e:
        logger.warning("Readiness check failed: %s", e)
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Schema not initialized")
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
