"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nomina_engine import __version__
from nomina_engine.api.routes import health_router, liquidation_router, periods_router
from nomina_engine.config import configure_logging
from nomina_engine.database import dispose_db, init_db
from nomina_engine.errors import (
    CalculationError,
    ClosedPeriodError,
    DuplicatePeriodError,
    InvalidTransitionError,
    NominaError,
    PeriodLockedError,
    PeriodNotFoundError,
)
from nomina_engine.services.locking_service import PeriodLockManager, set_lock_manager

logger = logging.getLogger(__name__)

# Domain error -> (HTTP status, error code)
ERROR_STATUS: dict[type[NominaError], tuple[int, str]] = {
    PeriodNotFoundError: (status.HTTP_404_NOT_FOUND, "PERIOD_NOT_FOUND"),
    ClosedPeriodError: (status.HTTP_409_CONFLICT, "PERIOD_CLOSED"),
    DuplicatePeriodError: (status.HTTP_409_CONFLICT, "DUPLICATE_PERIOD"),
    PeriodLockedError: (status.HTTP_409_CONFLICT, "PERIOD_LOCKED"),
    InvalidTransitionError: (status.HTTP_409_CONFLICT, "INVALID_TRANSITION"),
    CalculationError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "CALCULATION_ERROR"),
}


def error_status(exc: NominaError) -> tuple[int, str]:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_400_BAD_REQUEST, "NOMINA_ERROR"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    configure_logging()
    engine, _ = init_db()
    set_lock_manager(PeriodLockManager(engine))
    logger.info("Nomina engine %s started (%s)", __version__, engine.dialect.name)
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Nomina Engine API",
        description="Colombian payroll period lifecycle and liquidation",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(NominaError)
    async def nomina_exception_handler(request: Request, exc: NominaError) -> JSONResponse:
        """Map domain errors to HTTP responses."""
        status_code, code = error_status(exc)
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": code},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(periods_router, prefix="/api/v1")
    app.include_router(liquidation_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
