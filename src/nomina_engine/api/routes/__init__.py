"""API routes."""

from nomina_engine.api.routes.health import router as health_router
from nomina_engine.api.routes.liquidation import router as liquidation_router
from nomina_engine.api.routes.periods import router as periods_router

__all__ = ["health_router", "liquidation_router", "periods_router"]
