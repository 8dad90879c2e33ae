"""Nomina engine services."""

from nomina_engine.services.adjustment_service import AdjustmentService
from nomina_engine.services.audit_service import AuditTrail
from nomina_engine.services.liquidation_service import (
    LiquidationResult,
    LiquidationService,
    LiquidationStatus,
)
from nomina_engine.services.locking_service import PeriodLockManager, get_lock_manager
from nomina_engine.services.period_service import PeriodService, ResumePeriodIntent
from nomina_engine.services.reliquidation_service import (
    ReliquidationResult,
    ReliquidationScope,
    ReliquidationService,
)
from nomina_engine.services.repair_service import RepairService
from nomina_engine.services.state_machine import PeriodState, PeriodStateMachine
from nomina_engine.services.validation_service import ValidationEngine, ValidationReport

__all__ = [
    "AdjustmentService",
    "AuditTrail",
    "LiquidationResult",
    "LiquidationService",
    "LiquidationStatus",
    "PeriodLockManager",
    "PeriodService",
    "PeriodState",
    "PeriodStateMachine",
    "ReliquidationResult",
    "ReliquidationScope",
    "ReliquidationService",
    "RepairService",
    "ResumePeriodIntent",
    "ValidationEngine",
    "ValidationReport",
    "get_lock_manager",
]
