"""Recompute an open period's records and totals."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.errors import CalculationError
from nomina_engine.services.audit_service import AuditTrail
from nomina_engine.services.period_service import PeriodService

logger = logging.getLogger(__name__)


class RepairService:
    """Bring a draft/processing period back in line with its novedades.

    Closed periods are never repaired here; they go through reliquidation
    so the differences are recorded as corrections.
    """

    def __init__(self, session: AsyncSession, period_service: PeriodService | None = None):
        self.session = session
        self.period_service = period_service or PeriodService(session)

    async def repair_period(
        self,
        period_id: UUID,
        company_id: UUID,
        actor_id: str | None = None,
    ) -> dict[str, Any]:
        """Recompute every record and rewrite the period totals.

        Returns {employees_count, totals_updated, repair_log}.

        Raises ClosedPeriodError for closed periods and PeriodNotFoundError
        for unknown ones.
        """
        ps = self.period_service
        async with ps.lock_manager.try_hold(period_id):
            period = await ps.require_period(period_id, company_id)
            ps.ensure_editable(period, "repair")

            audit = AuditTrail(
                self.session,
                company_id=company_id,
                period_id=period_id,
                operation="repair",
                actor_id=actor_id,
            )
            repair_log: list[str] = []

            records = await ps.get_records(period_id)
            events = await ps.get_events(period_id)
            for record in records:
                try:
                    await ps.recalculate_record(period, record, events.get(record.employee_id, []))
                except CalculationError as exc:
                    PeriodService.mark_error(record, str(exc))
                    repair_log.append(f"Employee {record.employee_id}: {exc}")
                    continue
                repair_log.append(f"Employee {record.employee_id}: net {record.net_pay}")
            audit.record("records_recalculated", {"records": len(records)})

            await self.session.flush()
            totals = await ps.recompute_totals(period, records)
            repair_log.append(
                f"Totals: gross {totals.total_gross}, deductions {totals.total_deductions}, "
                f"net {totals.total_net}"
            )
            audit.record("totals_updated", totals.to_dict())
            await audit.commit()

        logger.info("Repaired period %s (%d record(s))", period_id, len(records))
        return {
            "employees_count": totals.employees_count,
            "totals_updated": True,
            "totals": totals.to_dict(),
            "repair_log": repair_log,
        }
