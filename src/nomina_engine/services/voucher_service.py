"""Voucher generation collaborator.

The engine only triggers and records vouchers; rendering and delivery
happen elsewhere.
"""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.models import PayrollPeriod, PayrollRecord, PayrollVoucher, utcnow

logger = logging.getLogger(__name__)


class VoucherGenerator(Protocol):
    """Anything that can issue and supersede vouchers."""

    async def generate(self, period: PayrollPeriod, record: PayrollRecord) -> PayrollVoucher:
        ...

    async def supersede(self, period_id: UUID, employee_ids: list[UUID]) -> int:
        ...


class DatabaseVoucherGenerator:
    """Record vouchers as rows for downstream rendering."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def generate(self, period: PayrollPeriod, record: PayrollRecord) -> PayrollVoucher:
        voucher = PayrollVoucher(
            period_id=period.period_id,
            employee_id=record.employee_id,
            record_id=record.record_id,
            net_pay=record.net_pay,
            status="generated",
        )
        self.session.add(voucher)
        await self.session.flush()
        logger.debug("Voucher %s issued for employee %s", voucher.voucher_id, record.employee_id)
        return voucher

    async def supersede(self, period_id: UUID, employee_ids: list[UUID]) -> int:
        """Mark current vouchers of the given employees as superseded."""
        if not employee_ids:
            return 0
        result = await self.session.execute(
            update(PayrollVoucher)
            .where(
                PayrollVoucher.period_id == period_id,
                PayrollVoucher.employee_id.in_(employee_ids),
                PayrollVoucher.status == "generated",
            )
            .values(status="superseded", superseded_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
