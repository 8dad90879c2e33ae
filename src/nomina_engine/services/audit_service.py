"""Append-only audit trail for period operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.models import AuditEvent, utcnow

logger = logging.getLogger(__name__)


def to_jsonable(value: Any) -> Any:
    """Convert Decimals, UUIDs and dates so a payload can be stored as JSON."""
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class AuditLogEntry:
    """One immutable step of an operation."""

    operation_id: UUID
    operation: str
    sequence: int
    step: str
    timestamp: datetime
    actor_id: str | None = None
    previous_state: str | None = None
    new_state: str | None = None
    reason: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_id": str(self.operation_id),
            "operation": self.operation,
            "sequence": self.sequence,
            "step": self.step,
            "timestamp": self.timestamp.isoformat(),
            "actor_id": self.actor_id,
            "previous_state": self.previous_state,
            "new_state": self.new_state,
            "reason": self.reason,
            "payload": self.payload,
        }


class AuditTrail:
    """Ordered audit entries for one operation on one period.

    Entries are kept in memory and added to the session. Call `commit()` to
    commit the session and mark entries durable. After a rollback, call
    `restore()` so entries written before the failure are re-added and
    survive alongside the error step.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        company_id: UUID,
        period_id: UUID | None,
        operation: str,
        actor_id: str | None = None,
    ):
        self.session = session
        self.company_id = company_id
        self.period_id = period_id
        self.operation = operation
        self.actor_id = actor_id
        self.operation_id = uuid4()
        self.entries: list[AuditLogEntry] = []
        self._durable = 0

    def record(
        self,
        step: str,
        payload: dict[str, Any] | None = None,
        *,
        previous_state: str | None = None,
        new_state: str | None = None,
        reason: str | None = None,
    ) -> AuditLogEntry:
        """Append a step."""
        entry = AuditLogEntry(
            operation_id=self.operation_id,
            operation=self.operation,
            sequence=len(self.entries) + 1,
            step=step,
            timestamp=utcnow(),
            actor_id=self.actor_id,
            previous_state=previous_state,
            new_state=new_state,
            reason=reason,
            payload=to_jsonable(payload or {}),
        )
        self.entries.append(entry)
        self.session.add(self._to_row(entry))
        logger.info(
            "audit %s[%s] step=%d %s period=%s",
            self.operation,
            self.operation_id,
            entry.sequence,
            step,
            self.period_id,
        )
        return entry

    def error(self, step: str, exc: BaseException, **payload: Any) -> AuditLogEntry:
        """Append an error step carrying the exception message."""
        return self.record(
            "error",
            {"failed_step": step, "error": str(exc), "error_type": type(exc).__name__, **payload},
        )

    async def commit(self) -> None:
        """Commit the session; everything recorded so far becomes durable."""
        await self.session.commit()
        self._durable = len(self.entries)

    def pending_steps(self) -> list[str]:
        """Steps recorded since the last commit."""
        return [entry.step for entry in self.entries[self._durable:]]

    def restore(self) -> None:
        """Re-add entries lost to a rollback."""
        for entry in self.entries[self._durable:]:
            self.session.add(self._to_row(entry))

    def as_list(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries]

    def _to_row(self, entry: AuditLogEntry) -> AuditEvent:
        return AuditEvent(
            company_id=self.company_id,
            period_id=self.period_id,
            operation_id=entry.operation_id,
            operation=entry.operation,
            sequence=entry.sequence,
            step=entry.step,
            actor_id=entry.actor_id,
            previous_state=entry.previous_state,
            new_state=entry.new_state,
            reason=entry.reason,
            payload_json=entry.payload,
            created_at=entry.timestamp,
        )


async def list_for_period(session: AsyncSession, period_id: UUID) -> list[AuditEvent]:
    """Audit entries for a period, oldest first."""
    result = await session.execute(
        select(AuditEvent)
        .where(AuditEvent.period_id == period_id)
        .order_by(AuditEvent.created_at, AuditEvent.sequence)
    )
    return list(result.scalars().all())
