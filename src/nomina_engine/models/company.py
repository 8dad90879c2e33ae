"""Company (employer) model."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nomina_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from nomina_engine.models.employee import Employee


class Company(Base, TimestampMixin):
    """Employer running payroll; owns periods and employees."""

    __tablename__ = "company"

    company_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    nit: Mapped[str] = mapped_column(String, nullable=False)
    periodicity: Mapped[str] = mapped_column(String, nullable=False, default="biweekly")
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        UniqueConstraint("nit", name="company_nit_unique"),
        CheckConstraint(
            "periodicity IN ('weekly', 'biweekly', 'monthly')",
            name="company_periodicity_check",
        ),
        CheckConstraint("status IN ('active', 'suspended', 'closed')", name="company_status_check"),
    )

    # Relationships
    employees: Mapped[list[Employee]] = relationship(back_populates="company")
