"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from nomina_engine.database import init_db
from nomina_engine.models import Company
from nomina_engine.periods.strategy import PeriodStrategy, get_strategy


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_company_id(
    x_company_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract company ID from header."""
    if not x_company_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Company-ID header is required",
        )
    try:
        return UUID(x_company_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Company-ID format",
        )


async def get_actor_id(x_actor_id: Annotated[str | None, Header()] = None) -> str | None:
    """Optional acting user, recorded on audit entries."""
    return x_actor_id or None


async def get_company_strategy(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    company_id: Annotated[UUID, Depends(get_company_id)],
) -> PeriodStrategy:
    """Period strategy matching the company's configured periodicity."""
    company = await db.get(Company, company_id)
    if company is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Company not found",
        )
    return get_strategy(company.periodicity)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CompanyId = Annotated[UUID, Depends(get_company_id)]
ActorId = Annotated[str | None, Depends(get_actor_id)]
CompanyStrategy = Annotated[PeriodStrategy, Depends(get_company_strategy)]
