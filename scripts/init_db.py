"""Create the database schema and optionally seed a demo company.

Usage:
    python scripts/init_db.py [--database-url URL] [--seed]

Creates every table declared in nomina_engine.models. With --seed, adds a
biweekly demo company with three employees so the API can be exercised
right away.
"""

from __future__ import annotations

import argparse
import asyncio
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from nomina_engine.config import get_settings
from nomina_engine.models import Base, Company, Employee

DEMO_NIT = "900000001-1"

DEMO_EMPLOYEES = [
    ("10000001", "Ana", "Gómez", Decimal("1423500")),
    ("10000002", "Carlos", "Pérez", Decimal("3000000")),
    ("10000003", "Diana", "Rojas", Decimal("40000000")),
]


async def seed_demo_company(session: AsyncSession) -> Company:
    """Insert the demo company unless it already exists."""
    existing = await session.scalar(select(Company).where(Company.nit == DEMO_NIT))
    if existing is not None:
        print(f"Demo company already present: {existing.company_id}")
        return existing

    company = Company(name="Empresa Demo SAS", nit=DEMO_NIT, periodicity="biweekly")
    session.add(company)
    await session.flush()

    for document, first_name, last_name, salary in DEMO_EMPLOYEES:
        session.add(Employee(
            company_id=company.company_id,
            document_number=document,
            first_name=first_name,
            last_name=last_name,
            base_salary=salary,
            hire_date=date(2024, 1, 1),
        ))

    await session.commit()
    print(f"Seeded demo company {company.company_id} with {len(DEMO_EMPLOYEES)} employees")
    return company


async def init_db(database_url: str, seed: bool) -> None:
    """Create tables, then seed when asked."""
    print(f"Target database: {database_url.split('@')[1] if '@' in database_url else database_url}")

    engine = create_async_engine(database_url, echo=False)

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        print(f"Schema ready ({len(Base.metadata.tables)} tables)")

        if seed:
            async with AsyncSession(engine, expire_on_commit=False) as session:
                await seed_demo_company(session)
    finally:
        await engine.dispose()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Create the nomina-engine schema")
    parser.add_argument(
        "--database-url",
        type=str,
        default=get_settings().database_url,
        help="Database URL (default: from settings)",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Insert a demo company with three employees",
    )

    args = parser.parse_args()

    asyncio.run(init_db(args.database_url, args.seed))


if __name__ == "__main__":
    main()
