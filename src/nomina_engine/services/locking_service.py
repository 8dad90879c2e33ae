"""Per-period mutual exclusion for liquidation, reliquidation and draft saves."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator
from uuid import UUID

from nomina_engine.database import acquire_advisory_lock, release_advisory_lock
from nomina_engine.errors import PeriodLockedError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


class PeriodLockManager:
    """Single-writer locks keyed by period (or any string key).

    Within a process an asyncio.Lock per key serializes writers. When built
    with a PostgreSQL engine, `try_hold` also takes a session-level advisory
    lock on a dedicated connection so that other processes are excluded.
    A key's lock is dropped once nobody holds or waits for it.

    - hold: wait for the key (draft auto-saves queue up behind each other)
    - try_hold: fail fast with PeriodLockedError (liquidation, reliquidation)
    """

    def __init__(self, engine: AsyncEngine | None = None):
        self.engine = engine
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def _claim(self, key: str) -> AsyncIterator[asyncio.Lock]:
        """Lock for `key`, counted as in use until the block exits."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        try:
            yield lock
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_locked(self, key: UUID | str) -> bool:
        lock = self._locks.get(str(key))
        return lock is not None and lock.locked()

    def tracked_keys(self) -> list[str]:
        """Keys with a holder or a waiter."""
        return list(self._locks)

    def busy_keys(self) -> list[str]:
        """Keys currently held in this process."""
        return [key for key, lock in self._locks.items() if lock.locked()]

    @asynccontextmanager
    async def hold(self, key: UUID | str) -> AsyncIterator[None]:
        """Hold the key, waiting for the current holder to finish."""
        async with self._claim(str(key)) as lock:
            async with lock:
                yield

    @asynccontextmanager
    async def try_hold(self, key: UUID | str) -> AsyncIterator[None]:
        """Hold the key or raise PeriodLockedError if someone else has it."""
        if self.is_locked(key):
            logger.info("Lock %s is busy; rejecting concurrent operation", key)
            raise PeriodLockedError(key)  # type: ignore[arg-type]
        async with self._claim(str(key)) as lock:
            async with lock:
                if self.engine is not None and self.engine.dialect.name == "postgresql":
                    async with self._advisory(self.engine, str(key)):
                        yield
                else:
                    yield

    @staticmethod
    @asynccontextmanager
    async def _advisory(engine: AsyncEngine, key: str) -> AsyncIterator[None]:
        async with engine.connect() as conn:
            acquired = await acquire_advisory_lock(conn, key)
            if not acquired:
                raise PeriodLockedError(key)  # type: ignore[arg-type]
            try:
                yield
            finally:
                await release_advisory_lock(conn, key)
                await conn.commit()


_default_manager: PeriodLockManager | None = None


def get_lock_manager() -> PeriodLockManager:
    """Process-wide lock manager shared by request handlers."""
    global _default_manager
    if _default_manager is None:
        _default_manager = PeriodLockManager()
    return _default_manager


def set_lock_manager(manager: PeriodLockManager) -> None:
    """Replace the process-wide manager (e.g. with a PostgreSQL-backed one)."""
    global _default_manager
    _default_manager = manager
