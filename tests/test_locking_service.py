"""Tests for per-period locks."""

import asyncio
from uuid import uuid4

import pytest

from nomina_engine.errors import PeriodLockedError
from nomina_engine.services.locking_service import PeriodLockManager


@pytest.fixture
def manager() -> PeriodLockManager:
    return PeriodLockManager()


class TestTryHold:
    async def test_rejects_second_holder(self, manager):
        key = uuid4()

        async with manager.try_hold(key):
            assert manager.is_locked(key)
            with pytest.raises(PeriodLockedError):
                async with manager.try_hold(key):
                    pass

        assert not manager.is_locked(key)

    async def test_other_keys_are_independent(self, manager):
        async with manager.try_hold("a"):
            async with manager.try_hold("b"):
                assert sorted(manager.busy_keys()) == ["a", "b"]


class TestHold:
    async def test_waiters_run_in_turn(self, manager):
        order = []

        async def save(name: str):
            async with manager.hold("period"):
                order.append(f"{name}:start")
                await asyncio.sleep(0)
                order.append(f"{name}:end")

        await asyncio.gather(save("first"), save("second"))

        assert order == ["first:start", "first:end", "second:start", "second:end"]


class TestEviction:
    async def test_released_keys_are_dropped(self, manager):
        for _ in range(5):
            async with manager.try_hold(uuid4()):
                pass
        async with manager.hold("slot:2025:1"):
            pass

        assert manager.tracked_keys() == []

    async def test_lock_kept_while_someone_waits(self, manager):
        first_in = asyncio.Event()
        second_in = asyncio.Event()
        release_first = asyncio.Event()
        release_second = asyncio.Event()

        async def holder(entered: asyncio.Event, release: asyncio.Event):
            async with manager.hold("period"):
                entered.set()
                await release.wait()

        first = asyncio.create_task(holder(first_in, release_first))
        await first_in.wait()
        second = asyncio.create_task(holder(second_in, release_second))
        await asyncio.sleep(0)
        assert manager.tracked_keys() == ["period"]

        release_first.set()
        await first
        await second_in.wait()
        # The second holder got the same lock, so the key is still exclusive
        assert manager.is_locked("period")
        with pytest.raises(PeriodLockedError):
            async with manager.try_hold("period"):
                pass

        release_second.set()
        await second
        assert manager.tracked_keys() == []

    async def test_failed_try_hold_leaves_nothing_behind(self, manager):
        async with manager.try_hold("period"):
            with pytest.raises(PeriodLockedError):
                async with manager.try_hold("period"):
                    pass
            assert manager.tracked_keys() == ["period"]

        assert manager.tracked_keys() == []
