"""
Concurrency safety tests.

Demonstrates:
1. Concurrent claims on one ride: exactly one driver wins, the rest get
   ``AlreadyAssigned`` and the ride is never double-booked.
2. The conditional update refuses a write based on a stale read.
3. Concurrent no-shows for one rider never lose a strike.
4. Distributed lock prevents simultaneous acquire.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.domain.entities import Actor
from src.domain.enums import RideEventType, RideStatus, UserRole
from src.domain.errors import AlreadyAssigned
from src.infrastructure.locks import DistributedLock
from src.infrastructure.models import UserModel
from src.infrastructure.repositories import RideRepository
from src.infrastructure.strikes import RiderStrikeTracker
from src.services.rides import RideLifecycleService
from tests.conftest import DRIVER_A_ID, DRIVER_B_ID, OFFICE, approved_ride


async def _claim(session_factory, notifier, clock, ride_id: int, driver_id: int):
    async with session_factory() as session:
        service = RideLifecycleService(session, notifier, clock)
        return await service.claim_ride(
            ride_id, Actor(role=UserRole.DRIVER, user_id=driver_id)
        )


class TestConcurrentClaims:
    @pytest.mark.asyncio
    async def test_exactly_one_claim_wins(self, service, db_session, session_factory, notifier, clock):
        extra = [
            UserModel(name=f"Driver {n}", email=f"driver{n}@campus.edu", role=UserRole.DRIVER, active=True)
            for n in range(3)
        ]
        db_session.add_all(extra)
        await db_session.commit()
        driver_ids = [DRIVER_A_ID, DRIVER_B_ID] + [d.id for d in extra]

        ride = await approved_ride(service)

        results = await asyncio.gather(
            *(_claim(session_factory, notifier, clock, ride.id, d) for d in driver_ids),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, BaseException)]
        losers = [r for r in results if isinstance(r, BaseException)]
        assert len(winners) == 1
        assert len(losers) == len(driver_ids) - 1
        assert all(isinstance(e, AlreadyAssigned) for e in losers)

        stored = await service.get_ride(ride.id)
        assert stored.status == RideStatus.SCHEDULED
        assert stored.assigned_driver_id == winners[0].assigned_driver_id

        claims = [
            e for e in await service.list_events(ride.id, OFFICE)
            if e.event_type == RideEventType.CLAIMED
        ]
        assert len(claims) == 1

    @pytest.mark.asyncio
    async def test_stale_read_cannot_overwrite(self, service, db_session):
        ride = await approved_ride(service)
        repo = RideRepository(db_session)

        first = await repo.compare_and_set(
            ride.id,
            RideStatus.APPROVED,
            {"status": RideStatus.SCHEDULED, "assigned_driver_id": DRIVER_A_ID},
            expected_driver_id=None,
        )
        second = await repo.compare_and_set(
            ride.id,
            RideStatus.APPROVED,
            {"status": RideStatus.SCHEDULED, "assigned_driver_id": DRIVER_B_ID},
            expected_driver_id=None,
        )
        await db_session.commit()

        assert first is True
        assert second is False
        assert (await repo.get_by_id(ride.id)).assigned_driver_id == DRIVER_A_ID

    @pytest.mark.asyncio
    async def test_concurrent_strikes_are_not_lost(self, session_factory):
        async def bump():
            async with session_factory() as session:
                count = await RiderStrikeTracker(session).increment("casey@campus.edu")
                await session.commit()
                return count

        counts = await asyncio.gather(*(bump() for _ in range(4)))

        assert sorted(counts) == [1, 2, 3, 4]
        async with session_factory() as session:
            assert await RiderStrikeTracker(session).get("casey@campus.edu") == 4


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "stale_ride_monitor", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_called_once_with(
            "lock:stale_ride_monitor", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "stale_ride_monitor", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_checks_ownership(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "stale_ride_monitor", ttl_seconds=10)
        await lock.acquire()
        assert await lock.release() is True

        args = mock_redis.eval.call_args.args
        assert args[1:] == (1, "lock:stale_ride_monitor", lock.token)

    @pytest.mark.asyncio
    async def test_release_after_expiry_reports_false(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=0)

        lock = DistributedLock(mock_redis, "stale_ride_monitor", ttl_seconds=10)
        await lock.acquire()
        assert await lock.release() is False
        assert lock.held is False

    @pytest.mark.asyncio
    async def test_context_manager_releases_when_won(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        async with DistributedLock(mock_redis, "stale_ride_monitor") as won:
            assert won is True
        mock_redis.eval.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_context_manager_skips_release_when_lost(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        async with DistributedLock(mock_redis, "stale_ride_monitor") as won:
            assert won is False
        mock_redis.eval.assert_not_called()
