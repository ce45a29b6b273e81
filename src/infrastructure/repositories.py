"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Ride state is never written with a plain
read-modify-write: ``RideRepository.compare_and_set`` issues a single
``UPDATE ... WHERE id = :id AND status = :expected`` and reports whether
a row matched, which is what keeps two drivers from claiming the same ride.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    RecurringRideModel,
    RideEventModel,
    RideModel,
    ShiftModel,
    UserModel,
    VehicleModel,
)
from src.domain.enums import (
    TERMINAL_STATUSES,
    RideEventType,
    RideStatus,
    SeriesStatus,
    UserRole,
)

_ANY = object()


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_ride(self, **fields: Any) -> RideModel:
        ride = RideModel(**fields)
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: int) -> Optional[RideModel]:
        """Fresh read: always reloads the row rather than trusting the identity map."""
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id == ride_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_rides(
        self, status: RideStatus | None = None, rider_email: str | None = None
    ) -> list[RideModel]:
        query = select(RideModel).order_by(RideModel.requested_time, RideModel.id)
        if status is not None:
            query = query.where(RideModel.status == status)
        if rider_email is not None:
            query = query.where(RideModel.rider_email == rider_email)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def compare_and_set(
        self,
        ride_id: int,
        expected_status: RideStatus,
        values: dict[str, Any],
        *,
        expected_driver_id: Any = _ANY,
    ) -> bool:
        """Atomically apply *values* iff the row is still in the expected state.

        ``expected_driver_id=None`` additionally requires the ride to be
        unassigned; an integer requires that exact driver.
        """
        stmt = update(RideModel).where(
            RideModel.id == ride_id, RideModel.status == expected_status
        )
        if expected_driver_id is None:
            stmt = stmt.where(RideModel.assigned_driver_id.is_(None))
        elif expected_driver_id is not _ANY:
            stmt = stmt.where(RideModel.assigned_driver_id == expected_driver_id)
        result = await self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_stale_pending(self, created_before: datetime) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(
                RideModel.status == RideStatus.PENDING,
                RideModel.created_at <= created_before,
            )
            .order_by(RideModel.created_at)
        )
        return list(result.scalars().all())

    async def get_future_open_in_series(
        self, series_id: int, after: datetime
    ) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(
                RideModel.recurring_id == series_id,
                RideModel.requested_time > after,
                RideModel.status.not_in(list(TERMINAL_STATUSES)),
            )
            .order_by(RideModel.requested_time)
        )
        return list(result.scalars().all())

    async def get_rides_in_series(self, series_id: int) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.recurring_id == series_id)
            .order_by(RideModel.requested_time)
        )
        return list(result.scalars().all())


class RideEventRepository:
    """Append-only audit log."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        ride_id: int,
        event_type: RideEventType,
        actor_id: int | None,
        at: datetime,
    ) -> RideEventModel:
        event = RideEventModel(
            ride_id=ride_id, event_type=event_type, actor_id=actor_id, created_at=at
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_for_ride(self, ride_id: int) -> list[RideEventModel]:
        result = await self.session.execute(
            select(RideEventModel)
            .where(RideEventModel.ride_id == ride_id)
            .order_by(RideEventModel.id)
        )
        return list(result.scalars().all())


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_driver(self, driver_id: int) -> Optional[UserModel]:
        """Driver-activity lookup: the row carries both existence and ``active``."""
        result = await self.session.execute(
            select(UserModel)
            .where(UserModel.id == driver_id, UserModel.role == UserRole.DRIVER)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_by_role(self, role: UserRole) -> list[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.role == role).order_by(UserModel.name)
        )
        return list(result.scalars().all())

    async def set_active(self, user_id: int, active: bool) -> bool:
        result = await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id, UserModel.role != UserRole.RIDER)
            .values(active=active)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class ShiftRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, shift: ShiftModel) -> ShiftModel:
        self.session.add(shift)
        await self.session.flush()
        return shift

    async def get_by_id(self, shift_id: int) -> Optional[ShiftModel]:
        return await self.session.get(ShiftModel, shift_id)

    async def list_shifts(self, employee_id: Optional[int] = None) -> list[ShiftModel]:
        stmt = select(ShiftModel).order_by(
            ShiftModel.day_of_week, ShiftModel.start_time, ShiftModel.id
        )
        if employee_id is not None:
            stmt = stmt.where(ShiftModel.employee_id == employee_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete(self, shift: ShiftModel) -> None:
        await self.session.delete(shift)
        await self.session.flush()


class VehicleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, vehicle_id: int) -> Optional[VehicleModel]:
        return await self.session.get(VehicleModel, vehicle_id)

    async def list_all(self) -> list[VehicleModel]:
        result = await self.session.execute(
            select(VehicleModel).order_by(VehicleModel.name)
        )
        return list(result.scalars().all())


class RecurringRideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, series: RecurringRideModel) -> RecurringRideModel:
        self.session.add(series)
        await self.session.flush()
        return series

    async def get_by_id(self, series_id: int) -> Optional[RecurringRideModel]:
        result = await self.session.execute(
            select(RecurringRideModel)
            .where(RecurringRideModel.id == series_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def compare_and_set_status(
        self, series_id: int, expected: SeriesStatus, new: SeriesStatus
    ) -> bool:
        result = await self.session.execute(
            update(RecurringRideModel)
            .where(
                RecurringRideModel.id == series_id,
                RecurringRideModel.status == expected,
            )
            .values(status=new)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
