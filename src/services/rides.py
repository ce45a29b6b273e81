"""
Ride Lifecycle Engine
=====================

Owns every write to a ride's ``status``, ``assigned_driver_id``,
``vehicle_id`` and ``grace_start_time``.

Each operation follows the same shape:

1. Load the ride fresh and check the caller's role / identity.
2. Resolve the target status through the central rule table
   (``src.domain.entities.resolve_transition``).
3. Check business preconditions (service hours, strikes, driver clock-in,
   vehicle availability).
4. Write with ``RideRepository.compare_and_set`` -- conditional on the status
   (and driver) that was read in step 1.  A miss means another actor got
   there first and is surfaced as a precondition failure.
5. Append exactly one ``ride_events`` row, touch the strike counter where
   the outcome requires it, and commit.
6. Hand notifications to the sink *after* commit; a failing sink is logged
   and never turns a committed transition into an error.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings as default_settings
from src.domain.clock import Clock
from src.domain.entities import (
    Actor,
    RiderIdentity,
    normalize_email,
    resolve_transition,
)
from src.domain.enums import (
    TERMINAL_STATUSES,
    CancelledBy,
    RideAction,
    RideEventType,
    RideStatus,
    UserRole,
    VehicleStatus,
)
from src.domain.errors import (
    AlreadyAssigned,
    DriverNotClockedIn,
    Forbidden,
    InvalidState,
    NoVehicle,
    NoVehicleAvailable,
    NotApproved,
    NotAssignedDriver,
    NotFound,
    OutsideServiceHours,
    PreconditionFailure,
    TerminatedRider,
    ValidationError,
)
from src.domain.service_hours import ServiceHours, to_campus_local
from src.infrastructure.models import RideEventModel, RideModel, UserModel
from src.infrastructure.repositories import (
    RideEventRepository,
    RideRepository,
    UserRepository,
    VehicleRepository,
)
from src.infrastructure.strikes import RiderStrikeTracker
from src.services.notifications import Notifier

logger = logging.getLogger(__name__)


def ride_payload(ride: RideModel) -> dict[str, Any]:
    return {
        "ride_id": ride.id,
        "status": ride.status.value,
        "rider_name": ride.rider_name,
        "rider_email": ride.rider_email,
        "pickup": ride.pickup_location,
        "dropoff": ride.dropoff_location,
        "requested_time": ride.requested_time.isoformat(),
        "driver_id": ride.assigned_driver_id,
        "vehicle_id": ride.vehicle_id,
        "consecutive_misses": ride.consecutive_misses,
    }


def _describe(actor: Actor) -> str:
    return f"{actor.role.value}:{actor.user_id if actor.user_id is not None else '-'}"


class RideLifecycleService:
    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier,
        clock: Clock,
        config=default_settings,
    ):
        self.session = session
        self.notifier = notifier
        self.clock = clock
        self.config = config
        self.hours = ServiceHours.from_settings(config)
        self.max_strikes = config.max_consecutive_no_shows

        self.rides = RideRepository(session)
        self.events = RideEventRepository(session)
        self.users = UserRepository(session)
        self.vehicles = VehicleRepository(session)
        self.strikes = RiderStrikeTracker(session)

        self._outbox: list[tuple[str, dict[str, Any]]] = []

    # ── Reads ─────────────────────────────────────────────────────────

    async def get_ride(self, ride_id: int) -> RideModel:
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFound(f"Ride {ride_id} not found")
        return ride

    async def list_rides(
        self, status: RideStatus | None = None, rider_email: str | None = None
    ) -> list[RideModel]:
        if rider_email is not None:
            rider_email = normalize_email(rider_email)
        return await self.rides.list_rides(status=status, rider_email=rider_email)

    async def view_ride(self, ride_id: int, actor: Actor) -> RideModel:
        ride = await self.get_ride(ride_id)
        if not self.can_view(ride, actor):
            raise Forbidden(f"Not allowed to view ride {ride_id}")
        return ride

    async def list_events(self, ride_id: int, actor: Actor) -> list[RideEventModel]:
        await self.view_ride(ride_id, actor)
        return await self.events.list_for_ride(ride_id)

    def can_view(self, ride: RideModel, actor: Actor) -> bool:
        """Office sees everything; drivers see their own and claimable rides."""
        if actor.is_office:
            return True
        if actor.role == UserRole.DRIVER:
            if ride.assigned_driver_id is not None:
                return ride.assigned_driver_id == actor.user_id
            return ride.status == RideStatus.APPROVED
        if actor.role == UserRole.RIDER:
            return self.owns(ride.rider_id, ride.rider_email, actor)
        return False

    # ── Creation ──────────────────────────────────────────────────────

    def authorize_request(self, rider: RiderIdentity, actor: Actor) -> RiderIdentity:
        """Riders book for themselves; office may book on anyone's behalf."""
        if actor.role == UserRole.OFFICE:
            return rider
        if actor.role != UserRole.RIDER:
            raise Forbidden("Only riders or office staff may request rides")
        if actor.email and normalize_email(rider.email or "") != normalize_email(actor.email):
            raise Forbidden("Riders may only request rides for themselves")
        if actor.user_id is not None:
            if rider.user_id is not None and rider.user_id != actor.user_id:
                raise Forbidden("Riders may only request rides for themselves")
            return RiderIdentity(
                name=rider.name, email=rider.email, phone=rider.phone, user_id=actor.user_id
            )
        return rider

    async def create_pending_ride(
        self,
        *,
        pickup: str,
        dropoff: str,
        requested_time: Optional[datetime],
        rider: RiderIdentity,
        actor: Actor,
        notes: Optional[str] = None,
        recurring_id: Optional[int] = None,
    ) -> RideModel:
        """Validate and insert a pending ride without committing.

        Shared by single requests and recurring expansion so both go
        through the same service-hours and strike-snapshot rules.
        """
        pickup = (pickup or "").strip()
        dropoff = (dropoff or "").strip()
        if not pickup or not dropoff:
            raise ValidationError("Pickup and dropoff locations are required")
        if pickup == dropoff:
            raise ValidationError("Pickup and dropoff must differ")
        if requested_time is None:
            raise ValidationError("Requested time is required")

        local_time = to_campus_local(requested_time, self.config.service_timezone)
        if not self.hours.contains(local_time):
            raise OutsideServiceHours(
                f"Requested time outside service hours ({self.hours.describe()} Mon-Fri)"
            )
        identity = rider.validated()

        now = self.clock.now()
        snapshot = await self.strikes.get(identity.email)
        ride = await self.rides.create_ride(
            rider_id=identity.user_id,
            rider_name=identity.name,
            rider_email=identity.email,
            rider_phone=identity.phone,
            pickup_location=pickup,
            dropoff_location=dropoff,
            requested_time=local_time,
            notes=notes.strip() if notes else None,
            status=RideStatus.PENDING,
            consecutive_misses=snapshot,
            recurring_id=recurring_id,
            created_at=now,
            updated_at=now,
        )
        await self.events.record(ride.id, RideEventType.REQUESTED, actor.user_id, now)
        self._queue(RideEventType.REQUESTED.value, ride_payload(ride))
        return ride

    async def request_ride(
        self,
        pickup: str,
        dropoff: str,
        requested_time: Optional[datetime],
        rider: RiderIdentity,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> RideModel:
        identity = self.authorize_request(rider, actor)
        ride = await self.create_pending_ride(
            pickup=pickup,
            dropoff=dropoff,
            requested_time=requested_time,
            rider=identity,
            actor=actor,
            notes=notes,
        )
        await self.commit()
        logger.info("Ride %s requested by %s for %s", ride.id, _describe(actor), ride.rider_email)
        return ride

    # ── Office decisions ──────────────────────────────────────────────

    async def approve_ride(self, ride_id: int, actor: Actor) -> RideModel:
        self._require_office(actor)
        ride = await self.get_ride(ride_id)
        resolve_transition(RideAction.APPROVE, ride.status)

        strikes = await self.strike_count_for(ride)
        if strikes >= self.max_strikes:
            raise TerminatedRider(
                f"SERVICE TERMINATED: rider has {strikes} consecutive no-shows"
            )
        if not self.hours.contains(ride.requested_time):
            raise OutsideServiceHours(
                f"Requested time outside service hours ({self.hours.describe()} Mon-Fri)"
            )
        return await self._transition(ride, RideAction.APPROVE, RideEventType.APPROVED, actor)

    async def deny_ride(self, ride_id: int, actor: Actor) -> RideModel:
        self._require_office(actor)
        ride = await self.get_ride(ride_id)
        return await self._transition(ride, RideAction.DENY, RideEventType.DENIED, actor)

    async def strike_count_for(self, ride: RideModel) -> int:
        """Authoritative counter, falling back to the ride snapshot if untracked."""
        stored = await self.strikes.lookup(ride.rider_email)
        return stored if stored is not None else ride.consecutive_misses

    async def rider_strikes(self, email: str, actor: Actor) -> int:
        if not actor.is_office and not self.owns(None, normalize_email(email), actor):
            raise Forbidden("Only office staff may view other riders' strikes")
        return await self.strikes.get(email)

    async def set_rider_strikes(self, email: str, count: int, actor: Actor) -> int:
        """Manual override, e.g. reinstating a terminated rider."""
        self._require_office(actor)
        if count < 0:
            raise ValidationError("Strike count cannot be negative")
        await self.strikes.set(email, count)
        await self.commit()
        logger.info(
            "Strikes for %s set to %d by %s", normalize_email(email), count, _describe(actor)
        )
        return count

    # ── Assignment ────────────────────────────────────────────────────

    async def claim_ride(
        self,
        ride_id: int,
        actor: Actor,
        driver_id: Optional[int] = None,
        vehicle_id: Optional[int] = None,
    ) -> RideModel:
        if actor.role == UserRole.DRIVER:
            if driver_id is not None and driver_id != actor.user_id:
                raise Forbidden("Drivers may only claim rides for themselves")
            driver_id = actor.user_id
        elif actor.role != UserRole.OFFICE:
            raise Forbidden("Only drivers or office staff may claim rides")
        if driver_id is None:
            raise ValidationError("A driver is required to claim a ride")

        ride = await self.get_ride(ride_id)
        if ride.assigned_driver_id is not None:
            raise AlreadyAssigned(f"Ride {ride.id} is already assigned")
        if ride.status != RideStatus.APPROVED:
            raise NotApproved(f"Ride {ride.id} is {ride.status.value}, not approved")

        await self._require_clocked_in_driver(driver_id)
        if vehicle_id is not None:
            await self._require_vehicle(vehicle_id)

        return await self._transition(
            ride,
            RideAction.CLAIM,
            RideEventType.CLAIMED,
            actor,
            values={"assigned_driver_id": driver_id, "vehicle_id": vehicle_id},
        )

    async def unassign_ride(self, ride_id: int, actor: Actor) -> RideModel:
        self._require_office(actor)
        ride = await self.get_ride(ride_id)
        return await self._transition(
            ride,
            RideAction.UNASSIGN,
            RideEventType.UNASSIGNED,
            actor,
            values={
                "assigned_driver_id": None,
                "vehicle_id": None,
                "grace_start_time": None,
            },
        )

    async def reassign_ride(
        self, ride_id: int, new_driver_id: int, actor: Actor
    ) -> RideModel:
        self._require_office(actor)
        ride = await self.get_ride(ride_id)
        resolve_transition(RideAction.REASSIGN, ride.status)
        if new_driver_id == ride.assigned_driver_id:
            raise PreconditionFailure(
                f"Ride {ride.id} is already assigned to driver {new_driver_id}"
            )
        await self._require_clocked_in_driver(new_driver_id)
        return await self._transition(
            ride,
            RideAction.REASSIGN,
            RideEventType.REASSIGNED,
            actor,
            values={"assigned_driver_id": new_driver_id, "grace_start_time": None},
        )

    # ── Driver actions ────────────────────────────────────────────────

    async def mark_on_the_way(
        self, ride_id: int, actor: Actor, vehicle_id: Optional[int] = None
    ) -> RideModel:
        ride = await self.get_ride(ride_id)
        self._require_assigned_driver(ride, actor)
        resolve_transition(RideAction.ON_THE_WAY, ride.status)

        resolved = vehicle_id if vehicle_id is not None else ride.vehicle_id
        if resolved is None:
            raise NoVehicleAvailable("A vehicle must be recorded for this ride")
        vehicle = await self.vehicles.get_by_id(resolved)
        if vehicle is None or vehicle.status != VehicleStatus.AVAILABLE:
            raise NoVehicleAvailable(f"Vehicle {resolved} is not available")

        return await self._transition(
            ride,
            RideAction.ON_THE_WAY,
            RideEventType.DRIVER_ON_THE_WAY,
            actor,
            values={"vehicle_id": resolved},
        )

    async def mark_arrived(self, ride_id: int, actor: Actor) -> RideModel:
        ride = await self.get_ride(ride_id)
        self._require_assigned_driver(ride, actor)
        return await self._transition(
            ride,
            RideAction.ARRIVE,
            RideEventType.DRIVER_ARRIVED,
            actor,
            values={"grace_start_time": self.clock.now()},
        )

    async def complete_ride(
        self, ride_id: int, actor: Actor, vehicle_id: Optional[int] = None
    ) -> RideModel:
        ride = await self.get_ride(ride_id)
        self._require_assigned_driver(ride, actor)
        resolve_transition(RideAction.COMPLETE, ride.status)

        resolved = ride.vehicle_id
        if resolved is None and vehicle_id is not None:
            await self._require_vehicle(vehicle_id)
            resolved = vehicle_id
        if resolved is None:
            raise NoVehicle("A vehicle must be recorded before completing the ride")

        ride = await self._transition(
            ride,
            RideAction.COMPLETE,
            RideEventType.COMPLETED,
            actor,
            values={
                "vehicle_id": resolved,
                "grace_start_time": None,
                "consecutive_misses": 0,
            },
            commit=False,
        )
        await self.strikes.reset(ride.rider_email)
        await self.commit()
        return ride

    async def mark_no_show(self, ride_id: int, actor: Actor) -> RideModel:
        # Grace-period expiry is advisory: once arrived, no-show is always allowed
        ride = await self.get_ride(ride_id)
        self._require_assigned_driver(ride, actor)
        ride = await self._transition(
            ride,
            RideAction.NO_SHOW,
            RideEventType.NO_SHOW,
            actor,
            values={"grace_start_time": None},
            commit=False,
            notify=False,
        )

        count = await self.strikes.increment(ride.rider_email)
        await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride.id)
            .values(consecutive_misses=count)
            .execution_options(synchronize_session=False)
        )
        ride = await self.get_ride(ride.id)
        self._queue(RideEventType.NO_SHOW.value, ride_payload(ride))
        self._queue_strike_notifications(ride, count)
        await self.commit()
        return ride

    def _queue_strike_notifications(self, ride: RideModel, count: int) -> None:
        remaining = self.max_strikes - count
        payload = {
            **ride_payload(ride),
            "consecutive_misses": count,
            "max_strikes": self.max_strikes,
            "misses_remaining": max(remaining, 0),
        }
        if remaining <= 0:
            if count == self.max_strikes:
                logger.warning("SERVICE TERMINATED for rider %s", ride.rider_email)
                self._queue("rider_terminated", payload)
        elif remaining <= self.config.strike_warning_remaining:
            self._queue("rider_strike_warning", payload)

    # ── Cancellation ──────────────────────────────────────────────────

    async def cancel_ride(self, ride_id: int, actor: Actor) -> RideModel:
        ride = await self.get_ride(ride_id)
        return await self.cancel_loaded_ride(ride, actor, commit=True)

    async def cancel_loaded_ride(
        self,
        ride: RideModel,
        actor: Actor,
        *,
        rider_scope: bool = True,
        commit: bool = True,
    ) -> RideModel:
        """Cancel *ride*.

        ``rider_scope=False`` lifts the pending/unassigned restriction for a
        rider cancelling their own recurring series; ownership is still
        checked.
        """
        if ride.status in TERMINAL_STATUSES:
            raise InvalidState(f"Ride {ride.id} is already {ride.status.value}")

        if actor.role == UserRole.OFFICE:
            cancelled_by = CancelledBy.OFFICE
            event_type = RideEventType.CANCELLED_BY_OFFICE
        elif actor.role == UserRole.RIDER:
            if not self.owns(ride.rider_id, ride.rider_email, actor):
                raise Forbidden("Riders may only cancel their own rides")
            if rider_scope and not (
                ride.status == RideStatus.PENDING
                or (ride.status == RideStatus.APPROVED and ride.assigned_driver_id is None)
            ):
                raise InvalidState(
                    "Riders can only cancel rides that are pending or not yet assigned"
                )
            cancelled_by = CancelledBy.RIDER
            event_type = RideEventType.CANCELLED
        else:
            raise Forbidden("Drivers cannot cancel rides")

        return await self._transition(
            ride,
            RideAction.CANCEL,
            event_type,
            actor,
            values={
                "assigned_driver_id": None,
                "vehicle_id": None,
                "grace_start_time": None,
                "cancelled_by": cancelled_by,
            },
            commit=commit,
        )

    @staticmethod
    def owns(rider_id: Optional[int], rider_email: str, actor: Actor) -> bool:
        if actor.user_id is not None and rider_id is not None:
            return rider_id == actor.user_id
        return bool(actor.email) and normalize_email(actor.email) == rider_email

    # ── Internals ─────────────────────────────────────────────────────

    async def _transition(
        self,
        ride: RideModel,
        action: RideAction,
        event_type: RideEventType,
        actor: Actor,
        values: Optional[dict[str, Any]] = None,
        commit: bool = True,
        notify: bool = True,
    ) -> RideModel:
        previous = ride.status
        target = resolve_transition(action, previous)
        now = self.clock.now()

        matched = await self.rides.compare_and_set(
            ride.id,
            previous,
            {"status": target, "updated_at": now, **(values or {})},
            expected_driver_id=ride.assigned_driver_id,
        )
        if not matched:
            await self._raise_conflict(ride.id, action)

        await self.events.record(ride.id, event_type, actor.user_id, now)
        updated = await self.get_ride(ride.id)
        if notify:
            self._queue(event_type.value, ride_payload(updated))
        if commit:
            await self.commit()
        logger.info(
            "Ride %s: %s -> %s by %s", ride.id, previous.value, target.value, _describe(actor)
        )
        return updated

    async def _raise_conflict(self, ride_id: int, action: RideAction) -> None:
        current = await self.get_ride(ride_id)
        if action == RideAction.CLAIM and current.assigned_driver_id is not None:
            raise AlreadyAssigned(f"Ride {ride_id} is already assigned")
        raise InvalidState(
            f"Ride {ride_id} changed concurrently (now {current.status.value})"
        )

    def _require_office(self, actor: Actor) -> None:
        if not actor.is_office:
            raise Forbidden("Only office staff may perform this action")

    def _require_assigned_driver(self, ride: RideModel, actor: Actor) -> None:
        if actor.is_office:
            return
        if (
            actor.role != UserRole.DRIVER
            or actor.user_id is None
            or actor.user_id != ride.assigned_driver_id
        ):
            raise NotAssignedDriver("Only the assigned driver or office may update this ride")

    async def _require_clocked_in_driver(self, driver_id: int) -> UserModel:
        driver = await self.users.get_driver(driver_id)
        if driver is None:
            raise NotFound(f"Driver {driver_id} not found")
        if not driver.active:
            raise DriverNotClockedIn(f"Driver {driver.name} is not clocked in")
        return driver

    async def _require_vehicle(self, vehicle_id: int) -> None:
        if await self.vehicles.get_by_id(vehicle_id) is None:
            raise NotFound(f"Vehicle {vehicle_id} not found")

    def _queue(self, event_type: str, payload: dict[str, Any]) -> None:
        self._outbox.append((event_type, payload))

    async def commit(self) -> None:
        """Commit the unit of work, then release queued notifications."""
        await self.session.commit()
        pending, self._outbox = self._outbox, []
        for event_type, payload in pending:
            try:
                self.notifier.notify(event_type, payload)
            except Exception:
                logger.exception("Notification %s failed", event_type)
