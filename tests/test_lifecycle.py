"""
Ride lifecycle engine tests.

Run the engine against a real (SQLite) database with a fixed clock and a
recording notifier.
"""

from datetime import datetime, timedelta

import pytest

from src.domain.entities import Actor, RiderIdentity, is_valid_status_path, status_path_from_events
from src.domain.enums import CancelledBy, RideEventType, RideStatus, UserRole
from src.domain.errors import (
    AlreadyAssigned,
    DriverNotClockedIn,
    Forbidden,
    InvalidState,
    NotApproved,
    NotAssignedDriver,
    NotFound,
    NoVehicleAvailable,
    OutsideServiceHours,
    PreconditionFailure,
    TerminatedRider,
    ValidationError,
)
from src.domain.service_hours import ServiceHours
from src.services.rides import RideLifecycleService
from tests.conftest import (
    CASEY,
    DRIVER_A,
    DRIVER_A_ID,
    DRIVER_B,
    DRIVER_B_ID,
    DRIVER_OFF_DUTY_ID,
    OFFICE,
    RIDER,
    RIDER_EMAIL,
    TUESDAY_10AM,
    VAN_ID,
    VAN_IN_SHOP_ID,
    RecordingNotifier,
    approved_ride,
    arrived_ride,
    request_ride,
)


async def _event_types(service: RideLifecycleService, ride_id: int) -> list[str]:
    return [e.event_type.value for e in await service.list_events(ride_id, OFFICE)]


async def _no_show(service: RideLifecycleService, when: datetime = TUESDAY_10AM):
    ride = await arrived_ride(service, when=when)
    return await service.mark_no_show(ride.id, DRIVER_A)


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_request_to_completion(self, service, notifier, clock):
        ride = await request_ride(service)
        assert ride.status == RideStatus.PENDING
        assert ride.rider_email == RIDER_EMAIL

        ride = await service.approve_ride(ride.id, OFFICE)
        assert ride.status == RideStatus.APPROVED

        ride = await service.claim_ride(ride.id, DRIVER_A)
        assert ride.status == RideStatus.SCHEDULED
        assert ride.assigned_driver_id == DRIVER_A_ID

        ride = await service.mark_on_the_way(ride.id, DRIVER_A, vehicle_id=VAN_ID)
        assert ride.status == RideStatus.DRIVER_ON_THE_WAY
        assert ride.vehicle_id == VAN_ID

        clock.current = TUESDAY_10AM
        ride = await service.mark_arrived(ride.id, DRIVER_A)
        assert ride.status == RideStatus.DRIVER_ARRIVED
        assert ride.grace_start_time == TUESDAY_10AM

        ride = await service.complete_ride(ride.id, DRIVER_A)
        assert ride.status == RideStatus.COMPLETED
        assert ride.assigned_driver_id == DRIVER_A_ID
        assert ride.grace_start_time is None

        events = await _event_types(service, ride.id)
        assert events == [
            "requested",
            "approved",
            "claimed",
            "driver_on_the_way",
            "driver_arrived",
            "completed",
        ]
        assert is_valid_status_path(status_path_from_events(events))
        assert notifier.types() == events

    @pytest.mark.asyncio
    async def test_event_timestamps_are_monotonic(self, service, clock):
        ride = await request_ride(service)
        clock.current += timedelta(minutes=3)
        await service.approve_ride(ride.id, OFFICE)
        clock.current += timedelta(minutes=3)
        await service.cancel_ride(ride.id, RIDER)

        events = await service.list_events(ride.id, OFFICE)
        stamps = [e.created_at for e in events]
        assert stamps == sorted(stamps)
        assert [e.id for e in events] == sorted(e.id for e in events)

    @pytest.mark.asyncio
    async def test_office_can_book_and_drive_on_behalf(self, service):
        ride = await request_ride(service, actor=OFFICE)
        await service.approve_ride(ride.id, OFFICE)
        ride = await service.claim_ride(ride.id, OFFICE, driver_id=DRIVER_B_ID)
        assert ride.assigned_driver_id == DRIVER_B_ID

        await service.mark_on_the_way(ride.id, OFFICE, vehicle_id=VAN_ID)
        await service.mark_arrived(ride.id, OFFICE)
        ride = await service.complete_ride(ride.id, OFFICE)
        assert ride.status == RideStatus.COMPLETED


class TestRequestValidation:
    @pytest.mark.asyncio
    async def test_saturday_rejected(self, service, notifier):
        with pytest.raises(OutsideServiceHours):
            await request_ride(service, when=datetime(2026, 10, 24, 10, 0))
        assert await service.list_rides() == []
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_closing_minute_inclusive(self, service):
        ride = await request_ride(service, when=datetime(2026, 10, 23, 19, 0))
        assert ride.status == RideStatus.PENDING

    @pytest.mark.asyncio
    async def test_one_minute_after_closing_rejected(self, service):
        with pytest.raises(OutsideServiceHours):
            await request_ride(service, when=datetime(2026, 10, 19, 19, 1))

    @pytest.mark.asyncio
    async def test_invalid_email_rejected(self, service):
        with pytest.raises(ValidationError):
            await request_ride(service, rider=RiderIdentity(name="Casey", email="not-an-email"), actor=OFFICE)

    @pytest.mark.asyncio
    async def test_missing_time_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.request_ride("Main Library", "Health Center", None, CASEY, RIDER)

    @pytest.mark.asyncio
    async def test_drivers_cannot_request(self, service):
        with pytest.raises(Forbidden):
            await request_ride(service, actor=DRIVER_A)

    @pytest.mark.asyncio
    async def test_rider_cannot_book_for_another_email(self, service):
        other = RiderIdentity(name="Sam", email="sam@campus.edu")
        with pytest.raises(Forbidden):
            await request_ride(service, rider=other)
        assert await service.list_rides() == []

    @pytest.mark.asyncio
    async def test_rider_email_match_ignores_case(self, service):
        ride = await request_ride(
            service, rider=RiderIdentity(name="Casey", email="Casey@Campus.edu")
        )
        assert ride.rider_email == RIDER_EMAIL

    @pytest.mark.asyncio
    async def test_email_is_normalised(self, service):
        ride = await request_ride(
            service, rider=RiderIdentity(name="Casey", email="  Casey@Campus.EDU "), actor=OFFICE
        )
        assert ride.rider_email == RIDER_EMAIL

    @pytest.mark.asyncio
    async def test_unknown_ride(self, service):
        with pytest.raises(NotFound):
            await service.get_ride(999)


class TestOfficeDecisions:
    @pytest.mark.asyncio
    async def test_only_office_approves(self, service):
        ride = await request_ride(service)
        with pytest.raises(Forbidden):
            await service.approve_ride(ride.id, DRIVER_A)
        with pytest.raises(Forbidden):
            await service.approve_ride(ride.id, RIDER)

    @pytest.mark.asyncio
    async def test_approve_twice_fails(self, service):
        ride = await approved_ride(service)
        with pytest.raises(InvalidState):
            await service.approve_ride(ride.id, OFFICE)

    @pytest.mark.asyncio
    async def test_denied_ride_is_final(self, service):
        ride = await request_ride(service)
        ride = await service.deny_ride(ride.id, OFFICE)
        assert ride.status == RideStatus.DENIED
        with pytest.raises(InvalidState):
            await service.approve_ride(ride.id, OFFICE)

    @pytest.mark.asyncio
    async def test_approval_rechecks_service_hours(self, service):
        ride = await request_ride(service)
        # Window narrowed after the request was made
        service.hours = ServiceHours([1, 2, 3, 4, 5], "08:00", "09:30")
        with pytest.raises(OutsideServiceHours):
            await service.approve_ride(ride.id, OFFICE)
        assert (await service.get_ride(ride.id)).status == RideStatus.PENDING


class TestReadAccess:
    @pytest.mark.asyncio
    async def test_rider_sees_only_own_rides(self, service):
        ride = await request_ride(service)
        assert (await service.view_ride(ride.id, RIDER)).id == ride.id

        stranger = Actor(role=UserRole.RIDER, email="someone@campus.edu")
        with pytest.raises(Forbidden):
            await service.view_ride(ride.id, stranger)
        with pytest.raises(Forbidden):
            await service.list_events(ride.id, stranger)

    @pytest.mark.asyncio
    async def test_drivers_see_open_and_own_rides(self, service):
        ride = await request_ride(service)
        with pytest.raises(Forbidden):
            await service.view_ride(ride.id, DRIVER_A)

        await service.approve_ride(ride.id, OFFICE)
        assert (await service.view_ride(ride.id, DRIVER_B)).id == ride.id

        await service.claim_ride(ride.id, DRIVER_A)
        assert (await service.view_ride(ride.id, DRIVER_A)).id == ride.id
        with pytest.raises(Forbidden):
            await service.view_ride(ride.id, DRIVER_B)

    @pytest.mark.asyncio
    async def test_office_sees_everything(self, service):
        ride = await request_ride(service)
        await service.deny_ride(ride.id, OFFICE)
        events = await service.list_events(ride.id, OFFICE)
        assert [e.event_type for e in events] == [RideEventType.REQUESTED, RideEventType.DENIED]


class TestAssignment:
    @pytest.mark.asyncio
    async def test_off_duty_driver_cannot_claim(self, service):
        ride = await approved_ride(service)
        off_duty = Actor(role=UserRole.DRIVER, user_id=DRIVER_OFF_DUTY_ID)
        with pytest.raises(DriverNotClockedIn):
            await service.claim_ride(ride.id, off_duty)

    @pytest.mark.asyncio
    async def test_pending_ride_cannot_be_claimed(self, service):
        ride = await request_ride(service)
        with pytest.raises(NotApproved):
            await service.claim_ride(ride.id, DRIVER_A)

    @pytest.mark.asyncio
    async def test_second_claim_rejected(self, service):
        ride = await approved_ride(service)
        await service.claim_ride(ride.id, DRIVER_A)
        with pytest.raises(AlreadyAssigned):
            await service.claim_ride(ride.id, DRIVER_B)
        assert (await service.get_ride(ride.id)).assigned_driver_id == DRIVER_A_ID

    @pytest.mark.asyncio
    async def test_driver_cannot_claim_for_someone_else(self, service):
        ride = await approved_ride(service)
        with pytest.raises(Forbidden):
            await service.claim_ride(ride.id, DRIVER_A, driver_id=DRIVER_B_ID)

    @pytest.mark.asyncio
    async def test_unassign_returns_ride_to_pool(self, service):
        ride = await approved_ride(service)
        await service.claim_ride(ride.id, DRIVER_A)
        await service.mark_on_the_way(ride.id, DRIVER_A, vehicle_id=VAN_ID)

        ride = await service.unassign_ride(ride.id, OFFICE)
        assert ride.status == RideStatus.APPROVED
        assert ride.assigned_driver_id is None
        assert ride.vehicle_id is None

        ride = await service.claim_ride(ride.id, DRIVER_B)
        assert ride.assigned_driver_id == DRIVER_B_ID

    @pytest.mark.asyncio
    async def test_reassign_to_another_driver(self, service):
        ride = await arrived_ride(service)
        ride = await service.reassign_ride(ride.id, DRIVER_B_ID, OFFICE)
        assert ride.status == RideStatus.SCHEDULED
        assert ride.assigned_driver_id == DRIVER_B_ID
        assert ride.grace_start_time is None

        # The previous driver no longer controls the ride
        with pytest.raises(NotAssignedDriver):
            await service.mark_on_the_way(ride.id, DRIVER_A, vehicle_id=VAN_ID)

    @pytest.mark.asyncio
    async def test_reassign_to_same_driver_rejected(self, service):
        ride = await approved_ride(service)
        await service.claim_ride(ride.id, DRIVER_A)
        with pytest.raises(PreconditionFailure):
            await service.reassign_ride(ride.id, DRIVER_A_ID, OFFICE)

    @pytest.mark.asyncio
    async def test_reassign_to_off_duty_driver_rejected(self, service):
        ride = await approved_ride(service)
        await service.claim_ride(ride.id, DRIVER_A)
        with pytest.raises(DriverNotClockedIn):
            await service.reassign_ride(ride.id, DRIVER_OFF_DUTY_ID, OFFICE)


class TestDriverActions:
    @pytest.mark.asyncio
    async def test_other_driver_cannot_progress_ride(self, service):
        ride = await approved_ride(service)
        await service.claim_ride(ride.id, DRIVER_A)
        with pytest.raises(NotAssignedDriver):
            await service.mark_on_the_way(ride.id, DRIVER_B, vehicle_id=VAN_ID)

    @pytest.mark.asyncio
    async def test_on_the_way_needs_a_vehicle(self, service):
        ride = await approved_ride(service)
        await service.claim_ride(ride.id, DRIVER_A)
        with pytest.raises(NoVehicleAvailable):
            await service.mark_on_the_way(ride.id, DRIVER_A)

    @pytest.mark.asyncio
    async def test_on_the_way_rejects_vehicle_in_maintenance(self, service):
        ride = await approved_ride(service)
        await service.claim_ride(ride.id, DRIVER_A)
        with pytest.raises(NoVehicleAvailable):
            await service.mark_on_the_way(ride.id, DRIVER_A, vehicle_id=VAN_IN_SHOP_ID)
        assert (await service.get_ride(ride.id)).status == RideStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_vehicle_chosen_at_claim_is_used(self, service):
        ride = await approved_ride(service)
        await service.claim_ride(ride.id, DRIVER_A, vehicle_id=VAN_ID)
        ride = await service.mark_on_the_way(ride.id, DRIVER_A)
        assert ride.vehicle_id == VAN_ID

    @pytest.mark.asyncio
    async def test_cannot_arrive_before_departing(self, service):
        ride = await approved_ride(service)
        await service.claim_ride(ride.id, DRIVER_A)
        with pytest.raises(InvalidState):
            await service.mark_arrived(ride.id, DRIVER_A)

    @pytest.mark.asyncio
    async def test_cannot_complete_twice(self, service):
        ride = await arrived_ride(service)
        await service.complete_ride(ride.id, DRIVER_A)
        with pytest.raises(InvalidState):
            await service.complete_ride(ride.id, DRIVER_A)


class TestStrikes:
    @pytest.mark.asyncio
    async def test_no_show_increments_counter_and_snapshot(self, service):
        ride = await _no_show(service)
        assert ride.status == RideStatus.NO_SHOW
        assert ride.consecutive_misses == 1
        assert ride.assigned_driver_id == DRIVER_A_ID
        assert await service.strikes.get(RIDER_EMAIL) == 1

        ride = await _no_show(service, when=datetime(2026, 10, 21, 10, 0))
        assert ride.consecutive_misses == 2
        assert await service.strikes.get(RIDER_EMAIL) == 2

    @pytest.mark.asyncio
    async def test_new_requests_carry_snapshot(self, service):
        await _no_show(service)
        ride = await request_ride(service, when=datetime(2026, 10, 22, 10, 0))
        assert ride.consecutive_misses == 1

    @pytest.mark.asyncio
    async def test_completion_resets_counter(self, service):
        await _no_show(service)
        await _no_show(service, when=datetime(2026, 10, 21, 10, 0))

        ride = await arrived_ride(service, when=datetime(2026, 10, 22, 10, 0))
        ride = await service.complete_ride(ride.id, DRIVER_A)
        assert ride.consecutive_misses == 0
        assert await service.strikes.get(RIDER_EMAIL) == 0

    @pytest.mark.asyncio
    async def test_warning_then_termination(self, service, notifier):
        for day in range(19, 24):
            await _no_show(service, when=datetime(2026, 10, day, 10, 0))

        assert await service.strikes.get(RIDER_EMAIL) == 5
        warnings = [p for t, p in notifier.sent if t == "rider_strike_warning"]
        assert [p["consecutive_misses"] for p in warnings] == [3, 4]
        assert [p["misses_remaining"] for p in warnings] == [2, 1]
        terminated = [p for t, p in notifier.sent if t == "rider_terminated"]
        assert len(terminated) == 1
        assert terminated[0]["consecutive_misses"] == 5

    @pytest.mark.asyncio
    async def test_terminated_rider_cannot_be_approved(self, service):
        await service.set_rider_strikes(RIDER_EMAIL, 5, OFFICE)
        ride = await request_ride(service)
        assert ride.consecutive_misses == 5

        with pytest.raises(TerminatedRider, match="SERVICE TERMINATED"):
            await service.approve_ride(ride.id, OFFICE)
        assert (await service.get_ride(ride.id)).status == RideStatus.PENDING

        # Reinstatement
        await service.set_rider_strikes(RIDER_EMAIL, 0, OFFICE)
        ride = await service.approve_ride(ride.id, OFFICE)
        assert ride.status == RideStatus.APPROVED

    @pytest.mark.asyncio
    async def test_counter_is_authoritative_over_snapshot(self, service):
        ride = await request_ride(service)
        assert ride.consecutive_misses == 0
        await service.set_rider_strikes(RIDER_EMAIL, 5, OFFICE)
        with pytest.raises(TerminatedRider):
            await service.approve_ride(ride.id, OFFICE)

    @pytest.mark.asyncio
    async def test_only_office_overrides_strikes(self, service):
        with pytest.raises(Forbidden):
            await service.set_rider_strikes(RIDER_EMAIL, 0, RIDER)

    @pytest.mark.asyncio
    async def test_negative_override_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.set_rider_strikes(RIDER_EMAIL, -1, OFFICE)

    @pytest.mark.asyncio
    async def test_rider_sees_only_own_strikes(self, service):
        assert await service.rider_strikes(RIDER_EMAIL, RIDER) == 0
        with pytest.raises(Forbidden):
            await service.rider_strikes("someone@campus.edu", RIDER)


class TestCancellation:
    @pytest.mark.asyncio
    async def test_rider_cancels_pending(self, service):
        ride = await request_ride(service)
        ride = await service.cancel_ride(ride.id, RIDER)
        assert ride.status == RideStatus.CANCELLED
        assert ride.cancelled_by == CancelledBy.RIDER
        assert (await _event_types(service, ride.id))[-1] == RideEventType.CANCELLED.value

    @pytest.mark.asyncio
    async def test_rider_cancels_unassigned_approved(self, service):
        ride = await approved_ride(service)
        ride = await service.cancel_ride(ride.id, RIDER)
        assert ride.status == RideStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_rider_cannot_cancel_once_scheduled(self, service):
        ride = await approved_ride(service)
        await service.claim_ride(ride.id, DRIVER_A)
        with pytest.raises(InvalidState):
            await service.cancel_ride(ride.id, RIDER)

    @pytest.mark.asyncio
    async def test_office_cancels_assigned_ride(self, service):
        ride = await arrived_ride(service)
        ride = await service.cancel_ride(ride.id, OFFICE)
        assert ride.status == RideStatus.CANCELLED
        assert ride.cancelled_by == CancelledBy.OFFICE
        assert ride.assigned_driver_id is None
        assert ride.vehicle_id is None
        assert (await _event_types(service, ride.id))[-1] == RideEventType.CANCELLED_BY_OFFICE.value

    @pytest.mark.asyncio
    async def test_other_rider_cannot_cancel(self, service):
        ride = await request_ride(service)
        stranger = Actor(role=UserRole.RIDER, email="someone@campus.edu")
        with pytest.raises(Forbidden):
            await service.cancel_ride(ride.id, stranger)

    @pytest.mark.asyncio
    async def test_drivers_cannot_cancel(self, service):
        ride = await approved_ride(service)
        await service.claim_ride(ride.id, DRIVER_A)
        with pytest.raises(Forbidden):
            await service.cancel_ride(ride.id, DRIVER_A)

    @pytest.mark.asyncio
    async def test_finished_ride_cannot_be_cancelled(self, service):
        ride = await arrived_ride(service)
        await service.complete_ride(ride.id, DRIVER_A)
        with pytest.raises(InvalidState):
            await service.cancel_ride(ride.id, OFFICE)


class TestNotifications:
    @pytest.mark.asyncio
    async def test_failing_sink_does_not_undo_transition(self, db_session, clock):
        service = RideLifecycleService(db_session, RecordingNotifier(fail=True), clock)
        ride = await request_ride(service)
        ride = await service.approve_ride(ride.id, OFFICE)
        assert ride.status == RideStatus.APPROVED
        assert await _event_types(service, ride.id) == ["requested", "approved"]

    @pytest.mark.asyncio
    async def test_rejected_operation_sends_nothing(self, service, notifier):
        ride = await request_ride(service)
        notifier.sent.clear()
        with pytest.raises(NotApproved):
            await service.claim_ride(ride.id, DRIVER_A)
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_payload_describes_ride(self, service, notifier):
        ride = await request_ride(service)
        event_type, payload = notifier.sent[-1]
        assert event_type == "requested"
        assert payload["ride_id"] == ride.id
        assert payload["status"] == "pending"
        assert payload["rider_email"] == RIDER_EMAIL
