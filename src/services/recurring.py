"""
Recurring-ride expansion.

A template is expanded eagerly when it is created: every future date in range
whose weekday is selected becomes a pending ride created through
``RideLifecycleService.create_pending_ride``, the same path a one-off request
takes.  Occurrences outside service hours are skipped, not rejected.

Pausing or cancelling a series cancels its generated rides that are still in
the future and not yet terminal; past and finished rides are left alone.  Resuming a paused series books
again every future date that has no live ride.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from src.domain.entities import (
    SERIES_TRANSITIONS,
    Actor,
    RecurringTemplate,
    RiderIdentity,
)
from src.domain.enums import RideStatus, SeriesStatus, UserRole
from src.domain.errors import (
    Forbidden,
    InvalidState,
    NotFound,
    OutsideServiceHours,
)
from src.domain.recurrence import occurrences, validate_template
from src.infrastructure.models import RecurringRideModel
from src.infrastructure.repositories import RecurringRideRepository
from src.services.rides import RideLifecycleService

logger = logging.getLogger(__name__)


@dataclass
class SeriesCreated:
    series: RecurringRideModel
    created_count: int
    skipped_count: int

    @property
    def series_id(self) -> int:
        return self.series.id


@dataclass
class SeriesStatusChanged:
    series: RecurringRideModel
    cancelled_count: int
    created_count: int = 0


class RecurringRideService:
    def __init__(self, lifecycle: RideLifecycleService):
        self.lifecycle = lifecycle
        self.session = lifecycle.session
        self.clock = lifecycle.clock
        self.series = RecurringRideRepository(lifecycle.session)

    # ── Reads ─────────────────────────────────────────────────────────

    async def get_series(self, series_id: int) -> RecurringRideModel:
        series = await self.series.get_by_id(series_id)
        if series is None:
            raise NotFound(f"Recurring series {series_id} not found")
        return series

    async def view_series(self, series_id: int, actor: Actor) -> RecurringRideModel:
        series = await self.get_series(series_id)
        if not self._manages(series, actor):
            raise Forbidden(f"Not allowed to view recurring series {series_id}")
        return series

    async def list_series_rides(self, series_id: int, actor: Actor):
        series = await self.view_series(series_id, actor)
        return await self.lifecycle.rides.get_rides_in_series(series.id)

    # ── Writes ────────────────────────────────────────────────────────

    async def create_series(
        self, template: RecurringTemplate, rider: RiderIdentity, actor: Actor
    ) -> SeriesCreated:
        identity = self.lifecycle.authorize_request(rider, actor).validated()
        validate_template(
            template, self.lifecycle.hours.days, self.lifecycle.config.recurring_max_days
        )

        series = await self.series.create(
            RecurringRideModel(
                rider_id=identity.user_id,
                rider_name=identity.name,
                rider_email=identity.email,
                rider_phone=identity.phone,
                pickup_location=template.pickup.strip(),
                dropoff_location=template.dropoff.strip(),
                time_of_day=template.time_of_day,
                days_of_week=sorted(template.weekdays),
                start_date=template.start_date,
                end_date=template.end_date,
                notes=template.notes,
                status=SeriesStatus.ACTIVE,
            )
        )
        created, skipped = await self._expand(series, template, identity, actor)

        await self.lifecycle.commit()
        logger.info(
            "Recurring series %s for %s: %d rides created, %d skipped",
            series.id,
            identity.email,
            created,
            skipped,
        )
        return SeriesCreated(series=series, created_count=created, skipped_count=skipped)

    async def set_series_status(
        self, series_id: int, status: SeriesStatus, actor: Actor
    ) -> SeriesStatusChanged:
        series = await self.get_series(series_id)
        if not self._manages(series, actor):
            raise Forbidden("Only the rider or office staff may change this series")

        if status == series.status:
            return SeriesStatusChanged(series=series, cancelled_count=0)
        if status not in SERIES_TRANSITIONS[series.status]:
            raise InvalidState(
                f"Cannot change series from {series.status.value} to {status.value}"
            )
        previous = series.status
        if not await self.series.compare_and_set_status(series.id, previous, status):
            raise InvalidState(f"Recurring series {series.id} changed concurrently")

        cancelled = 0
        created = 0
        if status in (SeriesStatus.PAUSED, SeriesStatus.CANCELLED):
            upcoming = await self.lifecycle.rides.get_future_open_in_series(
                series.id, self.clock.now()
            )
            for ride in upcoming:
                await self.lifecycle.cancel_loaded_ride(
                    ride, actor, rider_scope=False, commit=False
                )
                cancelled += 1
        elif previous == SeriesStatus.PAUSED:
            # Resuming books again every future date the pause emptied
            created, _ = await self._expand(
                series, template_of(series), identity_of(series), actor
            )

        await self.lifecycle.commit()
        series = await self.get_series(series.id)
        logger.info(
            "Recurring series %s set to %s; %d upcoming rides cancelled, %d created",
            series.id,
            status.value,
            cancelled,
            created,
        )
        return SeriesStatusChanged(
            series=series, cancelled_count=cancelled, created_count=created
        )

    # ── Internals ─────────────────────────────────────────────────────

    def _manages(self, series: RecurringRideModel, actor: Actor) -> bool:
        if actor.is_office:
            return True
        return actor.role == UserRole.RIDER and self.lifecycle.owns(
            series.rider_id, series.rider_email, actor
        )

    async def _expand(
        self,
        series: RecurringRideModel,
        template: RecurringTemplate,
        identity: RiderIdentity,
        actor: Actor,
    ) -> tuple[int, int]:
        """Create pending rides for future dates not already booked.

        Returns ``(created, skipped)``; past dates and times outside
        service hours are skipped.
        """
        now = self.clock.now()
        booked = {
            ride.requested_time
            for ride in await self.lifecycle.rides.get_rides_in_series(series.id)
            if ride.status != RideStatus.CANCELLED
        }
        created = 0
        skipped = 0
        for when in occurrences(template):
            if when <= now:
                skipped += 1
                continue
            if when in booked:
                continue
            try:
                await self.lifecycle.create_pending_ride(
                    pickup=template.pickup,
                    dropoff=template.dropoff,
                    requested_time=when,
                    rider=identity,
                    actor=actor,
                    notes=template.notes,
                    recurring_id=series.id,
                )
            except OutsideServiceHours:
                skipped += 1
                continue
            created += 1
        return created, skipped


def template_of(series: RecurringRideModel) -> RecurringTemplate:
    return RecurringTemplate(
        pickup=series.pickup_location,
        dropoff=series.dropoff_location,
        time_of_day=series.time_of_day,
        weekdays=frozenset(series.days_of_week),
        start_date=series.start_date,
        end_date=series.end_date,
        notes=series.notes,
    )


def identity_of(series: RecurringRideModel) -> RiderIdentity:
    return RiderIdentity(
        name=series.rider_name,
        email=series.rider_email,
        phone=series.rider_phone,
        user_id=series.rider_id,
    )
