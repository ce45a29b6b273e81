"""
Ride endpoints
==============

POST /api/v1/rides                      -- request a ride (pending)
GET  /api/v1/rides?status=              -- dispatch board listing
GET  /api/v1/rides/{ride_id}            -- ride detail
GET  /api/v1/rides/{ride_id}/events     -- audit trail
POST /api/v1/rides/{ride_id}/approve    -- office
POST /api/v1/rides/{ride_id}/deny       -- office
POST /api/v1/rides/{ride_id}/claim      -- driver (self) or office
POST /api/v1/rides/{ride_id}/unassign   -- office
POST /api/v1/rides/{ride_id}/reassign   -- office
POST /api/v1/rides/{ride_id}/on-the-way -- assigned driver or office
POST /api/v1/rides/{ride_id}/arrived    -- assigned driver or office
POST /api/v1/rides/{ride_id}/complete   -- assigned driver or office
POST /api/v1/rides/{ride_id}/no-show    -- assigned driver or office
POST /api/v1/rides/{ride_id}/cancel     -- rider (own) or office

Failures are raised as ``DispatchError`` subclasses and rendered by the
handlers registered in ``src.api.app``.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_actor, get_ride_service
from src.api.middleware import limiter
from src.api.schemas import (
    ClaimRequest,
    ReassignRequest,
    RideCreateRequest,
    RideEventResponse,
    RideResponse,
    VehicleSelection,
)
from src.config import settings
from src.domain.entities import Actor, RiderIdentity
from src.domain.enums import RideStatus, UserRole
from src.services.rides import RideLifecycleService

router = APIRouter(prefix="/rides", tags=["rides"])


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Request a ride",
)
@limiter.limit(settings.rate_limit)
async def request_ride(
    request: Request,
    body: RideCreateRequest,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    rider = RiderIdentity(
        name=body.rider_name,
        email=body.rider_email,
        phone=body.rider_phone,
        user_id=body.rider_id,
    )
    return await service.request_ride(
        body.pickup_location,
        body.dropoff_location,
        body.requested_time,
        rider,
        actor,
        notes=body.notes,
    )


@router.get("", response_model=list[RideResponse], summary="List rides")
@limiter.limit(settings.rate_limit)
async def list_rides(
    request: Request,
    status: Optional[RideStatus] = None,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    # Riders only ever see their own rides
    rider_email = (actor.email or "") if actor.role == UserRole.RIDER else None
    return await service.list_rides(status=status, rider_email=rider_email)


@router.get("/{ride_id}", response_model=RideResponse, summary="Get a ride")
async def get_ride(
    ride_id: int,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return await service.view_ride(ride_id, actor)


@router.get(
    "/{ride_id}/events",
    response_model=list[RideEventResponse],
    summary="Audit trail of a ride",
)
async def get_ride_events(
    ride_id: int,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return await service.list_events(ride_id, actor)


# ── Office decisions ──────────────────────────────────────────────────


@router.post("/{ride_id}/approve", response_model=RideResponse)
async def approve_ride(
    ride_id: int,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return await service.approve_ride(ride_id, actor)


@router.post("/{ride_id}/deny", response_model=RideResponse)
async def deny_ride(
    ride_id: int,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return await service.deny_ride(ride_id, actor)


# ── Assignment ────────────────────────────────────────────────────────


@router.post(
    "/{ride_id}/claim",
    response_model=RideResponse,
    description=(
        "Assigns an approved ride to a clocked-in driver.  Exactly one of "
        "several concurrent claims succeeds; the others get 409 "
        "``already_assigned``."
    ),
)
@limiter.limit(settings.rate_limit)
async def claim_ride(
    request: Request,
    ride_id: int,
    body: Optional[ClaimRequest] = None,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    body = body or ClaimRequest()
    return await service.claim_ride(
        ride_id, actor, driver_id=body.driver_id, vehicle_id=body.vehicle_id
    )


@router.post("/{ride_id}/unassign", response_model=RideResponse)
async def unassign_ride(
    ride_id: int,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return await service.unassign_ride(ride_id, actor)


@router.post("/{ride_id}/reassign", response_model=RideResponse)
async def reassign_ride(
    ride_id: int,
    body: ReassignRequest,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return await service.reassign_ride(ride_id, body.driver_id, actor)


# ── Driver actions ────────────────────────────────────────────────────


@router.post("/{ride_id}/on-the-way", response_model=RideResponse)
async def mark_on_the_way(
    ride_id: int,
    body: Optional[VehicleSelection] = None,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    vehicle_id = body.vehicle_id if body else None
    return await service.mark_on_the_way(ride_id, actor, vehicle_id=vehicle_id)


@router.post("/{ride_id}/arrived", response_model=RideResponse)
async def mark_arrived(
    ride_id: int,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return await service.mark_arrived(ride_id, actor)


@router.post("/{ride_id}/complete", response_model=RideResponse)
async def complete_ride(
    ride_id: int,
    body: Optional[VehicleSelection] = None,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    vehicle_id = body.vehicle_id if body else None
    return await service.complete_ride(ride_id, actor, vehicle_id=vehicle_id)


@router.post("/{ride_id}/no-show", response_model=RideResponse)
async def mark_no_show(
    ride_id: int,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return await service.mark_no_show(ride_id, actor)


@router.post("/{ride_id}/cancel", response_model=RideResponse)
async def cancel_ride(
    ride_id: int,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    return await service.cancel_ride(ride_id, actor)
