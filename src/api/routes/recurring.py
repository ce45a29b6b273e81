"""
Recurring ride endpoints
========================

POST  /api/v1/recurring-rides                   -- create a series (expands eagerly)
GET   /api/v1/recurring-rides/{series_id}       -- series detail
GET   /api/v1/recurring-rides/{series_id}/rides -- generated rides
PATCH /api/v1/recurring-rides/{series_id}/status -- pause / resume / cancel
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_actor, get_recurring_service
from src.api.middleware import limiter
from src.api.schemas import (
    RecurringRideCreateRequest,
    RecurringSeriesCreatedResponse,
    RecurringSeriesResponse,
    RideResponse,
    SeriesStatusRequest,
    SeriesStatusResponse,
)
from src.config import settings
from src.domain.entities import Actor, RecurringTemplate, RiderIdentity
from src.services.recurring import RecurringRideService

router = APIRouter(prefix="/recurring-rides", tags=["recurring"])


@router.post(
    "",
    status_code=201,
    response_model=RecurringSeriesCreatedResponse,
    summary="Create a recurring ride series",
    description=(
        "Generates one pending ride per selected weekday in the date range. "
        "Dates already past or outside service hours are skipped."
    ),
)
@limiter.limit(settings.rate_limit)
async def create_series(
    request: Request,
    body: RecurringRideCreateRequest,
    actor: Actor = Depends(get_actor),
    service: RecurringRideService = Depends(get_recurring_service),
):
    template = RecurringTemplate(
        pickup=body.pickup_location,
        dropoff=body.dropoff_location,
        time_of_day=body.time_of_day,
        weekdays=frozenset(body.days_of_week),
        start_date=body.start_date,
        end_date=body.end_date,
        notes=body.notes,
    )
    rider = RiderIdentity(
        name=body.rider_name,
        email=body.rider_email,
        phone=body.rider_phone,
        user_id=body.rider_id,
    )
    result = await service.create_series(template, rider, actor)
    return RecurringSeriesCreatedResponse(
        series_id=result.series_id,
        created_count=result.created_count,
        skipped_count=result.skipped_count,
        series=RecurringSeriesResponse.model_validate(result.series),
    )


@router.get("/{series_id}", response_model=RecurringSeriesResponse)
async def get_series(
    series_id: int,
    actor: Actor = Depends(get_actor),
    service: RecurringRideService = Depends(get_recurring_service),
):
    return await service.view_series(series_id, actor)


@router.get("/{series_id}/rides", response_model=list[RideResponse])
async def get_series_rides(
    series_id: int,
    actor: Actor = Depends(get_actor),
    service: RecurringRideService = Depends(get_recurring_service),
):
    return await service.list_series_rides(series_id, actor)


@router.patch("/{series_id}/status", response_model=SeriesStatusResponse)
async def set_series_status(
    series_id: int,
    body: SeriesStatusRequest,
    actor: Actor = Depends(get_actor),
    service: RecurringRideService = Depends(get_recurring_service),
):
    result = await service.set_series_status(series_id, body.status, actor)
    return SeriesStatusResponse(
        series=RecurringSeriesResponse.model_validate(result.series),
        cancelled_count=result.cancelled_count,
        created_count=result.created_count,
    )
