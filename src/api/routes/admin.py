"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health                 -- simple health check
GET /api/v1/admin/riders/{email}/strikes -- consecutive no-show count
PUT /api/v1/admin/riders/{email}/strikes -- manual override (reinstatement)
"""

from fastapi import APIRouter, Depends

from src.api.dependencies import get_actor, get_ride_service
from src.api.schemas import HealthResponse, StrikeResponse, StrikeUpdateRequest
from src.domain.entities import Actor, normalize_email
from src.services.rides import RideLifecycleService

router = APIRouter(prefix="/admin", tags=["admin"])


def _strike_response(email: str, count: int, max_strikes: int) -> StrikeResponse:
    return StrikeResponse(
        email=normalize_email(email),
        consecutive_misses=count,
        max_strikes=max_strikes,
        terminated=count >= max_strikes,
    )


@router.get("/riders/{email}/strikes", response_model=StrikeResponse)
async def get_rider_strikes(
    email: str,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    count = await service.rider_strikes(email, actor)
    return _strike_response(email, count, service.max_strikes)


@router.put("/riders/{email}/strikes", response_model=StrikeResponse)
async def set_rider_strikes(
    email: str,
    body: StrikeUpdateRequest,
    actor: Actor = Depends(get_actor),
    service: RideLifecycleService = Depends(get_ride_service),
):
    count = await service.set_rider_strikes(email, body.consecutive_misses, actor)
    return _strike_response(email, count, service.max_strikes)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
