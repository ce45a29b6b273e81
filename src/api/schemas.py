"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from src.config import settings
from src.domain.enums import (
    CancelledBy,
    RideEventType,
    RideStatus,
    SeriesStatus,
    UserRole,
    VehicleStatus,
)


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    pickup_location: str = Field(..., min_length=1, max_length=120)
    dropoff_location: str = Field(..., min_length=1, max_length=120)
    requested_time: datetime = Field(
        ...,
        description="Naive values are campus-local; aware values are converted.",
    )
    rider_name: str = Field(..., min_length=1, max_length=120)
    rider_email: str = Field(..., max_length=255)
    rider_phone: Optional[str] = Field(None, max_length=40)
    rider_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=1000)


class ClaimRequest(BaseModel):
    driver_id: Optional[int] = Field(
        None, description="Required when office claims on a driver's behalf."
    )
    vehicle_id: Optional[int] = None


class ReassignRequest(BaseModel):
    driver_id: int


class VehicleSelection(BaseModel):
    vehicle_id: Optional[int] = None


class RecurringRideCreateRequest(BaseModel):
    pickup_location: str = Field(..., min_length=1, max_length=120)
    dropoff_location: str = Field(..., min_length=1, max_length=120)
    time_of_day: time
    days_of_week: list[int] = Field(
        ..., min_length=1, description="ISO weekdays, 1 = Monday ... 5 = Friday"
    )
    start_date: date
    end_date: date
    rider_name: str = Field(..., min_length=1, max_length=120)
    rider_email: str = Field(..., max_length=255)
    rider_phone: Optional[str] = Field(None, max_length=40)
    rider_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=1000)


class SeriesStatusRequest(BaseModel):
    status: SeriesStatus


class ShiftCreateRequest(BaseModel):
    employee_id: int
    day_of_week: int = Field(..., ge=1, le=7, description="ISO weekday, 1 = Monday")
    start_time: time
    end_time: time


class StrikeUpdateRequest(BaseModel):
    consecutive_misses: int = Field(..., ge=0)


# ── Responses ─────────────────────────────────────────────────────────


class RideResponse(BaseModel):
    id: int
    rider_id: Optional[int] = None
    rider_name: str
    rider_email: str
    rider_phone: Optional[str] = None
    pickup_location: str
    dropoff_location: str
    requested_time: datetime
    notes: Optional[str] = None
    status: RideStatus
    assigned_driver_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    grace_start_time: Optional[datetime] = None
    consecutive_misses: int = 0
    cancelled_by: Optional[CancelledBy] = None
    recurring_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def grace_period_ends_at(self) -> Optional[datetime]:
        if self.grace_start_time is None:
            return None
        return self.grace_start_time + timedelta(minutes=settings.grace_period_minutes)


class RideEventResponse(BaseModel):
    id: int
    ride_id: int
    actor_id: Optional[int] = None
    event_type: RideEventType
    created_at: datetime

    model_config = {"from_attributes": True}


class RecurringSeriesResponse(BaseModel):
    id: int
    rider_id: Optional[int] = None
    rider_name: str
    rider_email: str
    pickup_location: str
    dropoff_location: str
    time_of_day: time
    days_of_week: list[int]
    start_date: date
    end_date: date
    notes: Optional[str] = None
    status: SeriesStatus

    model_config = {"from_attributes": True}


class RecurringSeriesCreatedResponse(BaseModel):
    series_id: int
    created_count: int
    skipped_count: int
    series: RecurringSeriesResponse


class SeriesStatusResponse(BaseModel):
    series: RecurringSeriesResponse
    cancelled_count: int
    created_count: int = 0


class StrikeResponse(BaseModel):
    email: str
    consecutive_misses: int
    max_strikes: int
    terminated: bool


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    active: bool

    model_config = {"from_attributes": True}


class ShiftResponse(BaseModel):
    id: int
    employee_id: int
    day_of_week: int
    start_time: time
    end_time: time

    model_config = {"from_attributes": True}


class VehicleResponse(BaseModel):
    id: int
    name: str
    capacity: int
    wheelchair_accessible: bool
    status: VehicleStatus

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    code: Optional[str] = None
