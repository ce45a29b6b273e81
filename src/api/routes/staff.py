"""
Staff & fleet endpoints
=======================

GET    /api/v1/staff/drivers             -- drivers with their clock-in state
POST   /api/v1/staff/{user_id}/clock-in  -- self or office
POST   /api/v1/staff/{user_id}/clock-out -- self or office
GET    /api/v1/shifts?employee_id=      -- weekly shift schedule (staff)
POST   /api/v1/shifts                   -- office
DELETE /api/v1/shifts/{shift_id}        -- office
GET    /api/v1/vehicles                 -- fleet with availability status
GET    /api/v1/locations                -- campus location catalog
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_actor, get_db
from src.api.schemas import (
    ShiftCreateRequest,
    ShiftResponse,
    UserResponse,
    VehicleResponse,
)
from src.config import settings
from src.domain.entities import Actor
from src.domain.enums import UserRole
from src.infrastructure.models import ShiftModel
from src.infrastructure.repositories import (
    ShiftRepository,
    UserRepository,
    VehicleRepository,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["staff"])


@router.get("/staff/drivers", response_model=list[UserResponse])
async def list_drivers(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await UserRepository(db).list_by_role(UserRole.DRIVER)


async def _set_clock(user_id: int, active: bool, actor: Actor, db: AsyncSession):
    if not actor.is_office and actor.user_id != user_id:
        raise HTTPException(status_code=403, detail="Cannot change another employee's clock")
    repo = UserRepository(db)
    if not await repo.set_active(user_id, active):
        raise HTTPException(status_code=404, detail="Employee not found")
    await db.commit()
    user = await repo.get_by_id(user_id)
    await db.refresh(user)
    return user


@router.post("/staff/{user_id}/clock-in", response_model=UserResponse)
async def clock_in(
    user_id: int,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await _set_clock(user_id, True, actor, db)


@router.post("/staff/{user_id}/clock-out", response_model=UserResponse)
async def clock_out(
    user_id: int,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await _set_clock(user_id, False, actor, db)


# ── Shifts ────────────────────────────────────────────────────────────


@router.get("/shifts", response_model=list[ShiftResponse])
async def list_shifts(
    employee_id: Optional[int] = None,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    if actor.role == UserRole.RIDER:
        raise HTTPException(status_code=403, detail="Shifts are visible to staff only")
    return await ShiftRepository(db).list_shifts(employee_id)


@router.post("/shifts", status_code=201, response_model=ShiftResponse)
async def create_shift(
    body: ShiftCreateRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    if not actor.is_office:
        raise HTTPException(status_code=403, detail="Only office staff may schedule shifts")
    employee = await UserRepository(db).get_by_id(body.employee_id)
    if employee is None or employee.role == UserRole.RIDER:
        raise HTTPException(status_code=404, detail="Employee not found")
    if body.end_time <= body.start_time:
        raise HTTPException(status_code=400, detail="Shift must end after it starts")

    shift = await ShiftRepository(db).create(
        ShiftModel(
            employee_id=employee.id,
            day_of_week=body.day_of_week,
            start_time=body.start_time,
            end_time=body.end_time,
        )
    )
    await db.commit()
    logger.info(
        "Shift %s scheduled for employee %s on day %d",
        shift.id,
        employee.id,
        shift.day_of_week,
    )
    return shift


@router.delete("/shifts/{shift_id}", response_model=ShiftResponse)
async def delete_shift(
    shift_id: int,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    if not actor.is_office:
        raise HTTPException(status_code=403, detail="Only office staff may remove shifts")
    repo = ShiftRepository(db)
    shift = await repo.get_by_id(shift_id)
    if shift is None:
        raise HTTPException(status_code=404, detail="Shift not found")
    removed = ShiftResponse.model_validate(shift)
    await repo.delete(shift)
    await db.commit()
    logger.info("Shift %s removed", shift_id)
    return removed


# ── Fleet ─────────────────────────────────────────────────────────────


@router.get("/vehicles", response_model=list[VehicleResponse])
async def list_vehicles(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await VehicleRepository(db).list_all()


@router.get("/locations", response_model=list[str])
async def list_locations():
    return settings.campus_locations
