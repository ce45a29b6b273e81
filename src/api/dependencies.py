"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.clock import Clock, SystemClock
from src.domain.entities import Actor
from src.domain.enums import UserRole
from src.infrastructure.database import async_session_factory
from src.services.notifications import Notifier, build_notifier
from src.services.recurring import RecurringRideService
from src.services.rides import RideLifecycleService

_notifier: Notifier | None = None


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = build_notifier(settings)
    return _notifier


def get_clock() -> Clock:
    return SystemClock(settings.service_timezone)


def get_actor(
    x_user_role: Optional[str] = Header(None),
    x_user_id: Optional[int] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> Actor:
    """Caller identity, already resolved by the auth gateway in front of us."""
    if not x_user_role:
        raise HTTPException(status_code=401, detail="Missing caller identity")
    try:
        role = UserRole(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=401, detail=f"Unknown role {x_user_role!r}"
        ) from None
    return Actor(role=role, user_id=x_user_id, email=x_user_email)


def get_ride_service(
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> RideLifecycleService:
    return RideLifecycleService(db, notifier, clock)


def get_recurring_service(
    lifecycle: RideLifecycleService = Depends(get_ride_service),
) -> RecurringRideService:
    return RecurringRideService(lifecycle)
