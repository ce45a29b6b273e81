"""
SQLAlchemy ORM models.

Tables
------
* ``users``              -- riders, drivers and office staff (``active`` = clocked in)
* ``vehicles``           -- fleet vehicles with an availability status
* ``rides``              -- individual ride requests and their lifecycle state
* ``ride_events``        -- append-only audit log, one row per transition
* ``rider_miss_counts``  -- authoritative consecutive no-show counter per email
* ``recurring_rides``    -- weekly templates that generate pending rides
* ``shifts``             -- weekly scheduled working hours per employee

Indexes
-------
* **B-Tree** on ``status``, ``rider_email``, ``assigned_driver_id``,
  ``recurring_id`` and ``requested_time`` for the dispatch board, the
  staleness monitor and series cancellation.
* ``ride_events.ride_id`` for the per-ride audit trail.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    func,
)

from .database import Base
from src.domain.enums import (
    CancelledBy,
    RideEventType,
    RideStatus,
    SeriesStatus,
    UserRole,
    VehicleStatus,
)


def _enum(cls):
    """Persist enum *values* (``"pending"``), not member names."""
    return Enum(
        cls,
        name=cls.__name__.lower(),
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(40), nullable=True)
    role = Column(_enum(UserRole), default=UserRole.RIDER, nullable=False)
    active = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_users_role", "role"),)


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(80), nullable=False)
    capacity = Column(Integer, default=4, nullable=False)
    wheelchair_accessible = Column(Boolean, default=False, nullable=False)
    status = Column(
        _enum(VehicleStatus), default=VehicleStatus.AVAILABLE, nullable=False
    )
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_vehicles_status", "status"),)


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Rider: registered user or free-text identity; email is the durable key
    rider_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    rider_name = Column(String(120), nullable=False)
    rider_email = Column(String(255), nullable=False)
    rider_phone = Column(String(40), nullable=True)

    pickup_location = Column(String(120), nullable=False)
    dropoff_location = Column(String(120), nullable=False)
    requested_time = Column(DateTime, nullable=False)  # naive campus-local
    notes = Column(Text, nullable=True)

    status = Column(_enum(RideStatus), default=RideStatus.PENDING, nullable=False)
    assigned_driver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True)
    grace_start_time = Column(DateTime, nullable=True)
    consecutive_misses = Column(Integer, default=0, nullable=False)  # snapshot
    cancelled_by = Column(_enum(CancelledBy), nullable=True)
    recurring_id = Column(Integer, ForeignKey("recurring_rides.id"), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_rider_email", "rider_email"),
        Index("idx_rides_driver", "assigned_driver_id"),
        Index("idx_rides_recurring", "recurring_id"),
        Index("idx_rides_requested_time", "requested_time"),
    )


class RideEventModel(Base):
    __tablename__ = "ride_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(
        Integer, ForeignKey("rides.id", ondelete="CASCADE"), nullable=False
    )
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    event_type = Column(_enum(RideEventType), nullable=False)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (Index("idx_ride_events_ride", "ride_id"),)


class RiderMissCountModel(Base):
    __tablename__ = "rider_miss_counts"

    email = Column(String(255), primary_key=True)
    consecutive_misses = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class RecurringRideModel(Base):
    __tablename__ = "recurring_rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rider_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    rider_name = Column(String(120), nullable=False)
    rider_email = Column(String(255), nullable=False)
    rider_phone = Column(String(40), nullable=True)
    pickup_location = Column(String(120), nullable=False)
    dropoff_location = Column(String(120), nullable=False)
    time_of_day = Column(Time, nullable=False)
    days_of_week = Column(JSON, nullable=False)  # ISO weekdays
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    status = Column(_enum(SeriesStatus), default=SeriesStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("idx_recurring_rider_email", "rider_email"),)


class ShiftModel(Base):
    __tablename__ = "shifts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week = Column(Integer, nullable=False)  # ISO weekday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_shifts_employee", "employee_id"),)
