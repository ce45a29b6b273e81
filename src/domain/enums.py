"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    SCHEDULED = "scheduled"
    DRIVER_ON_THE_WAY = "driver_on_the_way"
    DRIVER_ARRIVED = "driver_arrived"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"


# Statuses in which a driver owns the ride
ASSIGNED_STATUSES: frozenset[RideStatus] = frozenset(
    {
        RideStatus.SCHEDULED,
        RideStatus.DRIVER_ON_THE_WAY,
        RideStatus.DRIVER_ARRIVED,
    }
)

TERMINAL_STATUSES: frozenset[RideStatus] = frozenset(
    {
        RideStatus.DENIED,
        RideStatus.COMPLETED,
        RideStatus.NO_SHOW,
        RideStatus.CANCELLED,
    }
)


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.PENDING: {
        RideStatus.APPROVED,
        RideStatus.DENIED,
        RideStatus.CANCELLED,
    },
    RideStatus.APPROVED: {RideStatus.SCHEDULED, RideStatus.CANCELLED},
    RideStatus.SCHEDULED: {
        RideStatus.DRIVER_ON_THE_WAY,
        RideStatus.SCHEDULED,  # reassign
        RideStatus.APPROVED,  # unassign
        RideStatus.CANCELLED,
    },
    RideStatus.DRIVER_ON_THE_WAY: {
        RideStatus.DRIVER_ARRIVED,
        RideStatus.SCHEDULED,
        RideStatus.APPROVED,
        RideStatus.CANCELLED,
    },
    RideStatus.DRIVER_ARRIVED: {
        RideStatus.COMPLETED,
        RideStatus.NO_SHOW,
        RideStatus.SCHEDULED,
        RideStatus.APPROVED,
        RideStatus.CANCELLED,
    },
    RideStatus.DENIED: set(),
    RideStatus.COMPLETED: set(),
    RideStatus.NO_SHOW: set(),
    RideStatus.CANCELLED: set(),
}


class RideAction(str, enum.Enum):
    APPROVE = "approve"
    DENY = "deny"
    CLAIM = "claim"
    UNASSIGN = "unassign"
    REASSIGN = "reassign"
    ON_THE_WAY = "on_the_way"
    ARRIVE = "arrive"
    COMPLETE = "complete"
    NO_SHOW = "no_show"
    CANCEL = "cancel"


class RideEventType(str, enum.Enum):
    REQUESTED = "requested"
    APPROVED = "approved"
    DENIED = "denied"
    CLAIMED = "claimed"
    UNASSIGNED = "unassigned"
    REASSIGNED = "reassigned"
    DRIVER_ON_THE_WAY = "driver_on_the_way"
    DRIVER_ARRIVED = "driver_arrived"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"
    CANCELLED_BY_OFFICE = "cancelled_by_office"


# Status a ride is in right after each event was recorded
EVENT_RESULT_STATUS: dict[RideEventType, RideStatus] = {
    RideEventType.REQUESTED: RideStatus.PENDING,
    RideEventType.APPROVED: RideStatus.APPROVED,
    RideEventType.DENIED: RideStatus.DENIED,
    RideEventType.CLAIMED: RideStatus.SCHEDULED,
    RideEventType.UNASSIGNED: RideStatus.APPROVED,
    RideEventType.REASSIGNED: RideStatus.SCHEDULED,
    RideEventType.DRIVER_ON_THE_WAY: RideStatus.DRIVER_ON_THE_WAY,
    RideEventType.DRIVER_ARRIVED: RideStatus.DRIVER_ARRIVED,
    RideEventType.COMPLETED: RideStatus.COMPLETED,
    RideEventType.NO_SHOW: RideStatus.NO_SHOW,
    RideEventType.CANCELLED: RideStatus.CANCELLED,
    RideEventType.CANCELLED_BY_OFFICE: RideStatus.CANCELLED,
}


class UserRole(str, enum.Enum):
    RIDER = "rider"
    DRIVER = "driver"
    OFFICE = "office"


class VehicleStatus(str, enum.Enum):
    AVAILABLE = "available"
    IN_USE = "in_use"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"


class SeriesStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class CancelledBy(str, enum.Enum):
    RIDER = "rider"
    OFFICE = "office"
