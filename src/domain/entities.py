"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** via a central rule table: each ``RideAction`` names the
  statuses it may start from and the status it produces.  Every lifecycle
  operation validates through ``resolve_transition`` instead of ad-hoc
  status checks at the call site.
- ``Actor`` and ``RiderIdentity`` are value objects describing *who* is
  acting and *for whom* a ride is booked.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, time
from typing import Iterable, Optional

from .enums import (
    ASSIGNED_STATUSES,
    EVENT_RESULT_STATUS,
    RIDE_TRANSITIONS,
    TERMINAL_STATUSES,
    RideAction,
    RideEventType,
    RideStatus,
    SeriesStatus,
    UserRole,
)
from .errors import InvalidState, ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Actor:
    """The already-authenticated caller of an operation."""

    role: UserRole
    user_id: Optional[int] = None
    email: Optional[str] = None

    @property
    def is_office(self) -> bool:
        return self.role == UserRole.OFFICE


SYSTEM_ACTOR = Actor(role=UserRole.OFFICE)


@dataclass(frozen=True)
class RiderIdentity:
    """Registered rider (``user_id``) or a free-text name/email/phone triple."""

    name: str
    email: str
    phone: Optional[str] = None
    user_id: Optional[int] = None

    def validated(self) -> "RiderIdentity":
        name = (self.name or "").strip()
        email = normalize_email(self.email or "")
        if not name:
            raise ValidationError("Rider name is required")
        if not _EMAIL_RE.match(email):
            raise ValidationError(f"Invalid rider email: {self.email!r}")
        phone = self.phone.strip() if self.phone else None
        return RiderIdentity(name=name, email=email, phone=phone, user_id=self.user_id)


@dataclass(frozen=True)
class RecurringTemplate:
    pickup: str
    dropoff: str
    time_of_day: time
    weekdays: frozenset[int]  # ISO weekdays, 1 = Monday
    start_date: date
    end_date: date
    notes: Optional[str] = None


# ── State machine ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class TransitionRule:
    sources: frozenset[RideStatus]
    target: RideStatus


TRANSITION_RULES: dict[RideAction, TransitionRule] = {
    RideAction.APPROVE: TransitionRule(
        frozenset({RideStatus.PENDING}), RideStatus.APPROVED
    ),
    RideAction.DENY: TransitionRule(
        frozenset({RideStatus.PENDING}), RideStatus.DENIED
    ),
    RideAction.CLAIM: TransitionRule(
        frozenset({RideStatus.APPROVED}), RideStatus.SCHEDULED
    ),
    RideAction.UNASSIGN: TransitionRule(ASSIGNED_STATUSES, RideStatus.APPROVED),
    RideAction.REASSIGN: TransitionRule(ASSIGNED_STATUSES, RideStatus.SCHEDULED),
    RideAction.ON_THE_WAY: TransitionRule(
        frozenset({RideStatus.SCHEDULED}), RideStatus.DRIVER_ON_THE_WAY
    ),
    RideAction.ARRIVE: TransitionRule(
        frozenset({RideStatus.DRIVER_ON_THE_WAY}), RideStatus.DRIVER_ARRIVED
    ),
    RideAction.COMPLETE: TransitionRule(
        frozenset({RideStatus.DRIVER_ARRIVED}), RideStatus.COMPLETED
    ),
    RideAction.NO_SHOW: TransitionRule(
        frozenset({RideStatus.DRIVER_ARRIVED}), RideStatus.NO_SHOW
    ),
    RideAction.CANCEL: TransitionRule(
        frozenset(RideStatus) - TERMINAL_STATUSES, RideStatus.CANCELLED
    ),
}


def resolve_transition(action: RideAction, current: RideStatus) -> RideStatus:
    """Return the status *action* leads to from *current*, else raise."""
    rule = TRANSITION_RULES[action]
    if current not in rule.sources:
        raise InvalidState(
            f"Cannot {action.value.replace('_', ' ')} a ride in status {current.value}"
        )
    return rule.target


def is_valid_status_path(statuses: Iterable[RideStatus]) -> bool:
    """True if consecutive statuses are all edges of the ride graph."""
    path = list(statuses)
    if path and path[0] != RideStatus.PENDING:
        return False
    return all(b in RIDE_TRANSITIONS[a] for a, b in zip(path, path[1:]))


def status_path_from_events(event_types: Iterable[str]) -> list[RideStatus]:
    return [EVENT_RESULT_STATUS[RideEventType(e)] for e in event_types]


SERIES_TRANSITIONS: dict[SeriesStatus, set[SeriesStatus]] = {
    SeriesStatus.ACTIVE: {SeriesStatus.PAUSED, SeriesStatus.CANCELLED},
    SeriesStatus.PAUSED: {SeriesStatus.ACTIVE, SeriesStatus.CANCELLED},
    SeriesStatus.CANCELLED: set(),
}
