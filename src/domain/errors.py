"""
Dispatch error taxonomy.

Every failure surfaced to a caller of a lifecycle operation is a
``DispatchError`` subclass carrying a stable ``code`` so clients can react
without parsing messages.  The four families map onto HTTP statuses in
``src.api.app``:

* ``ValidationError``      -> 400
* ``AuthorizationFailure`` -> 403
* ``NotFound``             -> 404
* ``PreconditionFailure``  -> 409
"""

from __future__ import annotations


class DispatchError(Exception):
    code = "dispatch_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self)


# ── Validation ────────────────────────────────────────────────────────


class ValidationError(DispatchError):
    """Invalid ride request."""

    code = "validation_error"


class OutsideServiceHours(ValidationError):
    """Requested time outside service hours (8:00-19:00 Mon-Fri)."""

    code = "outside_service_hours"


# ── Preconditions ─────────────────────────────────────────────────────


class PreconditionFailure(DispatchError):
    """Ride state does not permit this action."""

    code = "precondition_failed"


class InvalidState(PreconditionFailure):
    """Ride is not in a state that permits this action."""

    code = "invalid_state"


class NotApproved(PreconditionFailure):
    """Ride is not approved."""

    code = "not_approved"


class AlreadyAssigned(PreconditionFailure):
    """Ride already assigned to a driver."""

    code = "already_assigned"


class DriverNotClockedIn(PreconditionFailure):
    """Driver is not clocked in."""

    code = "driver_not_clocked_in"


class TerminatedRider(PreconditionFailure):
    """SERVICE TERMINATED: rider has reached the consecutive no-show limit."""

    code = "rider_terminated"


class NoVehicleAvailable(PreconditionFailure):
    """An available vehicle must be recorded for this ride."""

    code = "no_vehicle_available"


class NoVehicle(PreconditionFailure):
    """A vehicle must be recorded before completing the ride."""

    code = "no_vehicle"


# ── Authorization ─────────────────────────────────────────────────────


class AuthorizationFailure(DispatchError):
    """Caller is not permitted to perform this action."""

    code = "forbidden"


class NotAssignedDriver(AuthorizationFailure):
    """Only the assigned driver or office may perform this action."""

    code = "not_assigned_driver"


class Forbidden(AuthorizationFailure):
    """Caller is not permitted to perform this action."""

    code = "forbidden"


# ── Lookup ────────────────────────────────────────────────────────────


class NotFound(DispatchError):
    """Resource not found."""

    code = "not_found"
