"""
Custom exception classes for the car rental backend.

Services raise these at the point of detection; the Flask error handler in
``app.controllers.errors`` turns them into JSON responses with the matching
HTTP status, so controllers never have to catch them.
"""


class AppError(Exception):
    """Base class for every error the booking core reports to its caller."""

    status_code = 500
    category = "error"
    default_message = "Error: request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def __str__(self) -> str:  # pragma: no cover
        return self.message

    def to_dict(self) -> dict:
        return {"error": self.category, "message": self.message}


# ---------- NotFound ----------
class NotFoundError(AppError):
    """Raised when a referenced record does not exist."""

    status_code = 404
    category = "not_found"
    default_message = "Error: record not found"


class CarNotFoundError(NotFoundError):
    """Raised when a car ID cannot be found in the fleet."""

    default_message = "Error: car not found"


class UserNotFoundError(NotFoundError):
    """Raised when a user ID cannot be found in the system."""

    default_message = "Error: user not found"


class RentalNotFoundError(NotFoundError):
    """Raised when a rental record cannot be found in the system."""

    default_message = "Error: rental not found"


class ReservationNotFoundError(NotFoundError):
    default_message = "Error: reservation not found"


class InsuranceNotFoundError(NotFoundError):
    default_message = "Error: insurance not found"


# ---------- InvalidInput ----------
class InvalidInputError(AppError):
    """Raised for malformed or rule-breaking input; retrying the same request will not help."""

    status_code = 400
    category = "invalid_input"
    default_message = "Error: invalid input"


class InvalidDateRangeError(InvalidInputError):
    """Raised when start date is after end date or an invalid date is provided."""

    default_message = "Error: invalid date range"


# ---------- Conflict ----------
class ConflictError(AppError):
    """Raised when a well-formed request collides with the current state; it may succeed later."""

    status_code = 409
    category = "conflict"
    default_message = "Error: conflicting state"


class CarUnavailableError(ConflictError):
    """Raised when a car is not available for the requested window."""

    default_message = "Error: car is not available"


# ---------- Forbidden ----------
class ForbiddenError(AppError):
    """Raised on a role or ownership violation."""

    status_code = 403
    category = "forbidden"
    default_message = "Error: not allowed"


# ---------- IllegalTransition ----------
class IllegalTransitionError(AppError):
    """Raised when a status change is not allowed by the booking state machine."""

    status_code = 422
    category = "illegal_transition"
    default_message = "Error: illegal status transition"
