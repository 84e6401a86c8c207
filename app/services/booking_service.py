"""Behaviour common to rentals and reservations: lookups, validation, listings."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from app.exceptions import (
    CarNotFoundError,
    IllegalTransitionError,
    InvalidDateRangeError,
    InvalidInputError,
    NotFoundError,
    UserNotFoundError,
)
from app.models.store import Store
from app.models.user import UserBase
from app.services.access import ensure_access, ensure_self_or_staff
from app.services.availability import BookingConflicts
from app.services.common import _now, _store, parse_timestamp, user_from_dict


class BookingService:
    """
    Base for the two booking coordinators.
    Subclasses set `kind`, `label`, `statuses`, `transitions` and `not_found`.
    """

    kind: str = ""
    label: str = "booking"
    statuses: set = set()
    transitions: dict = {}
    not_found: type[NotFoundError] = NotFoundError

    def __init__(
            self,
            store: Optional[Store] = None,
            clock: Optional[Callable[[], datetime]] = None,
            conflicts: Optional[BookingConflicts] = None,
    ):
        self.store = store or _store()
        self.clock = clock or _now
        self.conflicts = conflicts or BookingConflicts(self.store)

    # ---------- lookups ----------
    @property
    def id_key(self) -> str:
        return f"{self.kind}_id"

    def _get(self, booking_id) -> dict:
        rec = self.store.get_booking(self.kind, booking_id)
        if rec is None:
            raise self.not_found(f"{self.label.capitalize()} with ID {booking_id} not found")
        return rec

    def _require_car(self, car_id) -> dict:
        car = self.store.get_car(car_id)
        if car is None:
            raise CarNotFoundError(f"Car with ID {car_id} not found")
        return car

    def _require_customer(self, user_id, message: str) -> UserBase:
        user = user_from_dict(self.store.get_user(user_id))
        if user is None:
            raise UserNotFoundError(f"User with ID {user_id} not found")
        if not user.may_book:
            raise InvalidInputError(message)
        return user

    # ---------- validation ----------
    def _validate_window(self, start: datetime, end: datetime, min_duration: Optional[timedelta] = None) -> None:
        if end <= start:
            raise InvalidDateRangeError("End date must be after start date")
        if start < self.clock():
            raise InvalidDateRangeError("Start date cannot be in the past")
        if min_duration is not None and end - start < min_duration:
            raise InvalidDateRangeError(f"{self.label.capitalize()} must be for at least {_human(min_duration)}")

    def _check_transition(self, current: str, new: str) -> None:
        if new not in self.statuses:
            raise InvalidInputError(f"Unknown {self.label} status {new!r}")
        allowed = self.transitions.get(current, set())
        if not allowed:
            raise IllegalTransitionError(f"Cannot change status from {current}")
        if new not in allowed:
            raise IllegalTransitionError(f"Cannot change status from {current} to {new}")

    # ---------- queries ----------
    def find_one(self, booking_id, acting_user: Optional[UserBase] = None) -> dict:
        rec = self._get(booking_id)
        ensure_access(acting_user, rec, f"You can only view your own {self.label}s")
        return dict(rec)

    def find_all(self) -> list[dict]:
        out = [dict(b) for b in self.store.bookings(self.kind)]
        out.sort(key=lambda b: b["start_date"], reverse=True)
        return out

    def find_by_user(self, user_id, acting_user: Optional[UserBase] = None) -> list[dict]:
        ensure_self_or_staff(acting_user, user_id, f"You can only view your own {self.label}s")
        if self.store.get_user(user_id) is None:
            raise UserNotFoundError(f"User with ID {user_id} not found")
        out = [dict(b) for b in self.store.bookings(self.kind, user_id=user_id)]
        out.sort(key=lambda b: b["start_date"], reverse=True)
        return out

    def find_by_car(self, car_id) -> list[dict]:
        self._require_car(car_id)
        out = [dict(b) for b in self.store.bookings(self.kind, car_id=car_id)]
        out.sort(key=lambda b: b["start_date"], reverse=True)
        return out

    def find_by_status(self, status: str) -> list[dict]:
        if status not in self.statuses:
            raise InvalidInputError(f"Unknown {self.label} status {status!r}")
        out = [dict(b) for b in self.store.bookings(self.kind, statuses={status})]
        out.sort(key=lambda b: b["start_date"], reverse=True)
        return out

    def check_availability(self, car_id, start, end) -> dict:
        """Conflict Query as a plain {available, message?} value."""
        start = parse_timestamp(start)
        end = parse_timestamp(end)
        if end <= start:
            raise InvalidDateRangeError("End date must be after start date")
        return self.conflicts.check(car_id, start, end).to_dict()


def _human(delta: timedelta) -> str:
    if delta >= timedelta(days=1) and delta % timedelta(days=1) == timedelta(0):
        n = delta // timedelta(days=1)
        return f"{n} day" if n == 1 else f"{n} days"
    n = delta // timedelta(hours=1)
    return f"{n} hour" if n == 1 else f"{n} hours"
