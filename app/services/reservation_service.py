"""Reservation coordinator: soft holds that block a car window without occupying the car."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from app.exceptions import (
    CarUnavailableError,
    ForbiddenError,
    IllegalTransitionError,
    InvalidDateRangeError,
    ReservationNotFoundError,
)
from app.models.user import UserBase
from app.services.access import ensure_access, ensure_self_or_staff
from app.services.booking_service import BookingService
from app.services.common import parse_timestamp, to_decimal
from app.utils.constants import (
    MIN_RESERVATION_DURATION,
    RESERVATION_TRANSITIONS,
    BookingKind,
    ReservationStatus,
)

logger = logging.getLogger(__name__)


class ReservationService(BookingService):
    """
    Reservations never write the car's `is_available` flag; a pending or
    confirmed reservation blocks overlapping rentals and reservations instead.
    """

    kind = BookingKind.RESERVATION
    label = "reservation"
    statuses = ReservationStatus.ALL
    transitions = RESERVATION_TRANSITIONS
    not_found = ReservationNotFoundError

    # ---------- commands ----------
    def create(self, car_id, user_id, start, end, total_price,
               acting_user: Optional[UserBase] = None) -> dict:
        start = parse_timestamp(start)
        end = parse_timestamp(end)
        total_price = to_decimal(total_price, "total_price")
        self._require_car(car_id)

        with self.store.car_lock(car_id), self.store.transaction():
            self._require_car(car_id)
            self._require_customer(user_id, "Only customers can create reservations")
            ensure_self_or_staff(acting_user, user_id, "You can only create reservations for yourself")
            self._validate_window(start, end, MIN_RESERVATION_DURATION)

            self.conflicts.ensure_available(car_id, start, end)

            now = self.clock()
            rid = self.store.create_booking(self.kind, {
                "car_id": str(car_id),
                "user_id": str(user_id),
                "start_date": start,
                "end_date": end,
                "total_price": total_price,
                "status": ReservationStatus.PENDING,
                "created_at": now,
                "updated_at": now,
            })

        logger.info("Reservation %s created for car %s by user %s", rid, car_id, user_id)
        return dict(self._get(rid))

    def confirm(self, reservation_id) -> dict:
        """pending -> confirmed, after re-validating that the hold is still good."""
        reservation = self._get(reservation_id)
        with self.store.car_lock(reservation["car_id"]), self.store.transaction():
            reservation = self._get(reservation_id)
            if reservation["status"] != ReservationStatus.PENDING:
                raise IllegalTransitionError("Only pending reservations can be confirmed")

            result = self.conflicts.check(
                reservation["car_id"], reservation["start_date"], reservation["end_date"],
                exclude=(self.kind, reservation_id),
            )
            if not result.available:
                raise CarUnavailableError(
                    f"Car is no longer available for the requested period: {result.message}")

            self._set_status(reservation_id, ReservationStatus.CONFIRMED)
        return dict(self._get(reservation_id))

    def cancel(self, reservation_id, acting_user: Optional[UserBase] = None) -> dict:
        reservation = self._get(reservation_id)
        ensure_access(acting_user, reservation, "You can only cancel your own reservations")

        with self.store.car_lock(reservation["car_id"]), self.store.transaction():
            reservation = self._get(reservation_id)
            if reservation["status"] == ReservationStatus.CANCELLED:
                raise IllegalTransitionError("Reservation is already cancelled")
            if reservation["status"] == ReservationStatus.COMPLETED:
                raise IllegalTransitionError("Cannot cancel completed reservation")
            self._set_status(reservation_id, ReservationStatus.CANCELLED)
        return dict(self._get(reservation_id))

    def update_status(self, reservation_id, status: str, acting_user: Optional[UserBase] = None) -> dict:
        reservation = self._get(reservation_id)
        ensure_access(acting_user, reservation, "You can only update your own reservations")
        if status == ReservationStatus.CONFIRMED and reservation["status"] == ReservationStatus.PENDING:
            return self.confirm(reservation_id)

        with self.store.car_lock(reservation["car_id"]), self.store.transaction():
            reservation = self._get(reservation_id)
            self._check_transition(reservation["status"], status)
            self._set_status(reservation_id, status)
        return dict(self._get(reservation_id))

    def _set_status(self, reservation_id, status: str) -> None:
        old = self._get(reservation_id)["status"]
        self.store.update_booking(self.kind, reservation_id, {"status": status, "updated_at": self.clock()})
        logger.info("Reservation %s: %s -> %s", reservation_id, old, status)

    def update(self, reservation_id, changes: dict, acting_user: Optional[UserBase] = None) -> dict:
        """
        Edit car, customer, dates, price and/or status of a reservation.
        Customers may only edit their own pending reservations.
        """
        reservation = self._get(reservation_id)
        if acting_user is not None and not acting_user.is_staff:
            ensure_access(acting_user, reservation, "You can only update your own reservations")
            if reservation["status"] != ReservationStatus.PENDING:
                raise ForbiddenError("You can only update pending reservations")

        old_car = reservation["car_id"]
        new_car = str(changes.get("car_id") or old_car)
        if new_car != old_car:
            self._require_car(new_car)

        with self.store.car_lock(old_car, new_car), self.store.transaction():
            reservation = self._get(reservation_id)
            updates = {}
            now = self.clock()

            if new_car != reservation["car_id"]:
                self._require_car(new_car)
                updates["car_id"] = new_car

            user_id = changes.get("user_id")
            if user_id and str(user_id) != reservation["user_id"]:
                self._require_customer(user_id, "Only customers can be assigned to reservations")
                updates["user_id"] = str(user_id)

            start, end = reservation["start_date"], reservation["end_date"]
            if changes.get("start_date") is not None:
                start = parse_timestamp(changes["start_date"])
                if start < now:
                    raise InvalidDateRangeError("Start date cannot be in the past")
                updates["start_date"] = start
            if changes.get("end_date") is not None:
                end = parse_timestamp(changes["end_date"])
                if end < now:
                    raise InvalidDateRangeError("End date cannot be in the past")
                updates["end_date"] = end
            if end <= start:
                raise InvalidDateRangeError("End date must be after start date")
            if ("start_date" in updates or "end_date" in updates) and end - start < MIN_RESERVATION_DURATION:
                raise InvalidDateRangeError("Reservation must be for at least 1 hour")

            if changes.get("total_price") is not None:
                updates["total_price"] = to_decimal(changes["total_price"], "total_price")

            moved = {"car_id", "start_date", "end_date"} & updates.keys()
            if moved and reservation["status"] in ReservationStatus.BLOCKING:
                self.conflicts.ensure_available(new_car, start, end, exclude=(self.kind, reservation_id))

            if updates:
                updates["updated_at"] = now
                self.store.update_booking(self.kind, reservation_id, updates)

            status = changes.get("status")
            if status is not None and status != reservation["status"]:
                if status == ReservationStatus.CONFIRMED and reservation["status"] == ReservationStatus.PENDING:
                    self.confirm(reservation_id)
                else:
                    self._check_transition(reservation["status"], status)
                    self._set_status(reservation_id, status)

        return dict(self._get(reservation_id))

    def remove(self, reservation_id, acting_user: Optional[UserBase] = None) -> None:
        reservation = self._get(reservation_id)
        if acting_user is not None and not acting_user.is_staff:
            ensure_access(acting_user, reservation, "You can only cancel your own reservations")
            if reservation["status"] != ReservationStatus.PENDING:
                raise ForbiddenError("You can only cancel pending reservations")

        with self.store.car_lock(reservation["car_id"]), self.store.transaction():
            reservation = self._get(reservation_id)
            if reservation["status"] == ReservationStatus.CONFIRMED:
                raise IllegalTransitionError("Cannot delete confirmed reservation. Cancel it first.")
            self.store.delete_booking(self.kind, reservation_id)
        logger.info("Reservation %s deleted", reservation_id)

    # ---------- queries ----------
    def upcoming(self, days: int = 7) -> list[dict]:
        """Pending/confirmed reservations starting within the next `days`."""
        now = self.clock()
        horizon = now + timedelta(days=days)
        out = [
            dict(b) for b in self.store.bookings(self.kind, statuses=ReservationStatus.BLOCKING)
            if now <= b["start_date"] <= horizon
        ]
        out.sort(key=lambda b: b["start_date"])
        return out

    def expiring(self, hours: int = 24) -> list[dict]:
        """Pending reservations whose start falls within the next `hours` and still await confirmation."""
        now = self.clock()
        horizon = now + timedelta(hours=hours)
        out = [
            dict(b) for b in self.store.bookings(self.kind, statuses={ReservationStatus.PENDING})
            if now <= b["start_date"] <= horizon
        ]
        out.sort(key=lambda b: b["start_date"])
        return out
