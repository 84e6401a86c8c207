"""Rental coordinator: create, extend, update, status transitions and removal."""

from __future__ import annotations

import logging
from typing import Optional

from app.exceptions import (
    CarUnavailableError,
    ForbiddenError,
    IllegalTransitionError,
    InvalidDateRangeError,
    RentalNotFoundError,
)
from app.models.user import UserBase
from app.services.access import ensure_access, ensure_self_or_staff
from app.services.booking_service import BookingService
from app.services.common import parse_timestamp, to_decimal
from app.utils.constants import (
    MIN_RENTAL_DURATION,
    RENTAL_TRANSITIONS,
    BookingKind,
    RentalStatus,
)

logger = logging.getLogger(__name__)


class RentalService(BookingService):
    """
    Rentals occupy a car: creating one lowers the car's `is_available` flag,
    and every transition into/out of `active` keeps that flag in step.
    All check-then-write paths run under the car's booking lock inside one
    store transaction, so two requests for the same car cannot both pass
    the Conflict Query.
    """

    kind = BookingKind.RENTAL
    label = "rental"
    statuses = RentalStatus.ALL
    transitions = RENTAL_TRANSITIONS
    not_found = RentalNotFoundError

    # ---------- commands ----------
    def create(self, car_id, user_id, start, end, total_cost,
               acting_user: Optional[UserBase] = None) -> dict:
        """
        Create an active rental if the car is free, insured through `end`
        and the window passes the date rules (future start, at least 1 day).
        """
        start = parse_timestamp(start)
        end = parse_timestamp(end)
        total_cost = to_decimal(total_cost, "total_cost")
        self._require_car(car_id)

        with self.store.car_lock(car_id), self.store.transaction():
            self._require_car(car_id)
            self._require_customer(user_id, "Only customers can create rentals")
            ensure_self_or_staff(acting_user, user_id, "You can only create rentals for yourself")
            self._validate_window(start, end, MIN_RENTAL_DURATION)

            self.conflicts.ensure_available(car_id, start, end)

            now = self.clock()
            rid = self.store.create_booking(self.kind, {
                "car_id": str(car_id),
                "user_id": str(user_id),
                "start_date": start,
                "end_date": end,
                "total_cost": total_cost,
                "status": RentalStatus.ACTIVE,
                "created_at": now,
                "updated_at": now,
            })
            self.store.update_car(car_id, is_available=False)

        logger.info("Rental %s created for car %s by user %s", rid, car_id, user_id)
        return dict(self._get(rid))

    def update_status(self, rental_id, status: str, acting_user: Optional[UserBase] = None) -> dict:
        rental = self._get(rental_id)
        ensure_access(acting_user, rental, "You can only update your own rentals")
        with self.store.car_lock(rental["car_id"]), self.store.transaction():
            self._apply_status(self._get(rental_id), status)
        return dict(self._get(rental_id))

    def _apply_status(self, rental: dict, status: str) -> None:
        """Move `rental` to `status` and keep the car flag in step. Caller holds the car lock."""
        old = rental["status"]
        self._check_transition(old, status)
        rid = rental[self.id_key]
        car_id = rental["car_id"]

        if status == RentalStatus.ACTIVE:
            self.conflicts.ensure_available(
                car_id, rental["start_date"], rental["end_date"], exclude=(self.kind, rid))

        self.store.update_booking(self.kind, rid, {"status": status, "updated_at": self.clock()})

        if self.store.get_car(car_id) is not None:
            if old == RentalStatus.ACTIVE and status != RentalStatus.ACTIVE:
                self.store.update_car(car_id, is_available=not self.conflicts.is_held(car_id))
            elif status == RentalStatus.ACTIVE:
                self.store.update_car(car_id, is_available=False)
        logger.info("Rental %s: %s -> %s", rid, old, status)

    def extend(self, rental_id, new_end, acting_user: Optional[UserBase] = None) -> dict:
        """Push the end of an active rental out, re-checking only the added window."""
        new_end = parse_timestamp(new_end)
        rental = self._get(rental_id)
        ensure_access(acting_user, rental, "You can only extend your own rentals")

        with self.store.car_lock(rental["car_id"]), self.store.transaction():
            rental = self._get(rental_id)
            if rental["status"] != RentalStatus.ACTIVE:
                raise IllegalTransitionError("Only active rentals can be extended")
            old_end = rental["end_date"]
            if new_end <= old_end:
                raise InvalidDateRangeError("New end date must be after current end date")

            result = self.conflicts.check(rental["car_id"], old_end, new_end, exclude=(self.kind, rental_id))
            if not result.available:
                raise CarUnavailableError(f"Car is not available for the extended period: {result.message}")

            self.store.update_booking(self.kind, rental_id, {"end_date": new_end, "updated_at": self.clock()})

        logger.info("Rental %s extended to %s", rental_id, new_end.isoformat())
        return dict(self._get(rental_id))

    def update(self, rental_id, changes: dict, acting_user: Optional[UserBase] = None) -> dict:
        """
        Edit car, customer, dates, cost and/or status of a rental.
        Customers may only edit their own active rentals.
        """
        rental = self._get(rental_id)
        if acting_user is not None and not acting_user.is_staff:
            ensure_access(acting_user, rental, "You can only update your own rentals")
            if rental["status"] != RentalStatus.ACTIVE:
                raise ForbiddenError("You can only update active rentals")

        old_car = rental["car_id"]
        new_car = str(changes.get("car_id") or old_car)
        if new_car != old_car:
            self._require_car(new_car)

        with self.store.car_lock(old_car, new_car), self.store.transaction():
            rental = self._get(rental_id)
            updates = {}
            now = self.clock()

            if new_car != rental["car_id"]:
                self._require_car(new_car)
                updates["car_id"] = new_car

            user_id = changes.get("user_id")
            if user_id and str(user_id) != rental["user_id"]:
                self._require_customer(user_id, "Only customers can be assigned to rentals")
                updates["user_id"] = str(user_id)

            start, end = rental["start_date"], rental["end_date"]
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
            if ("start_date" in updates or "end_date" in updates) and end - start < MIN_RENTAL_DURATION:
                raise InvalidDateRangeError("Rental must be for at least 1 day")

            if changes.get("total_cost") is not None:
                updates["total_cost"] = to_decimal(changes["total_cost"], "total_cost")

            moved = {"car_id", "start_date", "end_date"} & updates.keys()
            if moved and rental["status"] == RentalStatus.ACTIVE:
                self.conflicts.ensure_available(new_car, start, end, exclude=(self.kind, rental_id))

            if updates:
                updates["updated_at"] = now
                self.store.update_booking(self.kind, rental_id, updates)

            if "car_id" in updates and rental["status"] == RentalStatus.ACTIVE:
                self.store.update_car(new_car, is_available=False)
                if self.store.get_car(old_car) is not None:
                    self.store.update_car(old_car, is_available=not self.conflicts.is_held(old_car))

            status = changes.get("status")
            if status is not None and status != rental["status"]:
                self._apply_status(self._get(rental_id), status)

        return dict(self._get(rental_id))

    def remove(self, rental_id, acting_user: Optional[UserBase] = None) -> None:
        """Delete a finished rental (staff only). The car flag is left as it is."""
        rental = self._get(rental_id)
        if acting_user is not None and not acting_user.is_staff:
            raise ForbiddenError("You cannot delete rentals")

        with self.store.car_lock(rental["car_id"]), self.store.transaction():
            rental = self._get(rental_id)
            if rental["status"] == RentalStatus.ACTIVE:
                raise IllegalTransitionError("Cannot delete active rental. Cancel it first.")
            # the transition out of 'active' already released the car
            self.store.delete_booking(self.kind, rental_id)
        logger.info("Rental %s deleted", rental_id)

    # ---------- queries ----------
    def active(self) -> list[dict]:
        out = [dict(b) for b in self.store.bookings(self.kind, statuses={RentalStatus.ACTIVE})]
        out.sort(key=lambda b: b["start_date"])
        return out

    def overdue(self) -> list[dict]:
        """Active rentals whose end date has already passed."""
        now = self.clock()
        out = [b for b in self.active() if b["end_date"] < now]
        out.sort(key=lambda b: b["end_date"])
        return out

    def mark_overdue(self) -> int:
        """
        If a rental end_date < now and status is still 'active' -> mark it 'overdue'.
        Returns the number of rentals flipped.
        """
        count = 0
        for rental in self.overdue():
            rid = rental[self.id_key]
            with self.store.car_lock(rental["car_id"]), self.store.transaction():
                current = self._get(rid)
                if current["status"] != RentalStatus.ACTIVE:
                    continue
                self._apply_status(current, RentalStatus.OVERDUE)
                count += 1
        return count
