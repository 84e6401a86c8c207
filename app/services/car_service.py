from __future__ import annotations

import logging
from typing import Optional

from app.exceptions import CarNotFoundError, ConflictError, InvalidInputError
from app.models.store import Store
from app.services.availability import BookingConflicts
from app.services.common import _lc, _store, to_decimal, to_float_safe
from app.utils.constants import BookingKind, RentalStatus, ReservationStatus

logger = logging.getLogger(__name__)


class CarService:
    """Fleet catalogue: filter, create, delete, and the availability flag outside bookings."""

    def __init__(self, store: Optional[Store] = None):
        self.store = store or _store()
        self.conflicts = BookingConflicts(self.store)

    def filter_cars(self, make=None, model=None, min_rate=None, max_rate=None, available=None):
        """
        Filter cars by make/model (case-insensitive, partial match), daily
        rate range and availability flag. Invalid min/max are ignored.
        """
        res = list(self.store.cars.values())

        if make:
            kw = _lc(make).strip()
            res = [c for c in res if kw in _lc(c.get("make"))]

        if model:
            kw = _lc(model).strip()
            res = [c for c in res if kw in _lc(c.get("model"))]

        min_val = to_float_safe(min_rate)
        max_val = to_float_safe(max_rate)
        if (min_val is not None) and (max_val is not None) and (min_val > max_val):
            min_val, max_val = max_val, min_val

        if (min_val is not None) or (max_val is not None):
            def within(c):
                r = to_float_safe(c.get("rate"))
                if r is None:
                    return False
                if (min_val is not None) and (r < min_val):
                    return False
                if (max_val is not None) and (r > max_val):
                    return False
                return True

            res = [c for c in res if within(c)]

        if available is not None:
            res = [c for c in res if bool(c.get("is_available")) == bool(available)]

        return [dict(c) for c in res]

    def get_car(self, car_id) -> dict:
        """Return a car dict by ID or raise CarNotFoundError."""
        car = self.store.get_car(car_id)
        if car is None:
            raise CarNotFoundError(f"Car with ID {car_id} not found")
        return dict(car)

    def _validated_fields(self, payload: dict, partial: bool = False) -> dict:
        """Normalise make/model/year/color/rate; `partial` skips fields absent from `payload`."""
        out = {}
        for key in ("make", "model"):
            if partial and key not in payload:
                continue
            value = (payload.get(key) or "").strip()
            if not value:
                raise InvalidInputError("Invalid car data: make and model are required")
            out[key] = value

        if "year" in payload or not partial:
            year = payload.get("year")
            if year is not None:
                try:
                    year = int(year)
                except (TypeError, ValueError):
                    raise InvalidInputError("Invalid car data: year must be an integer") from None
            out["year"] = year

        if "color" in payload or not partial:
            out["color"] = (payload.get("color") or "").strip() or None

        if "rate" in payload or not partial:
            out["rate"] = to_decimal(payload.get("rate") or 0, "rate")
        return out

    def _ensure_unique(self, make, model, year, exclude_id=None) -> None:
        for c in self.store.cars.values():
            if c["car_id"] == exclude_id:
                continue
            if _lc(c.get("make")) == _lc(make) and _lc(c.get("model")) == _lc(model) and c.get("year") == year:
                raise ConflictError("A car with the same make, model and year already exists")

    def create_car(self, payload: dict) -> dict:
        fields = self._validated_fields(payload)
        with self.store.transaction():
            self._ensure_unique(fields["make"], fields["model"], fields["year"])
            cid = self.store.create_car({**fields, "is_available": True})
        logger.info("Car %s created: %s %s", cid, fields["make"], fields["model"])
        return self.get_car(cid)

    def update_car(self, car_id, changes: dict) -> dict:
        """
        Edit make, model, year, color and/or rate. The availability flag is
        not writable here; bookings and `set_in_service` own it.
        """
        self.get_car(car_id)
        fields = self._validated_fields(changes, partial=True)
        with self.store.car_lock(car_id), self.store.transaction():
            car = self.get_car(car_id)
            merged = {**car, **fields}
            if {"make", "model", "year"} & fields.keys():
                self._ensure_unique(merged["make"], merged["model"], merged["year"], exclude_id=car["car_id"])
            if fields:
                self.store.update_car(car_id, **fields)
        logger.info("Car %s updated: %s", car_id, ", ".join(sorted(fields)) or "no changes")
        return self.get_car(car_id)

    def delete_car(self, car_id) -> None:
        """
        Delete a car if and only if:
        - the car exists,
        - no active rental holds it,
        - no pending/confirmed reservation still blocks one of its windows.
        Insurance attached to the car is removed with it.
        """
        self.get_car(car_id)
        with self.store.car_lock(car_id), self.store.transaction():
            self.get_car(car_id)
            if self.store.bookings(BookingKind.RENTAL, car_id=car_id, statuses=RentalStatus.BLOCKING):
                raise ConflictError("Cannot delete: active rentals exist")
            if self.store.bookings(BookingKind.RESERVATION, car_id=car_id, statuses=ReservationStatus.BLOCKING):
                raise ConflictError("Cannot delete: open reservations exist")
            ins = self.store.insurance_for_car(car_id)
            if ins is not None:
                self.store.delete_insurance(ins["insurance_id"])
            self.store.delete_car(car_id)
        self.store.drop_car_lock(car_id)
        logger.info("Car %s deleted", car_id)

    def availability_calendar(self, car_id) -> list[tuple]:
        """
        Return a list of (start, end) windows blocked by active rentals and
        pending/confirmed reservations. Used by clients to disable booked ranges.
        """
        self.get_car(car_id)
        ranges = []
        for b in self.store.bookings(BookingKind.RENTAL, car_id=car_id, statuses=RentalStatus.BLOCKING):
            ranges.append((b["start_date"], b["end_date"]))
        for b in self.store.bookings(BookingKind.RESERVATION, car_id=car_id,
                                     statuses=ReservationStatus.BLOCKING):
            ranges.append((b["start_date"], b["end_date"]))
        ranges.sort(key=lambda t: t[0])  # stable for UI
        return ranges

    def set_in_service(self, car_id, in_service: bool) -> dict:
        """
        Staff/maintenance write of the availability flag for reasons other
        than a booking (e.g. the car is in the workshop). Refused either way
        while an active rental holds the car: the rental owns the flag until
        it ends.
        """
        self.get_car(car_id)
        with self.store.car_lock(car_id), self.store.transaction():
            self.get_car(car_id)
            if self.conflicts.is_held(car_id):
                raise ConflictError("Car is held by an active rental")
            self.store.update_car(car_id, is_available=bool(in_service))
        return self.get_car(car_id)

    def reconcile(self, car_id) -> dict:
        """Recompute `is_available` from the bookings: free iff no active rental holds the car."""
        self.get_car(car_id)
        with self.store.car_lock(car_id), self.store.transaction():
            car = self.get_car(car_id)
            derived = not self.conflicts.is_held(car_id)
            if car["is_available"] != derived:
                logger.warning("Car %s availability drifted (flag=%s, derived=%s); repairing",
                               car_id, car["is_available"], derived)
                self.store.update_car(car_id, is_available=derived)
        return self.get_car(car_id)
