"""
Conflict Query shared by the rental and reservation services.

Both booking kinds block the same car windows, so the overlap rules live here
once and are injected into both services instead of each service querying
the other's records.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from app.exceptions import CarNotFoundError, CarUnavailableError
from app.models.store import Store
from app.services.common import _store
from app.utils.constants import BookingKind, RentalStatus, ReservationStatus

logger = logging.getLogger(__name__)

BLOCKING_STATUSES = {
    BookingKind.RENTAL: RentalStatus.BLOCKING,
    BookingKind.RESERVATION: ReservationStatus.BLOCKING,
}

MSG_NOT_AVAILABLE = "Car is not available"
MSG_NO_INSURANCE = "Car does not have valid insurance for the requested period"
MSG_RENTED = "Car is already rented during this period"
MSG_RESERVED = "Car is already reserved during this period"


@dataclass(frozen=True)
class Availability:
    available: bool
    message: Optional[str] = None

    def to_dict(self) -> dict:
        out = {"available": self.available}
        if self.message:
            out["message"] = self.message
        return out


class BookingConflicts:
    """Read-side checks deciding whether a car can be booked for a window."""

    def __init__(self, store: Optional[Store] = None):
        self.store = store or _store()

    def find_overlapping(
            self,
            car_id,
            start: datetime,
            end: datetime,
            kinds: Iterable[str] = (BookingKind.RENTAL, BookingKind.RESERVATION),
            exclude: Optional[tuple] = None,
    ) -> list[tuple[str, dict]]:
        """
        Blocking bookings of the given kinds that overlap [start, end].
        `exclude` is a (kind, booking_id) pair skipped by the query, used when
        a booking re-checks its own window.
        """
        hits = []
        for kind in kinds:
            exclude_id = exclude[1] if exclude and exclude[0] == kind else None
            for b in self.store.find_overlapping(
                    kind, car_id, start, end, BLOCKING_STATUSES[kind], exclude_id=exclude_id):
                hits.append((kind, b))
        return hits

    def is_held(self, car_id) -> bool:
        """True while an active rental occupies the car (the derived value of `is_available`)."""
        return bool(self.store.bookings(BookingKind.RENTAL, car_id=car_id, statuses=RentalStatus.BLOCKING))

    def check(self, car_id, start: datetime, end: datetime, exclude: Optional[tuple] = None) -> Availability:
        """
        Decide whether `car_id` is bookable for [start, end].
        Only a missing car raises; every other outcome is an Availability value.
        """
        car = self.store.get_car(car_id)
        if car is None:
            raise CarNotFoundError(f"Car with ID {car_id} not found")

        # Fast path for cars taken out of service. A flag that is down only
        # because an active rental holds the car falls through to the window check.
        if not car.get("is_available", True) and not self.is_held(car_id):
            return Availability(False, MSG_NOT_AVAILABLE)

        insurance = self.store.insurance_for_car(car_id)
        if insurance is None or insurance["expiry_date"] < end:
            return Availability(False, MSG_NO_INSURANCE)

        if self.find_overlapping(car_id, start, end, kinds=(BookingKind.RENTAL,), exclude=exclude):
            return Availability(False, MSG_RENTED)

        if self.find_overlapping(car_id, start, end, kinds=(BookingKind.RESERVATION,), exclude=exclude):
            return Availability(False, MSG_RESERVED)

        return Availability(True)

    def ensure_available(self, car_id, start: datetime, end: datetime,
                         exclude: Optional[tuple] = None, prefix: str = "") -> None:
        """Run `check` and raise CarUnavailableError with its reason on a miss."""
        result = self.check(car_id, start, end, exclude=exclude)
        if not result.available:
            logger.warning("Booking rejected for car %s [%s, %s]: %s",
                           car_id, start.isoformat(), end.isoformat(), result.message)
            raise CarUnavailableError(f"{prefix}{result.message}")
