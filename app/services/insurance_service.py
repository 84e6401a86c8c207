from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from app.exceptions import (
    CarNotFoundError,
    ConflictError,
    InsuranceNotFoundError,
    InvalidDateRangeError,
    InvalidInputError,
)
from app.models.store import Store
from app.services.common import _now, _store, parse_timestamp, to_decimal

logger = logging.getLogger(__name__)


class InsuranceService:
    """One policy per car; a car is only bookable up to its policy's expiry date."""

    def __init__(self, store: Optional[Store] = None, clock: Optional[Callable[[], datetime]] = None):
        self.store = store or _store()
        self.clock = clock or _now

    def _get(self, insurance_id) -> dict:
        ins = self.store.get_insurance(insurance_id)
        if ins is None:
            raise InsuranceNotFoundError(f"Insurance with ID {insurance_id} not found")
        return ins

    def create(self, car_id, provider, policy_number, coverage_type, expiry_date, premium) -> dict:
        if not provider or not policy_number:
            raise InvalidInputError("Provider and policy number are required")
        expiry = parse_timestamp(expiry_date)
        if expiry <= self.clock():
            raise InvalidDateRangeError("Insurance must have a future expiry date")
        premium = to_decimal(premium, "premium")
        if self.store.get_car(car_id) is None:
            raise CarNotFoundError(f"Car with ID {car_id} not found")

        with self.store.car_lock(car_id), self.store.transaction():
            if self.store.get_car(car_id) is None:
                raise CarNotFoundError(f"Car with ID {car_id} not found")
            if self.store.insurance_for_car(car_id) is not None:
                raise ConflictError(f"Car with ID {car_id} already has insurance")
            iid = self.store.create_insurance({
                "car_id": str(car_id),
                "provider": provider,
                "policy_number": policy_number,
                "coverage_type": coverage_type,
                "expiry_date": expiry,
                "premium": premium,
            })
        logger.info("Insurance %s attached to car %s (expires %s)", iid, car_id, expiry.isoformat())
        return dict(self._get(iid))

    def find_one(self, insurance_id) -> dict:
        return dict(self._get(insurance_id))

    def find_by_car(self, car_id) -> dict:
        ins = self.store.insurance_for_car(car_id)
        if ins is None:
            raise InsuranceNotFoundError(f"Insurance for car with ID {car_id} not found")
        return dict(ins)

    def find_active(self) -> list[dict]:
        now = self.clock()
        out = [dict(i) for i in self.store.insurances.values() if i["expiry_date"] >= now]
        out.sort(key=lambda i: i["expiry_date"])
        return out

    def update(self, insurance_id, changes: dict) -> dict:
        ins = self._get(insurance_id)
        updates = {}
        for key in ("provider", "policy_number", "coverage_type"):
            if changes.get(key):
                updates[key] = changes[key]
        if changes.get("expiry_date") is not None:
            updates["expiry_date"] = parse_timestamp(changes["expiry_date"])
        if changes.get("premium") is not None:
            updates["premium"] = to_decimal(changes["premium"], "premium")

        new_car = changes.get("car_id")
        if new_car and self.store.get_car(new_car) is None:
            raise CarNotFoundError(f"Car with ID {new_car} not found")
        with self.store.car_lock(ins["car_id"], new_car), self.store.transaction():
            if new_car and str(new_car) != ins["car_id"]:
                if self.store.get_car(new_car) is None:
                    raise CarNotFoundError(f"Car with ID {new_car} not found")
                if self.store.insurance_for_car(new_car) is not None:
                    raise ConflictError(f"Car with ID {new_car} already has insurance")
                updates["car_id"] = str(new_car)
            self.store.update_insurance(insurance_id, updates)
        return dict(self._get(insurance_id))

    def remove(self, insurance_id) -> None:
        ins = self._get(insurance_id)
        with self.store.car_lock(ins["car_id"]), self.store.transaction():
            self.store.delete_insurance(insurance_id)
