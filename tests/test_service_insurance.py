from datetime import datetime
from decimal import Decimal

import pytest
import pytz

from app.exceptions import (
    CarNotFoundError,
    ConflictError,
    InsuranceNotFoundError,
    InvalidDateRangeError,
    InvalidInputError,
)
from app.services.insurance_service import InsuranceService


def at(day, month=1):
    return datetime(2030, month, day, tzinfo=pytz.utc)


@pytest.fixture
def insurance(store, clock):
    return InsuranceService(store, clock=clock)


def test_create_and_lookup(insurance, make_car):
    car = make_car(insured_until=None)
    ins = insurance.create(car["car_id"], "Acme", "POL-1", "full", "2030-06-30", "199.999")
    assert ins["premium"] == Decimal("200.00")
    assert insurance.find_by_car(car["car_id"])["insurance_id"] == ins["insurance_id"]
    assert insurance.find_one(ins["insurance_id"])["policy_number"] == "POL-1"


def test_create_validation(insurance, make_car):
    car = make_car(insured_until=None)
    with pytest.raises(InvalidInputError):
        insurance.create(car["car_id"], "", "POL-1", "full", at(30), 1)
    with pytest.raises(InvalidDateRangeError):
        insurance.create(car["car_id"], "Acme", "POL-1", "full", datetime(2029, 12, 1, tzinfo=pytz.utc), 1)
    with pytest.raises(CarNotFoundError):
        insurance.create("missing", "Acme", "POL-1", "full", at(30), 1)


def test_one_policy_per_car(insurance, car):
    with pytest.raises(ConflictError):
        insurance.create(car["car_id"], "Other", "POL-2", "basic", at(30), 1)


def test_find_active_skips_expired(store, make_car):
    early = make_car(insured_until=at(5))
    late = make_car(insured_until=at(20))
    later_clock = InsuranceService(store, clock=lambda: at(10))
    assert [i["car_id"] for i in later_clock.find_active()] == [late["car_id"]]
    assert early["car_id"] not in [i["car_id"] for i in later_clock.find_active()]


def test_extending_policy_reopens_bookings(insurance, rentals, customer, make_car):
    car = make_car(insured_until=at(11))
    with pytest.raises(ConflictError):
        rentals.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    ins = insurance.find_by_car(car["car_id"])
    insurance.update(ins["insurance_id"], {"expiry_date": at(1, 3)})
    assert rentals.create(car["car_id"], customer.user_id, at(10), at(12), "1")["status"] == "active"


def test_move_policy_to_insured_car_rejected(insurance, make_car):
    a = make_car()
    b = make_car(make="Kia")
    ins = insurance.find_by_car(a["car_id"])
    with pytest.raises(ConflictError):
        insurance.update(ins["insurance_id"], {"car_id": b["car_id"]})


def test_remove(insurance, car):
    ins = insurance.find_by_car(car["car_id"])
    insurance.remove(ins["insurance_id"])
    with pytest.raises(InsuranceNotFoundError):
        insurance.find_by_car(car["car_id"])
