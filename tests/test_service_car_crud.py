from datetime import datetime
from decimal import Decimal

import pytest
import pytz

from app.exceptions import CarNotFoundError, ConflictError, InvalidInputError
from app.services.car_service import CarService


def at(day):
    return datetime(2030, 1, day, tzinfo=pytz.utc)


@pytest.fixture
def cars(store):
    return CarService(store)


def test_create_car_normalises_fields(cars):
    car = cars.create_car({"make": " Toyota ", "model": "Corolla", "year": "2021", "rate": "45.5"})
    assert car["make"] == "Toyota"
    assert car["year"] == 2021
    assert car["rate"] == Decimal("45.50")
    assert car["is_available"] is True


@pytest.mark.parametrize("payload", [
    {"model": "Corolla"},
    {"make": "Toyota"},
    {"make": "Toyota", "model": "Corolla", "year": "new"},
    {"make": "Toyota", "model": "Corolla", "rate": "-1"},
])
def test_create_car_rejects_bad_payload(cars, payload):
    with pytest.raises(InvalidInputError):
        cars.create_car(payload)


def test_filter_cars(cars):
    cars.create_car({"make": "Toyota", "model": "Corolla", "rate": 40})
    cars.create_car({"make": "Toyota", "model": "RAV4", "rate": 80})
    honda = cars.create_car({"make": "Honda", "model": "Civic", "rate": 55})
    cars.set_in_service(honda["car_id"], False)

    assert {c["model"] for c in cars.filter_cars(make="toy")} == {"Corolla", "RAV4"}
    assert [c["model"] for c in cars.filter_cars(min_rate="50", max_rate="90", available=True)] == ["RAV4"]
    # min/max given the wrong way round are swapped
    assert {c["model"] for c in cars.filter_cars(min_rate=90, max_rate=50)} == {"RAV4", "Civic"}
    assert [c["model"] for c in cars.filter_cars(available=False)] == ["Civic"]
    assert len(cars.filter_cars(min_rate="abc")) == 3


def test_get_missing_car(cars):
    with pytest.raises(CarNotFoundError):
        cars.get_car("nope")


def test_delete_car_guards(store, cars, rentals, reservations, customer, make_car):
    rented = make_car()
    rental = rentals.create(rented["car_id"], customer.user_id, at(10), at(12), "1")
    with pytest.raises(ConflictError, match="active rentals"):
        cars.delete_car(rented["car_id"])
    rentals.update_status(rental["rental_id"], "completed")

    reservations.create(rented["car_id"], customer.user_id, at(20), at(21), "1")
    with pytest.raises(ConflictError, match="open reservations"):
        cars.delete_car(rented["car_id"])


def test_delete_car_drops_its_insurance(store, cars, car):
    cars.delete_car(car["car_id"])
    assert store.get_car(car["car_id"]) is None
    assert store.insurance_for_car(car["car_id"]) is None


def test_availability_calendar(cars, rentals, reservations, customer, car):
    rentals.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    reservations.create(car["car_id"], customer.user_id, at(3), at(4), "1")
    assert cars.availability_calendar(car["car_id"]) == [(at(3), at(4)), (at(10), at(12))]


def test_out_of_service_blocks_bookings(cars, rentals, customer, car):
    cars.set_in_service(car["car_id"], False)
    with pytest.raises(ConflictError, match="not available"):
        rentals.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    cars.set_in_service(car["car_id"], True)
    assert rentals.create(car["car_id"], customer.user_id, at(10), at(12), "1")


def test_cannot_return_held_car_to_service(cars, rentals, customer, car):
    rentals.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    with pytest.raises(ConflictError):
        cars.set_in_service(car["car_id"], True)


def test_reconcile_repairs_drift(store, cars, rentals, customer, car):
    store.update_car(car["car_id"], is_available=False)
    assert cars.reconcile(car["car_id"])["is_available"] is True

    rentals.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    store.update_car(car["car_id"], is_available=True)
    assert cars.reconcile(car["car_id"])["is_available"] is False


def test_out_of_service_refused_while_rented(store, cars, rentals, customer, car, conflicts):
    rental = rentals.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    with pytest.raises(ConflictError, match="held"):
        cars.set_in_service(car["car_id"], False)

    rentals.update_status(rental["rental_id"], "completed")
    cars.set_in_service(car["car_id"], False)
    assert conflicts.check(car["car_id"], at(20), at(22)).available is False


def test_duplicate_make_model_year_rejected(cars):
    cars.create_car({"make": "Toyota", "model": "Corolla", "year": 2022})
    with pytest.raises(ConflictError, match="already exists"):
        cars.create_car({"make": "toyota", "model": "COROLLA", "year": "2022"})
    assert cars.create_car({"make": "Toyota", "model": "Corolla", "year": 2023})["year"] == 2023


def test_update_car_fields(cars):
    car = cars.create_car({"make": "Toyota", "model": "Corolla", "year": 2022, "rate": 40})
    updated = cars.update_car(car["car_id"], {"color": " red ", "rate": "55.5", "is_available": False})
    assert updated["color"] == "red"
    assert updated["rate"] == Decimal("55.50")
    assert updated["make"] == "Toyota"
    # the flag belongs to bookings and set_in_service
    assert updated["is_available"] is True


def test_update_car_validation(cars):
    car = cars.create_car({"make": "Toyota", "model": "Corolla", "year": 2022})
    cars.create_car({"make": "Toyota", "model": "Corolla", "year": 2023})
    with pytest.raises(InvalidInputError):
        cars.update_car(car["car_id"], {"make": "  "})
    with pytest.raises(InvalidInputError):
        cars.update_car(car["car_id"], {"year": "soon"})
    with pytest.raises(ConflictError):
        cars.update_car(car["car_id"], {"year": 2023})
    with pytest.raises(CarNotFoundError):
        cars.update_car("nope", {"color": "blue"})
    assert cars.get_car(car["car_id"])["year"] == 2022


def test_unknown_car_ids_do_not_leave_locks(store, cars, rentals, reservations, customer):
    from app.exceptions import NotFoundError

    for call in (
        lambda: rentals.create("ghost-1", customer.user_id, at(10), at(12), "1"),
        lambda: reservations.create("ghost-2", customer.user_id, at(10), at(12), "1"),
        lambda: cars.set_in_service("ghost-3", False),
        lambda: cars.delete_car("ghost-4"),
    ):
        with pytest.raises(NotFoundError):
            call()
    assert not any(k.startswith("ghost") for k in store._car_locks._locks)


def test_delete_car_drops_its_lock(store, cars, car):
    cars.set_in_service(car["car_id"], True)
    assert car["car_id"] in store._car_locks._locks
    cars.delete_car(car["car_id"])
    assert car["car_id"] not in store._car_locks._locks
