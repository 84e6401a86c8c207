import sys, pathlib

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import itertools
from datetime import datetime

import pytest
import pytz

# Every service test runs "on" this instant unless it injects its own clock.
NOW = datetime(2030, 1, 1, 0, 0, tzinfo=pytz.utc)


@pytest.fixture(autouse=True)
def store(tmp_path, monkeypatch):
    """
    Provide a fresh on-disk store per test and make it the Store singleton,
    so services built without an explicit store use the SAME object.
    """
    monkeypatch.setenv("APP_ENV", "test")
    from app.models.store import Store

    st = Store(tmp_path / "data.pkl")
    monkeypatch.setattr(Store, "_inst", st)
    yield st


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def conflicts(store):
    from app.services.availability import BookingConflicts
    return BookingConflicts(store)


@pytest.fixture
def rentals(store, clock, conflicts):
    from app.services.rental_service import RentalService
    return RentalService(store=store, clock=clock, conflicts=conflicts)


@pytest.fixture
def reservations(store, clock, conflicts):
    from app.services.reservation_service import ReservationService
    return ReservationService(store=store, clock=clock, conflicts=conflicts)


@pytest.fixture
def make_user(store):
    """Create a user of the given role and return the rich principal object."""
    from app.services.user_service import UserService
    svc = UserService(store)

    def _make(username, role="customer", password="Secret123"):
        u = svc.create_user(username, role, password)
        return svc.principal(u["user_id"])

    return _make


@pytest.fixture
def customer(make_user):
    return make_user("alice")


@pytest.fixture
def other_customer(make_user):
    return make_user("bob")


@pytest.fixture
def manager(make_user):
    return make_user("mona", role="manager")


@pytest.fixture
def driver(make_user):
    return make_user("dave", role="driver")


@pytest.fixture
def make_car(store, clock):
    """Create a car, insured until `insured_until` (pass None for no policy)."""
    from app.services.car_service import CarService
    from app.services.insurance_service import InsuranceService

    cars = CarService(store)
    insurance = InsuranceService(store, clock=clock)
    # make/model/year must be unique across the fleet
    years = itertools.count(2000)

    def _make(make="Toyota", model="Corolla", rate="45.00",
              insured_until=datetime(2030, 12, 31, tzinfo=pytz.utc)):
        car = cars.create_car({"make": make, "model": model, "rate": rate, "year": next(years)})
        if insured_until is not None:
            insurance.create(car["car_id"], "Acme", f"P-{car['car_id'][:6]}", "full", insured_until, "120")
        return car

    return _make


@pytest.fixture
def car(make_car):
    return make_car()


@pytest.fixture
def client(store):
    """Flask test client bound to the per-test store."""
    from app import create_app
    app = create_app({"TESTING": True, "SECRET_KEY": "test", "DATA_PATH": store.path})
    with app.test_client() as c:
        yield c
