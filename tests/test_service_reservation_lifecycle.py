from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytz

from app.exceptions import (
    ConflictError,
    ForbiddenError,
    IllegalTransitionError,
    InvalidDateRangeError,
    InvalidInputError,
    ReservationNotFoundError,
)
from app.services.reservation_service import ReservationService


def at(day, month=1, hour=0):
    return datetime(2030, month, day, hour, tzinfo=pytz.utc)


def test_create_is_pending_and_leaves_flag(store, reservations, customer, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "99.90")
    assert res["status"] == "pending"
    assert res["total_price"] == Decimal("99.90")
    assert store.get_car(car["car_id"])["is_available"] is True


def test_minimum_duration_is_one_hour(reservations, customer, car):
    with pytest.raises(InvalidInputError, match="at least 1 hour"):
        reservations.create(car["car_id"], customer.user_id, at(10), at(10) + timedelta(minutes=59), "1")
    assert reservations.create(car["car_id"], customer.user_id, at(10), at(10, hour=1), "1")


def test_only_customers_can_reserve(reservations, manager, car):
    with pytest.raises(InvalidInputError, match="Only customers"):
        reservations.create(car["car_id"], manager.user_id, at(10), at(12), "1")


def test_reservations_block_each_other(reservations, customer, other_customer, car):
    reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    with pytest.raises(ConflictError, match="reserved"):
        reservations.create(car["car_id"], other_customer.user_id, at(11), at(13), "1")
    # touching boundaries count as overlap
    with pytest.raises(ConflictError):
        reservations.create(car["car_id"], other_customer.user_id, at(12), at(13), "1")


def test_active_rental_blocks_reservation(rentals, reservations, customer, other_customer, car):
    rentals.create(car["car_id"], customer.user_id, at(10), at(15), "1")
    with pytest.raises(ConflictError, match="rented"):
        reservations.create(car["car_id"], other_customer.user_id, at(14), at(16), "1")
    assert reservations.create(car["car_id"], other_customer.user_id, at(16), at(17), "1")


def test_confirm_pending(reservations, customer, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    confirmed = reservations.confirm(res["reservation_id"])
    assert confirmed["status"] == "confirmed"


def test_confirm_requires_pending(reservations, customer, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    reservations.confirm(res["reservation_id"])
    with pytest.raises(IllegalTransitionError, match="pending"):
        reservations.confirm(res["reservation_id"])


def test_confirm_rechecks_car_state(store, reservations, customer, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    store.update_car(car["car_id"], is_available=False)
    with pytest.raises(ConflictError, match="no longer available"):
        reservations.confirm(res["reservation_id"])
    assert reservations.find_one(res["reservation_id"])["status"] == "pending"


def test_update_status_routes_confirmation(store, reservations, customer, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    store.update_car(car["car_id"], is_available=False)
    with pytest.raises(ConflictError):
        reservations.update_status(res["reservation_id"], "confirmed")


def test_status_machine(reservations, customer, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    rid = res["reservation_id"]
    with pytest.raises(IllegalTransitionError):
        reservations.update_status(rid, "completed")
    reservations.update_status(rid, "confirmed")
    assert reservations.update_status(rid, "completed")["status"] == "completed"
    for status in ("pending", "confirmed", "cancelled", "completed"):
        with pytest.raises(IllegalTransitionError):
            reservations.update_status(rid, status)


def test_cancel(reservations, customer, other_customer, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    rid = res["reservation_id"]
    with pytest.raises(ForbiddenError):
        reservations.cancel(rid, acting_user=other_customer)
    assert reservations.cancel(rid, acting_user=customer)["status"] == "cancelled"
    with pytest.raises(IllegalTransitionError, match="already cancelled"):
        reservations.cancel(rid, acting_user=customer)


def test_cancel_completed_rejected(reservations, customer, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    reservations.confirm(res["reservation_id"])
    reservations.update_status(res["reservation_id"], "completed")
    with pytest.raises(IllegalTransitionError, match="completed"):
        reservations.cancel(res["reservation_id"])


def test_cancelled_window_is_free_again(reservations, customer, other_customer, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    reservations.cancel(res["reservation_id"])
    assert reservations.create(car["car_id"], other_customer.user_id, at(10), at(12), "1")["status"] == "pending"


def test_customer_updates_own_pending_only(reservations, customer, other_customer, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    rid = res["reservation_id"]
    with pytest.raises(ForbiddenError):
        reservations.update(rid, {"total_price": "5"}, acting_user=other_customer)

    moved = reservations.update(rid, {"start_date": at(11), "end_date": at(13)}, acting_user=customer)
    assert (moved["start_date"], moved["end_date"]) == (at(11), at(13))

    reservations.confirm(rid)
    with pytest.raises(ForbiddenError, match="pending"):
        reservations.update(rid, {"total_price": "5"}, acting_user=customer)


def test_update_rechecks_conflicts(reservations, customer, other_customer, car):
    first = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    reservations.create(car["car_id"], other_customer.user_id, at(20), at(22), "1")
    with pytest.raises(ConflictError):
        reservations.update(first["reservation_id"], {"end_date": at(20)})
    assert reservations.find_one(first["reservation_id"])["end_date"] == at(12)


def test_update_rejects_bad_window(reservations, customer, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    with pytest.raises(InvalidDateRangeError):
        reservations.update(res["reservation_id"], {"end_date": at(9)})


def test_remove_rules(store, reservations, customer, other_customer, manager, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    rid = res["reservation_id"]
    with pytest.raises(ForbiddenError):
        reservations.remove(rid, acting_user=other_customer)

    reservations.confirm(rid)
    with pytest.raises(ForbiddenError):
        reservations.remove(rid, acting_user=customer)
    with pytest.raises(IllegalTransitionError, match="Cancel it first"):
        reservations.remove(rid, acting_user=manager)

    reservations.cancel(rid)
    reservations.remove(rid, acting_user=manager)
    with pytest.raises(ReservationNotFoundError):
        reservations.find_one(rid)


def test_customer_removes_own_pending(reservations, customer, car):
    res = reservations.create(car["car_id"], customer.user_id, at(10), at(12), "1")
    reservations.remove(res["reservation_id"], acting_user=customer)
    assert reservations.find_all() == []


def test_upcoming_and_expiring(store, customer, car, conflicts):
    svc = ReservationService(store=store, clock=lambda: at(1, hour=6), conflicts=conflicts)
    soon = svc.create(car["car_id"], customer.user_id, at(1, hour=12), at(1, hour=18), "1")
    later = svc.create(car["car_id"], customer.user_id, at(5), at(6), "1")
    far = svc.create(car["car_id"], customer.user_id, at(20), at(21), "1")

    upcoming = [r["reservation_id"] for r in svc.upcoming(days=7)]
    assert upcoming == [soon["reservation_id"], later["reservation_id"]]
    assert far["reservation_id"] not in upcoming

    assert [r["reservation_id"] for r in svc.expiring(hours=24)] == [soon["reservation_id"]]
    svc.confirm(soon["reservation_id"])
    assert svc.expiring(hours=24) == []
