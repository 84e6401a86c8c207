"""
seeds.py
--------
Populate the local data.pkl with demo accounts, cars and insurance policies.

Usage:
    $ python seeds.py            # add missing demo data
    $ python seeds.py --reset    # wipe the store first
"""

import argparse
import logging
from datetime import timedelta
from decimal import Decimal

from app import create_app
from app.models.store import Store
from app.services.common import _now
from app.utils.constants import Role
from app.utils.security import generate_hash

logger = logging.getLogger("seeds")

DEMO_USERS = [
    ("admin", "Admin123", Role.ADMIN),
    ("manager", "Manager123", Role.MANAGER),
    ("driver", "Driver123", Role.DRIVER),
    ("customer", "Customer123", Role.CUSTOMER),
]

DEMO_CARS = [
    {"make": "Toyota", "model": "Corolla", "year": 2022, "color": "white", "rate": Decimal("45.00")},
    {"make": "Honda", "model": "Civic", "year": 2021, "color": "blue", "rate": Decimal("50.00")},
    {"make": "Mazda", "model": "CX-5", "year": 2023, "color": "red", "rate": Decimal("70.00")},
    {"make": "Ford", "model": "Ranger", "year": 2020, "color": "grey", "rate": Decimal("95.00")},
]


def ensure_user(store: Store, username: str, password: str, role: str):
    """
    Ensure a user with `username` exists in the store.
    - If exists: update password hash and role (idempotent).
    - If not:   create a new user.
    """
    u = store.find_user(username)
    if u:
        u["password_hash"] = generate_hash(password)
        u["role"] = role
        return u["user_id"]
    else:
        return store.create_user(username, generate_hash(password), role)


def seed(store: Store) -> None:
    for username, password, role in DEMO_USERS:
        ensure_user(store, username, password, role)

    # Demo cars (create only if none exist), each insured for a year
    if not store.cars:
        expiry = _now() + timedelta(days=365)
        for i, car in enumerate(DEMO_CARS, start=1):
            cid = store.create_car(car)
            store.create_insurance({
                "car_id": cid,
                "provider": "Demo Mutual",
                "policy_number": f"DM-{i:04d}",
                "coverage_type": "comprehensive",
                "expiry_date": expiry,
                "premium": Decimal("300.00"),
            })

    store.save()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--reset", action="store_true", help="clear the store before seeding")
    args = parser.parse_args(argv)

    app = create_app()
    with app.app_context():
        store = Store.instance()
        if args.reset:
            store.clear()
            logger.info("Store cleared")
        seed(store)

    logger.info("Seed complete: %d users, %d cars", len(store.users), len(store.cars))
    for username, password, role in DEMO_USERS:
        logger.info("%-9s login: %s / %s", role, username, password)


if __name__ == "__main__":
    main()
