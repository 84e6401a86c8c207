# app/utils/constants.py

"""
Global constants for roles, statuses, and booking rules.
These constants are imported by both models and services.
"""

from datetime import timedelta

# Date format (used for date-only wire values)
DATE_FMT = "%Y-%m-%d"


class Role:
    CUSTOMER = "customer"
    DRIVER = "driver"
    MANAGER = "manager"
    ADMIN = "admin"

    ALL = {CUSTOMER, DRIVER, MANAGER, ADMIN}
    STAFF = {MANAGER, ADMIN}


class RentalStatus:
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"

    ALL = {ACTIVE, COMPLETED, CANCELLED, OVERDUE}
    TERMINAL = {COMPLETED, CANCELLED}
    # statuses that occupy the car's window
    BLOCKING = {ACTIVE}


class ReservationStatus:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    ALL = {PENDING, CONFIRMED, CANCELLED, COMPLETED}
    TERMINAL = {CANCELLED, COMPLETED}
    BLOCKING = {PENDING, CONFIRMED}


# Allowed status transitions (current -> next)
RENTAL_TRANSITIONS = {
    RentalStatus.ACTIVE: {RentalStatus.COMPLETED, RentalStatus.CANCELLED, RentalStatus.OVERDUE},
    RentalStatus.OVERDUE: {RentalStatus.ACTIVE, RentalStatus.COMPLETED, RentalStatus.CANCELLED},
    RentalStatus.COMPLETED: set(),
    RentalStatus.CANCELLED: set(),
}

RESERVATION_TRANSITIONS = {
    ReservationStatus.PENDING: {ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED},
    ReservationStatus.CONFIRMED: {ReservationStatus.CANCELLED, ReservationStatus.COMPLETED},
    ReservationStatus.CANCELLED: set(),
    ReservationStatus.COMPLETED: set(),
}


class BookingKind:
    RENTAL = "rental"
    RESERVATION = "reservation"


# --- Booking rules ---
MIN_RENTAL_DURATION = timedelta(days=1)
MIN_RESERVATION_DURATION = timedelta(hours=1)
