"""Role-scoped access checks shared by the rental and reservation services."""

from typing import Optional

from app.exceptions import ForbiddenError
from app.models.user import UserBase


def can_access(acting_user: Optional[UserBase], booking: dict) -> bool:
    """
    Staff (manager/admin) always pass; a customer passes only for their own
    booking. Anyone else (drivers, unknown roles) is refused. A missing
    acting user means an internal call and passes.
    """
    if acting_user is None or acting_user.is_staff:
        return True
    if not acting_user.may_book:
        return False
    return str(booking.get("user_id")) == str(acting_user.user_id)


def ensure_access(acting_user: Optional[UserBase], booking: dict, message: str) -> None:
    """Raise ForbiddenError unless `acting_user` may touch `booking`."""
    if not can_access(acting_user, booking):
        raise ForbiddenError(message)


def ensure_self_or_staff(acting_user: Optional[UserBase], user_id, message: str) -> None:
    """Customers may only act on their own user id; staff on any."""
    if acting_user is None or acting_user.is_staff:
        return
    if str(acting_user.user_id) != str(user_id):
        raise ForbiddenError(message)
