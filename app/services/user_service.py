from __future__ import annotations

import logging
from typing import Optional

from app.exceptions import ConflictError, InvalidInputError, UserNotFoundError
from app.models.store import Store
from app.models.user import UserBase
from app.services.common import _store, public_user, user_from_dict
from app.utils.constants import BookingKind, RentalStatus, ReservationStatus, Role
from app.utils.security import check_hash, generate_hash

logger = logging.getLogger(__name__)


class UserService:
    """User admin operations (create/delete), registration and login."""

    def __init__(self, store: Optional[Store] = None):
        self.store = store or _store()

    def create_user(self, username: str, role: str, password: str) -> dict:
        username = (username or "").strip()
        role = (role or "").lower().strip()
        if not username or not password:
            raise InvalidInputError("Username and password are required")
        if role not in Role.ALL:
            raise InvalidInputError("Role must be customer/driver/manager/admin")
        if self.store.user_exists(username):
            raise ConflictError("Username already exists")
        uid = self.store.create_user(username, generate_hash(password), role)
        logger.info("User %s created with role %s", username, role)
        return public_user(self.store.get_user(uid))

    def register(self, username: str, password: str) -> dict:
        """Self-service sign-up always yields a customer."""
        return self.create_user(username, Role.CUSTOMER, password)

    def authenticate(self, username: str, password: str) -> Optional[UserBase]:
        """Return the user on a password match, None otherwise."""
        d = self.store.find_user((username or "").strip())
        if not d or not check_hash(password or "", d["password_hash"]):
            return None
        return user_from_dict(d)

    def get_user(self, user_id) -> dict:
        d = self.store.get_user(user_id)
        if d is None:
            raise UserNotFoundError(f"User with ID {user_id} not found")
        return public_user(d)

    def principal(self, user_id) -> Optional[UserBase]:
        return user_from_dict(self.store.get_user(user_id))

    def list_users(self) -> list[dict]:
        return sorted((public_user(u) for u in self.store.users.values()), key=lambda u: u["username"])

    def delete_user(self, user_id) -> None:
        """Delete a user unless they still hold an active rental or an open reservation."""
        self.get_user(user_id)
        if self.store.bookings(BookingKind.RENTAL, user_id=user_id, statuses=RentalStatus.BLOCKING):
            raise ConflictError("Cannot delete: user has active rentals")
        if self.store.bookings(BookingKind.RESERVATION, user_id=user_id, statuses=ReservationStatus.BLOCKING):
            raise ConflictError("Cannot delete: user has open reservations")
        self.store.delete_user(user_id)
        logger.info("User %s deleted", user_id)
