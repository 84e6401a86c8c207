from dataclasses import dataclass

from app.utils.constants import Role


@dataclass
class UserBase:
    """
    Base user model. The Store keeps raw dicts; we wrap them into rich objects
    so role rules are expressed via polymorphism instead of string checks.
    """
    user_id: str
    username: str
    role: str  # "customer" | "driver" | "manager" | "admin"

    @property
    def is_staff(self) -> bool:
        """Staff see and mutate every booking regardless of owner."""
        return False

    @property
    def may_book(self) -> bool:
        """Whether this user can be the subject of a rental/reservation."""
        return False


class CustomerUser(UserBase):
    """
    Customers own bookings and may only touch their own.
    """

    @property
    def may_book(self) -> bool:
        return True


class DriverUser(UserBase):
    pass


class ManagerUser(UserBase):
    @property
    def is_staff(self) -> bool:
        return True


class AdminUser(ManagerUser):
    pass


ROLE_CLASSES = {
    Role.CUSTOMER: CustomerUser,
    Role.DRIVER: DriverUser,
    Role.MANAGER: ManagerUser,
    Role.ADMIN: AdminUser,
}
