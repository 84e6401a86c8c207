"""Shared service helpers and factories."""

from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from typing import Optional

import pytz
from flask import current_app, has_app_context

from app.config import Config
from app.exceptions import InvalidInputError, InvalidDateRangeError
from app.models.store import Store
from app.models.user import ROLE_CLASSES, UserBase
from app.utils.constants import DATE_FMT


def _store() -> Store:
    """Get the singleton store instance."""
    return Store.instance()


def _now() -> datetime:
    """Current UTC time; wrapped for easier testing/mocking."""
    return datetime.now(pytz.utc)


def _local_tz() -> str:
    """Zone for naive wire timestamps: the running app's LOCAL_TZ, else the Config default."""
    if has_app_context():
        return current_app.config.get("LOCAL_TZ") or Config.LOCAL_TZ
    return Config.LOCAL_TZ


# -------- date & money helpers --------
def parse_timestamp(value, tz_name: Optional[str] = None) -> datetime:
    """
    Coerce a wire value into an aware UTC datetime.
    Accepts datetime/date objects, 'YYYY-MM-DD' (local midnight) and ISO
    strings with or without an offset (a trailing 'Z' means UTC). Naive values
    are read in `tz_name` (defaults to the app's LOCAL_TZ, or Config.LOCAL_TZ
    outside an app context).
    """
    if value is None or value == "":
        raise InvalidDateRangeError("Error: missing date")

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            if len(s) == 10:
                dt = datetime.strptime(s, DATE_FMT)
            else:
                dt = datetime.fromisoformat(s)
        except ValueError:
            raise InvalidDateRangeError(f"Error: invalid date {value!r}") from None
    else:
        raise InvalidDateRangeError(f"Error: unsupported date {value!r}")

    if dt.tzinfo is None:
        zone_name = tz_name or _local_tz()
        try:
            zone = pytz.timezone(zone_name)
        except pytz.UnknownTimeZoneError:
            raise InvalidInputError(f"Error: unknown time zone {zone_name!r}") from None
        dt = zone.localize(dt)
    return dt.astimezone(pytz.utc)


def to_decimal(value, field: str = "amount") -> Decimal:
    """Parse a non-negative money value with two decimals."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInputError(f"Error: {field} must be a number") from None
    if not amount.is_finite() or amount < 0:
        raise InvalidInputError(f"Error: {field} must be a non-negative number")
    return amount.quantize(Decimal("0.01"))


def to_float_safe(value) -> Optional[float]:
    """Safely convert to float; return None if invalid."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _lc(s):
    """Safe lowercase for case-insensitive compare."""
    return (s or "").lower()


# -------- dict -> rich model mappers --------
def user_from_dict(d: Optional[dict]) -> Optional[UserBase]:
    """Map a stored user dict to a rich user object."""
    if not d:
        return None
    role = (d.get("role") or "").lower()
    cls = ROLE_CLASSES.get(role, UserBase)
    return cls(
        user_id=d.get("user_id") or d.get("id"),
        username=d.get("username"),
        role=role,
    )


def public_user(d: dict) -> dict:
    """User dict without the password hash."""
    return {k: v for k, v in d.items() if k != "password_hash"}
