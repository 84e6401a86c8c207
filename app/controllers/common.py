"""Request/response helpers shared by the blueprints."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from flask import abort, g, request, session

from app.models.user import UserBase
from app.services.user_service import UserService


def to_json(value):
    """Make service results JSON friendly: ISO timestamps, money as strings."""
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return request.form.to_dict()
    if not isinstance(data, dict):
        abort(400, description="Expected a JSON object")
    return data


def current_user() -> Optional[UserBase]:
    """The authenticated principal for this request (cached on `g`)."""
    if "current_user" not in g:
        uid = session.get("uid")
        g.current_user = UserService().principal(uid) if uid else None
    if g.current_user is None:
        session.clear()
        abort(401, description="Please login first")
    return g.current_user


def require(data: dict, *fields):
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        abort(400, description=f"Missing field(s): {', '.join(missing)}")
    return [data[f] for f in fields]


def public_session() -> dict:
    return {
        "user_id": session.get("uid"),
        "username": session.get("username"),
        "role": session.get("role"),
    }
