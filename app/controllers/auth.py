import re

from flask import Blueprint, jsonify, session, abort

from ..exceptions import InvalidInputError
from ..services.user_service import UserService
from .common import json_body, public_session

bp = Blueprint("auth", __name__, url_prefix="/auth")

# Compile once at module import
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{6,}$")
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,30}$")


@bp.post("/register")
def register():
    """Customer self sign-up."""
    data = json_body()
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""

    if not username or not password:
        raise InvalidInputError("Username and password are required.")

    # Username policy
    if not USERNAME_PATTERN.match(username):
        raise InvalidInputError("Username must be 3-30 chars (letters, digits, ., _, -).")

    # Password policy (server-side enforcement)
    if not PASSWORD_PATTERN.match(password):
        raise InvalidInputError("Password must have at least 6 characters, including A-Z, a-z, and 0-9.")

    # Extra guard: disallow password equal to username
    if password.lower() == username.lower():
        raise InvalidInputError("Password cannot be the same as username.")

    user = UserService().register(username, password)
    return jsonify(user), 201


@bp.post("/login")
def login():
    data = json_body()
    user = UserService().authenticate(data.get("username"), data.get("password"))
    if user is None:
        abort(401, description="Invalid credentials")

    session.clear()
    session["uid"] = user.user_id
    session["role"] = user.role
    session["username"] = user.username
    return jsonify(public_session())


@bp.get("/logout")
def logout():
    session.clear()
    return jsonify({"message": "Logged out"})


@bp.get("/me")
def me():
    if "uid" not in session:
        abort(401, description="Please login first")
    return jsonify(public_session())
