from flask import Blueprint, jsonify

from ..services.user_service import UserService
from ..utils.constants import Role
from ..utils.decorators import login_required, role_required
from .common import json_body, require

bp = Blueprint("users", __name__, url_prefix="/users")


@bp.get("")
@login_required
@role_required(Role.MANAGER, Role.ADMIN)
def list_users():
    return jsonify(UserService().list_users())


@bp.post("")
@login_required
@role_required(Role.ADMIN)
def add_user():
    """Admin: add a user of any role."""
    data = json_body()
    username, role, password = require(data, "username", "role", "password")
    return jsonify(UserService().create_user(username, role, password)), 201


@bp.get("/<user_id>")
@login_required
@role_required(Role.MANAGER, Role.ADMIN)
def user_detail(user_id):
    return jsonify(UserService().get_user(user_id))


@bp.delete("/<user_id>")
@login_required
@role_required(Role.ADMIN)
def delete_user(user_id):
    UserService().delete_user(user_id)
    return "", 204
