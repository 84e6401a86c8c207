from flask import Blueprint, jsonify, request

from ..services.reservation_service import ReservationService
from ..utils.constants import Role
from ..utils.decorators import login_required, role_required
from .common import current_user, json_body, require, to_json

bp = Blueprint("reservations", __name__, url_prefix="/reservations")

STAFF = (Role.MANAGER, Role.ADMIN)


def _int_arg(name: str, default: int) -> int:
    try:
        return max(0, int(request.args.get(name, default)))
    except (TypeError, ValueError):
        return default


@bp.post("")
@login_required
def create_reservation():
    me = current_user()
    data = json_body()
    car_id, start, end, total_price = require(data, "car_id", "start_date", "end_date", "total_price")
    user_id = data.get("user_id") or me.user_id
    reservation = ReservationService().create(car_id, user_id, start, end, total_price, acting_user=me)
    return jsonify(to_json(reservation)), 201


@bp.get("")
@login_required
def list_reservations():
    me = current_user()
    svc = ReservationService()
    if not me.is_staff:
        return jsonify(to_json(svc.find_by_user(me.user_id, acting_user=me)))
    status = request.args.get("status")
    reservations = svc.find_by_status(status) if status else svc.find_all()
    return jsonify(to_json(reservations))


@bp.get("/upcoming")
@login_required
@role_required(*STAFF)
def upcoming_reservations():
    return jsonify(to_json(ReservationService().upcoming(days=_int_arg("days", 7))))


@bp.get("/expiring")
@login_required
@role_required(*STAFF)
def expiring_reservations():
    return jsonify(to_json(ReservationService().expiring(hours=_int_arg("hours", 24))))


@bp.get("/user/<user_id>")
@login_required
def reservations_for_user(user_id):
    return jsonify(to_json(ReservationService().find_by_user(user_id, acting_user=current_user())))


@bp.get("/car/<car_id>")
@login_required
@role_required(*STAFF)
def reservations_for_car(car_id):
    return jsonify(to_json(ReservationService().find_by_car(car_id)))


@bp.get("/<reservation_id>")
@login_required
def reservation_detail(reservation_id):
    return jsonify(to_json(ReservationService().find_one(reservation_id, acting_user=current_user())))


@bp.patch("/<reservation_id>")
@login_required
def update_reservation(reservation_id):
    reservation = ReservationService().update(reservation_id, json_body(), acting_user=current_user())
    return jsonify(to_json(reservation))


@bp.patch("/<reservation_id>/status")
@login_required
@role_required(*STAFF)
def update_reservation_status(reservation_id):
    (status,) = require(json_body(), "status")
    reservation = ReservationService().update_status(reservation_id, status, acting_user=current_user())
    return jsonify(to_json(reservation))


@bp.post("/<reservation_id>/confirm")
@login_required
@role_required(*STAFF)
def confirm_reservation(reservation_id):
    return jsonify(to_json(ReservationService().confirm(reservation_id)))


@bp.post("/<reservation_id>/cancel")
@login_required
def cancel_reservation(reservation_id):
    reservation = ReservationService().cancel(reservation_id, acting_user=current_user())
    return jsonify(to_json(reservation))


@bp.delete("/<reservation_id>")
@login_required
def delete_reservation(reservation_id):
    ReservationService().remove(reservation_id, acting_user=current_user())
    return "", 204
