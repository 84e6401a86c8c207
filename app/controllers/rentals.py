from flask import Blueprint, jsonify, request

from ..services.rental_service import RentalService
from ..utils.constants import Role
from ..utils.decorators import login_required, role_required
from .common import current_user, json_body, require, to_json

bp = Blueprint("rentals", __name__, url_prefix="/rentals")

STAFF = (Role.MANAGER, Role.ADMIN)


@bp.post("")
@login_required
def create_rental():
    """Create a rental; customers book for themselves, staff for any customer."""
    me = current_user()
    data = json_body()
    car_id, start, end, total_cost = require(data, "car_id", "start_date", "end_date", "total_cost")
    user_id = data.get("user_id") or me.user_id
    rental = RentalService().create(car_id, user_id, start, end, total_cost, acting_user=me)
    return jsonify(to_json(rental)), 201


@bp.get("")
@login_required
def list_rentals():
    """Staff see every rental (optionally ?status=); customers only their own."""
    me = current_user()
    svc = RentalService()
    svc.mark_overdue()
    if not me.is_staff:
        return jsonify(to_json(svc.find_by_user(me.user_id, acting_user=me)))
    status = request.args.get("status")
    rentals = svc.find_by_status(status) if status else svc.find_all()
    return jsonify(to_json(rentals))


@bp.get("/active")
@login_required
@role_required(*STAFF)
def active_rentals():
    return jsonify(to_json(RentalService().active()))


@bp.get("/overdue")
@login_required
@role_required(*STAFF)
def overdue_rentals():
    return jsonify(to_json(RentalService().overdue()))


@bp.get("/user/<user_id>")
@login_required
def rentals_for_user(user_id):
    return jsonify(to_json(RentalService().find_by_user(user_id, acting_user=current_user())))


@bp.get("/car/<car_id>")
@login_required
@role_required(*STAFF)
def rentals_for_car(car_id):
    return jsonify(to_json(RentalService().find_by_car(car_id)))


@bp.get("/<rental_id>")
@login_required
def rental_detail(rental_id):
    return jsonify(to_json(RentalService().find_one(rental_id, acting_user=current_user())))


@bp.patch("/<rental_id>")
@login_required
def update_rental(rental_id):
    rental = RentalService().update(rental_id, json_body(), acting_user=current_user())
    return jsonify(to_json(rental))


@bp.patch("/<rental_id>/status")
@login_required
@role_required(*STAFF)
def update_rental_status(rental_id):
    (status,) = require(json_body(), "status")
    rental = RentalService().update_status(rental_id, status, acting_user=current_user())
    return jsonify(to_json(rental))


@bp.post("/<rental_id>/extend")
@login_required
def extend_rental(rental_id):
    (new_end,) = require(json_body(), "end_date")
    rental = RentalService().extend(rental_id, new_end, acting_user=current_user())
    return jsonify(to_json(rental))


@bp.delete("/<rental_id>")
@login_required
def delete_rental(rental_id):
    RentalService().remove(rental_id, acting_user=current_user())
    return "", 204
