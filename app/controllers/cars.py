from flask import Blueprint, jsonify, request

from ..services.car_service import CarService
from ..services.insurance_service import InsuranceService
from ..services.rental_service import RentalService
from ..utils.constants import Role
from ..utils.decorators import login_required, role_required
from .common import json_body, require, to_json

bp = Blueprint("cars", __name__)

STAFF = (Role.MANAGER, Role.ADMIN)


def _flag(value):
    if value is None or value == "":
        return None
    return str(value).lower() in ("1", "true", "yes", "on")


# ---------- fleet ----------
@bp.get("/cars")
@login_required
def list_cars():
    """Cars list with filters (make, model, min, max, available)."""
    args = request.args
    cars = CarService().filter_cars(
        make=args.get("make"),
        model=args.get("model"),
        min_rate=args.get("min"),
        max_rate=args.get("max"),
        available=_flag(args.get("available")),
    )
    return jsonify(to_json(cars))


@bp.get("/cars/<car_id>")
@login_required
def car_detail(car_id):
    svc = CarService()
    car = svc.get_car(car_id)
    car["calendar"] = [{"start": s, "end": e} for s, e in svc.availability_calendar(car_id)]
    return jsonify(to_json(car))


@bp.post("/cars")
@login_required
@role_required(*STAFF)
def add_car():
    return jsonify(to_json(CarService().create_car(json_body()))), 201


@bp.patch("/cars/<car_id>")
@login_required
@role_required(*STAFF)
def edit_car(car_id):
    """Edit make/model/year/color/rate; `is_available` in the body is ignored."""
    return jsonify(to_json(CarService().update_car(car_id, json_body())))


@bp.delete("/cars/<car_id>")
@login_required
@role_required(*STAFF)
def delete_car(car_id):
    CarService().delete_car(car_id)
    return "", 204


@bp.put("/cars/<car_id>/service")
@login_required
@role_required(*STAFF)
def set_in_service(car_id):
    """Take a car out of service (maintenance) or put it back."""
    (in_service,) = require(json_body(), "in_service")
    return jsonify(to_json(CarService().set_in_service(car_id, _flag(in_service))))


@bp.post("/cars/<car_id>/reconcile")
@login_required
@role_required(*STAFF)
def reconcile(car_id):
    return jsonify(to_json(CarService().reconcile(car_id)))


@bp.get("/cars/<car_id>/availability")
@login_required
def check_availability(car_id):
    """Conflict Query for ?start=...&end=..."""
    start, end = require(request.args, "start", "end")
    return jsonify(RentalService().check_availability(car_id, start, end))


# ---------- insurance ----------
@bp.post("/cars/<car_id>/insurance")
@login_required
@role_required(*STAFF)
def add_insurance(car_id):
    data = json_body()
    provider, policy_number, expiry = require(data, "provider", "policy_number", "expiry_date")
    ins = InsuranceService().create(
        car_id,
        provider=provider,
        policy_number=policy_number,
        coverage_type=data.get("coverage_type"),
        expiry_date=expiry,
        premium=data.get("premium") or 0,
    )
    return jsonify(to_json(ins)), 201


@bp.get("/cars/<car_id>/insurance")
@login_required
def car_insurance(car_id):
    return jsonify(to_json(InsuranceService().find_by_car(car_id)))


@bp.get("/insurance")
@login_required
@role_required(*STAFF)
def active_insurance():
    return jsonify(to_json(InsuranceService().find_active()))


@bp.patch("/insurance/<insurance_id>")
@login_required
@role_required(*STAFF)
def update_insurance(insurance_id):
    return jsonify(to_json(InsuranceService().update(insurance_id, json_body())))


@bp.delete("/insurance/<insurance_id>")
@login_required
@role_required(*STAFF)
def delete_insurance(insurance_id):
    InsuranceService().remove(insurance_id)
    return "", 204
