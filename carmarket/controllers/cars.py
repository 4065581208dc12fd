from flask import Blueprint, jsonify, request

from ..services.car_service import CarService
from ..utils.decorators import current_identity, login_required, request_payload

bp = Blueprint("cars", __name__, url_prefix="/cars")


def _remove_ids():
    """Image handles to drop on update, from repeated form fields or a JSON list."""
    ids = request.form.getlist("remove_ids")
    if not ids:
        data = request.get_json(silent=True) or {}
        ids = data.get("remove_ids") or []
    return [i for i in ids if i]


@bp.get("")
def list_cars():
    """Catalogue search; query args map onto CarService.filter_cars."""
    args = request.args
    cars = CarService.filter_cars(
        brand=args.get("brand"),
        car_type=args.get("type"),
        listing_type=args.get("listing_type"),
        min_price=args.get("min_price"),
        max_price=args.get("max_price"),
        max_mileage=args.get("max_mileage"),
        is_compatible=args.get("is_compatible"),
        available_only=args.get("available_only"),
        limit=args.get("limit"),
    )
    return jsonify(cars)


@bp.get("/extremal")
def extremal_car():
    car = CarService.extremal_price_car(
        listing_type=request.args.get("listing_type", "rent"),
        order=request.args.get("order", "asc"),
    )
    return jsonify({"result": car})


@bp.get("/dealer/<dealer_id>")
def dealer_cars(dealer_id):
    return jsonify(CarService.cars_for_dealer(dealer_id))


@bp.get("/<car_id>")
def car_detail(car_id):
    # self-heal availability on read
    return jsonify(CarService.get_car(car_id, reconcile=True))


@bp.post("")
@login_required
def create_car():
    car = CarService.create_car(current_identity(), request_payload(), request.files.getlist("images"))
    return jsonify({"message": "Car added successfully", "car": car}), 201


@bp.put("/<car_id>")
@login_required
def update_car(car_id):
    car = CarService.update_car(
        current_identity(),
        car_id,
        request_payload(),
        files=request.files.getlist("images"),
        remove_handles=_remove_ids(),
    )
    return jsonify({"message": "Car updated successfully", "car": car})


@bp.delete("/<car_id>")
@login_required
def delete_car(car_id):
    result = CarService.delete_car(current_identity(), car_id)
    return jsonify({"message": "Car deleted successfully", "deleted": result})


@bp.post("/<car_id>/reviews")
@login_required
def add_review(car_id):
    data = request_payload()
    review = CarService.add_review(current_identity(), car_id, data.get("rating"), data.get("comment"))
    return jsonify({"message": "Review added", "review": review}), 201


@bp.delete("/<car_id>/reviews/<review_id>")
@login_required
def delete_review(car_id, review_id):
    CarService.delete_review(current_identity(), car_id, review_id)
    return jsonify({"message": "Review deleted"})
