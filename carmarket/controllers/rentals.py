from flask import Blueprint, jsonify

from ..services.rental_service import RentalService
from ..utils.constants import Role
from ..utils.decorators import current_identity, login_required, request_payload, role_required

bp = Blueprint("rentals", __name__, url_prefix="/rentals")


@bp.post("/<car_id>")
@login_required
def create_rental(car_id):
    """Request a rental. The car stays available until the dealer approves."""
    data = request_payload()
    rental = RentalService.create_rental(
        current_identity(),
        car_id,
        data.get("start_date"),
        data.get("end_date"),
        data.get("user_phone"),
    )
    return jsonify({"message": "Rental request submitted", "rental": rental}), 201


@bp.put("/<rental_id>/cancel")
@login_required
def cancel_rental(rental_id):
    rental = RentalService.cancel_rental(current_identity(), rental_id)
    return jsonify({"message": "Rental cancelled", "rental": rental})


@bp.put("/<rental_id>/status")
@role_required(Role.DEALER, Role.ADMIN)
def update_status(rental_id):
    status = request_payload().get("status")
    rental = RentalService.set_status(current_identity(), rental_id, status)
    return jsonify({"message": f"Rental {rental['status']}", "rental": rental})


@bp.delete("/<rental_id>")
@role_required(Role.DEALER, Role.ADMIN)
def delete_rental(rental_id):
    RentalService.delete_rental(current_identity(), rental_id)
    return jsonify({"message": "Rental deleted"})


@bp.get("/my-rentals")
@login_required
def my_rentals():
    return jsonify(RentalService.rentals_for_user(current_identity()))


@bp.get("/dealer-rentals")
@role_required(Role.DEALER)
def dealer_rentals():
    return jsonify(RentalService.rentals_for_dealer(current_identity()))


@bp.get("/all")
@role_required(Role.ADMIN)
def all_rentals():
    return jsonify(RentalService.all_rentals(current_identity()))


@bp.get("/<rental_id>")
@login_required
def rental_detail(rental_id):
    return jsonify(RentalService.get_rental(current_identity(), rental_id))
