from flask import Blueprint, jsonify

from ..services.analytics_service import AnalyticsService
from ..services.common import text
from ..services.car_service import CarService
from ..services.rental_service import RentalService
from ..services.user_service import UserService
from ..utils.constants import Role
from ..utils.decorators import current_identity, request_payload, role_required

bp = Blueprint("admin", __name__, url_prefix="/admin")


@bp.get("/users")
@role_required(Role.ADMIN)
def admin_users():
    return jsonify(UserService.list_users(current_identity()))


@bp.post("/users")
@role_required(Role.ADMIN)
def admin_create_user():
    data = request_payload()
    user = UserService.admin_create_user(
        current_identity(),
        text(data.get("username")),
        text(data.get("role")),
        data.get("password") or "",
    )
    return jsonify({"message": "User created", "user": user}), 201


@bp.put("/users/<user_id>/role")
@role_required(Role.ADMIN)
def admin_set_role(user_id):
    user = UserService.set_role(current_identity(), user_id, request_payload().get("role"))
    return jsonify({"message": "Role updated", "user": user})


@bp.delete("/users/<user_id>")
@role_required(Role.ADMIN)
def admin_delete_user(user_id):
    """Deletes the user with their cars, rentals and approval records."""
    result = UserService.cascade_user_deletion(current_identity(), user_id)
    return jsonify({"message": "User deleted", "deleted": result})


@bp.get("/cars")
@role_required(Role.ADMIN)
def admin_cars():
    return jsonify(CarService.all_cars())


@bp.get("/analytics")
@role_required(Role.ADMIN)
def admin_analytics():
    return jsonify(AnalyticsService.analytics(current_identity()))


@bp.post("/reconcile")
@role_required(Role.ADMIN)
def admin_reconcile():
    repaired = RentalService.reconcile_availability(current_identity())
    return jsonify({"repaired": repaired, "count": len(repaired)})
