from flask import Blueprint, jsonify

from ..services.sale_service import SaleService
from ..utils.constants import Role
from ..utils.decorators import current_identity, login_required, role_required

bp = Blueprint("sales", __name__, url_prefix="/sales")


@bp.post("/<car_id>/buy")
@login_required
def buy_car(car_id):
    sale = SaleService.buy(current_identity(), car_id)
    return jsonify({"message": "Car purchased successfully", "sale": sale}), 201


@bp.get("")
@login_required
def list_sales():
    """Buyers see their purchases, dealers their sales, admins everything."""
    return jsonify(SaleService.list_sales(current_identity()))


@bp.get("/stats")
@role_required(Role.ADMIN)
def sales_stats():
    return jsonify(SaleService.stats(current_identity()))


@bp.get("/<sale_id>")
@login_required
def sale_detail(sale_id):
    return jsonify(SaleService.get_sale(current_identity(), sale_id))
