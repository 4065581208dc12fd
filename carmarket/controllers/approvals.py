from flask import Blueprint, jsonify

from ..services.approval_service import ApprovalService
from ..utils.constants import Role
from ..utils.decorators import current_identity, login_required, request_payload, role_required

bp = Blueprint("approvals", __name__, url_prefix="/approval")


@bp.post("/request-dealer")
@login_required
def request_dealer():
    data = request_payload()
    approval = ApprovalService.request_dealer(current_identity(), data.get("phone"), data.get("description"))
    return jsonify({"message": "Dealer request submitted", "approval": approval}), 201


@bp.put("/<approval_id>/status")
@role_required(Role.ADMIN)
def update_status(approval_id):
    approval = ApprovalService.set_status(current_identity(), approval_id, request_payload().get("status"))
    return jsonify({"message": f"Request {approval['status']}", "approval": approval})


@bp.get("/pending")
@role_required(Role.ADMIN)
def pending():
    return jsonify(ApprovalService.pending_requests(current_identity()))


@bp.delete("/<approval_id>")
@role_required(Role.ADMIN)
def delete_approval(approval_id):
    ApprovalService.delete_approval(current_identity(), approval_id)
    return jsonify({"message": "Approval deleted"})


@bp.put("/downgrade-dealer/<user_id>")
@role_required(Role.ADMIN)
def downgrade_dealer(user_id):
    """Irreversible: the dealer's cars and every rental on them are deleted."""
    result = ApprovalService.cascade_dealer_downgrade(current_identity(), user_id)
    return jsonify({"message": "Dealer downgraded to user", "deleted": result})


@bp.get("/approved-dealers")
@role_required(Role.ADMIN)
def approved_dealers():
    return jsonify(ApprovalService.approved_dealers(current_identity()))
