"""Dealer-role requests and the cascades that follow a role change."""

import logging
from typing import Optional

from carmarket.exceptions import (
    ApprovalNotFoundError,
    ConflictError,
    InvalidInputError,
    InvalidStateError,
    UserNotFoundError,
)
from carmarket.models.store import Store, now_iso
from carmarket.models.user import Identity
from carmarket.services.availability import unit_of_work
from carmarket.services.car_service import purge_cars
from carmarket.services.common import _store, require_admin, require_identity, require_text, text
from carmarket.services.image_storage import _images, release_images
from carmarket.utils.constants import ApprovalStatus, Role
from carmarket.utils.security import public_user

logger = logging.getLogger(__name__)


class ApprovalService:
    """Dealer request workflow: submit, review, downgrade."""

    @staticmethod
    def request_dealer(identity: Optional[Identity], phone: Optional[str], description: Optional[str],
                       store: Optional[Store] = None) -> dict:
        identity = require_identity(identity)
        st = store or _store()

        phone = require_text(phone, "Phone")
        description = require_text(description, "Description")

        with unit_of_work(st):
            user = st.get_user(identity.user_id)
            if user is None:
                raise UserNotFoundError()
            if user.get("role") == Role.DEALER:
                raise ConflictError("You are already a dealer.")
            if st.find_one("approvals", user_id=identity.user_id, status=ApprovalStatus.PENDING):
                raise ConflictError("Your request is already pending.")

            approval_id = st.create_approval({
                "user_id": identity.user_id,
                "phone": phone,
                "description": description,
                "status": ApprovalStatus.PENDING,
                "admin_id": None,
                "approved_at": None,
            })

        logger.info("Dealer request %s submitted by %s", approval_id, identity.user_id)
        return st.get_approval(approval_id)

    @staticmethod
    def set_status(identity: Optional[Identity], approval_id: str, status: str,
                   store: Optional[Store] = None) -> dict:
        """
        Approve or reject a pending request (admin).
        Approving makes the requester a dealer; rejecting leaves the role alone.
        """
        identity = require_admin(identity)
        status = text(status).lower()
        if status not in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED):
            raise InvalidInputError("Invalid status.")
        st = store or _store()

        with unit_of_work(st):
            approval = st.get_approval(approval_id)
            if approval is None:
                raise ApprovalNotFoundError()
            if approval.get("status") != ApprovalStatus.PENDING:
                raise InvalidStateError(f"Request was already {approval.get('status')}.")

            st.update_approval(
                approval_id,
                status=status,
                admin_id=identity.user_id,
                approved_at=now_iso() if status == ApprovalStatus.APPROVED else None,
            )
            if status == ApprovalStatus.APPROVED:
                if not st.update_user(approval["user_id"], role=Role.DEALER):
                    raise UserNotFoundError("Error: requesting user no longer exists")

        logger.info("Dealer request %s %s by admin %s", approval_id, status, identity.user_id)
        return st.get_approval(approval_id)

    @staticmethod
    def pending_requests(identity: Optional[Identity], store: Optional[Store] = None) -> list:
        """Pending requests of users who are not dealers yet, with their username."""
        require_admin(identity)
        st = store or _store()
        out = []
        for a in st.find("approvals", status=ApprovalStatus.PENDING):
            user = st.get_user(a.get("user_id"))
            if not user or user.get("role") == Role.DEALER:
                continue
            out.append({**a, "username": user.get("username"), "role": user.get("role")})
        out.sort(key=lambda a: a.get("created_at") or "")
        return out

    @staticmethod
    def delete_approval(identity: Optional[Identity], approval_id: str, store: Optional[Store] = None) -> None:
        require_admin(identity)
        st = store or _store()
        if not st.delete_approval(approval_id):
            raise ApprovalNotFoundError()

    @staticmethod
    def approved_dealers(identity: Optional[Identity], store: Optional[Store] = None) -> list:
        require_admin(identity)
        st = store or _store()
        return [public_user(u) for u in st.find("users", role=Role.DEALER)]

    @staticmethod
    def cascade_dealer_downgrade(identity: Optional[Identity], user_id: str,
                                 store: Optional[Store] = None, images=None) -> dict:
        """
        Turn a dealer back into a plain user and remove everything they had
        as a dealer: rentals on their cars, then the cars, then their approval
        records. Irreversible. Returns the affected-record counts.
        """
        identity = require_admin(identity)
        st = store or _store()
        storage = images or _images()

        with unit_of_work(st):
            user = st.get_user(user_id)
            if user is None:
                raise UserNotFoundError()
            if user.get("role") != Role.DEALER:
                raise InvalidStateError("User is not a dealer.")

            st.update_user(user_id, role=Role.USER)
            result = purge_cars(st, st.find("cars", dealer_id=user_id))
            result["approvals"] = st.delete_many("approvals", lambda a: a.get("user_id") == user_id)

        release_images(storage, result.pop("images"))
        logger.warning("Dealer %s downgraded by admin %s: %s", user_id, identity.user_id, result)
        return result
