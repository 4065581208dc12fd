from __future__ import annotations

import logging
from typing import Optional

from carmarket.exceptions import ConflictError, InvalidInputError, UserNotFoundError
from carmarket.models.store import Store
from carmarket.models.user import Identity
from carmarket.services.availability import reconcile_car, unit_of_work
from carmarket.services.car_service import prune_rental_refs, purge_cars
from carmarket.services.common import _store, require_admin, text
from carmarket.services.image_storage import _images, release_images
from carmarket.utils.constants import RentalStatus, Role
from carmarket.utils.security import generate_hash, public_user

logger = logging.getLogger(__name__)


class UserService:
    """User admin operations (create/delete/role) and registration."""

    @staticmethod
    def register(username: str, password: str, role: str = Role.USER, store: Optional[Store] = None) -> dict:
        st = store or _store()
        username = text(username)
        role = text(role).lower()
        if not username or not isinstance(password, str) or not password:
            raise InvalidInputError("Username and password are required.")
        if role not in Role.ALL:
            raise InvalidInputError("Role must be user/dealer/admin.")
        if st.user_exists(username):
            raise ConflictError("Username already exists.")
        uid = st.create_user(username, generate_hash(password), role)
        return public_user(st.get_user(uid))

    @staticmethod
    def admin_create_user(identity: Optional[Identity], username: str, role: str, password: str,
                          store: Optional[Store] = None) -> dict:
        require_admin(identity)
        return UserService.register(username, password, role, store=store)

    @staticmethod
    def list_users(identity: Optional[Identity], store: Optional[Store] = None) -> list:
        require_admin(identity)
        st = store or _store()
        rows = [public_user(u) for u in st.find("users")]
        rows.sort(key=lambda u: u.get("username") or "")
        return rows

    @staticmethod
    def set_role(identity: Optional[Identity], user_id: str, role: str, store: Optional[Store] = None) -> dict:
        """Direct role change by an admin; no cascade (use the dealer downgrade for that)."""
        require_admin(identity)
        role = text(role).lower()
        if role not in Role.ALL:
            raise InvalidInputError("Invalid role")
        st = store or _store()
        if not st.update_user(user_id, role=role):
            raise UserNotFoundError()
        logger.info("User %s role set to %s", user_id, role)
        return public_user(st.get_user(user_id))

    @staticmethod
    def cascade_user_deletion(identity: Optional[Identity], user_id: str,
                              store: Optional[Store] = None, images=None) -> dict:
        """
        Hard-delete a user with everything that references them: rentals on
        their cars, their cars, rentals they requested, their approval records.
        Returns the affected-record counts.
        """
        identity = require_admin(identity)
        st = store or _store()
        storage = images or _images()

        with unit_of_work(st):
            if st.get_user(user_id) is None:
                raise UserNotFoundError()

            # cars held by this user's approved bookings need their availability re-derived
            held = {r["car_id"] for r in st.find("rentals", user_id=user_id, status=RentalStatus.APPROVED)}

            result = purge_cars(st, st.find("cars", dealer_id=user_id))
            requested = st.find("rentals", user_id=user_id)
            result["rentals"] += st.delete_many("rentals", lambda r: r.get("user_id") == user_id)
            prune_rental_refs(st, requested)
            result["approvals"] = st.delete_many("approvals", lambda a: a.get("user_id") == user_id)
            st.delete_user(user_id)
            result["users"] = 1

        for car_id in held:
            if st.get_car(car_id) is not None:
                reconcile_car(st, car_id)

        release_images(storage, result.pop("images"))
        logger.warning("User %s deleted by admin %s: %s", user_id, identity.user_id, result)
        return result
