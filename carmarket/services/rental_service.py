"""Rental booking lifecycle and the availability rules attached to it."""

import logging
from typing import Optional

from carmarket.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidDateRangeError,
    InvalidInputError,
    InvalidStateError,
    RentalNotFoundError,
)
from carmarket.models.car import CarListing
from carmarket.models.store import Store
from carmarket.models.user import Identity
from carmarket.services.availability import (
    approved_rentals,
    commit_car,
    derive_availability,
    reconcile_all,
    unit_of_work,
)
from carmarket.services.common import (
    _store,
    load_car,
    require_admin,
    require_car_manager,
    require_dealer,
    require_identity,
    require_phone,
    text,
)
from carmarket.utils.constants import Availability, RentalStatus
from carmarket.utils.dates import inclusive_days, to_market_date

logger = logging.getLogger(__name__)

# Dealer/admin driven transitions: target status -> statuses it can be reached from.
# Cancellation belongs to the requester and is handled by cancel_rental.
DEALER_TRANSITIONS = {
    RentalStatus.APPROVED: frozenset({RentalStatus.PENDING}),
    RentalStatus.REJECTED: frozenset({RentalStatus.PENDING, RentalStatus.APPROVED}),
    RentalStatus.COMPLETED: frozenset({RentalStatus.APPROVED}),
}

CAR_SUMMARY_FIELDS = ("car_id", "brand", "model", "year", "location", "dealer_id", "images")


def _load_rental(st: Store, rental_id) -> dict:
    rental = st.get_rental(rental_id)
    if rental is None:
        raise RentalNotFoundError(f"Error: rental with ID '{rental_id}' not found")
    return rental


def _parse_range(start, end):
    """Both dates must parse and ``start <= end``; single-day rentals are allowed."""
    try:
        d1 = to_market_date(start)
        d2 = to_market_date(end)
    except ValueError:
        raise InvalidDateRangeError("Invalid rental dates.") from None
    if d1 > d2:
        raise InvalidDateRangeError("Invalid rental dates: start date is after end date.")
    return d1, d2


def _released_availability(st: Store, car: dict, rental_id: str) -> dict:
    """
    Car updates after ``rental_id`` stopped being an active booking: the car is
    available again unless another approved rental still holds it.
    """
    if derive_availability(st, car, exclude_rental_id=rental_id) != Availability.AVAILABLE:
        return {}
    if car.get("availability") == Availability.AVAILABLE:
        return {}
    return {"availability": Availability.AVAILABLE}


def _with_details(st: Store, rental: dict) -> dict:
    """Attach a small car summary and the requester's username to a rental."""
    car = st.get_car(rental.get("car_id"))
    user = st.get_user(rental.get("user_id")) or {}
    out = dict(rental)
    out["car"] = {k: car.get(k) for k in CAR_SUMMARY_FIELDS} if car else None
    out["username"] = user.get("username")
    return out


class RentalService:
    """
    Rental requests and their status machine:

        pending  --approve--> approved --complete--> completed
        pending  --reject-->  rejected
        approved --reject-->  rejected
        pending|approved --cancel (requester)--> cancelled

    rejected, completed and cancelled are terminal.
    """

    @staticmethod
    def create_rental(
            identity: Optional[Identity],
            car_id: str,
            start_date,
            end_date,
            user_phone: Optional[str],
            store: Optional[Store] = None,
    ) -> dict:
        """
        Create a pending rental request. Checks run in order and the first
        failure wins: car exists, phone format, date range, no pending request
        from this user for the car, no approved rental on the car, car listed
        for rent. A request never changes the car's availability.
        """
        identity = require_identity(identity)
        st = store or _store()

        with unit_of_work(st):
            car = load_car(st, car_id)
            phone = require_phone(user_phone, "Invalid phone number.")
            d1, d2 = _parse_range(start_date, end_date)

            car_id = car["car_id"]
            if st.find_one("rentals", user_id=identity.user_id, car_id=car_id, status=RentalStatus.PENDING):
                raise ConflictError("You already have a pending rental request for this car.")
            if approved_rentals(st, car_id):
                raise ConflictError("Car is already rented.")

            listing = CarListing.from_dict(car)
            if not listing.is_rentable:
                raise InvalidStateError("This car is not listed for rent.")

            days = inclusive_days(d1, d2)
            rid = st.create_rental({
                "user_id": identity.user_id,
                "car_id": car_id,
                "start_date": d1.isoformat(),
                "end_date": d2.isoformat(),
                "days": days,
                "price_per_day": listing.price_per_day,
                "total_price": listing.price_for_days(days),
                "status": RentalStatus.PENDING,
                "user_phone": phone,
            })

            # car last
            commit_car(st, car_id, lambda c: {"rentals": list(c.get("rentals") or []) + [rid]})

        logger.info("Rental %s requested by %s for car %s (%d days)", rid, identity.user_id, car_id, days)
        return st.get_rental(rid)

    @staticmethod
    def set_status(identity: Optional[Identity], rental_id: str, status: str,
                   store: Optional[Store] = None) -> dict:
        """
        Approve, reject or complete a rental (the car's dealer or an admin).

        Approving marks the car rented and rejects every other pending request
        for it. Rejecting or completing frees the car unless another approved
        rental still holds it.
        """
        identity = require_identity(identity)
        status = text(status).lower()
        if status not in DEALER_TRANSITIONS:
            raise InvalidInputError("Invalid rental status.")
        st = store or _store()

        rejected = []
        with unit_of_work(st):
            rental = _load_rental(st, rental_id)
            car = load_car(st, rental["car_id"])
            require_car_manager(identity, car, "You can only manage rentals of your own cars.")

            current = rental.get("status")
            if current not in DEALER_TRANSITIONS[status]:
                raise InvalidStateError(f"A {current} rental cannot be {status}.")

            car_id = car["car_id"]
            if status == RentalStatus.APPROVED and approved_rentals(st, car_id, exclude_rental_id=rental_id):
                raise ConflictError("Car is already rented.")

            if not st.update_rental(rental_id, {"status": status}, expected_status=current):
                raise ConflictError("Rental was changed by another request, please try again.")

            if status == RentalStatus.APPROVED:
                rejected = st.update_rentals(
                    lambda r: (r.get("car_id") == car_id
                               and r.get("status") == RentalStatus.PENDING
                               and r.get("rental_id") != rental_id),
                    {"status": RentalStatus.REJECTED},
                )
                commit_car(st, car_id, lambda c: {"availability": Availability.RENTED})
            else:
                commit_car(st, car_id, lambda c: _released_availability(st, c, rental_id))

        logger.info(
            "Rental %s %s -> %s by %s (car %s, %d competing requests rejected)",
            rental_id, current, status, identity.user_id, car_id, len(rejected),
        )
        return st.get_rental(rental_id)

    @staticmethod
    def cancel_rental(identity: Optional[Identity], rental_id: str, store: Optional[Store] = None) -> dict:
        """
        The requester cancels a pending or approved rental. The car is set
        available regardless of any other approved rental.
        """
        identity = require_identity(identity)
        st = store or _store()

        with unit_of_work(st):
            rental = _load_rental(st, rental_id)
            if str(rental.get("user_id")) != str(identity.user_id):
                raise ForbiddenError("You can only cancel your own rentals.")

            current = rental.get("status")
            if current not in RentalStatus.ACTIVE:
                raise InvalidStateError("Only pending or approved rentals can be cancelled.")

            if not st.update_rental(rental_id, {"status": RentalStatus.CANCELLED}, expected_status=current):
                raise ConflictError("Rental was changed by another request, please try again.")

            if st.get_car(rental["car_id"]) is not None:
                commit_car(st, rental["car_id"], lambda c: {"availability": Availability.AVAILABLE})

        logger.info("Rental %s cancelled by requester %s (was %s)", rental_id, identity.user_id, current)
        return st.get_rental(rental_id)

    @staticmethod
    def delete_rental(identity: Optional[Identity], rental_id: str, store: Optional[Store] = None) -> dict:
        """
        Hard delete by the car's dealer or an admin. Availability is left as
        it is; a deleted approved rental leaves the car rented until the next
        reconciliation.
        """
        identity = require_identity(identity)
        st = store or _store()

        with unit_of_work(st):
            rental = _load_rental(st, rental_id)
            car = st.get_car(rental.get("car_id"))
            if car is not None:
                require_car_manager(identity, car, "You can only delete rentals of your own cars.")
            else:
                require_admin(identity)

            st.delete_rental(rental_id)
            if car is not None:
                commit_car(st, car["car_id"],
                           lambda c: {"rentals": [x for x in (c.get("rentals") or []) if x != rental_id]})

        logger.info("Rental %s deleted by %s", rental_id, identity.user_id)
        return rental

    # --------------- Queries ---------------
    @staticmethod
    def get_rental(identity: Optional[Identity], rental_id: str, store: Optional[Store] = None) -> dict:
        identity = require_identity(identity)
        st = store or _store()
        rental = _load_rental(st, rental_id)
        car = st.get_car(rental.get("car_id")) or {}
        if not (identity.is_admin or rental.get("user_id") == identity.user_id or identity.can_manage(car)):
            raise ForbiddenError("You cannot view this rental.")
        return _with_details(st, rental)

    @staticmethod
    def rentals_for_user(identity: Optional[Identity], store: Optional[Store] = None) -> list:
        """Return this user's rentals with car info attached, newest first."""
        identity = require_identity(identity)
        st = store or _store()
        out = [_with_details(st, r) for r in st.find("rentals", user_id=identity.user_id)]
        out.sort(key=lambda x: x.get("start_date") or "", reverse=True)
        return out

    @staticmethod
    def rentals_for_dealer(identity: Optional[Identity], store: Optional[Store] = None) -> list:
        """Rentals requested on any of the dealer's cars."""
        identity = require_dealer(identity)
        st = store or _store()
        car_ids = {c["car_id"] for c in st.find("cars", dealer_id=identity.user_id)}
        out = [_with_details(st, r) for r in st.find("rentals", lambda r: r.get("car_id") in car_ids)]
        out.sort(key=lambda x: x.get("created_at") or "", reverse=True)
        return out

    @staticmethod
    def all_rentals(identity: Optional[Identity], store: Optional[Store] = None) -> list:
        require_admin(identity)
        st = store or _store()
        out = [_with_details(st, r) for r in st.find("rentals")]
        out.sort(key=lambda x: x.get("created_at") or "", reverse=True)
        return out

    @staticmethod
    def reconcile_availability(identity: Optional[Identity], store: Optional[Store] = None) -> list:
        """Admin-triggered consistency sweep over every car."""
        require_admin(identity)
        return reconcile_all(store or _store())
