"""
Keeps a car's ``availability`` consistent with the rentals and the sale that
reference it.

Every operation touching a car and another record follows one discipline:
validate everything first, write the dependent records (rental, bulk
rejections, sale), and write the car last through ``commit_car``, which
re-reads the car and guards the write with the version it read. When the
store offers ``transaction()`` the whole operation runs inside it, so the
writes land together or not at all. Without it the guarded car write and its
retries are the only protection, and two approvals of different rentals for
one car racing each other remain a known risk window.
"""

import logging
from contextlib import nullcontext
from typing import Callable, Optional

from carmarket.config import Config
from carmarket.exceptions import CarNotFoundError, ConflictError
from carmarket.utils.constants import Availability, RentalStatus

logger = logging.getLogger(__name__)


def unit_of_work(st):
    """The store's transaction when it has one, otherwise a no-op scope."""
    tx = getattr(st, "transaction", None)
    if getattr(st, "supports_transactions", False) and callable(tx):
        return tx()
    return nullcontext(st)


def commit_car(st, car_id: str, mutate: Callable[[dict], dict], attempts: Optional[int] = None) -> dict:
    """
    Re-read the car, compute its updates with ``mutate(car)`` and write them
    guarded by the version that was read. A lost race re-reads and retries;
    when attempts run out the caller gets a ConflictError.
    Returns the car as written.
    """
    attempts = attempts or Config.CAR_WRITE_ATTEMPTS
    for attempt in range(1, attempts + 1):
        car = st.get_car(car_id)
        if car is None:
            raise CarNotFoundError(f"Error: car with ID '{car_id}' not found")
        updates = mutate(car)
        if not updates:
            return car
        version = car.get("version", 0)
        if st.update_car(car_id, updates, expected_version=version):
            car.update(updates)
            car["version"] = version + 1
            return car
        logger.warning("Car %s changed during write (attempt %d/%d), retrying", car_id, attempt, attempts)
    raise ConflictError("Car was modified by another request, please try again.")


def approved_rentals(st, car_id: str, exclude_rental_id: Optional[str] = None) -> list:
    return st.find(
        "rentals",
        lambda r: r.get("rental_id") != exclude_rental_id,
        car_id=car_id,
        status=RentalStatus.APPROVED,
    )


def derive_availability(st, car: dict, exclude_rental_id: Optional[str] = None) -> str:
    """
    Availability implied by the ledgers: sold cars are unavailable, a car with
    an approved rental (other than ``exclude_rental_id``) is rented, anything
    else is available.
    """
    if car.get("is_sold"):
        return Availability.UNAVAILABLE
    if approved_rentals(st, car["car_id"], exclude_rental_id):
        return Availability.RENTED
    return Availability.AVAILABLE


def reconcile_car(st, car_id: str) -> bool:
    """
    Self-heal one car from the rental and sale ledgers.
    Returns True when the car record had to be repaired.
    """
    repaired = []

    def mutate(car):
        updates = {}
        approved = approved_rentals(st, car_id)
        if len(approved) > 1:
            logger.error("Car %s has %d approved rentals", car_id, len(approved))

        current = car.get("availability")
        if car.get("is_sold"):
            wanted = Availability.UNAVAILABLE
            if car.get("for_sale"):
                updates["for_sale"] = False
        elif approved:
            wanted = Availability.RENTED
        elif current == Availability.RENTED:
            wanted = Availability.AVAILABLE
        else:
            wanted = current
        if wanted != current:
            updates["availability"] = wanted
        repaired[:] = [updates] if updates else []
        return updates

    with unit_of_work(st):
        commit_car(st, car_id, mutate)

    if repaired:
        logger.warning("Reconciled car %s: %s", car_id, repaired[-1])
    return bool(repaired)


def reconcile_all(st) -> list:
    """Run the consistency check over every car; returns the repaired car ids."""
    fixed = []
    cars = st.find("cars")
    for car in cars:
        try:
            if reconcile_car(st, car["car_id"]):
                fixed.append(car["car_id"])
        except CarNotFoundError:
            # deleted while the sweep was running
            continue
    logger.info("Reconciliation checked %d cars, repaired %d", len(cars), len(fixed))
    return fixed
