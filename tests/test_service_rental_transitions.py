"""
Rental status machine and the availability changes that ride along with it.
"""

import pytest

from carmarket.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    RentalNotFoundError,
)
from carmarket.services.availability import reconcile_car
from carmarket.services.rental_service import RentalService
from carmarket.utils.constants import Availability, RentalStatus, Role

PHONE = "+97336123456"


@pytest.fixture
def booked(store, dealer, make_user, seed_car):
    """A rent car with two pending requests from different users."""
    cid = seed_car(dealer.user_id)
    u1, u2 = make_user("u1"), make_user("u2")
    r1 = RentalService.create_rental(u1, cid, "2024-01-01", "2024-01-03", PHONE)
    r2 = RentalService.create_rental(u2, cid, "2024-01-02", "2024-01-05", PHONE)
    return cid, u1, u2, r1["rental_id"], r2["rental_id"]


def test_approve_rents_car_and_rejects_competing_requests(store, dealer, booked):
    cid, _, _, r1, r2 = booked

    rental = RentalService.set_status(dealer, r1, RentalStatus.APPROVED)

    assert rental["status"] == RentalStatus.APPROVED
    assert store.get_rental(r2)["status"] == RentalStatus.REJECTED
    assert store.get_car(cid)["availability"] == Availability.RENTED


def test_second_approval_fails_after_cascade(dealer, booked):
    _, _, _, r1, r2 = booked
    RentalService.set_status(dealer, r1, RentalStatus.APPROVED)

    with pytest.raises(InvalidStateError):
        RentalService.set_status(dealer, r2, RentalStatus.APPROVED)


def test_approve_refused_while_another_rental_is_approved(store, dealer, booked):
    cid, _, _, r1, r2 = booked
    # simulate a ledger where r2 stayed pending next to an approved r1
    store.update_rental(r1, {"status": RentalStatus.APPROVED})

    with pytest.raises(ConflictError):
        RentalService.set_status(dealer, r2, RentalStatus.APPROVED)
    assert store.get_rental(r2)["status"] == RentalStatus.PENDING


def test_rejecting_approved_rental_frees_car(store, dealer, booked):
    cid, _, _, r1, _ = booked
    RentalService.set_status(dealer, r1, RentalStatus.APPROVED)

    RentalService.set_status(dealer, r1, RentalStatus.REJECTED)

    assert store.get_rental(r1)["status"] == RentalStatus.REJECTED
    assert store.get_car(cid)["availability"] == Availability.AVAILABLE


def test_rejecting_keeps_car_rented_while_another_approval_holds_it(store, dealer, booked):
    cid, _, _, r1, r2 = booked
    RentalService.set_status(dealer, r1, RentalStatus.APPROVED)
    # an approved rental that predates the single-approval rule
    store.update_rental(r2, {"status": RentalStatus.APPROVED})

    RentalService.set_status(dealer, r1, RentalStatus.REJECTED)

    assert store.get_car(cid)["availability"] == Availability.RENTED


def test_complete_frees_car(store, dealer, booked):
    cid, _, _, r1, _ = booked
    RentalService.set_status(dealer, r1, RentalStatus.APPROVED)

    rental = RentalService.set_status(dealer, r1, RentalStatus.COMPLETED)

    assert rental["status"] == RentalStatus.COMPLETED
    assert store.get_car(cid)["availability"] == Availability.AVAILABLE


def test_rejecting_pending_request_leaves_car_alone(store, dealer, booked):
    cid, _, _, r1, _ = booked
    RentalService.set_status(dealer, r1, RentalStatus.REJECTED)
    assert store.get_car(cid)["availability"] == Availability.AVAILABLE


@pytest.mark.parametrize("status", ["cancelled", "pending", "returned", ""])
def test_unknown_or_requester_only_status_is_invalid_input(dealer, booked, status):
    _, _, _, r1, _ = booked
    with pytest.raises(InvalidInputError):
        RentalService.set_status(dealer, r1, status)


def test_pending_rental_cannot_be_completed(dealer, booked):
    _, _, _, r1, _ = booked
    with pytest.raises(InvalidStateError):
        RentalService.set_status(dealer, r1, RentalStatus.COMPLETED)


def test_terminal_rental_stays_terminal(store, dealer, booked):
    _, _, _, r1, _ = booked
    RentalService.set_status(dealer, r1, RentalStatus.REJECTED)
    for status in (RentalStatus.APPROVED, RentalStatus.REJECTED, RentalStatus.COMPLETED):
        with pytest.raises(InvalidStateError):
            RentalService.set_status(dealer, r1, status)
    assert store.get_rental(r1)["status"] == RentalStatus.REJECTED


def test_other_dealer_cannot_manage_rental(make_user, booked):
    _, _, _, r1, _ = booked
    other = make_user("other-dealer", Role.DEALER)
    with pytest.raises(ForbiddenError):
        RentalService.set_status(other, r1, RentalStatus.APPROVED)


def test_admin_can_manage_any_rental(store, admin, booked):
    cid, _, _, r1, _ = booked
    RentalService.set_status(admin, r1, RentalStatus.APPROVED)
    assert store.get_car(cid)["availability"] == Availability.RENTED


def test_requester_cancels_approved_rental_and_car_is_available(store, dealer, booked):
    cid, u1, _, r1, _ = booked
    RentalService.set_status(dealer, r1, RentalStatus.APPROVED)

    rental = RentalService.cancel_rental(u1, r1)

    assert rental["status"] == RentalStatus.CANCELLED
    assert store.get_car(cid)["availability"] == Availability.AVAILABLE


def test_only_requester_can_cancel(dealer, booked):
    _, _, u2, r1, _ = booked
    with pytest.raises(ForbiddenError):
        RentalService.cancel_rental(u2, r1)
    with pytest.raises(ForbiddenError):
        RentalService.cancel_rental(dealer, r1)


def test_cancelled_rental_cannot_be_cancelled_again(booked):
    _, u1, _, r1, _ = booked
    RentalService.cancel_rental(u1, r1)
    with pytest.raises(InvalidStateError):
        RentalService.cancel_rental(u1, r1)


def test_hard_delete_leaves_car_rented_until_reconciled(store, dealer, booked):
    cid, _, _, r1, _ = booked
    RentalService.set_status(dealer, r1, RentalStatus.APPROVED)

    RentalService.delete_rental(dealer, r1)

    car = store.get_car(cid)
    assert store.get_rental(r1) is None
    assert r1 not in car["rentals"]
    assert car["availability"] == Availability.RENTED

    assert reconcile_car(store, cid) is True
    assert store.get_car(cid)["availability"] == Availability.AVAILABLE


def test_plain_user_cannot_hard_delete(booked):
    _, u1, _, r1, _ = booked
    with pytest.raises(ForbiddenError):
        RentalService.delete_rental(u1, r1)


def test_missing_rental_is_not_found(dealer):
    with pytest.raises(RentalNotFoundError):
        RentalService.set_status(dealer, "missing", RentalStatus.APPROVED)


def test_dealer_listing_includes_requests_on_own_cars_only(dealer, make_user, seed_car, booked):
    other = make_user("other-dealer", Role.DEALER)
    other_car = seed_car(other.user_id)
    RentalService.create_rental(make_user("u3"), other_car, "2024-01-01", "2024-01-02", PHONE)

    rows = RentalService.rentals_for_dealer(dealer)

    assert {r["rental_id"] for r in rows} == {booked[3], booked[4]}
    assert all(r["car"]["dealer_id"] == dealer.user_id for r in rows)


def test_user_sees_own_rentals(booked):
    _, u1, _, r1, _ = booked
    rows = RentalService.rentals_for_user(u1)
    assert [r["rental_id"] for r in rows] == [r1]
    assert rows[0]["username"] == "u1"


@pytest.mark.parametrize("status", [1, None, ["approved"]])
def test_non_string_status_is_invalid_input(store, dealer, booked, status):
    _, _, _, r1, _ = booked
    with pytest.raises(InvalidInputError):
        RentalService.set_status(dealer, r1, status)
    assert store.get_rental(r1)["status"] == RentalStatus.PENDING
