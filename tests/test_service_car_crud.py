"""
Listing management on the service layer: who may create, edit and delete a
car, image limits, and the guards around rent/sale listings.
"""

import pytest

from carmarket.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from carmarket.services.car_service import CarService
from carmarket.services.rental_service import RentalService
from carmarket.utils.constants import Availability, Role

PHONE = "+97336123456"


def listing(**overrides):
    payload = {
        "brand": "Toyota",
        "model": "Land Cruiser",
        "year": "2022",
        "type": "SUV",
        "location": "Manama",
        "mileage": "12000",
        "listing_type": "rent",
        "price_per_day": "45",
        "dealer_phone": PHONE,
    }
    payload.update(overrides)
    return payload


def test_dealer_creates_rent_listing(store, images, dealer, upload):
    car = CarService.create_car(dealer, listing(), [upload("a.jpg"), upload("b.png")])

    assert car["dealer_id"] == dealer.user_id
    assert car["availability"] == Availability.AVAILABLE
    assert car["for_sale"] is False
    assert car["price_per_day"] == 45
    assert car["sale_price"] is None
    assert car["is_sold"] is False
    assert [img["handle"] for img in car["images"]] == images.uploaded


def test_payload_cannot_set_availability_or_sale_state(dealer, upload):
    car = CarService.create_car(
        dealer, listing(availability="rented", is_sold="true", buyer_id="x"), [upload()],
    )
    assert car["availability"] == Availability.AVAILABLE
    assert car["is_sold"] is False
    assert car["buyer_id"] is None


def test_plain_user_cannot_list_cars(make_user, upload):
    with pytest.raises(ForbiddenError):
        CarService.create_car(make_user("amal"), listing(), [upload()])


@pytest.mark.parametrize("field,value", [
    ("brand", "Trabant"),
    ("type", "Tank"),
    ("year", "1999"),
    ("price_per_day", "-1"),
    ("dealer_phone", "12345"),
    ("listing_type", "lease"),
])
def test_invalid_listing_fields(dealer, upload, field, value):
    with pytest.raises(InvalidInputError):
        CarService.create_car(dealer, listing(**{field: value}), [upload()])


def test_image_count_limits(dealer, upload):
    with pytest.raises(InvalidInputError):
        CarService.create_car(dealer, listing(), [])
    with pytest.raises(InvalidInputError):
        CarService.create_car(dealer, listing(), [upload(f"{i}.jpg") for i in range(6)])


def test_switching_to_sale_with_active_rentals_conflicts(store, dealer, make_user, seed_car):
    cid = seed_car(dealer.user_id, images=[{"url": "/uploads/a.jpg", "handle": "a.jpg"}])
    RentalService.create_rental(make_user("renter"), cid, "2024-01-01", "2024-01-02", PHONE)

    with pytest.raises(ConflictError):
        CarService.update_car(dealer, cid, listing(listing_type="sale", sale_price="9000"))
    assert store.get_car(cid)["for_sale"] is False


def test_update_swaps_images_and_keeps_availability(store, images, dealer, seed_car, upload):
    cid = seed_car(dealer.user_id, availability=Availability.RENTED,
                   images=[{"url": "/uploads/a.jpg", "handle": "a.jpg"}])

    car = CarService.update_car(dealer, cid, {"model": "Camry"}, files=[upload("n.jpg")],
                                remove_handles=["a.jpg"])

    assert car["model"] == "Camry"
    assert car["availability"] == Availability.RENTED
    assert [img["handle"] for img in car["images"]] == images.uploaded
    assert images.deleted == ["a.jpg"]


def test_sold_car_cannot_be_edited(dealer, seed_car):
    cid = seed_car(dealer.user_id, for_sale=True, is_sold=True, sale_price=1000,
                   images=[{"url": "/uploads/a.jpg", "handle": "a.jpg"}])
    with pytest.raises(InvalidStateError):
        CarService.update_car(dealer, cid, {"model": "Other"})


def test_other_dealer_cannot_edit_or_delete(make_user, dealer, seed_car):
    cid = seed_car(dealer.user_id, images=[{"url": "/uploads/a.jpg", "handle": "a.jpg"}])
    other = make_user("other-dealer", Role.DEALER)
    with pytest.raises(ForbiddenError):
        CarService.update_car(other, cid, {"model": "Other"})
    with pytest.raises(ForbiddenError):
        CarService.delete_car(other, cid)


def test_delete_removes_rentals_then_car_and_releases_images(store, images, admin, dealer, make_user, seed_car):
    cid = seed_car(dealer.user_id, images=[{"url": "/uploads/a.jpg", "handle": "a.jpg"}])
    RentalService.create_rental(make_user("renter"), cid, "2024-01-01", "2024-01-02", PHONE)

    result = CarService.delete_car(admin, cid)

    assert result == {"rentals": 1, "cars": 1}
    assert store.get_car(cid) is None
    assert store.count("rentals", car_id=cid) == 0
    assert images.deleted == ["a.jpg"]


def test_reviews_add_and_delete(store, make_user, dealer, seed_car):
    cid = seed_car(dealer.user_id)
    reviewer, stranger = make_user("reviewer"), make_user("stranger")

    review = CarService.add_review(reviewer, cid, "5", "Spotless")
    assert store.get_car(cid)["reviews"][0]["rating"] == 5

    with pytest.raises(ForbiddenError):
        CarService.delete_review(stranger, cid, review["review_id"])
    CarService.delete_review(reviewer, cid, review["review_id"])
    assert store.get_car(cid)["reviews"] == []

    with pytest.raises(NotFoundError):
        CarService.delete_review(reviewer, cid, review["review_id"])


@pytest.mark.parametrize("rating", ["0", "6", "great", None])
def test_review_rating_range(make_user, dealer, seed_car, rating):
    cid = seed_car(dealer.user_id)
    with pytest.raises(InvalidInputError):
        CarService.add_review(make_user("reviewer"), cid, rating)


def test_get_car_with_reconcile_repairs_stale_availability(store, dealer, seed_car):
    cid = seed_car(dealer.user_id, availability=Availability.RENTED)
    assert CarService.get_car(cid)["availability"] == Availability.RENTED
    assert CarService.get_car(cid, reconcile=True)["availability"] == Availability.AVAILABLE
