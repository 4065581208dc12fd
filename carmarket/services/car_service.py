from __future__ import annotations

import logging
import uuid
from typing import Iterable, Optional

from carmarket.config import Config
from carmarket.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    MarketError,
    NotFoundError,
)
from carmarket.models.car import CarListing
from carmarket.models.store import Store, now_iso
from carmarket.models.user import Identity
from carmarket.services.availability import commit_car, reconcile_car, unit_of_work
from carmarket.services.common import (
    _lc,
    _store,
    load_car,
    require_car_manager,
    require_dealer,
    require_identity,
    require_phone,
    require_text,
    to_bool,
    to_float_safe,
    text,
)
from carmarket.services.image_storage import _images, release_images, upload_images
from carmarket.utils.constants import (
    CAR_BRANDS,
    CAR_TYPES,
    Availability,
    ListingType,
    RentalStatus,
    allowed_years,
)

logger = logging.getLogger(__name__)


def _to_int_safe(value) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _non_negative(value, field: str) -> float:
    num = to_float_safe(value)
    if num is None or num < 0:
        raise InvalidInputError(f"{field} must be a non-negative number.")
    return num


def _build_listing(payload: dict, base: Optional[dict] = None) -> dict:
    """
    Validate listing fields from a form payload, falling back to ``base``
    (the stored car) for anything the payload leaves out. Only listing
    fields come out of here: availability, sale state, rentals and reviews
    are never taken from a payload.
    """
    base = base or {}

    def pick(key):
        value = payload.get(key)
        return base.get(key) if value is None or value == "" else value

    brand = str(pick("brand") or "").strip()
    if brand not in CAR_BRANDS:
        raise InvalidInputError("Unknown car brand.")

    model = require_text(pick("model"), "Model")

    year = _to_int_safe(pick("year"))
    if year not in allowed_years():
        raise InvalidInputError("Invalid car year.")

    car_type = str(pick("type") or "").strip()
    if car_type not in CAR_TYPES:
        raise InvalidInputError("Unknown car type.")

    listing_type = text(payload.get("listing_type")).lower()
    if not listing_type and base:
        listing_type = ListingType.SALE if base.get("for_sale") else ListingType.RENT
    if listing_type not in (ListingType.RENT, ListingType.SALE):
        raise InvalidInputError("Listing type must be 'rent' or 'sale'.")

    mileage = pick("mileage")
    if mileage is not None:
        mileage = _non_negative(mileage, "Mileage")

    if listing_type == ListingType.RENT:
        price_per_day, sale_price = _non_negative(pick("price_per_day"), "Price per day"), None
    else:
        price_per_day, sale_price = None, _non_negative(pick("sale_price"), "Sale price")

    return {
        "brand": brand,
        "model": model,
        "year": year,
        "type": car_type,
        "location": str(pick("location") or "").strip(),
        "mileage": mileage,
        "for_sale": listing_type == ListingType.SALE,
        "price_per_day": price_per_day,
        "sale_price": sale_price,
        "is_compatible": to_bool(pick("is_compatible")),
        "dealer_phone": require_phone(pick("dealer_phone"), "Invalid phone number."),
    }


def _count_files(files) -> int:
    return sum(1 for f in (files or []) if f is not None and getattr(f, "filename", ""))


def prune_rental_refs(st: Store, rentals: list) -> None:
    """Drop deleted rental ids from the ``rentals`` list of every car that still exists."""
    by_car = {}
    for r in rentals:
        by_car.setdefault(r.get("car_id"), set()).add(r["rental_id"])
    for car_id, gone in by_car.items():
        if st.get_car(car_id) is None:
            continue
        commit_car(st, car_id, lambda car, gone=gone: _without_rentals(car, gone))


def _without_rentals(car: dict, gone: set) -> dict:
    kept = [rid for rid in car.get("rentals") or [] if rid not in gone]
    if len(kept) == len(car.get("rentals") or []):
        return {}
    return {"rentals": kept}


def purge_cars(st: Store, cars: list) -> dict:
    """
    Delete the given cars and every rental referencing them, rentals first so
    no rental is left pointing at a missing car. Caller owns the unit of work
    and releases ``images`` once it has committed.
    """
    car_ids = {c["car_id"] for c in cars}
    doomed = st.find("rentals", lambda r: r.get("car_id") in car_ids)
    rentals = st.delete_many("rentals", lambda r: r.get("car_id") in car_ids)
    deleted = st.delete_many("cars", lambda c: c.get("car_id") in car_ids)
    prune_rental_refs(st, doomed)
    images = [img for c in cars for img in (c.get("images") or [])]
    return {"rentals": rentals, "cars": deleted, "images": images}


class CarService:
    """Car catalogue: listings, reviews and read-only queries."""

    # --------------- Listings ---------------
    @staticmethod
    def create_car(identity: Optional[Identity], payload: dict, files: Iterable = (),
                   store: Optional[Store] = None, images=None) -> dict:
        """Create a listing for the calling dealer with 1..MAX_IMAGES photos."""
        identity = require_dealer(identity)
        st = store or _store()
        storage = images or _images()

        fields = _build_listing(payload)
        n = _count_files(files)
        if n == 0:
            raise InvalidInputError("At least one image is required.")
        if n > Config.MAX_IMAGES:
            raise InvalidInputError(f"At most {Config.MAX_IMAGES} images are allowed.")

        uploaded = upload_images(storage, files)
        car_id = st.create_car({
            **fields,
            "dealer_id": identity.user_id,
            "availability": Availability.AVAILABLE,
            "is_sold": False,
            "buyer_id": None,
            "images": uploaded,
        })
        logger.info("Car %s listed by dealer %s (%s)", car_id, identity.user_id,
                    "sale" if fields["for_sale"] else "rent")
        return st.get_car(car_id)

    @staticmethod
    def update_car(identity: Optional[Identity], car_id: str, payload: dict, files: Iterable = (),
                   remove_handles: Iterable = (), store: Optional[Store] = None, images=None) -> dict:
        """
        Edit a listing (owner or admin). Listing a rent car for sale is refused
        while it has pending or approved rentals. Sold cars cannot be edited.
        """
        identity = require_identity(identity)
        st = store or _store()
        storage = images or _images()

        car = load_car(st, car_id)
        require_car_manager(identity, car)
        if car.get("is_sold"):
            raise InvalidStateError("Sold cars cannot be edited.")

        fields = _build_listing(payload, base=car)
        remove = {h for h in (remove_handles or []) if h}
        kept = [img for img in car.get("images") or [] if img.get("handle") not in remove]
        total = len(kept) + _count_files(files)
        if total == 0:
            raise InvalidInputError("At least one image is required.")
        if total > Config.MAX_IMAGES:
            raise InvalidInputError(f"At most {Config.MAX_IMAGES} images are allowed.")

        uploaded = upload_images(storage, files)

        def mutate(c):
            if c.get("is_sold"):
                raise InvalidStateError("Sold cars cannot be edited.")
            images_now = [img for img in c.get("images") or [] if img.get("handle") not in remove]
            return {**fields, "images": images_now + uploaded}

        try:
            with unit_of_work(st):
                if fields["for_sale"] and not car.get("for_sale"):
                    active = st.find("rentals", lambda r: r.get("status") in RentalStatus.ACTIVE,
                                     car_id=car["car_id"])
                    if active:
                        raise ConflictError("Car has pending or approved rentals and cannot be listed for sale.")
                updated = commit_car(st, car["car_id"], mutate)
        except MarketError:
            release_images(storage, uploaded)
            raise

        release_images(storage, [img for img in car.get("images") or [] if img.get("handle") in remove])
        return updated

    @staticmethod
    def delete_car(identity: Optional[Identity], car_id: str, store: Optional[Store] = None,
                   images=None) -> dict:
        """Delete a listing (owner or admin) with its rentals, then release its images."""
        identity = require_identity(identity)
        st = store or _store()
        storage = images or _images()

        with unit_of_work(st):
            car = load_car(st, car_id)
            require_car_manager(identity, car,
                                "Unauthorized: You can only delete your own cars unless you're an admin.")
            result = purge_cars(st, [car])

        released = release_images(storage, result.pop("images"))
        logger.info("Car %s deleted by %s (%d rentals removed, %d images released)",
                    car_id, identity.user_id, result["rentals"], released)
        return result

    # --------------- Reviews ---------------
    @staticmethod
    def add_review(identity: Optional[Identity], car_id: str, rating, comment: Optional[str] = None,
                   store: Optional[Store] = None) -> dict:
        identity = require_identity(identity)
        st = store or _store()

        value = _to_int_safe(rating)
        if value is None or not 1 <= value <= 5:
            raise InvalidInputError("Rating must be between 1 and 5.")

        review = {
            "review_id": uuid.uuid4().hex,
            "user_id": identity.user_id,
            "rating": value,
            "comment": text(comment),
            "created_at": now_iso(),
        }
        car = load_car(st, car_id)
        with unit_of_work(st):
            commit_car(st, car["car_id"], lambda c: {"reviews": list(c.get("reviews") or []) + [review]})
        return review

    @staticmethod
    def delete_review(identity: Optional[Identity], car_id: str, review_id: str,
                      store: Optional[Store] = None) -> None:
        identity = require_identity(identity)
        st = store or _store()

        car = load_car(st, car_id)
        review = next((r for r in car.get("reviews") or [] if r.get("review_id") == review_id), None)
        if review is None:
            raise NotFoundError("Error: review not found")
        if not identity.is_admin and review.get("user_id") != identity.user_id:
            raise ForbiddenError("Unauthorized: You can only delete your own reviews unless you're an admin.")

        with unit_of_work(st):
            commit_car(st, car["car_id"], lambda c: {
                "reviews": [r for r in c.get("reviews") or [] if r.get("review_id") != review_id],
            })

    # --------------- Queries (read-only) ---------------
    @staticmethod
    def get_car(car_id: str, reconcile: bool = False, store: Optional[Store] = None) -> dict:
        """Return a car dict by ID or raise CarNotFoundError; optionally self-heal it first."""
        st = store or _store()
        if reconcile and st.get_car(car_id) is not None:
            reconcile_car(st, car_id)
        return load_car(st, car_id)

    @staticmethod
    def filter_cars(brand=None, car_type=None, listing_type=None, min_price=None, max_price=None,
                    max_mileage=None, is_compatible=None, available_only=False, limit=None,
                    *, store=None):
        """
        Catalogue search, also used by the chat assistant.
        - Sold cars never show up; ``listing_type`` narrows to rent or sale listings.
        - Brand matches brand or model, case-insensitive, partial.
        - Price bounds apply to the listed price (per day or sale price);
          invalid bounds are ignored and swapped bounds are put back in order.
        """
        # 1. Resolve data source
        st = store or _store()
        res = [c for c in st.find("cars") if not c.get("is_sold")]

        # 2. Listing type
        lt = _lc(listing_type).strip()
        if lt == ListingType.RENT:
            res = [c for c in res if not c.get("for_sale")]
        elif lt == ListingType.SALE:
            res = [c for c in res if c.get("for_sale")]

        # 3. Brand/model filter (case-insensitive, partial match)
        if brand:
            kw = _lc(brand).strip()
            if kw:
                res = [c for c in res if kw in _lc(c.get("brand")) or kw in _lc(c.get("model"))]

        # 4. Type, accessibility, availability
        if car_type:
            ct = _lc(car_type).strip()
            res = [c for c in res if _lc(c.get("type")) == ct]
        if is_compatible is not None and to_bool(is_compatible):
            res = [c for c in res if c.get("is_compatible")]
        if to_bool(available_only):
            res = [c for c in res if c.get("availability") == Availability.AVAILABLE]

        # 5. Price range filter (invalid min/max ignored)
        min_val = to_float_safe(min_price)
        max_val = to_float_safe(max_price)
        if (min_val is not None) and (max_val is not None) and (min_val > max_val):
            min_val, max_val = max_val, min_val

        if (min_val is not None) or (max_val is not None):
            def within(c):
                p = to_float_safe(CarListing.from_dict(c).listed_price())
                if p is None:
                    return False
                if (min_val is not None) and (p < min_val):
                    return False
                if (max_val is not None) and (p > max_val):
                    return False
                return True

            res = [c for c in res if within(c)]

        # 6. Mileage cap
        mileage_cap = to_float_safe(max_mileage)
        if mileage_cap is not None:
            res = [c for c in res if to_float_safe(c.get("mileage")) is not None
                   and float(c["mileage"]) <= mileage_cap]

        res.sort(key=lambda c: c.get("created_at") or "", reverse=True)
        n = _to_int_safe(limit)
        if n is not None and n > 0:
            res = res[:n]
        return res

    @staticmethod
    def extremal_price_car(listing_type=ListingType.RENT, order="asc", *, store=None) -> Optional[dict]:
        """Cheapest (``asc``) or most expensive (``desc``) available car of a listing type."""
        lt = _lc(listing_type).strip() or ListingType.RENT
        if lt not in (ListingType.RENT, ListingType.SALE):
            raise InvalidInputError("Listing type must be 'rent' or 'sale'.")
        rows = [
            c for c in CarService.filter_cars(listing_type=lt, available_only=True, store=store)
            if to_float_safe(CarListing.from_dict(c).listed_price()) is not None
        ]
        if not rows:
            return None
        key = lambda c: float(CarListing.from_dict(c).listed_price())  # noqa: E731
        return max(rows, key=key) if _lc(order) == "desc" else min(rows, key=key)

    @staticmethod
    def cars_for_dealer(dealer_id: str, *, store=None) -> list:
        st = store or _store()
        rows = st.find("cars", dealer_id=dealer_id)
        rows.sort(key=lambda c: c.get("created_at") or "", reverse=True)
        return rows

    @staticmethod
    def all_cars(*, store=None) -> list:
        st = store or _store()
        rows = st.find("cars")
        rows.sort(key=lambda c: c.get("created_at") or "", reverse=True)
        return rows
