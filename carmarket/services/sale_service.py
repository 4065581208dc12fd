"""Outright car purchases. A sale is final: no update or rollback path exists."""

import logging
from typing import Optional

from carmarket.exceptions import ForbiddenError, InvalidStateError, SaleNotFoundError
from carmarket.models.car import CarListing
from carmarket.models.store import Store, now_iso
from carmarket.models.user import Identity
from carmarket.services.availability import commit_car, unit_of_work
from carmarket.services.common import _store, load_car, require_admin, require_identity, round2
from carmarket.utils.constants import Availability, PaymentStatus

logger = logging.getLogger(__name__)


def _sold_updates(car: dict, buyer_id: str) -> dict:
    if car.get("is_sold") or not car.get("for_sale"):
        # someone else bought it between our check and this write
        raise InvalidStateError("Car not available for sale.")
    return {
        "is_sold": True,
        "for_sale": False,
        "buyer_id": buyer_id,
        "availability": Availability.UNAVAILABLE,
    }


class SaleService:

    @staticmethod
    def buy(identity: Optional[Identity], car_id: str, store: Optional[Store] = None) -> dict:
        """
        Buy a car listed for sale.
        The Sale record is written first and the car last; the car write
        re-checks that the car is still unsold.
        """
        identity = require_identity(identity)
        st = store or _store()

        with unit_of_work(st):
            car = load_car(st, car_id)
            listing = CarListing.from_dict(car)
            if not listing.is_purchasable:
                raise InvalidStateError("Car not available for sale.")
            if str(listing.dealer_id) == str(identity.user_id):
                raise ForbiddenError("Dealers cannot buy their own cars.")

            sale_id = st.create_sale({
                "car_id": listing.car_id,
                "dealer_id": listing.dealer_id,
                "buyer_id": identity.user_id,
                "sale_price": listing.sale_price,
                "payment_status": PaymentStatus.PAID,
                "sold_at": now_iso(),
            })
            commit_car(st, listing.car_id, lambda c: _sold_updates(c, identity.user_id))

        logger.info("Car %s sold to %s for %s (sale %s)", listing.car_id, identity.user_id, listing.sale_price, sale_id)
        return st.get_sale(sale_id)

    @staticmethod
    def list_sales(identity: Optional[Identity], store: Optional[Store] = None) -> list:
        """Admin: all sales, dealer: own sales, user: own purchases."""
        identity = require_identity(identity)
        st = store or _store()
        if identity.is_admin:
            rows = st.find("sales")
        elif identity.is_dealer:
            rows = st.find("sales", dealer_id=identity.user_id)
        else:
            rows = st.find("sales", buyer_id=identity.user_id)
        rows.sort(key=lambda s: s.get("sold_at") or "", reverse=True)
        return rows

    @staticmethod
    def get_sale(identity: Optional[Identity], sale_id: str, store: Optional[Store] = None) -> dict:
        identity = require_identity(identity)
        st = store or _store()
        sale = st.get_sale(sale_id)
        if sale is None:
            raise SaleNotFoundError()
        if not (identity.is_admin or identity.user_id in (sale.get("buyer_id"), sale.get("dealer_id"))):
            raise ForbiddenError("Unauthorized")
        return sale

    @staticmethod
    def stats(identity: Optional[Identity], store: Optional[Store] = None) -> dict:
        require_admin(identity)
        st = store or _store()
        sales = st.find("sales")
        return {
            "total_sales": len(sales),
            "total_revenue": round2(sum(float(s.get("sale_price") or 0) for s in sales)),
        }
