from __future__ import annotations

from collections import Counter, defaultdict
from typing import Optional

from carmarket.models.car import CarListing
from carmarket.models.store import Store
from carmarket.models.user import Identity
from carmarket.services.common import _store, require_admin, round2
from carmarket.utils.constants import Availability, RentalStatus


class AnalyticsService:
    """Aggregations for the admin dashboard."""

    @staticmethod
    def analytics(identity: Optional[Identity], store: Optional[Store] = None) -> dict:
        require_admin(identity)
        st = store or _store()
        users = st.find("users")
        cars = st.find("cars")
        rentals = st.find("rentals")
        sales = st.find("sales")

        # Rental revenue counts approved and completed bookings only
        booked = [r for r in rentals if r.get("status") in (RentalStatus.APPROVED, RentalStatus.COMPLETED)]
        rental_revenue = round2(sum(float(r.get("total_price") or 0) for r in booked))
        sales_revenue = round2(sum(float(s.get("sale_price") or 0) for s in sales))

        # Rentals per car
        cnt = Counter(r.get("car_id") for r in rentals)
        rentals_by_car = []
        for c in cars:
            rentals_by_car.append({
                "car_id": c["car_id"],
                "label": CarListing.from_dict(c).label,
                "count": cnt.get(c["car_id"], 0),
            })
        rentals_by_car.sort(key=lambda x: x["count"], reverse=True)

        # Sales revenue by day sold
        rev_by_date = defaultdict(float)
        for s in sales:
            d = (s.get("sold_at") or "")[:10]
            if d:
                rev_by_date[d] += float(s.get("sale_price") or 0)
        sales_by_date = [{"date": k, "total": round2(v)} for k, v in sorted(rev_by_date.items())]

        role_cnt = Counter(u.get("role", "") for u in users)
        status_cnt = Counter(r.get("status", "") for r in rentals)
        avail_cnt = Counter(c.get("availability") or Availability.AVAILABLE for c in cars)

        return {
            "totals": {
                "users": len(users),
                "cars": len(cars),
                "rentals": len(rentals),
                "sales": len(sales),
                "rental_revenue": rental_revenue,
                "sales_revenue": sales_revenue,
            },
            "rentals_by_car": rentals_by_car,
            "rentals_by_status": dict(status_cnt),
            "cars_by_availability": dict(avail_cnt),
            "sales_by_date": sales_by_date,
            "users_by_role": [{"role": k or "unknown", "count": v} for k, v in role_cnt.items()],
        }
