from dataclasses import dataclass, field
from typing import Optional

from carmarket.utils.constants import Availability


@dataclass
class CarListing:
    """
    Read model over a stored car dict. The Store keeps raw dicts; services wrap
    them to ask listing questions (can it be rented, bought, priced) in one place.
    """
    car_id: str
    dealer_id: str
    brand: str
    model: str
    for_sale: bool = False
    is_sold: bool = False
    availability: str = Availability.AVAILABLE
    price_per_day: Optional[float] = None
    sale_price: Optional[float] = None
    buyer_id: Optional[str] = None
    rentals: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict) -> "CarListing":
        return cls(
            car_id=d.get("car_id"),
            dealer_id=d.get("dealer_id"),
            brand=d.get("brand") or "",
            model=d.get("model") or "",
            for_sale=bool(d.get("for_sale")),
            is_sold=bool(d.get("is_sold")),
            availability=d.get("availability") or Availability.AVAILABLE,
            price_per_day=d.get("price_per_day"),
            sale_price=d.get("sale_price"),
            buyer_id=d.get("buyer_id"),
            rentals=list(d.get("rentals") or []),
        )

    @property
    def label(self) -> str:
        return f"{self.brand} {self.model}".strip() or self.car_id[:6]

    @property
    def is_rentable(self) -> bool:
        """Rent listings only: not for sale, never sold, and priced per day."""
        return not self.for_sale and not self.is_sold and self.price_per_day is not None

    @property
    def is_purchasable(self) -> bool:
        return self.for_sale and not self.is_sold

    def price_for_days(self, days: int) -> float:
        return round(float(self.price_per_day or 0) * days, 2)

    def listed_price(self) -> Optional[float]:
        return self.sale_price if self.for_sale else self.price_per_day
