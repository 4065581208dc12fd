from dataclasses import dataclass
from typing import Optional

from carmarket.utils.constants import Role


@dataclass(frozen=True)
class Identity:
    """
    The authenticated caller: ``{id, role}`` as resolved for one request.
    Role checks and listing ownership are answered here so every service
    gates actions the same way.
    """
    user_id: str
    role: str  # "user" | "dealer" | "admin"
    username: str = ""

    @classmethod
    def from_user(cls, d: Optional[dict]) -> Optional["Identity"]:
        """Map a stored user dict to an identity; None for a missing user."""
        if not d:
            return None
        return cls(
            user_id=d.get("user_id"),
            role=(d.get("role") or Role.USER).lower(),
            username=d.get("username") or "",
        )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_dealer(self) -> bool:
        return self.role == Role.DEALER

    def owns(self, car: dict) -> bool:
        return str(car.get("dealer_id")) == str(self.user_id)

    def can_manage(self, car: dict) -> bool:
        """The owning dealer, or any admin."""
        return self.is_admin or (self.is_dealer and self.owns(car))
