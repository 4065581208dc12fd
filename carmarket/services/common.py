"""Shared service helpers: store access, validators and the role gate."""

import re
from typing import Optional

from carmarket.config import Config
from carmarket.exceptions import (
    CarNotFoundError,
    ForbiddenError,
    InvalidInputError,
    UnauthenticatedError,
)
from carmarket.models.store import Store
from carmarket.models.user import Identity


def _store() -> Store:
    """Get the singleton store instance."""
    return Store.instance()


def round2(x: float) -> float:
    return round(float(x), 2)


def to_float_safe(value) -> Optional[float]:
    """Safely convert to float; return None if invalid."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_bool(value) -> bool:
    """Form and query strings arrive as text: 'true', '1', 'on' are True."""
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("true", "1", "yes", "on")


def _lc(s):
    """Safe lowercase for case-insensitive compare."""
    return s.lower() if isinstance(s, str) else ""


def text(value) -> str:
    """Stripped string, or '' for anything that is not a string (JSON numbers, lists, None)."""
    return value.strip() if isinstance(value, str) else ""


# -------- validators --------
def valid_phone(phone: Optional[str]) -> bool:
    """Match against the configured regional phone format."""
    phone = text(phone)
    if not phone:
        return False
    return re.match(Config.PHONE_PATTERN, phone) is not None


def require_phone(phone: Optional[str], message: str = "Invalid phone number.") -> str:
    if not valid_phone(phone):
        raise InvalidInputError(message)
    return text(phone)


def require_text(value: Optional[str], field: str) -> str:
    value = text(value)
    if not value:
        raise InvalidInputError(f"{field} is required.")
    return value


# -------- role gate --------
def require_identity(identity: Optional[Identity]) -> Identity:
    if identity is None or not identity.user_id:
        raise UnauthenticatedError()
    return identity


def require_admin(identity: Optional[Identity]) -> Identity:
    identity = require_identity(identity)
    if not identity.is_admin:
        raise ForbiddenError("Admins only.")
    return identity


def require_dealer(identity: Optional[Identity]) -> Identity:
    """Only approved dealers act as dealers."""
    identity = require_identity(identity)
    if not identity.is_dealer:
        raise ForbiddenError("Only approved dealers can do this.")
    return identity


def require_car_manager(identity: Optional[Identity], car: dict,
                        message: str = "You can only manage your own cars unless you're an admin.") -> Identity:
    identity = require_identity(identity)
    if not identity.can_manage(car):
        raise ForbiddenError(message)
    return identity


def load_car(st: Store, car_id) -> dict:
    car = st.get_car(car_id)
    if car is None:
        raise CarNotFoundError(f"Error: car with ID '{car_id}' not found")
    return car
