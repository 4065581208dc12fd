from typing import Optional

from werkzeug.security import generate_password_hash, check_password_hash


def generate_hash(password: str) -> str:
    return generate_password_hash(password)


def check_hash(password: str, hashed: str) -> bool:
    try:
        return check_password_hash(hashed, password)
    except (TypeError, ValueError):
        return False


def verify_credentials(user: Optional[dict], password: str) -> bool:
    """True only for an existing user whose stored hash matches ``password``."""
    if not user or not user.get("password_hash"):
        return False
    return check_hash(password, user["password_hash"])


def public_user(user: dict) -> dict:
    """Copy of a stored user without the password hash."""
    return {k: v for k, v in user.items() if k != "password_hash"}
