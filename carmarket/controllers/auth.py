import re

from flask import Blueprint, jsonify, session

from ..exceptions import InvalidInputError, UnauthenticatedError
from ..services.common import _store, text
from ..services.user_service import UserService
from ..utils.constants import Role
from ..utils.decorators import current_identity, login_required, request_payload
from ..utils.security import public_user, verify_credentials

bp = Blueprint("auth", __name__, url_prefix="/")

# Compile once at module import
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{6,}$")
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,30}$")


@bp.post("/register")
def register_submit():
    """Self-registration always creates a plain user; dealers come from approvals."""
    data = request_payload()
    username = text(data.get("username"))
    password = data.get("password")
    if not isinstance(password, str):
        password = ""

    if not username or not password:
        raise InvalidInputError("Username and password are required.")

    # Username policy
    if not USERNAME_PATTERN.match(username):
        raise InvalidInputError("Username must be 3-30 chars (letters, digits, ., _, -).")

    # Password policy (server-side enforcement)
    if not PASSWORD_PATTERN.match(password):
        raise InvalidInputError("Password must have at least 6 characters, including A-Z, a-z, and 0-9.")

    # Extra guard: disallow password equal to username
    if password.lower() == username.lower():
        raise InvalidInputError("Password cannot be the same as username.")

    user = UserService.register(username, password, Role.USER)
    return jsonify({"message": "Registration successful. Please login.", "user": user}), 201


@bp.post("/login")
def login_submit():
    data = request_payload()
    username = text(data.get("username"))
    user = _store().find_user(username)

    password = data.get("password")
    if not isinstance(password, str) or not verify_credentials(user, password):
        raise UnauthenticatedError("Invalid credentials")

    session.clear()
    session["uid"] = user["user_id"]
    session["role"] = user["role"]
    return jsonify({"message": "Logged in", "user": public_user(user)})


@bp.post("/logout")
def logout():
    session.clear()
    return jsonify({"message": "Logged out"})


@bp.get("/me")
@login_required
def me():
    identity = current_identity()
    return jsonify({"user_id": identity.user_id, "username": identity.username, "role": identity.role})
