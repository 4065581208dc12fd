from functools import wraps

from flask import g, request, session

from carmarket.exceptions import ForbiddenError, UnauthenticatedError
from carmarket.models.user import Identity
from carmarket.services.common import _store


def current_identity():
    """
    Identity for this request: the session's ``uid`` resolved against the
    stored user, so role changes apply from the next request on.
    None when nobody is logged in or the user no longer exists.
    """
    if "identity" not in g:
        uid = session.get("uid")
        g.identity = Identity.from_user(_store().get_user(uid)) if uid else None
    return g.identity


def request_payload() -> dict:
    """JSON body if there is one, otherwise the submitted form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if current_identity() is None:
            raise UnauthenticatedError("Please login first")
        return fn(*args, **kwargs)

    return wrapper


def role_required(*roles):
    def deco(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            identity = current_identity()
            if identity is None:
                raise UnauthenticatedError("Please login first")
            if identity.role not in roles:
                raise ForbiddenError("Insufficient permission")
            return fn(*args, **kwargs)

        return wrapper

    return deco
