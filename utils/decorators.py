from __future__ import annotations
from functools import wraps
from flask import request, g, abort
from models import storage
from models.user import User
from utils.exceptions import TokenError
from utils.session_tokens import get_session_tokens
from utils.tokens import ACCESS


def jwt_required():
    """
    Require `Authorization: Bearer <access token>`.
    Codec failures propagate as TokenError and are turned into a generic 401
    by the app's error handlers.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                abort(401, description="Not authorized, no token provided")
            token = auth.split(" ", 1)[1].strip()
            decoded = get_session_tokens().codec.decode(token, expected_type=ACCESS)

            user = storage.get(User, decoded.get("sub"))
            if not user:
                raise TokenError("Token subject no longer exists")
            g.current_user = user
            g.current_token_claims = decoded
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(*required_roles: str):
    """
    Allow access if the current user's role is one of required_roles.
    The role is read from the user row, so an admin's change applies immediately.
    """
    req = set(required_roles)
    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            if g.current_user.role not in req:
                abort(403, description="Access forbidden")
            return fn(*args, **kwargs)

        return wrapper

    return decorator
