from __future__ import annotations
from functools import wraps
from flask import request, g, abort, current_app

from utils.exceptions import InvalidAccessToken


def bearer_token() -> str | None:
    """Token from an `Authorization: Bearer <token>` header, if present."""
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


def jwt_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = bearer_token()
            if not token:
                abort(401, description="Missing or invalid Authorization header")
            service = current_app.extensions["session_service"]
            try:
                claims = service.codec.decode(token)
            except InvalidAccessToken as e:
                abort(401, description=e.message)

            user = service.get_user(claims.subject)
            if user is None or not user.is_active:
                abort(401, description="User not found")
            g.current_user = user
            return fn(*args, **kwargs)

        return wrapper

    return decorator
