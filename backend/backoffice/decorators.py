# Overview: Request decorators for API routes (acting-user resolution).

from functools import wraps
from flask import request, jsonify, g

from .errors import LedgerError
from .services import user_service


ACTOR_HEADER = "X-User-Id"


def require_actor(f):
    """
    Resolve the acting user for money-moving endpoints.

    Sets g.current_user from the X-User-Id header. Credential checks happen
    upstream; this only refuses requests with no known, active user.

    Returns 401 if the header is missing or names no active user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER)
        if not raw:
            return jsonify({"error": "Authentication required"}), 401
        try:
            g.current_user = user_service.get_actor(raw)
        except LedgerError:
            return jsonify({"error": "Unknown or inactive user"}), 401
        return f(*args, **kwargs)

    return decorated_function
