# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .validation import ValidationError, coerce_int


ACTOR_HEADER = "X-User-Id"


def require_actor(f):
    """
    Require the acting user's id and expose it as g.actor_id.

    The id comes from the X-User-Id header set by the upstream auth layer.
    Returns 401 if the header is missing, 400 if it is not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER)
        if not raw:
            return jsonify({"error": f"{ACTOR_HEADER} header required"}), 401

        try:
            g.actor_id = coerce_int(raw, ACTOR_HEADER, minimum=1)
        except ValidationError as e:
            return jsonify({"error": str(e)}), 400

        return f(*args, **kwargs)

    return decorated_function
