"""JSON error bodies for the workflow API.

Every error response has the same shape:

    {"success": false, "error": "<message>", "code": "ERR_...", "details": {...}}

    from signum.utils.errors import api_error, E
    return api_error(E.FORBIDDEN, "No pending step assigned to you")
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes. Each maps to a default HTTP status in ``STATUS_FOR``."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"      # document already approved / rejected / deleted
    CONTENTION = "ERR_CONTENTION"              # still locked after the retry budget
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


STATUS_FOR: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.CONTENTION: 503,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a Flask view or error handler.

    ``status`` overrides the code's default; unknown codes fall back to 400.
    """
    body = {"success": False, "error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_FOR.get(code, 400)
