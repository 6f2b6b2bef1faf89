"""
Sign-um Document Approval Engine
Blueprint registry and shared request helpers.
"""

from flask import g, request

from signum.core.identity import make_ref
from signum.utils.errors import E, api_error


def paginate_query(query, default_limit=100, max_limit=500):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  - max items (default 100, capped at max_limit)
        offset - starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def current_actor():
    """Parse the acting identity from X-Actor-Type / X-Actor-Id headers.

    Authentication happens upstream; this only turns the forwarded identity
    into an EmployeeRef / StudentRef. Returns None when absent or malformed.
    """
    kind = request.headers.get("X-Actor-Type")
    actor_id = request.headers.get("X-Actor-Id")
    if not kind or not actor_id:
        return None
    try:
        return make_ref(kind, actor_id)
    except ValueError:
        return None


def json_body() -> dict:
    """Request JSON as a dict; anything else (missing, list, scalar) becomes {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def require_actor():
    """before_request hook: set g.actor or answer 401."""
    g.actor = current_actor()
    if g.actor is None:
        return api_error(E.UNAUTHENTICATED, "X-Actor-Type and X-Actor-Id headers are required", status=401)
    return None


def register_service_errors(bp):
    """Map service-layer exceptions to JSON error responses on a blueprint."""
    import logging

    from sqlalchemy.exc import SQLAlchemyError

    from signum.core.exceptions import (
        ContentionError,
        InvalidStateError,
        NotAuthorizedError,
        NotFoundError,
        ValidationError,
    )

    logger = logging.getLogger(bp.import_name)

    @bp.errorhandler(NotFoundError)
    def _not_found(exc):
        return api_error(E.NOT_FOUND, f"{exc.resource} not found")

    @bp.errorhandler(ValidationError)
    def _validation(exc):
        return api_error(E.VALIDATION_REQUIRED, str(exc), details=exc.details)

    @bp.errorhandler(NotAuthorizedError)
    def _forbidden(exc):
        return api_error(E.FORBIDDEN, str(exc))

    @bp.errorhandler(InvalidStateError)
    def _invalid_state(exc):
        return api_error(E.CONFLICT_STATE, str(exc), details={"status": exc.current_status})

    @bp.errorhandler(ContentionError)
    def _contention(exc):
        logger.warning("Request gave up on contention: %s", exc)
        return api_error(E.CONTENTION, "The document is busy, please retry")

    @bp.errorhandler(SQLAlchemyError)
    def _database(exc):
        logger.exception("Database error")
        return api_error(E.DATABASE, "Database error")
