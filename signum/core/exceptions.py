"""
Engine-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Usage:
    from signum.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Document", resource_id=42)
    raise ValidationError("A rejection reason is required", details={"reason": "required"})

Category → HTTP mapping (see signum.blueprints):
    NotAuthorizedError  403
    NotFoundError       404
    ValidationError     400
    InvalidStateError   409
    ContentionError     503 (only after the retry budget is spent)
    SideEffectError     never surfaced, logged by the dispatcher
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Document", "DocumentStep").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails validation in the service layer.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotAuthorizedError(Exception):
    """Raised when the acting identity has no step to act on for a document."""

    def __init__(self, message: str, document_id: int | None = None) -> None:
        self.document_id = document_id
        super().__init__(message)


class InvalidStateError(Exception):
    """Raised when a transition is attempted from a terminal status.

    Args:
        resource: Model name.
        current_status: The status that blocks the transition.
    """

    def __init__(self, resource: str, resource_id: int | None, current_status: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.current_status = current_status
        super().__init__(f"{resource} id={resource_id} is already {current_status}")


class ContentionError(Exception):
    """Transient storage contention: lock wait timeout, deadlock, serialization
    failure, busy database or exhausted connection pool.

    Raised at the storage boundary (signum.services.storage) after the driver
    error has been classified by code. Retry loops key off this type only.
    """

    def __init__(self, message: str, reason: str = "lock") -> None:
        self.reason = reason
        super().__init__(message)


class SideEffectError(Exception):
    """A post-commit or best-effort side effect failed (render, event, notify).

    Never propagated to the caller of a business operation.
    """
