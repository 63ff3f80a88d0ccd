"""Error taxonomy for the payment engine.

Every error carries a machine-readable code and the HTTP status the API layer
renders it with. Batch jobs never raise per item; they collect ItemFailure
entries instead.
"""

from dataclasses import dataclass


class EngineError(Exception):
    """Base engine error."""

    code = "engine_error"
    http_status = 500
    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(EngineError):
    """Malformed or missing input, rejected before any state change."""

    code = "validation_error"
    http_status = 422


class ConflictError(EngineError):
    """Requested transition would violate a payment or leaving-request invariant."""

    code = "conflict"
    http_status = 409


class NotFoundError(EngineError):
    """Member, room, payment or leaving request does not exist."""

    code = "not_found"
    http_status = 404


class DependencyError(EngineError):
    """A collaborator (file storage, notification channel, store) failed."""

    code = "dependency_error"
    http_status = 502


class StoreUnavailableError(DependencyError):
    """The database timed out or could not be reached; the call may be retried."""

    code = "store_unavailable"
    http_status = 503
    retryable = True


@dataclass
class ItemFailure:
    """One item a batch job could not process."""

    item_id: int
    error: str


__all__ = [
    "EngineError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "DependencyError",
    "StoreUnavailableError",
    "ItemFailure",
]
