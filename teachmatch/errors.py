"""Domain errors raised by the escalation engine and services."""

from typing import Any, Dict, Optional


class TeachMatchError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context: Dict[str, Any] = context
        super().__init__(self.message)


class NoCandidatesError(TeachMatchError):
    """No teacher matches the creation criteria."""

    status_code = 404
    default_message = "No available teachers match criteria"


class PersistenceError(TeachMatchError):
    """A storage operation failed."""

    status_code = 500
    default_message = "Storage operation failed"


class StaleStateError(TeachMatchError):
    """A conditional update lost the race against a concurrent writer."""

    status_code = 409
    default_message = "Request was modified concurrently"


class RequestNotFoundError(TeachMatchError):
    status_code = 404
    default_message = "Request not found"


class PermissionDeniedError(TeachMatchError):
    status_code = 403
    default_message = "Forbidden"


class InvalidTransitionError(TeachMatchError):
    """The requested status change is not allowed from the current status."""

    status_code = 400
    default_message = "Invalid status transition"


class ValidationFailedError(TeachMatchError):
    status_code = 400
    default_message = "Invalid request"
