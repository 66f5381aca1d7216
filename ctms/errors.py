"""Domain error taxonomy.

Services raise these; ``ctms.main`` turns any ``CTMSError`` into a
structured denial response. Audit and notification failures never appear
here: they are logged to the fallback channel and swallowed.
"""

from fastapi import status


class CTMSError(Exception):
    """Base class for errors surfaced to the caller."""

    code = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, reason_code: str | None = None, action: str | None = None):
        super().__init__(message)
        self.message = message
        self.reason_code = reason_code
        self.action = action

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "reason": self.reason_code,
            "action": self.action,
            "message": self.message,
        }


class ValidationError(CTMSError):
    """Malformed input."""

    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class AccessDeniedError(CTMSError):
    """Role, ownership or prerequisite failure. Always paired with a REJECTED_TRANSITION entry."""

    code = "access_denied"
    status_code = status.HTTP_403_FORBIDDEN


class ImmutabilityViolation(CTMSError):
    """Attempted mutation of append-only or system-derived data."""

    code = "immutability_violation"
    status_code = status.HTTP_409_CONFLICT


class NotFoundError(CTMSError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConfigLockedError(CTMSError):
    """Assessment edit after attempts exist."""

    code = "config_locked"
    status_code = status.HTTP_409_CONFLICT


class SignatureRequiredError(CTMSError):
    """Missing or failed electronic signature."""

    code = "signature_required"
    status_code = status.HTTP_401_UNAUTHORIZED


class ConcurrencyConflictError(CTMSError):
    """A concurrent writer changed the row first; the caller may retry."""

    code = "concurrency_conflict"
    status_code = status.HTTP_409_CONFLICT
