"""
Domain error hierarchy.

Every error carries a machine-readable ``code`` and an HTTP status so the
API layer can render the standard response envelope without knowing about
individual failure cases.
"""
from typing import Any


class LabDeskError(Exception):
    """Base exception for all lab desk errors."""

    status_code = 500
    code = "InternalServerError"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "statusCode": self.status_code,
            "message": self.message,
            "error": self.code,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LabDeskError):
    """A required field is missing or malformed. Raised before any write."""

    status_code = 422
    code = "ValidationError"


class NotFoundError(LabDeskError):
    status_code = 404
    code = "NotFound"


class ConflictError(LabDeskError):
    """Uniqueness or referential conflict with existing rows."""

    status_code = 409
    code = "Conflict"


class PersistenceError(LabDeskError):
    """The storage layer rejected a read or a write."""

    status_code = 503
    code = "PersistenceError"


class ExternalServiceError(PersistenceError):
    """The external identity source failed or could not be reached."""

    status_code = 502
    code = "ExternalServiceError"
