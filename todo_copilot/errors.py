from __future__ import annotations

from typing import Any, Dict, Optional


# PUBLIC_INTERFACE
class TodoAppError(Exception):
    """
    Base error for the todo application.

    Every error carries a machine-readable code, the HTTP status the API layer
    renders it with, and optional structured details.
    """

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON error body used by the HTTP API."""
        return {"error": self.code, "message": self.message, "detail": self.details}


# PUBLIC_INTERFACE
class ValidationError(TodoAppError):
    """Invalid input, e.g. an empty or too long title."""

    code = "VALIDATION_ERROR"
    status_code = 400


# PUBLIC_INTERFACE
class NotFoundError(TodoAppError):
    """The operation targets an id that does not exist."""

    code = "NOT_FOUND"
    status_code = 404


# PUBLIC_INTERFACE
class ConflictError(TodoAppError):
    """The request conflicts with the current state of the resource."""

    code = "CONFLICT"
    status_code = 409


# PUBLIC_INTERFACE
class StorageError(TodoAppError):
    """Base class for persistence backend failures."""

    code = "STORAGE_ERROR"
    status_code = 500


# PUBLIC_INTERFACE
class StorageCorruptionError(StorageError):
    """Persisted data could not be parsed or deserialized."""

    code = "STORAGE_CORRUPTION"
    status_code = 500


# PUBLIC_INTERFACE
class QuotaExceededError(StorageError):
    """The backing storage is full; the write was not applied."""

    code = "QUOTA_EXCEEDED"
    status_code = 507


# PUBLIC_INTERFACE
class StorageUnavailableError(StorageError):
    """The backing store could not be reached or failed to answer."""

    code = "STORAGE_UNAVAILABLE"
    status_code = 503
