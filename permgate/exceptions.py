"""Exceptions raised by the permission engine."""

from typing import Optional


class PermgateError(Exception):
    """Base exception for all permgate errors."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(PermgateError):
    """Raised when a referenced template, project or group does not exist."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, status_code=404)


class ValidationError(PermgateError):
    """Raised when a reference or a value is malformed."""

    def __init__(self, message: str = "Validation failed") -> None:
        super().__init__(message, status_code=400)


class StorageError(PermgateError):
    """
    Raised when a transaction could not be committed.

    The transaction has been rolled back: callers can assume no partial
    effect occurred.
    """

    def __init__(self, message: str = "Storage failure") -> None:
        super().__init__(message, status_code=503)
