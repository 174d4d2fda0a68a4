"""Error taxonomy for home-ctrl.

Every failure the core can report is a HomeCtrlError subclass carrying the
HTTP status it maps to. The exception handler installed by create_app()
renders them uniformly as ``{"error": <title>, "message": <message>}``.

    ValidationError   400  malformed input (missing field, bad enum value)
    AuthError         401  failed credential check, invalid/expired token or key
    NotFoundError     404  operation on a key/token that does not exist
    ConflictError     409  unique-key violation on create
    PersistenceError  500  underlying store failure (never retried here)
"""

from __future__ import annotations


class HomeCtrlError(Exception):
    """Base class for all errors reported by the home-ctrl core."""

    code: str = "internal_error"
    title: str = "Internal Server Error"
    status_code: int = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(HomeCtrlError):
    """Raised for malformed caller input."""

    code = "validation_error"
    title = "Bad Request"
    status_code = 400

    def __init__(self, message: str = "Invalid request") -> None:
        super().__init__(message)


class AuthError(HomeCtrlError):
    """Raised when a request cannot be authenticated.

    The message never says which check failed (unknown user vs. wrong
    password, missing vs. expired token).
    """

    code = "unauthorized"
    title = "Unauthorized"
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class NotFoundError(HomeCtrlError):
    """Raised when an operation targets a key that does not exist."""

    code = "not_found"
    title = "Not Found"
    status_code = 404

    def __init__(self, message: str = "Key not found") -> None:
        super().__init__(message)


class ConflictError(HomeCtrlError):
    """Raised when a create would violate a unique key."""

    code = "conflict"
    title = "Conflict"
    status_code = 409

    def __init__(self, message: str = "Key already exists") -> None:
        super().__init__(message)


class PersistenceError(HomeCtrlError):
    """Raised when the underlying store fails. Surfaces immediately; no retry."""

    code = "persistence_error"
    title = "Internal Server Error"
    status_code = 500

    def __init__(self, message: str = "Storage operation failed") -> None:
        super().__init__(message)
