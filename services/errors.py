"""Exception types shared by the portal services."""
from __future__ import annotations


class PortalError(Exception):
    """Base exception for application-level errors."""


class ValidationError(PortalError):
    """Raised when form input fails a local check; nothing reaches the collaborators."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class StoreError(PortalError):
    """Raised when the document store rejects or fails a call."""


class StoreTimeout(StoreError):
    """Raised when a document store call exceeds STORE_TIMEOUT_SECONDS."""

    def __init__(self, message: str = "Request timed out"):
        super().__init__(message)


class RecordNotFound(StoreError):
    """Raised when a record lookup by id finds nothing."""


class AuthError(PortalError):
    """Identity provider failure carrying a provider-neutral error code."""

    EMAIL_IN_USE = "email-already-in-use"
    INVALID_EMAIL = "invalid-email"
    USER_NOT_FOUND = "user-not-found"
    WRONG_PASSWORD = "wrong-password"
    WEAK_PASSWORD = "weak-password"
    TOO_MANY_ATTEMPTS = "too-many-requests"
    NETWORK = "network-request-failed"
    UNKNOWN = "unknown"

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code)
        self.code = code
        self.message = message or ""


__all__ = [
    "AuthError",
    "PortalError",
    "RecordNotFound",
    "StoreError",
    "StoreTimeout",
    "ValidationError",
]
