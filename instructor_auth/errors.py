"""Error taxonomy for identity and session operations.

Components raise these typed errors; only the HTTP layer turns them into
status codes. Credential and token failures deliberately carry generic
messages so callers cannot tell which factor was wrong.
"""

from typing import Any, Dict, Optional


class IdentityError(Exception):
    """Base class for all identity/session failures."""

    default_message = "Identity operation failed"

    def __init__(
        self, message: Optional[str] = None, detail: Optional[Dict[str, Any]] = None
    ):
        self.message = message or self.default_message
        self.detail = detail or {}
        super().__init__(self.message)


class ValidationError(IdentityError):
    """Input does not have the required shape."""

    default_message = "Invalid input"


class DuplicateIdentityError(IdentityError):
    """Username, email or identifier is already taken (including lost races)."""

    default_message = "Email or Username already registered!"


class NotFoundError(IdentityError):
    """No user or refresh token exists under the requested key."""

    default_message = "Not found"


class InvalidCredentialsError(IdentityError):
    """Unknown principal or wrong password."""

    default_message = "Invalid login credentials"


class InvalidTokenError(IdentityError):
    """Bad signature, malformed, expired, wrong type, or hash mismatch."""

    default_message = "Invalid or expired token"


class ConcurrencyConflictError(IdentityError):
    """A compare-and-set precondition failed at commit time."""

    default_message = "Concurrent modification detected"


class TokenCreationError(IdentityError):
    """Signing a token failed."""

    default_message = "Failed to create token"


__all__ = [
    "ConcurrencyConflictError",
    "DuplicateIdentityError",
    "IdentityError",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "NotFoundError",
    "TokenCreationError",
    "ValidationError",
]
