"""Services package exports."""

from instructor_auth.services.hashing import SecretHasher
from instructor_auth.services.logging_service import configure_logging, get_logger
from instructor_auth.services.session_service import SessionService
from instructor_auth.services.token_service import TokenIssuer

__all__ = [
    "SecretHasher",
    "SessionService",
    "TokenIssuer",
    "configure_logging",
    "get_logger",
]
