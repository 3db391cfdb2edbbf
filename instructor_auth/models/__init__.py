"""Pydantic models for identity records and auth payloads."""

from instructor_auth.models.auth import (
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenClaims,
    TokenPair,
)
from instructor_auth.models.user import (
    PublicProfile,
    RefreshTokenRecord,
    RegisteredUser,
    Role,
    User,
    UserCandidate,
)

__all__ = [
    "LoginRequest",
    "PublicProfile",
    "RefreshRequest",
    "RefreshTokenRecord",
    "RegisterRequest",
    "RegisteredUser",
    "Role",
    "TokenClaims",
    "TokenPair",
    "User",
    "UserCandidate",
]
