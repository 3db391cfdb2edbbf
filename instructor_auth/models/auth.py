"""Auth request and response models with validation."""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _password_not_blank(v: str) -> str:
    if not v.strip():
        raise ValueError("Password cannot be empty or whitespace only")
    return v


def _username_valid_chars(v: str) -> str:
    if not USERNAME_PATTERN.match(v):
        raise ValueError(
            "Username must contain only alphanumeric characters, "
            "underscores, or hyphens"
        )
    return v


class RegisterRequest(BaseModel):
    """New instructor registration.

    Attributes:
        name: Display name (1-255 chars, not blank)
        username: Unique handle (3-100 chars, alphanumeric + underscore/hyphen)
        email: Unique email address
        password: Plain-text password (6-128 chars)
    """

    name: str = Field(..., min_length=1, max_length=255)
    username: str = Field(..., min_length=3, max_length=100)
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        """Strip surrounding whitespace and reject blank names."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Name cannot be empty or whitespace only")
        return stripped

    @field_validator("username")
    @classmethod
    def username_valid_chars(cls, v: str) -> str:
        """Ensure username contains only alphanumeric, underscore, or hyphen."""
        return _username_valid_chars(v)

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: str) -> str:
        """Ensure the email looks like local@domain.tld."""
        stripped = v.strip()
        if not EMAIL_PATTERN.match(stripped):
            raise ValueError("Email must look like name@example.com")
        return stripped

    @field_validator("password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        """Ensure password is not empty or whitespace only."""
        return _password_not_blank(v)


class LoginRequest(BaseModel):
    """Login credentials for authentication."""

    username: str = Field(..., min_length=1, max_length=254)
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    """Request carrying the caller's current refresh token."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    refresh_token: str = Field(..., min_length=1)


class TokenPair(BaseModel):
    """Access + refresh tokens, serialised as ``accessToken``/``refreshToken``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    access_token: str
    refresh_token: str


class TokenClaims(BaseModel):
    """Claims of a validated signed token."""

    subject: str
    issued_at: datetime
    expires_at: datetime
    token_type: Optional[str] = None
    token_id: Optional[str] = None
