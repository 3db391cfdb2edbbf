"""User and refresh-token records held by the identity store."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Role(str, Enum):
    """Role tag carried by every user record."""

    INSTRUCTOR = "INSTRUCTOR"


class UserCandidate(BaseModel):
    """A fully-populated user record that has not been assigned an id yet.

    ``password_hash`` must already be a Secret Hasher digest; the store never
    sees a plaintext password.
    """

    name: str
    username: str
    email: str
    password_hash: str
    role: Role = Role.INSTRUCTOR


class User(UserCandidate):
    """A registered instructor."""

    id: str


class PublicProfile(BaseModel):
    """Read-only projection of a user record."""

    name: str
    username: str
    email: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> "PublicProfile":
        return cls(
            name=user.name,
            username=user.username,
            email=user.email,
            role=user.role,
        )


class RegisteredUser(BaseModel):
    """Minimal profile returned by registration."""

    name: str
    email: str


class RefreshTokenRecord(BaseModel):
    """The single live refresh token of a user, stored as a hash only."""

    user_id: str
    token_hash: str
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Whether the record is past its expiry at ``now`` (default: current UTC time)."""
        now = now or datetime.now(timezone.utc)
        return self.expires_at <= now
