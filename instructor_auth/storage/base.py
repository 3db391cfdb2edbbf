"""Identity store contract, key namespaces and record serialisation."""

from __future__ import annotations

from datetime import datetime
from typing import AsyncIterator, Optional, Protocol

from ulid import ULID

from instructor_auth.models.user import RefreshTokenRecord, User, UserCandidate

IDENTITY_NAMESPACE = "identity"
SESSION_NAMESPACE = "session"


class IdentityStore(Protocol):
    """Persistent store for users and refresh-token records.

    Every mutation is a compare-and-set transaction: it commits completely or
    not at all, and a lost race is reported instead of retried.
    """

    async def create_user(self, candidate: UserCandidate) -> User: ...

    async def get_user(self, key: str) -> User: ...

    def list_users(self, prefix: str = "") -> AsyncIterator[User]: ...

    async def get_refresh_token(self, user_id: str) -> RefreshTokenRecord: ...

    def list_refresh_tokens(self, prefix: str = "") -> AsyncIterator[RefreshTokenRecord]: ...

    async def put_refresh_token(
        self,
        user_id: str,
        token_hash: str,
        issued_at: datetime,
        expires_at: datetime,
        expected_hash: Optional[str] = None,
    ) -> RefreshTokenRecord: ...

    async def delete_refresh_token(
        self, user_id: str, expected_hash: Optional[str] = None
    ) -> bool: ...

    async def close(self) -> None: ...


class KeySpace:
    """Builds the ``identity:*`` and ``session:*`` keys, optionally prefixed.

    Username and email keys are case-insensitive, so every identity key is
    lower-cased. ULIDs are case-insensitive by definition.
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    def identity(self, value: str) -> str:
        return f"{self.identity_prefix}{value.strip().lower()}"

    def session(self, user_id: str) -> str:
        return f"{self.session_prefix}{user_id.strip().lower()}"

    @property
    def identity_prefix(self) -> str:
        return f"{self.prefix}{IDENTITY_NAMESPACE}:"

    @property
    def session_prefix(self) -> str:
        return f"{self.prefix}{SESSION_NAMESPACE}:"

    def user_keys(self, user: User) -> dict[str, str]:
        """Index keys of a user, by field name."""
        return {
            "id": self.identity(user.id),
            "username": self.identity(user.username),
            "email": self.identity(user.email),
        }


def new_user_id() -> str:
    """Generate a time-ordered, lexicographically sortable identifier."""
    return str(ULID())


def dump_user(user: User) -> str:
    return user.model_dump_json()


def load_user(raw: str | bytes) -> User:
    return User.model_validate_json(raw)


def dump_refresh_token(record: RefreshTokenRecord) -> str:
    return record.model_dump_json()


def load_refresh_token(raw: str | bytes) -> RefreshTokenRecord:
    return RefreshTokenRecord.model_validate_json(raw)
