"""Register, login, refresh-rotate and logout on top of the identity store.

Session state lives entirely in the store: a user with no refresh-token record
has no session, a user with a live record has an active one. The service keeps
no state of its own, so one instance is shared by all concurrent requests.
"""

from typing import Any, List, Mapping, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from instructor_auth.errors import (
    ConcurrencyConflictError,
    DuplicateIdentityError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from instructor_auth.models.auth import LoginRequest, RegisterRequest, TokenPair
from instructor_auth.models.user import (
    PublicProfile,
    RefreshTokenRecord,
    RegisteredUser,
    Role,
    UserCandidate,
)
from instructor_auth.services.hashing import SecretHasher
from instructor_auth.services.token_service import REFRESH_TOKEN_TYPE, TokenIssuer
from instructor_auth.storage.base import IdentityStore

logger = structlog.get_logger(__name__)


def _parse(model, data: Union[Mapping[str, Any], Any]):
    """Validate raw input into ``model``, raising our ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ValidationError(detail={"fields": fields}) from e


class SessionService:
    """Identity and session lifecycle for instructors."""

    def __init__(
        self,
        store: IdentityStore,
        hasher: SecretHasher,
        issuer: TokenIssuer,
    ):
        self.store = store
        self.hasher = hasher
        self.issuer = issuer

    async def register(self, data: Union[RegisterRequest, Mapping[str, Any]]) -> RegisteredUser:
        """Register a new instructor.

        Args:
            data: name, username, email and plain-text password

        Returns:
            RegisteredUser with name and email

        Raises:
            ValidationError: If the input has the wrong shape
            DuplicateIdentityError: If the username or email is taken
        """
        request = _parse(RegisterRequest, data)
        password_hash = await self.hasher.hash_password(request.password)
        candidate = UserCandidate(
            name=request.name,
            username=request.username,
            email=request.email,
            password_hash=password_hash,
            role=Role.INSTRUCTOR,
        )

        try:
            user = await self.store.create_user(candidate)
        except ConcurrencyConflictError as e:
            raise DuplicateIdentityError(detail=e.detail) from e
        except DuplicateIdentityError:
            logger.info("user_register_duplicate", username=request.username)
            raise

        logger.info("user_registered", user_id=user.id, username=user.username)
        return RegisteredUser(name=user.name, email=user.email)

    async def login(self, username: str, password: str) -> TokenPair:
        """Check credentials and open a session.

        Raises:
            InvalidCredentialsError: Unknown user or wrong password; the two
                cases are reported identically
        """
        try:
            request = _parse(LoginRequest, {"username": username, "password": password})
            user = await self.store.get_user(request.username)
        except (ValidationError, NotFoundError) as e:
            logger.info("login_failed")
            raise InvalidCredentialsError() from e

        if not await self.hasher.verify(request.password, user.password_hash):
            logger.info("login_failed", user_id=user.id)
            raise InvalidCredentialsError()

        pair = await self._open_session(user.id)
        logger.info("user_logged_in", user_id=user.id)
        return pair

    async def profile(self, user_id: str) -> PublicProfile:
        """Public profile of a user.

        Raises:
            NotFoundError: If no user has this id
        """
        user = await self.store.get_user(user_id)
        return PublicProfile.from_user(user)

    async def list_instructors(self) -> List[PublicProfile]:
        """All registered instructors, one entry per user, in key order."""
        seen = set()
        profiles = []
        async for user in self.store.list_users():
            if user.id in seen:
                continue
            seen.add(user.id)
            profiles.append(PublicProfile.from_user(user))
        return profiles

    async def list_refresh_tokens(self) -> List[RefreshTokenRecord]:
        """All stored refresh-token records (hashes only)."""
        return [record async for record in self.store.list_refresh_tokens()]

    async def refresh(self, presented_token: str, user_id: str) -> TokenPair:
        """Rotate the refresh token and issue a new token pair.

        The stored record is replaced only if it still holds the hash that was
        verified, so two concurrent refreshes with one token cannot both win.

        Raises:
            NotFoundError: If the user has no session
            InvalidTokenError: If the presented token does not verify; the
                stored record is left as it was
            ConcurrencyConflictError: If another refresh or logout committed first
        """
        record = await self._verify_refresh_token(presented_token, user_id)
        try:
            pair = await self._open_session(user_id, expected_hash=record.token_hash)
        except ConcurrencyConflictError:
            logger.warning("refresh_token_conflict", user_id=user_id)
            raise
        logger.info("refresh_token_rotated", user_id=user_id)
        return pair

    async def logout(self, presented_token: str, user_id: str) -> bool:
        """Close the session by deleting the refresh-token record.

        Returns:
            True if the record was deleted, False if it had already changed

        Raises:
            NotFoundError: If the user has no session
            InvalidTokenError: If the presented token does not verify
        """
        record = await self._verify_refresh_token(presented_token, user_id)
        deleted = await self.store.delete_refresh_token(
            user_id, expected_hash=record.token_hash
        )
        logger.info("user_logged_out", user_id=user_id, deleted=deleted)
        return deleted

    async def _verify_refresh_token(
        self, presented_token: str, user_id: str
    ) -> RefreshTokenRecord:
        record = await self.store.get_refresh_token(user_id)

        if record.is_expired():
            logger.info("refresh_token_rejected", user_id=user_id, reason="expired")
            raise InvalidTokenError()

        claims = self.issuer.validate_token(presented_token, expected_type=REFRESH_TOKEN_TYPE)
        if claims.subject != user_id:
            logger.info("refresh_token_rejected", user_id=user_id, reason="subject")
            raise InvalidTokenError()

        if not await self.hasher.verify(presented_token, record.token_hash):
            logger.info("refresh_token_rejected", user_id=user_id, reason="hash")
            raise InvalidTokenError()

        return record

    async def _open_session(self, user_id: str, expected_hash: Optional[str] = None) -> TokenPair:
        """Issue a token pair and store the refresh token's hash."""
        access_token = self.issuer.issue_access_token(user_id)
        refresh_token = self.issuer.issue_refresh_token(user_id)
        claims = self.issuer.validate_token(refresh_token)
        token_hash = await self.hasher.hash_token(refresh_token)

        await self.store.put_refresh_token(
            user_id,
            token_hash,
            issued_at=claims.issued_at,
            expires_at=claims.expires_at,
            expected_hash=expected_hash,
        )
        return TokenPair(access_token=access_token, refresh_token=refresh_token)
