"""Signed access and refresh tokens (JWT)."""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog

from instructor_auth.errors import InvalidTokenError, TokenCreationError
from instructor_auth.models.auth import TokenClaims

logger = structlog.get_logger(__name__)

# Constants
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 15
REFRESH_TOKEN_EXPIRE_DAYS = 30

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

REQUIRED_CLAIMS = ["sub", "iat", "exp"]


class TokenIssuer:
    """Mints and validates HMAC-signed tokens for a subject.

    The signing secret is process-wide configuration handed in once at
    construction; nothing is persisted here.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = JWT_ALGORITHM,
        access_ttl: timedelta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_ttl: timedelta = timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
    ):
        if not secret:
            raise ValueError("Signing secret is not defined")
        self._secret = secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings) -> "TokenIssuer":
        return cls(
            secret=settings.jwt_secret.get_secret_value(),
            algorithm=settings.jwt_algorithm,
            access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
        )

    def _create_token(self, subject: str, ttl: timedelta, token_type: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "iat": now,
            "exp": now + ttl,
            "jti": secrets.token_urlsafe(16),
            "typ": token_type,
        }
        try:
            return jwt.encode(payload, self._secret, algorithm=self.algorithm)
        except (jwt.PyJWTError, TypeError, ValueError, NotImplementedError) as e:
            logger.error("token_creation_failed", kind=token_type, error=str(e))
            raise TokenCreationError(f"Failed to create {token_type} token.") from e

    def issue_access_token(self, subject: str, ttl: Optional[timedelta] = None) -> str:
        """Create a short-lived access token.

        Args:
            subject: User identifier placed in the 'sub' claim
            ttl: Lifetime, defaults to 15 minutes

        Returns:
            Encoded JWT string

        Raises:
            TokenCreationError: If signing fails
        """
        token = self._create_token(
            subject, self.access_ttl if ttl is None else ttl, ACCESS_TOKEN_TYPE
        )
        logger.debug("access_token_created", user_id=subject)
        return token

    def issue_refresh_token(self, subject: str, ttl: Optional[timedelta] = None) -> str:
        """Create a long-lived refresh token (default 30 days).

        Callers hash the returned value before storing it.
        """
        token = self._create_token(
            subject, self.refresh_ttl if ttl is None else ttl, REFRESH_TOKEN_TYPE
        )
        logger.debug("refresh_token_created", user_id=subject)
        return token

    def validate_token(
        self, token: str, expected_type: Optional[str] = None
    ) -> TokenClaims:
        """Verify signature and expiry and return the claims.

        Args:
            token: Encoded JWT string
            expected_type: Reject tokens whose 'typ' claim differs

        Returns:
            TokenClaims with subject, issued_at and expires_at

        Raises:
            InvalidTokenError: Bad signature, malformed, expired or wrong type.
                The cases are intentionally not told apart.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.PyJWTError as e:
            logger.info("token_rejected", reason=type(e).__name__)
            raise InvalidTokenError() from e

        if expected_type is not None and payload.get("typ") != expected_type:
            logger.info("token_rejected", reason="wrong_type")
            raise InvalidTokenError()

        return TokenClaims(
            subject=str(payload["sub"]),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            token_type=payload.get("typ"),
            token_id=payload.get("jti"),
        )
