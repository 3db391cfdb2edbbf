"""One-way salted hashing for passwords and refresh-token secrets."""

import asyncio
import base64
import hashlib

import bcrypt
import structlog

logger = structlog.get_logger(__name__)

# Default bcrypt cost factors
PASSWORD_HASH_ROUNDS = 12
TOKEN_HASH_ROUNDS = 10


def _prehash(secret: str) -> bytes:
    """Digest the secret to 44 bytes so bcrypt's 72-byte window covers all of it.

    Refresh tokens are JWTs whose first 72 bytes are identical for every
    token of the same user, so plain truncation would make them collide.
    """
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.b64encode(digest)


class SecretHasher:
    """bcrypt hashing shared by login passwords and refresh tokens.

    ``hash`` and ``verify`` run bcrypt in a worker thread so callers on the
    event loop only suspend while hashing. Passwords and refresh tokens can use
    different cost factors.
    """

    def __init__(
        self,
        password_rounds: int = PASSWORD_HASH_ROUNDS,
        token_rounds: int = TOKEN_HASH_ROUNDS,
    ):
        self.password_rounds = password_rounds
        self.token_rounds = token_rounds

    @classmethod
    def from_settings(cls, settings) -> "SecretHasher":
        return cls(
            password_rounds=settings.password_hash_rounds,
            token_rounds=settings.token_hash_rounds,
        )

    def hash_sync(self, secret: str, rounds: int | None = None) -> str:
        """Hash a secret with a fresh salt.

        Args:
            secret: Plain-text password or token
            rounds: bcrypt cost, defaults to the password cost

        Returns:
            bcrypt hash string
        """
        salt = bcrypt.gensalt(rounds=rounds or self.password_rounds)
        return bcrypt.hashpw(_prehash(secret), salt).decode("utf-8")

    def verify_sync(self, secret: str, digest: str) -> bool:
        """Check a secret against a stored hash. Malformed hashes never match."""
        try:
            return bcrypt.checkpw(_prehash(secret), digest.encode("utf-8"))
        except (ValueError, TypeError):
            logger.warning("secret_hash_malformed")
            return False

    async def hash(self, secret: str, rounds: int | None = None) -> str:
        return await asyncio.to_thread(self.hash_sync, secret, rounds)

    async def hash_password(self, password: str) -> str:
        return await self.hash(password, self.password_rounds)

    async def hash_token(self, token: str) -> str:
        return await self.hash(token, self.token_rounds)

    async def verify(self, secret: str, digest: str) -> bool:
        return await asyncio.to_thread(self.verify_sync, secret, digest)
