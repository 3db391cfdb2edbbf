"""Pytest configuration and fixtures."""

import os

import pytest

# Set test environment variables before importing the app
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-jwt-unit-tests-0123456789")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("TOKEN_HASH_ROUNDS", "4")

from instructor_auth.services.hashing import SecretHasher  # noqa: E402
from instructor_auth.services.session_service import SessionService  # noqa: E402
from instructor_auth.services.token_service import TokenIssuer  # noqa: E402
from instructor_auth.storage.memory_store import MemoryIdentityStore  # noqa: E402

JWT_SECRET = os.environ["JWT_SECRET"]


@pytest.fixture
def hasher() -> SecretHasher:
    """bcrypt at the minimum cost so tests stay fast."""
    return SecretHasher(password_rounds=4, token_rounds=4)


@pytest.fixture
def issuer() -> TokenIssuer:
    """Token issuer with a deterministic secret."""
    return TokenIssuer(secret=JWT_SECRET)


@pytest.fixture
def memory_store() -> MemoryIdentityStore:
    return MemoryIdentityStore()


@pytest.fixture
def session_service(memory_store, hasher, issuer) -> SessionService:
    return SessionService(store=memory_store, hasher=hasher, issuer=issuer)


@pytest.fixture
def alice() -> dict:
    return {
        "name": "Alice Liddell",
        "username": "alice",
        "email": "alice@x.com",
        "password": "secret1",
    }
