"""In-process identity store with per-key version stamps.

Behaves like the Redis store: reads capture a version, commits check every
captured version and apply all writes or none. Used for tests and local runs.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, Optional, Tuple

import structlog

from instructor_auth.errors import (
    ConcurrencyConflictError,
    DuplicateIdentityError,
    NotFoundError,
)
from instructor_auth.models.user import RefreshTokenRecord, User, UserCandidate
from instructor_auth.storage.base import (
    KeySpace,
    dump_refresh_token,
    dump_user,
    load_refresh_token,
    load_user,
    new_user_id,
)

logger = structlog.get_logger(__name__)


class MemoryIdentityStore:
    """Identity store backed by a dict of ``key -> (version, payload)``."""

    def __init__(self, key_prefix: str = ""):
        self.keys = KeySpace(key_prefix)
        self._entries: Dict[str, Tuple[int, str]] = {}
        self._version_seq = 0

    async def _read(self, key: str) -> Tuple[Optional[int], Optional[str]]:
        entry = self._entries.get(key)
        # Yield like real I/O so concurrent callers interleave between read and commit
        await asyncio.sleep(0)
        if entry is None:
            return None, None
        return entry

    def _commit(
        self,
        checks: Dict[str, Optional[int]],
        sets: Optional[Dict[str, str]] = None,
        deletes: Iterable[str] = (),
    ) -> bool:
        # No await between check and write, so this is atomic on the event loop
        for key, version in checks.items():
            current = self._entries.get(key)
            if (current[0] if current else None) != version:
                return False
        self._version_seq += 1
        for key, payload in (sets or {}).items():
            self._entries[key] = (self._version_seq, payload)
        for key in deletes:
            self._entries.pop(key, None)
        return True

    async def _scan(self, prefix: str) -> AsyncIterator[str]:
        for key in sorted(k for k in self._entries if k.startswith(prefix)):
            _, payload = await self._read(key)
            if payload is not None:
                yield payload

    async def create_user(self, candidate: UserCandidate) -> User:
        user = User(id=new_user_id(), **candidate.model_dump())
        user_keys = self.keys.user_keys(user)

        checks: Dict[str, Optional[int]] = {}
        taken = []
        for field, key in user_keys.items():
            version, _ = await self._read(key)
            checks[key] = version
            if version is not None:
                taken.append(field)
        if taken:
            raise DuplicateIdentityError(detail={"fields": taken})

        payload = dump_user(user)
        if not self._commit(checks, sets={key: payload for key in user_keys.values()}):
            logger.info("user_create_conflict", username=user.username)
            raise DuplicateIdentityError(detail={"reason": "concurrent_write"})
        return user

    async def get_user(self, key: str) -> User:
        _, payload = await self._read(self.keys.identity(key))
        if payload is None:
            raise NotFoundError("User does not exist!")
        return load_user(payload)

    async def list_users(self, prefix: str = "") -> AsyncIterator[User]:
        async for payload in self._scan(self.keys.identity_prefix + prefix.lower()):
            yield load_user(payload)

    async def get_refresh_token(self, user_id: str) -> RefreshTokenRecord:
        _, payload = await self._read(self.keys.session(user_id))
        if payload is None:
            raise NotFoundError("No Such Token Found!")
        return load_refresh_token(payload)

    async def list_refresh_tokens(self, prefix: str = "") -> AsyncIterator[RefreshTokenRecord]:
        async for payload in self._scan(self.keys.session_prefix + prefix.lower()):
            yield load_refresh_token(payload)

    async def put_refresh_token(
        self,
        user_id: str,
        token_hash: str,
        issued_at: datetime,
        expires_at: datetime,
        expected_hash: Optional[str] = None,
    ) -> RefreshTokenRecord:
        key = self.keys.session(user_id)
        version, current = await self._read(key)
        if expected_hash is not None and (
            current is None or load_refresh_token(current).token_hash != expected_hash
        ):
            raise ConcurrencyConflictError(detail={"user_id": user_id})

        record = RefreshTokenRecord(
            user_id=user_id,
            token_hash=token_hash,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        if not self._commit({key: version}, sets={key: dump_refresh_token(record)}):
            raise ConcurrencyConflictError(detail={"user_id": user_id})
        return record

    async def delete_refresh_token(
        self, user_id: str, expected_hash: Optional[str] = None
    ) -> bool:
        key = self.keys.session(user_id)
        version, current = await self._read(key)
        if expected_hash is not None and (
            current is None or load_refresh_token(current).token_hash != expected_hash
        ):
            return False
        return self._commit({key: version}, deletes=[key])

    async def close(self) -> None:
        self._entries.clear()
