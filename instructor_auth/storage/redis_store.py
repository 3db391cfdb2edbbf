"""Redis-backed identity store using WATCH/MULTI/EXEC optimistic transactions."""

from __future__ import annotations

import re
from datetime import datetime
from typing import AsyncIterator, List, Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError, WatchError

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

SCAN_BATCH_SIZE = 100

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


async def create_redis_client(url: str) -> redis.Redis:
    """Create a Redis client and check the connection.

    Raises:
        RedisError: If Redis cannot be reached
    """
    client = redis.from_url(url, encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
    except RedisError as e:
        logger.error("redis_connection_failed", error=str(e))
        await client.aclose()
        raise
    logger.info("redis_connected", url=url.split("@")[-1])
    return client


class RedisIdentityStore:
    """Identity store on a single Redis database.

    A user record is written under three keys (id, username, email) in one
    MULTI/EXEC block guarded by WATCH on all three, which gives three-way
    uniqueness without a separate index.
    """

    def __init__(self, client: redis.Redis, key_prefix: str = ""):
        self._client = client
        self.keys = KeySpace(key_prefix)

    async def _scan(self, prefix: str) -> AsyncIterator[str]:
        """Yield payloads of all keys under ``prefix`` in key order."""
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        keys: List[str] = [
            key async for key in self._client.scan_iter(match=pattern, count=SCAN_BATCH_SIZE)
        ]
        keys.sort()
        for start in range(0, len(keys), SCAN_BATCH_SIZE):
            batch = keys[start:start + SCAN_BATCH_SIZE]
            for payload in await self._client.mget(batch):
                # Deleted between scan and fetch
                if payload is not None:
                    yield payload

    async def create_user(self, candidate: UserCandidate) -> User:
        """Assign an id and write the record under its id, username and email.

        Raises:
            DuplicateIdentityError: A key is taken or another writer touched
                one of the keys before commit
        """
        user = User(id=new_user_id(), **candidate.model_dump())
        user_keys = self.keys.user_keys(user)
        payload = dump_user(user)

        try:
            async with self._client.pipeline(transaction=True) as pipe:
                await pipe.watch(*user_keys.values())
                existing = await pipe.mget(list(user_keys.values()))
                taken = [
                    field
                    for field, value in zip(user_keys.keys(), existing)
                    if value is not None
                ]
                if taken:
                    raise DuplicateIdentityError(detail={"fields": taken})

                pipe.multi()
                for key in user_keys.values():
                    pipe.set(key, payload)
                await pipe.execute()
        except WatchError as e:
            logger.info("user_create_conflict", username=user.username)
            raise DuplicateIdentityError(detail={"reason": "concurrent_write"}) from e

        return user

    async def get_user(self, key: str) -> User:
        payload = await self._client.get(self.keys.identity(key))
        if payload is None:
            raise NotFoundError("User does not exist!")
        return load_user(payload)

    async def list_users(self, prefix: str = "") -> AsyncIterator[User]:
        async for payload in self._scan(self.keys.identity_prefix + prefix.lower()):
            yield load_user(payload)

    async def get_refresh_token(self, user_id: str) -> RefreshTokenRecord:
        payload = await self._client.get(self.keys.session(user_id))
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
        """Create or replace the user's refresh-token record.

        Args:
            user_id: Owner of the record
            token_hash: Secret Hasher digest of the new refresh token
            issued_at: Issue time of the new token
            expires_at: Expiry of the new token
            expected_hash: If given, commit only while the stored record
                still carries this hash

        Returns:
            The stored record

        Raises:
            ConcurrencyConflictError: The record changed since it was read
        """
        key = self.keys.session(user_id)
        record = RefreshTokenRecord(
            user_id=user_id,
            token_hash=token_hash,
            issued_at=issued_at,
            expires_at=expires_at,
        )

        try:
            async with self._client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = await pipe.get(key)
                if expected_hash is not None and (
                    current is None
                    or load_refresh_token(current).token_hash != expected_hash
                ):
                    raise ConcurrencyConflictError(detail={"user_id": user_id})

                pipe.multi()
                pipe.set(key, dump_refresh_token(record))
                await pipe.execute()
        except WatchError as e:
            logger.info("refresh_token_conflict", user_id=user_id)
            raise ConcurrencyConflictError(detail={"user_id": user_id}) from e

        return record

    async def delete_refresh_token(
        self, user_id: str, expected_hash: Optional[str] = None
    ) -> bool:
        """Delete the user's refresh-token record.

        Returns:
            False if the record changed underneath us, True otherwise
            (including when it was already absent)
        """
        key = self.keys.session(user_id)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = await pipe.get(key)
                if expected_hash is not None and (
                    current is None
                    or load_refresh_token(current).token_hash != expected_hash
                ):
                    return False

                pipe.multi()
                pipe.delete(key)
                await pipe.execute()
        except WatchError:
            logger.info("refresh_token_delete_conflict", user_id=user_id)
            return False

        return True

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("redis_connection_closed")
