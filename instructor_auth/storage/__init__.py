"""Identity store implementations."""

from instructor_auth.storage.base import IdentityStore, KeySpace
from instructor_auth.storage.memory_store import MemoryIdentityStore
from instructor_auth.storage.redis_store import RedisIdentityStore, create_redis_client

__all__ = [
    "IdentityStore",
    "KeySpace",
    "MemoryIdentityStore",
    "RedisIdentityStore",
    "create_redis_client",
]
