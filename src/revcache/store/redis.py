"""Redis-backed revisioned key-value store.

Key layout:
    {namespace}:{bucket}:rev        per-bucket revision counter (INCR)
    {namespace}:{bucket}:k:{key}    hash with fields v (value) and r (revision)

Writes run as Lua scripts so the revision check and the write happen
atomically on the server. TTLs are applied with millisecond PEXPIRE.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from datetime import timedelta
from typing import TYPE_CHECKING, cast

import redis.asyncio as redis

from revcache.errors import RevisionConflictError
from revcache.keys import validate_store_key
from revcache.store.base import KeyValueStore, KvEntry, ttl_milliseconds

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "revcache"

# Returned by the write scripts when the expected revision does not match
_CONFLICT = -1

# KEYS[1]=entry KEYS[2]=revision counter; ARGV[1]=value ARGV[2]=ttl ms (0 = none)
_PUT_SCRIPT = """
local rev = redis.call("INCR", KEYS[2])
redis.call("HSET", KEYS[1], "v", ARGV[1], "r", rev)
local ttl = tonumber(ARGV[2])
if ttl > 0 then
    redis.call("PEXPIRE", KEYS[1], ttl)
else
    redis.call("PERSIST", KEYS[1])
end
return rev
"""

# KEYS[1]=entry KEYS[2]=revision counter; ARGV[1]=value ARGV[2]=ttl ms ARGV[3]=expected
_UPDATE_SCRIPT = """
local current = redis.call("HGET", KEYS[1], "r")
if current == false or current ~= ARGV[3] then
    return -1
end
local rev = redis.call("INCR", KEYS[2])
redis.call("HSET", KEYS[1], "v", ARGV[1], "r", rev)
local ttl = tonumber(ARGV[2])
if ttl > 0 then
    redis.call("PEXPIRE", KEYS[1], ttl)
else
    redis.call("PERSIST", KEYS[1])
end
return rev
"""

# KEYS[1]=entry; ARGV[1]=expected revision or ""
_DELETE_SCRIPT = """
if ARGV[1] ~= "" then
    local current = redis.call("HGET", KEYS[1], "r")
    if current == false or current ~= ARGV[1] then
        return -1
    end
end
return redis.call("DEL", KEYS[1])
"""


class RedisKeyValueStore(KeyValueStore):
    """Revisioned key-value store on top of Redis hashes."""

    def __init__(self, client: Redis, bucket: str, namespace: str = DEFAULT_NAMESPACE):
        self.client = client
        self.bucket = bucket
        self._prefix = f"{namespace}:{bucket}"
        self._revision_key = f"{self._prefix}:rev"

        self._put = client.register_script(_PUT_SCRIPT)
        self._update = client.register_script(_UPDATE_SCRIPT)
        self._delete = client.register_script(_DELETE_SCRIPT)

    def entry_key(self, key: str) -> str:
        """Redis key holding a store entry."""
        return f"{self._prefix}:k:{key}"

    async def put(self, key: str, value: bytes, ttl: timedelta | None = None) -> int:
        validate_store_key(key)
        revision = await self._put(
            keys=[self.entry_key(key), self._revision_key],
            args=[bytes(value), ttl_milliseconds(ttl)],
        )
        return int(revision)

    async def get(self, key: str) -> KvEntry | None:
        validate_store_key(key)
        value, revision = await cast(
            Awaitable[list[bytes | None]],
            self.client.hmget(self.entry_key(key), ["v", "r"]),
        )
        if value is None or revision is None:
            return None
        return KvEntry(key=key, value=value, revision=int(revision))

    async def delete(self, key: str, expected_revision: int | None = None) -> None:
        validate_store_key(key)
        expected = "" if expected_revision is None else str(expected_revision)
        result = await self._delete(keys=[self.entry_key(key)], args=[expected])
        if expected_revision is not None and int(result) == _CONFLICT:
            raise RevisionConflictError(key, expected_revision)

    async def update(
        self,
        key: str,
        value: bytes,
        expected_revision: int,
        ttl: timedelta | None = None,
    ) -> int:
        validate_store_key(key)
        revision = await self._update(
            keys=[self.entry_key(key), self._revision_key],
            args=[bytes(value), ttl_milliseconds(ttl), str(expected_revision)],
        )
        if int(revision) == _CONFLICT:
            raise RevisionConflictError(key, expected_revision)
        return int(revision)

    async def close(self) -> None:
        """Close Redis connections."""
        await self.client.aclose()


async def open_redis_store(
    url: str,
    bucket: str,
    namespace: str = DEFAULT_NAMESPACE,
) -> RedisKeyValueStore:
    """Connect to Redis and bind a store to a bucket.

    The connection is verified with PING so that an unreachable server fails
    here rather than on the first cache operation.
    """
    client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        decode_responses=False,  # We're storing bytes
    )
    try:
        await cast(Awaitable[bool], client.ping())
    except BaseException:
        await client.aclose()
        raise

    logger.info("Connected to Redis for bucket %s", bucket)
    return RedisKeyValueStore(client, bucket=bucket, namespace=namespace)
