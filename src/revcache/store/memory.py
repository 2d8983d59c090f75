"""In-memory key-value store.

Process-local implementation of the revisioned store with per-entry TTLs.
Expiry is evaluated against an injectable clock, which lets tests move time
forward without sleeping. Expired records are dropped lazily on read and
purged in expiry order on every write.

For multi-instance deployments, use RedisKeyValueStore instead.
"""

from __future__ import annotations

import asyncio
import heapq
from dataclasses import dataclass
from datetime import datetime, timedelta

from revcache.errors import RevisionConflictError
from revcache.expiration import Clock, utc_now
from revcache.keys import validate_store_key
from revcache.store.base import KeyValueStore, KvEntry, ttl_milliseconds


@dataclass
class _Record:
    value: bytes
    revision: int
    expires_at: datetime | None


class InMemoryKeyValueStore(KeyValueStore):
    """Revisioned key-value store held in a dict."""

    def __init__(self, bucket: str = "cache", clock: Clock | None = None):
        self.bucket = bucket
        self._clock = clock or utc_now
        self._records: dict[str, _Record] = {}
        self._revision = 0
        # (expires_at, revision, key) for every write made with a TTL
        self._expiry_heap: list[tuple[datetime, int, str]] = []

    def _next_revision(self) -> int:
        self._revision += 1
        return self._revision

    def _expires_at(self, ttl: timedelta | None) -> datetime | None:
        ms = ttl_milliseconds(ttl)
        if not ms:
            return None
        return self._clock() + timedelta(milliseconds=ms)

    def _write(self, key: str, value: bytes, ttl: timedelta | None) -> int:
        self._purge_expired()
        revision = self._next_revision()
        expires_at = self._expires_at(ttl)
        self._records[key] = _Record(bytes(value), revision, expires_at)
        if expires_at is not None:
            heapq.heappush(self._expiry_heap, (expires_at, revision, key))
        return revision

    def _purge_expired(self) -> None:
        """Drop records whose TTL has elapsed, oldest expiry first."""
        now = self._clock()
        heap = self._expiry_heap
        while heap and heap[0][0] <= now:
            _, revision, key = heapq.heappop(heap)
            record = self._records.get(key)
            # Skip entries superseded by a later write
            if record is not None and record.revision == revision:
                del self._records[key]

    def _live(self, key: str) -> _Record | None:
        record = self._records.get(key)
        if record is None:
            return None
        if record.expires_at is not None and self._clock() >= record.expires_at:
            del self._records[key]
            return None
        return record

    async def put(self, key: str, value: bytes, ttl: timedelta | None = None) -> int:
        validate_store_key(key)
        await asyncio.sleep(0)
        return self._write(key, value, ttl)

    async def get(self, key: str) -> KvEntry | None:
        validate_store_key(key)
        await asyncio.sleep(0)

        record = self._live(key)
        if record is None:
            return None
        return KvEntry(key=key, value=record.value, revision=record.revision)

    async def delete(self, key: str, expected_revision: int | None = None) -> None:
        validate_store_key(key)
        await asyncio.sleep(0)

        record = self._live(key)
        if expected_revision is not None and (
            record is None or record.revision != expected_revision
        ):
            raise RevisionConflictError(key, expected_revision)
        self._records.pop(key, None)

    async def update(
        self,
        key: str,
        value: bytes,
        expected_revision: int,
        ttl: timedelta | None = None,
    ) -> int:
        validate_store_key(key)
        await asyncio.sleep(0)

        record = self._live(key)
        if record is None or record.revision != expected_revision:
            raise RevisionConflictError(key, expected_revision)

        return self._write(key, value, ttl)

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._records)
