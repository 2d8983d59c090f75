"""Test doubles shared across the suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from revcache.store.base import KvEntry
from revcache.store.memory import InMemoryKeyValueStore


class FakeClock:
    """Manually advanced UTC clock shared by a cache and its store."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 10, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta | float) -> None:
        """Move time forward by a timedelta or a number of seconds."""
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        self.now += delta


class ConflictingStore(InMemoryKeyValueStore):
    """In-memory store where another writer wins the next N conditional updates.

    Before each of the first ``conflicts`` updates, the key is rewritten with
    its current value so the caller's revision is stale.
    """

    def __init__(self, conflicts: int, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.conflicts = conflicts
        self.update_calls = 0
        self.get_calls = 0

    async def get(self, key: str) -> KvEntry | None:
        self.get_calls += 1
        return await super().get(key)

    async def update(
        self,
        key: str,
        value: bytes,
        expected_revision: int,
        ttl: timedelta | None = None,
    ) -> int:
        self.update_calls += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            current = await super().get(key)
            if current is not None:
                await self.put(key, current.value, ttl)
        return await super().update(key, value, expected_revision, ttl)
