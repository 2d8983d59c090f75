"""Tests for the in-memory revisioned store."""

from datetime import timedelta

import pytest

from revcache.errors import InvalidKeyError, RevisionConflictError
from revcache.store.memory import InMemoryKeyValueStore
from tests.fakes import FakeClock


class TestInMemoryKeyValueStore:
    """Test in-memory store operations."""

    async def test_put_and_get(self, memory_store: InMemoryKeyValueStore) -> None:
        """Stored values are returned with their revision."""
        revision = await memory_store.put("a.b", b"value")
        found = await memory_store.get("a.b")
        assert found is not None
        assert found.value == b"value"
        assert found.revision == revision

    async def test_get_missing(self, memory_store: InMemoryKeyValueStore) -> None:
        """Missing keys return None."""
        assert await memory_store.get("missing") is None

    async def test_revisions_increase(self, memory_store: InMemoryKeyValueStore) -> None:
        """Each write gets a higher revision, across keys."""
        first = await memory_store.put("a", b"1")
        second = await memory_store.put("b", b"2")
        third = await memory_store.put("a", b"3")
        assert first < second < third

    async def test_ttl_expiry(
        self, memory_store: InMemoryKeyValueStore, clock: FakeClock
    ) -> None:
        """Entries disappear once their TTL elapses."""
        await memory_store.put("k", b"v", ttl=timedelta(seconds=5))
        clock.advance(4.9)
        assert await memory_store.get("k") is not None
        clock.advance(0.1)
        assert await memory_store.get("k") is None

    async def test_put_without_ttl_clears_ttl(
        self, memory_store: InMemoryKeyValueStore, clock: FakeClock
    ) -> None:
        """Overwriting without a TTL makes the entry permanent."""
        await memory_store.put("k", b"v", ttl=timedelta(seconds=1))
        await memory_store.put("k", b"v2")
        clock.advance(3600)
        found = await memory_store.get("k")
        assert found is not None
        assert found.value == b"v2"

    async def test_update_matching_revision(
        self, memory_store: InMemoryKeyValueStore, clock: FakeClock
    ) -> None:
        """Updates with the current revision succeed and reset the TTL."""
        revision = await memory_store.put("k", b"v", ttl=timedelta(seconds=5))
        clock.advance(4)
        new_revision = await memory_store.update("k", b"v", revision, ttl=timedelta(seconds=5))
        assert new_revision > revision
        clock.advance(4)
        assert await memory_store.get("k") is not None

    async def test_update_stale_revision(self, memory_store: InMemoryKeyValueStore) -> None:
        """Updates with an old revision conflict."""
        revision = await memory_store.put("k", b"v1")
        await memory_store.put("k", b"v2")
        with pytest.raises(RevisionConflictError):
            await memory_store.update("k", b"v3", revision)
        found = await memory_store.get("k")
        assert found is not None
        assert found.value == b"v2"

    async def test_update_missing_key(self, memory_store: InMemoryKeyValueStore) -> None:
        """Updates of a missing key conflict."""
        with pytest.raises(RevisionConflictError):
            await memory_store.update("k", b"v", 1)

    async def test_delete(self, memory_store: InMemoryKeyValueStore) -> None:
        """Unconditional delete removes the key and tolerates missing keys."""
        await memory_store.put("k", b"v")
        await memory_store.delete("k")
        assert await memory_store.get("k") is None
        await memory_store.delete("k")

    async def test_conditional_delete(self, memory_store: InMemoryKeyValueStore) -> None:
        """Conditional delete only removes the expected revision."""
        old = await memory_store.put("k", b"v1")
        current = await memory_store.put("k", b"v2")

        with pytest.raises(RevisionConflictError):
            await memory_store.delete("k", expected_revision=old)
        assert await memory_store.get("k") is not None

        await memory_store.delete("k", expected_revision=current)
        assert await memory_store.get("k") is None

    async def test_rejects_illegal_keys(self, memory_store: InMemoryKeyValueStore) -> None:
        """Keys outside the store alphabet are rejected."""
        with pytest.raises(InvalidKeyError):
            await memory_store.put("has space", b"v")
        with pytest.raises(InvalidKeyError):
            await memory_store.get(".dot")

    async def test_rejects_non_positive_ttl(self, memory_store: InMemoryKeyValueStore) -> None:
        """A zero TTL is not a valid store TTL."""
        with pytest.raises(ValueError):
            await memory_store.put("k", b"v", ttl=timedelta(0))

    async def test_len_counts_live_entries(
        self, memory_store: InMemoryKeyValueStore, clock: FakeClock
    ) -> None:
        """Expired entries are not counted."""
        await memory_store.put("a", b"1", ttl=timedelta(seconds=1))
        await memory_store.put("b", b"2")
        assert len(memory_store) == 2
        clock.advance(2)
        assert len(memory_store) == 1

    async def test_expired_records_purged_on_write(
        self, memory_store: InMemoryKeyValueStore, clock: FakeClock
    ) -> None:
        """Writes drop records whose TTL has elapsed, even if never read again."""
        for i in range(1000):
            await memory_store.put(f"k{i}", b"v", ttl=timedelta(seconds=1))
        clock.advance(60)

        await memory_store.put("fresh", b"v")

        assert len(memory_store._records) == 1
        assert len(memory_store) == 1

    async def test_purge_keeps_rewritten_record(
        self, memory_store: InMemoryKeyValueStore, clock: FakeClock
    ) -> None:
        """An elapsed TTL from an older write does not remove a newer one."""
        await memory_store.put("k", b"v", ttl=timedelta(seconds=1))
        await memory_store.put("k", b"v2")
        clock.advance(5)

        await memory_store.put("other", b"v")

        found = await memory_store.get("k")
        assert found is not None
        assert found.value == b"v2"
