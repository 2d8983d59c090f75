"""Read-and-renew protocol for sliding expiration.

The store has no "touch" primitive, so a sliding entry is kept alive by
rewriting it with a fresh TTL, conditioned on the revision observed when it
was read:

    fetch ─┬─ missing ───────────────────────────────────────► miss
           └─ found ─┬─ past absolute expiration ─ delete ───► miss
                     └─ live ─┬─ no sliding window ──────────► payload
                              └─ conditional update ─┬─ ok ──► payload
                                                     └─ conflict
                                                        └─ re-fetch, retry once ─► payload

A second conflict ends the renewal without an error and the payload read
first is still returned.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from enum import Enum

from revcache.entry import CacheEntry, decode_entry
from revcache.errors import RevisionConflictError
from revcache.expiration import Clock, renewal_ttl, utc_now
from revcache.observability.metrics import (
    record_cache_hit,
    record_cache_miss,
    record_expired_entry,
    record_renewal,
)
from revcache.store.base import KeyValueStore, KvEntry

logger = logging.getLogger(__name__)

# Initial attempt plus one retry after a revision conflict
MAX_RENEWAL_ATTEMPTS = 2


class RenewalOutcome(str, Enum):
    """Result of a sliding-expiration renewal."""

    NOT_SLIDING = "not_sliding"
    RENEWED = "renewed"
    SKIPPED = "skipped"
    CONCEDED = "conceded"


class RenewalProtocol:
    """Fetch an entry, enforce its absolute bound and renew its sliding window."""

    def __init__(self, store: KeyValueStore, clock: Clock | None = None):
        self.store = store
        self._clock = clock or utc_now

    async def get_and_refresh(self, key: str, *, get_data: bool = True) -> bytes | None:
        """Read a store key and renew it if it uses sliding expiration.

        Args:
            key: Encoded store key
            get_data: Return the payload (False for refresh-only calls)

        Returns:
            The payload, or None on a miss or when get_data is False.

        Raises:
            CorruptEntryError: If the stored value cannot be decoded.
        """
        found = await self.store.get(key)
        if found is None:
            record_cache_miss()
            return None

        entry = decode_entry(found.value)
        if entry.is_expired(self._clock()):
            await self._delete_expired(found)
            record_cache_miss()
            return None

        record_cache_hit()
        outcome = await self._renew(found, entry)
        if outcome is not RenewalOutcome.NOT_SLIDING:
            record_renewal(outcome.value)

        return entry.payload if get_data else None

    async def _renew(self, found: KvEntry, entry: CacheEntry) -> RenewalOutcome:
        """Renew the sliding window with at most one retry.

        A retry re-fetches the entry only to pick up its current revision.
        """
        if entry.sliding_expiration is None:
            return RenewalOutcome.NOT_SLIDING

        for attempt in range(MAX_RENEWAL_ATTEMPTS):
            if attempt:
                refetched = await self.store.get(found.key)
                if refetched is None:
                    return RenewalOutcome.CONCEDED
                found = refetched
                entry = decode_entry(found.value)
                if entry.is_expired(self._clock()):
                    await self._delete_expired(found)
                    return RenewalOutcome.CONCEDED

            sliding = entry.sliding_expiration
            if sliding is None:
                return RenewalOutcome.CONCEDED

            ttl = renewal_ttl(entry.absolute_expiration, sliding, self._clock())
            if ttl <= timedelta(0):
                return RenewalOutcome.SKIPPED

            try:
                await self.store.update(found.key, found.value, found.revision, ttl)
                return RenewalOutcome.RENEWED
            except RevisionConflictError:
                record_renewal("conflict")
                logger.debug(
                    "Sliding renewal of %s lost a revision race (attempt %d)",
                    found.key,
                    attempt + 1,
                )

        return RenewalOutcome.CONCEDED

    async def _delete_expired(self, found: KvEntry) -> None:
        """Best-effort delete of an entry past its absolute expiration."""
        record_expired_entry()
        try:
            await self.store.delete(found.key, expected_revision=found.revision)
            logger.debug("Deleted expired entry %s", found.key)
        except RevisionConflictError:
            # Already deleted or overwritten by another writer
            logger.debug("Expired entry %s changed before delete", found.key)
