"""Base key-value store interface.

Defines the revisioned key-value store the cache is built on. Every stored
value carries a store-assigned, strictly increasing revision that
conditional writes are matched against.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class KvEntry:
    """A stored value and the revision it was written at."""

    key: str
    value: bytes
    revision: int


class KeyValueStore(ABC):
    """Abstract base class for revisioned key-value stores."""

    bucket: str = ""

    @abstractmethod
    async def put(self, key: str, value: bytes, ttl: timedelta | None = None) -> int:
        """Write a value unconditionally.

        Args:
            key: Store-legal key
            value: Value bytes
            ttl: Time-to-live (None keeps the entry until deleted)

        Returns:
            The new revision
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> KvEntry | None:
        """Read a value and its revision.

        Returns:
            The entry, or None if the key does not exist or has expired
        """
        ...

    @abstractmethod
    async def delete(self, key: str, expected_revision: int | None = None) -> None:
        """Delete a key.

        Args:
            key: Store-legal key
            expected_revision: If set, only delete when the current revision matches

        Raises:
            RevisionConflictError: If expected_revision does not match
        """
        ...

    @abstractmethod
    async def update(
        self,
        key: str,
        value: bytes,
        expected_revision: int,
        ttl: timedelta | None = None,
    ) -> int:
        """Write a value only if the current revision matches.

        Returns:
            The new revision

        Raises:
            RevisionConflictError: If the key is gone or holds another revision
        """
        ...

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


def ttl_milliseconds(ttl: timedelta | None) -> int:
    """Convert a TTL to whole milliseconds, rounding up; 0 means no TTL.

    Raises:
        ValueError: If the TTL is not positive.
    """
    if ttl is None:
        return 0
    if ttl <= timedelta(0):
        raise ValueError(f"TTL must be positive, got {ttl!r}")
    return math.ceil(ttl / timedelta(milliseconds=1))
