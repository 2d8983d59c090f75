"""Exception taxonomy for revcache.

- InvalidArgumentError: expiration options rejected before any I/O
- InvalidKeyError: empty or store-illegal keys
- CorruptEntryError: a stored value whose header cannot be parsed
- RevisionConflictError: compare-and-swap lost against another writer
"""

from __future__ import annotations


class CacheError(Exception):
    """Base exception for cache errors."""

    pass


class InvalidArgumentError(CacheError, ValueError):
    """Raised when cache entry options fail validation."""

    def __init__(self, name: str, value: object, reason: str) -> None:
        self.name = name
        self.value = value
        super().__init__(f"{name}={value!r}: {reason}")


class InvalidKeyError(CacheError, ValueError):
    """Raised when a key is empty or not legal for the store."""

    def __init__(self, key: str, reason: str = "") -> None:
        self.key = key
        message = f"Invalid key: {key!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class CorruptEntryError(CacheError):
    """Raised when a stored cache entry cannot be decoded."""

    pass


class RevisionConflictError(CacheError):
    """Raised when a conditional write finds a different revision."""

    def __init__(self, key: str, expected_revision: int) -> None:
        self.key = key
        self.expected_revision = expected_revision
        super().__init__(f"Wrong last revision for {key!r} (expected {expected_revision})")
