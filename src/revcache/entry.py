"""Stored value format for cache entries.

Layout:
    {"absexp": "2026-01-10T12:34:56.789000+00:00", "sldexp": 5000000}\\n<payload>

The first line is an orjson header; absent fields are omitted. ``absexp`` is
an absolute UTC instant in ISO-8601 form and ``sldexp`` the sliding window in
whole microseconds. Everything after the first newline is the payload,
stored verbatim.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import orjson

from revcache.errors import CorruptEntryError

HEADER_SEPARATOR = b"\n"

ABSOLUTE_FIELD = "absexp"
SLIDING_FIELD = "sldexp"


@dataclass(frozen=True)
class CacheEntry:
    """A cached payload together with its expiration metadata."""

    payload: bytes
    absolute_expiration: datetime | None = None
    sliding_expiration: timedelta | None = None

    def is_expired(self, now: datetime) -> bool:
        """Check whether the absolute bound has passed."""
        return self.absolute_expiration is not None and now > self.absolute_expiration


def _to_microseconds(value: timedelta) -> int:
    return (value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds


def encode_entry(entry: CacheEntry) -> bytes:
    """Serialize an entry into the store's value format."""
    header: dict[str, Any] = {}
    if entry.absolute_expiration is not None:
        header[ABSOLUTE_FIELD] = entry.absolute_expiration.astimezone(UTC).isoformat()
    if entry.sliding_expiration is not None:
        header[SLIDING_FIELD] = _to_microseconds(entry.sliding_expiration)

    return orjson.dumps(header) + HEADER_SEPARATOR + bytes(entry.payload)


def decode_entry(data: bytes) -> CacheEntry:
    """Parse a stored value back into a CacheEntry.

    Raises:
        CorruptEntryError: If the header is missing or malformed.
    """
    header_bytes, separator, payload = bytes(data).partition(HEADER_SEPARATOR)
    if not separator:
        raise CorruptEntryError("Cache entry header is not terminated")

    try:
        header = orjson.loads(header_bytes)
    except orjson.JSONDecodeError as e:
        raise CorruptEntryError(f"Cache entry header is not valid JSON: {e}") from e

    if not isinstance(header, dict):
        raise CorruptEntryError("Cache entry header must be a JSON object")

    absolute: datetime | None = None
    raw_absolute = header.get(ABSOLUTE_FIELD)
    if raw_absolute is not None:
        if not isinstance(raw_absolute, str):
            raise CorruptEntryError(f"Invalid {ABSOLUTE_FIELD} value: {raw_absolute!r}")
        try:
            absolute = datetime.fromisoformat(raw_absolute)
        except ValueError as e:
            raise CorruptEntryError(f"Invalid {ABSOLUTE_FIELD} value: {raw_absolute!r}") from e
        if absolute.tzinfo is None:
            raise CorruptEntryError(f"{ABSOLUTE_FIELD} has no UTC offset: {raw_absolute!r}")

    sliding: timedelta | None = None
    raw_sliding = header.get(SLIDING_FIELD)
    if raw_sliding is not None:
        # bool is an int subclass
        if not isinstance(raw_sliding, int) or isinstance(raw_sliding, bool):
            raise CorruptEntryError(f"Invalid {SLIDING_FIELD} value: {raw_sliding!r}")
        try:
            sliding = timedelta(microseconds=raw_sliding)
        except OverflowError as e:
            raise CorruptEntryError(f"{SLIDING_FIELD} out of range: {raw_sliding!r}") from e

    return CacheEntry(payload=payload, absolute_expiration=absolute, sliding_expiration=sliding)
