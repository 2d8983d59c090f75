"""Tests for the stored entry format."""

from datetime import UTC, datetime, timedelta, timezone

import orjson
import pytest

from revcache.entry import CacheEntry, decode_entry, encode_entry
from revcache.errors import CorruptEntryError

NOW = datetime(2026, 1, 10, 12, 0, 0, tzinfo=UTC)


class TestEncodeEntry:
    """Test entry serialization."""

    def test_header_and_payload(self) -> None:
        """The header line precedes the raw payload."""
        entry = CacheEntry(
            payload=b"hello",
            absolute_expiration=NOW,
            sliding_expiration=timedelta(seconds=5),
        )
        header, _, payload = encode_entry(entry).partition(b"\n")
        assert orjson.loads(header) == {
            "absexp": "2026-01-10T12:00:00+00:00",
            "sldexp": 5_000_000,
        }
        assert payload == b"hello"

    def test_absent_fields_omitted(self) -> None:
        """Entries without expiration have an empty header object."""
        assert encode_entry(CacheEntry(payload=b"x")) == b"{}\nx"

    def test_absolute_normalized_to_utc(self) -> None:
        """Absolute instants are stored in UTC."""
        tz = timezone(timedelta(hours=-5))
        entry = CacheEntry(payload=b"", absolute_expiration=NOW.astimezone(tz))
        header, _, _ = encode_entry(entry).partition(b"\n")
        assert orjson.loads(header)["absexp"] == "2026-01-10T12:00:00+00:00"

    def test_payload_with_newlines(self) -> None:
        """Newlines in the payload survive a round trip."""
        entry = CacheEntry(payload=b"line1\nline2\n", sliding_expiration=timedelta(days=2))
        assert decode_entry(encode_entry(entry)) == entry

    def test_sub_second_precision(self) -> None:
        """Microsecond precision survives a round trip."""
        entry = CacheEntry(
            payload=b"p",
            absolute_expiration=NOW + timedelta(microseconds=123456),
            sliding_expiration=timedelta(milliseconds=1500, microseconds=7),
        )
        assert decode_entry(encode_entry(entry)) == entry


class TestDecodeEntry:
    """Test entry parsing."""

    def test_empty_payload(self) -> None:
        """An entry may carry an empty payload."""
        assert decode_entry(b"{}\n") == CacheEntry(payload=b"")

    @pytest.mark.parametrize(
        "data",
        [
            b"",
            b"no header separator",
            b"not json\npayload",
            b"[1, 2]\npayload",
            b'{"absexp": 17}\npayload',
            b'{"absexp": "yesterday"}\npayload',
            b'{"absexp": "2026-01-10T12:00:00"}\npayload',
            b'{"sldexp": "5s"}\npayload',
            b'{"sldexp": true}\npayload',
            b'{"sldexp": 1.5}\npayload',
            b'{"sldexp": 999999999999999999999}\npayload',
        ],
    )
    def test_corrupt_entries(self, data: bytes) -> None:
        """Malformed headers raise CorruptEntryError."""
        with pytest.raises(CorruptEntryError):
            decode_entry(data)

    def test_unknown_fields_ignored(self) -> None:
        """Extra header fields do not break decoding."""
        entry = decode_entry(b'{"sldexp": 1000000, "v": 2}\npayload')
        assert entry.sliding_expiration == timedelta(seconds=1)
        assert entry.payload == b"payload"


class TestCacheEntry:
    """Test absolute expiry checks."""

    def test_not_expired_without_absolute(self) -> None:
        """Entries without an absolute bound never expire here."""
        assert not CacheEntry(payload=b"").is_expired(NOW)

    def test_expired_after_absolute(self) -> None:
        """Entries expire strictly after the absolute bound."""
        entry = CacheEntry(payload=b"", absolute_expiration=NOW)
        assert not entry.is_expired(NOW)
        assert entry.is_expired(NOW + timedelta(microseconds=1))
