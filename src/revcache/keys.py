"""Cache key legalization for revcache.

The backing store only accepts keys matching ``[-/_=.A-Za-z0-9]+`` that do
not start or end with a period. Application keys are arbitrary strings, so
every key passes through a KeyEncoder before it reaches the store.

Two strategies are provided:

- PercentKeyEncoder: keys that are already legal stay untouched, everything
  else is percent-escaped with ``=`` standing in for ``%``.
- PunycodeKeyEncoder: only the dot-separated segments that need it are
  rewritten with RFC 3492 Punycode and marked with the ``xn--`` prefix.

Both satisfy ``decode(encode(key)) == key`` and never map two raw keys to the
same store key.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from urllib.parse import quote, unquote

from revcache.errors import InvalidKeyError

# Store key rule (leading/trailing dots are checked separately)
STORE_KEY_PATTERN = re.compile(r"[-/_=.A-Za-z0-9]+")


def validate_store_key(key: str) -> str:
    """Check a key against the store's key rule.

    Returns:
        The key unchanged.

    Raises:
        InvalidKeyError: If the key is empty, dot-bounded or has illegal characters.
    """
    if not key:
        raise InvalidKeyError(key, "key cannot be empty")
    if key[0] == "." or key[-1] == ".":
        raise InvalidKeyError(key, "key cannot start or end with a period")
    if not STORE_KEY_PATTERN.fullmatch(key):
        raise InvalidKeyError(key, "key contains invalid characters")
    return key


class KeyEncoder(ABC):
    """Bidirectional mapping between raw keys and store keys."""

    name: str = ""

    @abstractmethod
    def encode(self, raw: str) -> str:
        """Encode a raw key into a store-legal key."""
        ...

    @abstractmethod
    def decode(self, key: str) -> str:
        """Decode a store key back into the raw key."""
        ...


class PercentKeyEncoder(KeyEncoder):
    """URL-style escaping with ``=`` as the escape marker.

    ``=`` is excluded from the identity path, so a key containing ``=`` is
    always the output of the escape path.
    """

    name = "percent"

    _IDENTITY = re.compile(r"[-_./A-Za-z0-9]+")

    def _is_identity(self, raw: str) -> bool:
        return raw[0] != "." and raw[-1] != "." and self._IDENTITY.fullmatch(raw) is not None

    def encode(self, raw: str) -> str:
        if not raw:
            raise InvalidKeyError(raw, "key must not be empty")

        if self._is_identity(raw):
            return raw

        try:
            encoded = quote(raw, safe="")
        except UnicodeEncodeError as e:
            raise InvalidKeyError(raw, "key is not encodable as UTF-8") from e

        # quote() treats "~" as unreserved
        encoded = encoded.replace("~", "%7E")
        if encoded.startswith("."):
            encoded = "%2E" + encoded[1:]
        if encoded.endswith("."):
            encoded = encoded[:-1] + "%2E"

        return encoded.replace("%", "=")

    def decode(self, key: str) -> str:
        if not key:
            raise InvalidKeyError(key, "key must not be empty")

        if "=" not in key:
            return key

        try:
            return unquote(key.replace("=", "%"), errors="strict")
        except UnicodeDecodeError as e:
            raise InvalidKeyError(key, "escaped bytes are not valid UTF-8") from e


class PunycodeKeyEncoder(KeyEncoder):
    """Segment-wise Punycode escaping.

    Segments are split on ``.``. A segment is rewritten when it is empty,
    contains a character outside ``[-_=/A-Za-z0-9]`` or already starts with
    the ``xn--`` prefix. A leading or trailing dot is represented by an
    extra bare ``xn--`` segment at that end.

    Punycode copies ASCII through verbatim, so disallowed ASCII characters
    are first shifted into the U+2800 block. Characters that already live in
    that block (and the U+28FF marker itself) are prefixed with U+28FF so the
    shift can be undone exactly.
    """

    name = "punycode"

    PREFIX = "xn--"

    _SEGMENT = re.compile(r"[-_=/A-Za-z0-9]+")
    _SHIFT_BASE = 0x2800
    _LITERAL_MARKER = "\u28ff"

    def _is_identity(self, raw: str) -> bool:
        if raw[0] == "." or raw[-1] == "." or not STORE_KEY_PATTERN.fullmatch(raw):
            return False
        return not any(segment.startswith(self.PREFIX) for segment in raw.split("."))

    def _needs_escape(self, segment: str) -> bool:
        return (
            not segment
            or self._SEGMENT.fullmatch(segment) is None
            or segment.startswith(self.PREFIX)
        )

    def _shift(self, segment: str) -> str:
        out: list[str] = []
        for ch in segment:
            cp = ord(ch)
            if self._SHIFT_BASE <= cp < self._SHIFT_BASE + 0x80 or ch == self._LITERAL_MARKER:
                out.append(self._LITERAL_MARKER)
                out.append(ch)
            elif cp < 0x80 and self._SEGMENT.fullmatch(ch) is None:
                out.append(chr(self._SHIFT_BASE + cp))
            else:
                out.append(ch)
        return "".join(out)

    def _unshift(self, text: str) -> str:
        out: list[str] = []
        chars = iter(text)
        for ch in chars:
            if ch == self._LITERAL_MARKER:
                out.append(next(chars, ""))
                continue
            cp = ord(ch)
            if self._SHIFT_BASE <= cp < self._SHIFT_BASE + 0x80:
                out.append(chr(cp - self._SHIFT_BASE))
            else:
                out.append(ch)
        return "".join(out)

    def _encode_segment(self, raw: str, segment: str) -> str:
        try:
            puny = self._shift(segment).encode("punycode").decode("ascii")
        except UnicodeError as e:
            raise InvalidKeyError(raw, "key is not encodable as Punycode") from e
        return self.PREFIX + puny

    def _decode_segment(self, key: str, segment: str) -> str:
        try:
            text = segment[len(self.PREFIX) :].encode("ascii").decode("punycode")
        except UnicodeError as e:
            raise InvalidKeyError(key, f"malformed segment {segment!r}") from e
        return self._unshift(text)

    def encode(self, raw: str) -> str:
        if not raw:
            raise InvalidKeyError(raw, "key must not be empty")

        if self._is_identity(raw):
            return raw

        lead_dot = raw.startswith(".")
        working = raw[1:] if lead_dot else raw
        trail_dot = working.endswith(".")
        if trail_dot:
            working = working[:-1]

        parts = [
            self._encode_segment(raw, segment) if self._needs_escape(segment) else segment
            for segment in working.split(".")
        ]
        if lead_dot:
            parts.insert(0, self.PREFIX)
        if trail_dot:
            parts.append(self.PREFIX)

        return ".".join(parts)

    def decode(self, key: str) -> str:
        if not key:
            raise InvalidKeyError(key, "key must not be empty")

        parts = key.split(".")

        lead_dot = len(parts) > 1 and parts[0] == self.PREFIX
        if lead_dot:
            parts = parts[1:]

        trail_dot = len(parts) > 1 and parts[-1] == self.PREFIX
        if trail_dot:
            parts = parts[:-1]

        decoded = [
            self._decode_segment(key, segment) if segment.startswith(self.PREFIX) else segment
            for segment in parts
        ]

        result = ".".join(decoded)
        if lead_dot:
            result = "." + result
        if trail_dot:
            result = result + "."
        return result


_ENCODERS: dict[str, type[KeyEncoder]] = {
    PercentKeyEncoder.name: PercentKeyEncoder,
    PunycodeKeyEncoder.name: PunycodeKeyEncoder,
}


def get_key_encoder(name: str) -> KeyEncoder:
    """Create a key encoder by name ("percent" or "punycode")."""
    try:
        return _ENCODERS[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unsupported key encoder {name!r}. Supported values: {', '.join(_ENCODERS)}."
        ) from None
