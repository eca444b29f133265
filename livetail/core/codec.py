"""
Cursor codec - converts record keys to transport-safe cursor strings and back.

Two key shapes are supported:

* FixedKey   - 12 raw bytes (4 byte unix timestamp + 8 byte sequence),
               encoded as 24 lowercase hex characters.
* GenericKey - any JSON value, stored in canonical serialized form and
               encoded as "g." + urlsafe base64 of that JSON.

The generic form always carries the "g." prefix, so it can never match the
fixed-width hex pattern.
"""

import base64
import binascii
import json
import re
import struct
from dataclasses import dataclass
from typing import Any, Optional, Union

from .errors import InvalidCursor

FIXED_KEY_BYTES = 12
GENERIC_PREFIX = "g."

_HEX_PATTERN = re.compile(r"[0-9a-fA-F]{24}")
_GENERIC_PATTERN = re.compile(r"g\.[A-Za-z0-9_-]+")


@dataclass(frozen=True, order=True)
class FixedKey:
    """Fixed-width key; orders by raw bytes, which matches insertion order."""

    raw: bytes

    def __post_init__(self):
        if not isinstance(self.raw, bytes) or len(self.raw) != FIXED_KEY_BYTES:
            raise ValueError(f"FixedKey requires exactly {FIXED_KEY_BYTES} bytes")

    @classmethod
    def generate(cls, ts: int, seq: int) -> "FixedKey":
        """Build a key from a unix timestamp and a per-writer sequence number."""
        return cls(struct.pack(">IQ", ts & 0xFFFFFFFF, seq))

    @property
    def timestamp(self) -> int:
        return struct.unpack(">I", self.raw[:4])[0]

    def hex(self) -> str:
        return self.raw.hex()


@dataclass(frozen=True)
class GenericKey:
    """Structured key kept in canonical JSON form so equality is lossless."""

    serialized: str

    @classmethod
    def of(cls, value: Any) -> "GenericKey":
        return cls(_canonical_json(value))

    @property
    def value(self) -> Any:
        return json.loads(self.serialized)


RecordKey = Union[FixedKey, GenericKey]


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), allow_nan=False)


def _reject_constant(name: str):
    raise ValueError(f"non-finite number {name}")


def encode_cursor(key: Optional[RecordKey]) -> Optional[str]:
    """Encode a record key as a cursor string. None encodes to None."""
    if key is None:
        return None
    if isinstance(key, FixedKey):
        return key.hex()
    if isinstance(key, GenericKey):
        payload = base64.urlsafe_b64encode(key.serialized.encode("utf-8")).decode("ascii")
        return GENERIC_PREFIX + payload.rstrip("=")
    raise TypeError(f"Unsupported key type: {type(key).__name__}")


def decode_cursor(text: Any) -> RecordKey:
    """Decode a cursor string. Raises InvalidCursor for anything malformed."""
    if not isinstance(text, str):
        raise InvalidCursor(text, "cursor must be a string")

    if _HEX_PATTERN.fullmatch(text):
        return FixedKey(bytes.fromhex(text))

    if _GENERIC_PATTERN.fullmatch(text):
        payload = text[len(GENERIC_PREFIX):]
        padded = payload + "=" * (-len(payload) % 4)
        try:
            raw = base64.urlsafe_b64decode(padded.encode("ascii"))
            value = json.loads(raw.decode("utf-8"), parse_constant=_reject_constant)
            return GenericKey.of(value)
        except (binascii.Error, UnicodeDecodeError, ValueError, RecursionError) as e:
            raise InvalidCursor(text, str(e)) from e

    raise InvalidCursor(text, "not a fixed-width hex id or generic key")


def compare_keys(a: RecordKey, b: RecordKey) -> int:
    """Three-way comparison of two keys of the same shape."""
    if isinstance(a, FixedKey) and isinstance(b, FixedKey):
        return (a.raw > b.raw) - (a.raw < b.raw)
    if isinstance(a, GenericKey) and isinstance(b, GenericKey):
        try:
            left, right = a.value, b.value
            return (left > right) - (left < right)
        except TypeError as e:
            raise InvalidCursor(encode_cursor(b), f"incomparable generic keys: {e}") from e
    raise InvalidCursor(encode_cursor(b), "key shape does not match collection key shape")


def key_after(candidate: RecordKey, reference: Optional[RecordKey]) -> bool:
    """True when candidate sorts strictly after reference (None sorts first)."""
    if reference is None:
        return True
    return compare_keys(candidate, reference) > 0
