"""
Id and clock helpers shared by the ledger and the reference store.
"""

from __future__ import annotations

import os
import threading
import time
from datetime import datetime, timezone

_CROCKFORD32 = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_RANDOM_BITS = 80
_RANDOM_MAX = (1 << _RANDOM_BITS) - 1


def _encode(value: int, length: int = 26) -> str:
    chars = []
    for _ in range(length):
        chars.append(_CROCKFORD32[value & 31])
        value >>= 5
    return "".join(reversed(chars))


def _decode(text: str) -> int:
    value = 0
    for char in text.upper():
        value = (value << 5) | _CROCKFORD32.index(char)
    return value


def new_ulid(*, timestamp_ms: int | None = None) -> str:
    """ULID: 48-bit millisecond timestamp + 80 random bits, Crockford base32."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    if not (0 <= timestamp_ms < (1 << 48)):
        raise ValueError("timestamp_ms out of range for ULID")
    return _encode((timestamp_ms << _RANDOM_BITS) | int.from_bytes(os.urandom(10), "big"))


class MonotonicUlid:
    """
    ULID source whose ids strictly increase, so lexical order is issue order.

    Within one millisecond (or if the clock steps back) the previous id is
    incremented instead of drawing fresh randomness.
    """

    def __init__(self, last: str | None = None):
        self._lock = threading.Lock()
        self._last = _decode(last) if last else -1

    def advance_past(self, ulid: str) -> None:
        """Ensure later ids sort after `ulid` (e.g. one loaded from a journal)."""
        if len(ulid) != 26 or any(c not in _CROCKFORD32 for c in ulid.upper()):
            return
        with self._lock:
            self._last = max(self._last, _decode(ulid))

    def __call__(self) -> str:
        with self._lock:
            value = _decode(new_ulid())
            if value <= self._last:
                if self._last & _RANDOM_MAX == _RANDOM_MAX:
                    raise OverflowError("ULID randomness exhausted within one millisecond")
                value = self._last + 1
            self._last = value
            return _encode(value)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Read a naive datetime as UTC; aware values pass through unchanged."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
