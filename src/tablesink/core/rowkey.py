# src/tablesink/core/rowkey.py
"""Collision-resistant row-key generation.

Keys have the form ``<epoch-millis>-<token>-<nonce>`` encoded as ASCII:

- epoch-millis: wall-clock time of the call in milliseconds
- token: fixed-length random alphanumeric string chosen once per generator
- nonce: counter shared by every caller of the generator, never reset

Properties of the scheme:

1. Within one process (one generator), the same key is never produced twice
   because the nonce strictly increases under a lock.
2. Two processes active in non-overlapping time windows never collide
   because their timestamps differ.
3. Two processes active concurrently collide only if timestamp, nonce and
   token all coincide. The token makes this vanishingly unlikely
   (62**-10 per simultaneous pair) but not impossible. This is an accepted
   risk: ruling it out would need cross-process coordination.

Uniqueness matters because two writes with the same key overwrite each other.

A generator is meant to be built once per process and injected wherever keys
are needed. default_generator() provides that instance for callers that do
not inject their own.
"""

from __future__ import annotations

import itertools
import re
import secrets
import string
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

ROW_KEY_TOKEN_LENGTH = 10

_TOKEN_ALPHABET = string.ascii_letters + string.digits
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MILLISECOND = timedelta(milliseconds=1)
_ROW_KEY_PATTERN = re.compile(rf"(\d+)-([A-Za-z0-9]{{{ROW_KEY_TOKEN_LENGTH}}})-(\d+)")


def random_token(length: int = ROW_KEY_TOKEN_LENGTH) -> str:
    """Return a random alphanumeric string of the given length."""
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def epoch_millis(moment: datetime) -> int:
    """Milliseconds since the Unix epoch. Naive datetimes are taken as local time."""
    if moment.tzinfo is None:
        moment = moment.astimezone(UTC)
    return (moment - _EPOCH) // _ONE_MILLISECOND


@dataclass(frozen=True)
class RowKeyParts:
    """The three components of a generated row key."""

    timestamp_ms: int
    token: str
    nonce: int


def parse_row_key(row_key: bytes) -> RowKeyParts:
    """Split a generated row key into its components.

    Raises:
        ValueError: If row_key does not have the generated format.
    """
    match = _ROW_KEY_PATTERN.fullmatch(row_key.decode("ascii", errors="replace"))
    if match is None:
        raise ValueError(f"Not a generated row key: {row_key!r}")
    return RowKeyParts(timestamp_ms=int(match.group(1)), token=match.group(2), nonce=int(match.group(3)))


class RowKeyGenerator:
    """Produces row keys that are unique within a process by construction.

    Thread Safety:
        The nonce counter is the only shared mutable state and is advanced
        under a lock, so one generator can be shared by any number of
        committers running in different threads.

    Args:
        token: Fixed random token. Generated when omitted; tests pass a
            deterministic one.
        start: First nonce value (default 0).
    """

    def __init__(self, token: str | None = None, *, start: int = 0) -> None:
        if token is None:
            token = random_token()
        if len(token) != ROW_KEY_TOKEN_LENGTH or not all(c in _TOKEN_ALPHABET for c in token):
            raise ValueError(f"Row key token must be {ROW_KEY_TOKEN_LENGTH} ASCII alphanumeric characters, got {token!r}")
        if start < 0:
            raise ValueError("Nonce start must be >= 0")
        self._token = token
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    @property
    def token(self) -> str:
        return self._token

    def _next_nonce(self) -> int:
        with self._lock:
            return next(self._counter)

    def generate(self, now: datetime | None = None) -> bytes:
        """Return a fresh row key stamped with now (default: current time)."""
        millis = epoch_millis(now if now is not None else datetime.now(UTC))
        nonce = self._next_nonce()
        return f"{millis}-{self._token}-{nonce}".encode("ascii")


_default_generator: RowKeyGenerator | None = None
_default_lock = threading.Lock()


def default_generator() -> RowKeyGenerator:
    """Process-wide generator, created on first use."""
    global _default_generator
    with _default_lock:
        if _default_generator is None:
            _default_generator = RowKeyGenerator()
        return _default_generator
