"""Named counters for sink activity.

The committer records channel underflows, taken events, dropped events and
transaction outcomes here. Dropped events are the only place where silently
discarded input becomes visible, so callers that care about data loss
should compare ``events.taken`` against ``serializer.dropped``.
"""

import threading
from collections import Counter

CHANNEL_UNDERFLOW = "channel.underflow"
EVENTS_TAKEN = "events.taken"
SERIALIZER_DROPPED = "serializer.dropped"
TRANSACTION_SUCCESS = "transaction.success"
TRANSACTION_ROLLBACK = "transaction.rollback"


class SinkCounters:
    """Thread-safe group of monotonically increasing counters."""

    def __init__(self) -> None:
        self._counts: Counter[str] = Counter()
        self._lock = threading.Lock()

    def increment(self, name: str, amount: int = 1) -> int:
        """Add amount to the named counter and return the new value."""
        with self._lock:
            self._counts[name] += amount
            return self._counts[name]

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    def snapshot(self) -> dict[str, int]:
        """Copy of all counters touched so far."""
        with self._lock:
            return dict(self._counts)

    def __repr__(self) -> str:
        return f"SinkCounters({self.snapshot()!r})"
