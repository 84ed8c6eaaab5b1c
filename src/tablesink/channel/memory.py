# src/tablesink/channel/memory.py
"""In-memory transactional channel.

Reference implementation of the Channel protocol, used by tests and by
embedded deployments where producer and sink share a process.

Each thread has at most one open transaction. Events taken inside a
transaction are held by it: commit() forgets them, rollback() puts them back
at the head of the queue in their original order so the next cycle takes
the same events again.
"""

import threading
from collections import deque

from tablesink.contracts import ChannelFullError, Event, TransactionState
from tablesink.core.logging import get_logger

logger = get_logger(__name__)


class MemoryTransaction:
    """Take-side transaction over a MemoryChannel.

    Lifecycle: begin() -> take()* -> commit() | rollback() -> close().
    close() on a transaction that was begun but neither committed nor
    rolled back is a caller bug and raises.
    """

    def __init__(self, channel: "MemoryChannel") -> None:
        self._channel = channel
        self._taken: list[Event] = []
        self.state = TransactionState.NEW

    def _require(self, expected: TransactionState, operation: str) -> None:
        if self.state is not expected:
            raise RuntimeError(f"{operation}() called when transaction is {self.state.value}")

    def begin(self) -> None:
        self._require(TransactionState.NEW, "begin")
        self.state = TransactionState.OPEN

    def take(self) -> Event | None:
        self._require(TransactionState.OPEN, "take")
        event = self._channel._pop()
        if event is not None:
            self._taken.append(event)
        return event

    def commit(self) -> None:
        self._require(TransactionState.OPEN, "commit")
        self.state = TransactionState.COMPLETED
        committed, self._taken = len(self._taken), []
        self._channel._forget(committed)

    def rollback(self) -> None:
        self._require(TransactionState.OPEN, "rollback")
        self.state = TransactionState.COMPLETED
        taken, self._taken = self._taken, []
        self._channel._requeue(taken)
        logger.debug("Channel transaction rolled back", requeued=len(taken))

    def close(self) -> None:
        if self.state is TransactionState.OPEN:
            raise RuntimeError("close() called when transaction is open - commit or rollback first")
        self.state = TransactionState.CLOSED
        self._channel._release(self)


class MemoryChannel:
    """Bounded FIFO of events with per-thread take transactions.

    Args:
        capacity: Maximum number of events held, including events taken by
            open transactions (they may come back on rollback).
    """

    def __init__(self, capacity: int = 10_000) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._queue: deque[Event] = deque()
        self._in_flight = 0
        self._lock = threading.Lock()
        self._local = threading.local()

    @property
    def capacity(self) -> int:
        return self._capacity

    def put(self, event: Event) -> None:
        """Append an event.

        Raises:
            ChannelFullError: If the channel is at capacity.
        """
        with self._lock:
            if len(self._queue) + self._in_flight >= self._capacity:
                raise ChannelFullError(f"Channel is full ({self._capacity} events)")
            self._queue.append(event)

    def put_all(self, events: list[Event]) -> None:
        for event in events:
            self.put(event)

    def get_transaction(self) -> MemoryTransaction:
        """Return the calling thread's transaction, creating one if needed."""
        txn: MemoryTransaction | None = getattr(self._local, "transaction", None)
        if txn is None:
            txn = MemoryTransaction(self)
            self._local.transaction = txn
        return txn

    def take(self) -> Event | None:
        """Take the next event inside the calling thread's open transaction.

        Raises:
            RuntimeError: If the thread has no open transaction.
        """
        txn: MemoryTransaction | None = getattr(self._local, "transaction", None)
        if txn is None:
            raise RuntimeError("take() called without a transaction - call get_transaction().begin() first")
        return txn.take()

    def _pop(self) -> Event | None:
        with self._lock:
            if not self._queue:
                return None
            self._in_flight += 1
            return self._queue.popleft()

    def _requeue(self, events: list[Event]) -> None:
        with self._lock:
            self._queue.extendleft(reversed(events))
            self._in_flight -= len(events)

    def _forget(self, count: int) -> None:
        with self._lock:
            self._in_flight -= count

    def _release(self, txn: MemoryTransaction) -> None:
        if getattr(self._local, "transaction", None) is txn:
            self._local.transaction = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)
