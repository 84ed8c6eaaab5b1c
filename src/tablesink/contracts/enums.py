"""Status codes and states shared across subsystem boundaries."""

from enum import StrEnum


class Status(StrEnum):
    """Outcome of one BatchCommitter.process() cycle.

    BACKOFF is not an error: the channel ran dry before the batch filled,
    so the caller should slow its polling rate.
    """

    READY = "ready"
    BACKOFF = "backoff"


class CycleState(StrEnum):
    """States of the per-cycle transaction state machine.

    IDLE -> FILLING -> SUBMITTING -> COMMITTED | ROLLED_BACK
    """

    IDLE = "idle"
    FILLING = "filling"
    SUBMITTING = "submitting"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TransactionState(StrEnum):
    """Lifecycle of a channel transaction."""

    NEW = "new"
    OPEN = "open"
    COMPLETED = "completed"
    CLOSED = "closed"
