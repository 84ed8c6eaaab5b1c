"""Protocols for the serializer capability and the external collaborators.

These define what the committer consumes. They're used for type checking;
serializer plugins additionally subclass BaseSerializer so the registry can
check them.

Collaborators:
- Channel / Transaction: the transactional queue events are taken from
- StorageClient / TableHandle: the wide-column storage engine
- EventSerializerProtocol: turns one event payload into mutations
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from tablesink.contracts import Event, Increment, SerializerConfig, Write


@runtime_checkable
class EventSerializerProtocol(Protocol):
    """Converts one event's payload into zero or more storage mutations.

    Lifecycle:
    1. __init__(row_keys=...) - instantiation by the registry
    2. configure(config) - exactly once; ConfigurationError on bad options
    3. initialize(payload, family) - once per event, replaces all prior state
    4. get_write_mutations() / get_increment_mutations() - any number of times
    5. close() - idempotent

    Malformed or non-matching input yields empty lists, never an exception.
    """

    name: str
    plugin_version: str

    def configure(self, config: "SerializerConfig") -> None: ...

    def initialize(self, payload: bytes, family: bytes) -> None: ...

    def get_write_mutations(self) -> list["Write"]: ...

    def get_increment_mutations(self) -> list["Increment"]: ...

    def close(self) -> None: ...


@runtime_checkable
class Transaction(Protocol):
    """One channel transaction.

    begin() must precede take(); exactly one of commit()/rollback() follows;
    close() is always called last, on every path.
    """

    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class Channel(Protocol):
    """Transactional queue of events."""

    def get_transaction(self) -> Transaction:
        """Return the transaction for the calling thread."""
        ...

    def take(self) -> "Event | None":
        """Take one event within the current transaction, or None when empty."""
        ...


@runtime_checkable
class TableHandle(Protocol):
    """An open table in the storage engine.

    Not assumed to be safe for concurrent use from several threads.
    Submission failures raise TransportError.
    """

    name: str

    def has_column_family(self, family: bytes) -> bool: ...

    def submit_batch(self, writes: Sequence["Write"]) -> None: ...

    def submit_increment(self, increment: "Increment") -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class StorageClient(Protocol):
    """Entry point to the storage engine."""

    def open_table(self, name: str) -> TableHandle:
        """Open a table handle.

        Raises:
            SetupError: If the table does not exist.
            TransportError: If the backend cannot be reached.
        """
        ...
