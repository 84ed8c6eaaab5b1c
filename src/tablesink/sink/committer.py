# src/tablesink/sink/committer.py
"""BatchCommitter: transactional delivery of channel events to a table.

One process() call is one cycle:

    IDLE -> FILLING -> SUBMITTING -> COMMITTED | ROLLED_BACK

1. Begin a channel transaction.
2. Take up to batch_size events. When the channel runs dry first, the cycle
   still commits what it has but reports Status.BACKOFF.
3. Feed each event through the serializer and collect its writes and
   increments.
4. Set the WAL flag on every mutation, submit all writes as one batch, then
   each increment on its own (the backend has no batched increments).
5. Commit the channel transaction, or roll it back on any failure.
6. Close the transaction on every path.

Delivery is at-least-once. The storage engine has no multi-row atomicity,
so a failed batch may be partially persisted. After a rollback the same
events are taken again and serialized with fresh row keys: writes can be
duplicated and increments can be applied twice. Serializers that care
must deduplicate on their own.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

from tablesink.contracts import (
    CycleState,
    EventDeliveryError,
    MutationBatch,
    SetupError,
    Status,
    TransportError,
)
from tablesink.core.counters import (
    CHANNEL_UNDERFLOW,
    EVENTS_TAKEN,
    SERIALIZER_DROPPED,
    TRANSACTION_ROLLBACK,
    TRANSACTION_SUCCESS,
    SinkCounters,
)
from tablesink.core.identity import Identity, IdentityProvider, RunAs, run_as
from tablesink.core.logging import get_logger
from tablesink.core.rowkey import RowKeyGenerator
from tablesink.plugins.manager import SerializerManager

if TYPE_CHECKING:
    from tablesink.plugins.protocols import (
        Channel,
        EventSerializerProtocol,
        StorageClient,
        TableHandle,
        Transaction,
    )
    from tablesink.sink.config import BatchCommitterConfig

T = TypeVar("T")

logger = get_logger(__name__)


class BatchCommitter:
    """Owns the per-cycle channel transaction and the storage table handle.

    Args:
        config: Validated sink configuration
        channel: Channel events are taken from
        storage: Storage client the table is opened through
        serializer: Configured serializer. Built from config through the
            serializer registry when omitted.
        manager: Serializer registry (default: built-in serializers)
        row_keys: Row-key generator handed to the serializer it builds
        run_as: Identity-execution callable wrapping every storage call
        identity_provider: Login capability. When given together with a
            configured principal, start() logs in and storage calls run as
            that identity.
        counters: Counter group to record into

    Thread Safety:
        Several committers may run in parallel threads sharing one
        RowKeyGenerator. A single committer must not be used concurrently;
        overlapping process() calls raise RuntimeError.
    """

    def __init__(
        self,
        config: BatchCommitterConfig,
        channel: Channel,
        storage: StorageClient,
        *,
        serializer: EventSerializerProtocol | None = None,
        manager: SerializerManager | None = None,
        row_keys: RowKeyGenerator | None = None,
        run_as: RunAs = run_as,
        identity_provider: IdentityProvider | None = None,
        counters: SinkCounters | None = None,
    ) -> None:
        self._config = config
        self._channel = channel
        self._storage = storage
        self._run_as = run_as
        self._identity_provider = identity_provider
        self._counters = counters if counters is not None else SinkCounters()

        if serializer is None:
            if manager is None:
                manager = SerializerManager()
                manager.register_builtin_plugins()
            serializer = manager.create_serializer(config.serializer, config.serializer_options, row_keys=row_keys)
        self._serializer = serializer

        self._family = config.family_bytes
        self._table: TableHandle | None = None
        self._identity: Identity | None = None
        self._state = CycleState.IDLE
        self._busy = threading.Lock()

        logger.info(
            "Batch committer configured",
            table=config.table,
            column_family=config.column_family,
            batch_size=config.batch_size,
            serializer=serializer.name,
            enable_wal=config.enable_wal,
        )
        if not config.enable_wal:
            logger.warning(
                "Write-ahead log is disabled. Every write will skip the WAL and data "
                "held only in storage memory can be lost if a storage server crashes.",
                table=config.table,
            )

    # === Properties ===

    @property
    def config(self) -> BatchCommitterConfig:
        return self._config

    @property
    def serializer(self) -> EventSerializerProtocol:
        return self._serializer

    @property
    def counters(self) -> SinkCounters:
        return self._counters

    @property
    def state(self) -> CycleState:
        """State reached by the most recent (or current) cycle."""
        return self._state

    @property
    def started(self) -> bool:
        return self._table is not None

    # === Lifecycle ===

    def start(self) -> None:
        """Log in (if configured), open the table and verify the column family.

        Raises:
            RuntimeError: If already started.
            SetupError: If login fails, the table cannot be opened, or the
                column family does not exist.
        """
        if self._table is not None:
            raise RuntimeError("Please call stop() before calling start() on an old instance.")

        self._identity = self._login()
        table_name = self._config.table

        try:
            table = self._privileged(lambda: self._storage.open_table(table_name))
        except SetupError:
            logger.error("Table does not exist", table=table_name)
            raise
        except Exception as e:
            logger.error("Could not load table", table=table_name, exc_info=True)
            raise SetupError(f"Could not load table '{table_name}' from storage") from e

        try:
            has_family = self._privileged(lambda: table.has_column_family(self._family))
        except Exception as e:
            table.close()
            raise SetupError(
                f"Error getting column family from storage. Please verify that the table '{table_name}' "
                f"and column family '{self._config.column_family}' exist and the current user can access them."
            ) from e
        if not has_family:
            table.close()
            raise SetupError(f"Table '{table_name}' has no such column family '{self._config.column_family}'")

        self._table = table
        self._state = CycleState.IDLE
        logger.info("Batch committer started", table=table_name, identity=self._identity.name if self._identity else None)

    def _login(self) -> Identity | None:
        if self._identity_provider is None or not self._config.security_enabled:
            return None
        try:
            return self._identity_provider.login(self._config.kerberos_principal, self._config.kerberos_keytab)
        except Exception as e:
            raise SetupError("Failed to login to storage using provided credentials.") from e

    def stop(self) -> None:
        """Close the table handle. No-op when not started.

        The committer counts as stopped even when closing fails.

        Raises:
            TransportError: If the storage client fails to close the table.
        """
        table, self._table = self._table, None
        if table is None:
            return
        try:
            table.close()
        except Exception as e:
            logger.error("Error closing table", table=self._config.table, exc_info=True)
            raise TransportError(f"Error closing table '{self._config.table}'") from e
        logger.info("Batch committer stopped", table=self._config.table, counters=self._counters.snapshot())

    def close(self) -> None:
        """Stop and release the serializer, which is released even if stopping fails."""
        try:
            self.stop()
        finally:
            self._serializer.close()

    # === Processing ===

    def process(self) -> Status:
        """Run one transactional cycle.

        Returns:
            Status.READY when a full batch was taken, Status.BACKOFF when the
            channel ran dry first.

        Raises:
            EventDeliveryError: Storage submission failed; the cycle was rolled
                back and should be retried later.
            RuntimeError: If not started, or called concurrently.
            Exception: Any other fault propagates unchanged after rollback.
        """
        table = self._table
        if table is None:
            raise RuntimeError("BatchCommitter.process() called before start()")
        if not self._busy.acquire(blocking=False):
            raise RuntimeError("BatchCommitter.process() must not be called concurrently")
        try:
            return self._run_cycle(table)
        finally:
            self._busy.release()

    def _run_cycle(self, table: TableHandle) -> Status:
        batch = MutationBatch()
        txn = self._channel.get_transaction()
        try:
            txn.begin()
            self._state = CycleState.FILLING
            status = self._fill(batch)

            self._state = CycleState.SUBMITTING
            self._submit(table, batch.with_durability(self._config.enable_wal))

            txn.commit()
            self._state = CycleState.COMMITTED
            self._counters.increment(TRANSACTION_SUCCESS)
            logger.debug("Transaction committed", table=table.name, writes=len(batch.writes), increments=len(batch.increments), status=status.value)
            return status
        except BaseException as e:  # events must go back to the channel even on KeyboardInterrupt
            self._rollback(txn)
            self._state = CycleState.ROLLED_BACK
            self._counters.increment(TRANSACTION_ROLLBACK)
            logger.error("Failed to commit transaction. Transaction rolled back.", table=table.name, exc_info=True)
            if isinstance(e, TransportError):
                raise EventDeliveryError("Failed to commit transaction. Transaction rolled back.") from e
            raise
        finally:
            txn.close()

    def _fill(self, batch: MutationBatch) -> Status:
        for _ in range(self._config.batch_size):
            event = self._channel.take()
            if event is None:
                self._counters.increment(CHANNEL_UNDERFLOW)
                return Status.BACKOFF
            self._counters.increment(EVENTS_TAKEN)

            self._serializer.initialize(event.body, self._family)
            writes = self._serializer.get_write_mutations()
            increments = self._serializer.get_increment_mutations()
            if not writes and not increments:
                self._counters.increment(SERIALIZER_DROPPED)
                logger.debug("Event produced no mutations and was dropped", serializer=self._serializer.name, size=len(event.body))
            batch.extend(writes, increments)
        return Status.READY

    def _submit(self, table: TableHandle, batch: MutationBatch) -> None:
        if batch.writes:
            self._privileged(lambda: table.submit_batch(batch.writes))

        def submit_increments() -> None:
            for increment in batch.increments:
                table.submit_increment(increment)

        if batch.increments:
            self._privileged(submit_increments)

    def _rollback(self, txn: Transaction) -> None:
        try:
            txn.rollback()
        except Exception:
            logger.error("Exception in rollback. Rollback might not have been successful.", exc_info=True)

    def _privileged(self, action: Callable[[], T]) -> T:
        return self._run_as(self._identity, action)
