"""Tests for BatchCommitter cycle semantics.

Uses MemoryChannel and the RecordingTable storage double so every cycle can
be inspected: what was taken, what was submitted, and what went back to the
channel after a rollback.
"""

from collections.abc import Callable
from typing import Any, TypeVar

import pytest

from tablesink.channel.memory import MemoryChannel
from tablesink.contracts import (
    CycleState,
    EventDeliveryError,
    Increment,
    SerializerConfig,
    SetupError,
    Status,
    TransactionState,
    TransportError,
    Write,
)
from tablesink.core.counters import (
    CHANNEL_UNDERFLOW,
    EVENTS_TAKEN,
    SERIALIZER_DROPPED,
    TRANSACTION_ROLLBACK,
    TRANSACTION_SUCCESS,
)
from tablesink.core.identity import Identity
from tablesink.core.rowkey import RowKeyGenerator, parse_row_key
from tablesink.plugins.base import BaseSerializer
from tablesink.sink.committer import BatchCommitter
from tests.helpers.doubles import TEST_TABLE, RecordingStorage, RecordingTable, events, make_config

T = TypeVar("T")


def _committer(
    channel: MemoryChannel,
    storage: RecordingStorage,
    row_keys: RowKeyGenerator,
    **config: Any,
) -> BatchCommitter:
    config.setdefault("serializer", "regex")
    committer = BatchCommitter(make_config(**config), channel, storage, row_keys=row_keys)
    committer.start()
    return committer


class FakeIdentity:
    def __init__(self, name: str) -> None:
        self.name = name
        self.calls = 0

    def run(self, action: Callable[[], T]) -> T:
        self.calls += 1
        return action()


class FakeProvider:
    def __init__(self, error: Exception | None = None) -> None:
        self.logins: list[tuple[str, str]] = []
        self.identity = FakeIdentity("sink@EXAMPLE.COM")
        self._error = error

    def login(self, principal: str, keytab: str) -> Identity:
        self.logins.append((principal, keytab))
        if self._error is not None:
            raise self._error
        return self.identity


class ExplodingSerializer(BaseSerializer):
    """Raises a programming error for payloads equal to b"boom"."""

    name = "exploding"

    def _configure(self, config: SerializerConfig) -> None:
        pass

    def get_write_mutations(self) -> list[Write]:
        payload, family = self._require_event()
        if payload == b"boom":
            raise ValueError("serializer bug")
        return [Write.of(self._next_row_key(), family, {b"c": payload})]

    def get_increment_mutations(self) -> list[Increment]:
        return []


class TestCycle:
    def test_full_batch_is_ready(self, channel, recording_storage, recording_table, row_keys) -> None:
        channel.put_all(events("1", "2", "3"))
        committer = _committer(channel, recording_storage, row_keys, batchSize=3)

        assert committer.process() is Status.READY

        assert [w.column_map()[b"payload"] for w in recording_table.writes] == [b"1", b"2", b"3"]
        assert len(recording_table.batches) == 1
        assert len(channel) == 0
        assert committer.state is CycleState.COMMITTED
        assert committer.counters.get(CHANNEL_UNDERFLOW) == 0
        assert committer.counters.get(TRANSACTION_SUCCESS) == 1

    def test_short_batch_is_committed_with_backoff(self, channel, recording_storage, recording_table, row_keys) -> None:
        channel.put_all(events("a", "b"))
        committer = _committer(channel, recording_storage, row_keys, batchSize=3)

        assert committer.process() is Status.BACKOFF

        assert len(recording_table.writes) == 2
        assert len(channel) == 0
        assert committer.counters.get(CHANNEL_UNDERFLOW) == 1
        assert committer.counters.get(TRANSACTION_SUCCESS) == 1

    def test_empty_channel_submits_nothing(self, channel, recording_storage, recording_table, row_keys) -> None:
        committer = _committer(channel, recording_storage, row_keys)

        assert committer.process() is Status.BACKOFF

        assert recording_table.batches == []
        assert recording_table.increments == []
        assert committer.state is CycleState.COMMITTED

    def test_takes_at_most_batch_size(self, channel, recording_storage, recording_table, row_keys) -> None:
        channel.put_all(events(*"abcde"))
        committer = _committer(channel, recording_storage, row_keys, batchSize=2)

        assert committer.process() is Status.READY
        assert len(channel) == 3
        assert committer.counters.get(EVENTS_TAKEN) == 2

    def test_batch_of_one(self, channel, recording_storage, recording_table, row_keys) -> None:
        channel.put_all(events("only"))
        committer = _committer(channel, recording_storage, row_keys, batchSize=1)

        assert committer.process() is Status.READY
        assert committer.process() is Status.BACKOFF
        assert len(recording_table.writes) == 1

    def test_regex_columns_end_to_end(self, channel, recording_storage, recording_table, row_keys) -> None:
        channel.put_all(events("42,hello"))
        committer = _committer(
            channel,
            recording_storage,
            row_keys,
            **{"serializer.regex": r"(\d+),(\w+)", "serializer.colNames": "id,name"},
        )

        committer.process()

        [write] = recording_table.writes
        assert write.family == b"d"
        assert write.column_map() == {b"id": b"42", b"name": b"hello"}
        assert parse_row_key(write.row_key).token == row_keys.token

    def test_unparseable_events_are_dropped_and_counted(self, channel, recording_storage, recording_table, row_keys) -> None:
        channel.put_all(events("1", "x", "3"))
        committer = _committer(channel, recording_storage, row_keys, **{"serializer.regex": r"(\d+)", "serializer.colNames": "n"})

        assert committer.process() is Status.BACKOFF

        assert [w.column_map()[b"n"] for w in recording_table.writes] == [b"1", b"3"]
        assert committer.counters.get(SERIALIZER_DROPPED) == 1
        assert committer.counters.get(EVENTS_TAKEN) == 3
        assert committer.counters.get(TRANSACTION_SUCCESS) == 1

    def test_increments_submitted_individually(self, channel, recording_storage, recording_table, row_keys) -> None:
        channel.put_all(events("a", "b"))
        committer = _committer(channel, recording_storage, row_keys, serializer="simple")

        committer.process()

        assert len(recording_table.writes) == 2
        assert recording_table.increments == [
            Increment(row_key=b"incRow", family=b"d", column=b"iCol"),
            Increment(row_key=b"incRow", family=b"d", column=b"iCol"),
        ]

    @pytest.mark.parametrize("enable_wal", [True, False])
    def test_wal_flag_applied_to_every_mutation(self, channel, recording_storage, recording_table, row_keys, enable_wal: bool) -> None:
        channel.put_all(events("a", "b"))
        committer = _committer(channel, recording_storage, row_keys, serializer="simple", enableWal=enable_wal)

        committer.process()

        assert {w.durable for w in recording_table.writes} == {enable_wal}
        assert {i.durable for i in recording_table.increments} == {enable_wal}

    def test_transaction_closed_after_commit(self, channel, recording_storage, row_keys) -> None:
        committer = _committer(channel, recording_storage, row_keys)
        committer.process()
        assert channel.get_transaction().state is TransactionState.NEW


class TestFailures:
    def test_transport_error_rolls_back_and_signals_delivery_failure(
        self, channel, recording_storage, recording_table, row_keys
    ) -> None:
        channel.put_all(events("a", "b"))
        committer = _committer(channel, recording_storage, row_keys)
        recording_table.batch_error = TransportError("region server unavailable")

        with pytest.raises(EventDeliveryError) as exc_info:
            committer.process()

        assert isinstance(exc_info.value.__cause__, TransportError)
        assert len(channel) == 2
        assert committer.state is CycleState.ROLLED_BACK
        assert committer.counters.get(TRANSACTION_ROLLBACK) == 1
        assert committer.counters.get(TRANSACTION_SUCCESS) == 0
        assert channel.get_transaction().state is TransactionState.NEW

    def test_retry_after_rollback_delivers_same_events_with_fresh_keys(
        self, channel, recording_storage, recording_table, row_keys
    ) -> None:
        channel.put_all(events("a", "b"))
        committer = _committer(channel, recording_storage, row_keys, serializer="simple")
        recording_table.increment_error = TransportError("timeout")

        with pytest.raises(EventDeliveryError):
            committer.process()
        # writes of the failed cycle were persisted before the increment failed
        first_keys = {w.row_key for w in recording_table.writes}

        recording_table.increment_error = None
        committer.process()

        retried = recording_table.batches[-1]
        assert [w.column_map()[b"pCol"] for w in retried] == [b"a", b"b"]
        assert first_keys.isdisjoint(w.row_key for w in retried)
        assert len(recording_table.increments) == 2

    def test_programming_error_propagates_unchanged_after_rollback(
        self, channel, recording_storage, recording_table, row_keys
    ) -> None:
        channel.put_all(events("a", "b"))
        committer = _committer(channel, recording_storage, row_keys)
        recording_table.batch_error = RuntimeError("bug in storage client")

        with pytest.raises(RuntimeError, match="bug in storage client"):
            committer.process()

        assert len(channel) == 2
        assert committer.state is CycleState.ROLLED_BACK
        assert committer.counters.get(TRANSACTION_ROLLBACK) == 1

    def test_serializer_fault_during_fill_rolls_back(self, channel, recording_storage, recording_table, row_keys) -> None:
        channel.put_all(events("ok", "boom", "later"))
        serializer = ExplodingSerializer(row_keys=row_keys)
        serializer.configure({})
        committer = BatchCommitter(make_config(), channel, recording_storage, serializer=serializer)
        committer.start()

        with pytest.raises(ValueError, match="serializer bug"):
            committer.process()

        assert recording_table.batches == []
        assert len(channel) == 3
        assert channel.get_transaction().state is TransactionState.NEW

    def test_events_requeued_in_original_order(self, channel, recording_storage, recording_table, row_keys) -> None:
        channel.put_all(events("1", "2", "3", "4"))
        committer = _committer(channel, recording_storage, row_keys, batchSize=2)
        recording_table.batch_error = TransportError("down")

        with pytest.raises(EventDeliveryError):
            committer.process()
        recording_table.batch_error = None
        committer.process()
        committer.process()

        assert [w.column_map()[b"payload"] for w in recording_table.writes] == [b"1", b"2", b"3", b"4"]


class TestLifecycle:
    def test_process_before_start(self, channel, recording_storage, row_keys) -> None:
        committer = BatchCommitter(make_config(), channel, recording_storage, row_keys=row_keys)
        with pytest.raises(RuntimeError, match="before start"):
            committer.process()

    def test_start_twice(self, channel, recording_storage, row_keys) -> None:
        committer = _committer(channel, recording_storage, row_keys)
        with pytest.raises(RuntimeError, match="stop"):
            committer.start()

    def test_missing_table(self, channel, row_keys) -> None:
        storage = RecordingStorage(RecordingTable(name="other"))
        committer = BatchCommitter(make_config(), channel, storage, row_keys=row_keys)

        with pytest.raises(SetupError, match="does not exist"):
            committer.start()
        assert not committer.started

    def test_missing_column_family(self, channel, row_keys) -> None:
        table = RecordingTable(families=[b"other"])
        committer = BatchCommitter(make_config(), channel, RecordingStorage(table), row_keys=row_keys)

        with pytest.raises(SetupError, match="no such column family 'd'"):
            committer.start()
        assert table.closed

    def test_column_family_lookup_failure(self, channel, row_keys) -> None:
        class BrokenTable(RecordingTable):
            def has_column_family(self, family: bytes) -> bool:
                raise TransportError("permission denied")

        table = BrokenTable()
        committer = BatchCommitter(make_config(), channel, RecordingStorage(table), row_keys=row_keys)

        with pytest.raises(SetupError, match="Error getting column family") as exc_info:
            committer.start()
        assert isinstance(exc_info.value.__cause__, TransportError)
        assert table.closed

    def test_open_table_failure_wrapped(self, channel, row_keys) -> None:
        class BrokenStorage:
            def open_table(self, name: str) -> RecordingTable:
                raise ConnectionError("no route to host")

        committer = BatchCommitter(make_config(), channel, BrokenStorage(), row_keys=row_keys)

        with pytest.raises(SetupError, match="Could not load table"):
            committer.start()

    def test_stop_closes_table_and_allows_restart(self, channel, recording_storage, recording_table, row_keys) -> None:
        committer = _committer(channel, recording_storage, row_keys)

        committer.stop()
        committer.stop()

        assert recording_table.closed
        assert not committer.started
        committer.start()
        assert committer.started

    def test_close_releases_serializer(self, channel, recording_storage, row_keys) -> None:
        committer = _committer(channel, recording_storage, row_keys)
        committer.close()
        assert committer.serializer.closed

    def test_close_failure_is_transport_error(self, channel, row_keys) -> None:
        class StickyTable(RecordingTable):
            def close(self) -> None:
                raise OSError("connection reset")

        committer = BatchCommitter(make_config(), channel, RecordingStorage(StickyTable()), row_keys=row_keys)
        committer.start()

        with pytest.raises(TransportError, match="Error closing table 'events'") as exc_info:
            committer.close()

        assert isinstance(exc_info.value.__cause__, OSError)
        assert not committer.started
        assert committer.serializer.closed

    def test_reentrant_process_rejected(self, channel, recording_storage, row_keys) -> None:
        holder: dict[str, BatchCommitter] = {}

        class ReentrantSerializer(ExplodingSerializer):
            def get_write_mutations(self) -> list[Write]:
                holder["committer"].process()
                return []

        serializer = ReentrantSerializer(row_keys=row_keys)
        serializer.configure({})
        committer = BatchCommitter(make_config(), channel, recording_storage, serializer=serializer)
        holder["committer"] = committer
        committer.start()
        channel.put_all(events("x"))

        with pytest.raises(RuntimeError, match="concurrently"):
            committer.process()
        assert len(channel) == 1


class TestIdentity:
    def test_login_and_run_as_identity(self, channel, recording_storage, recording_table, row_keys) -> None:
        provider = FakeProvider()
        config = make_config(serializer="regex", kerberosPrincipal="sink@EXAMPLE.COM", kerberosKeytab="/etc/sink.keytab")
        committer = BatchCommitter(config, channel, recording_storage, row_keys=row_keys, identity_provider=provider)

        committer.start()
        calls_after_start = provider.identity.calls
        channel.put_all(events("a"))
        committer.process()

        assert provider.logins == [("sink@EXAMPLE.COM", "/etc/sink.keytab")]
        assert calls_after_start == 2  # open_table, has_column_family
        assert provider.identity.calls == 3
        assert len(recording_table.writes) == 1

    def test_no_login_without_principal(self, channel, recording_storage, row_keys) -> None:
        provider = FakeProvider()
        committer = BatchCommitter(make_config(), channel, recording_storage, row_keys=row_keys, identity_provider=provider)

        committer.start()

        assert provider.logins == []

    def test_login_failure_is_setup_error(self, channel, recording_storage, row_keys) -> None:
        provider = FakeProvider(error=PermissionError("bad keytab"))
        config = make_config(kerberosPrincipal="sink@EXAMPLE.COM", kerberosKeytab="/nope")
        committer = BatchCommitter(config, channel, recording_storage, row_keys=row_keys, identity_provider=provider)

        with pytest.raises(SetupError, match="Failed to login"):
            committer.start()
        assert recording_storage.opened == []

    def test_injected_run_as_wraps_every_storage_call(self, channel, recording_storage, row_keys) -> None:
        seen: list[object] = []

        def recording_run_as(identity: Identity | None, action: Callable[[], T]) -> T:
            seen.append(identity)
            return action()

        committer = BatchCommitter(
            make_config(serializer="simple"), channel, recording_storage, row_keys=row_keys, run_as=recording_run_as
        )
        committer.start()
        channel.put_all(events("a", "b"))
        committer.process()

        # open_table, has_column_family, one batch, one call for all increments
        assert seen == [None, None, None, None]
        assert recording_storage.opened == [TEST_TABLE]
