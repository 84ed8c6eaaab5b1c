# src/tablesink/plugins/serializers/simple_serializer.py
"""Simple serializer: store the raw payload and count events.

The default serializer when none is configured. For each event it writes
the whole payload into one column of a fresh row and increments a counter
cell by one.

Config options:
    rowPrefix: Prefix of generated row keys (default: "default")
    suffix: How the row key suffix is made: "uuid", "random", "timestamp"
        or "nano" (default: "uuid")
    payloadColumn: Column receiving the payload; empty disables writes
        (default: "pCol")
    incrementColumn: Counter column; empty disables increments (default: "iCol")
    incrementRow: Row key of the counter (default: "incRow")

Only the "uuid" suffix is collision-free across processes; "timestamp" and
"nano" collide for events serialized within the same clock tick, and a
later write then overwrites the earlier one.
"""

import random
import time
import uuid
from collections.abc import Callable

from tablesink.contracts import ConfigurationError, Increment, SerializerConfig, Write
from tablesink.plugins.base import BaseSerializer

ROW_PREFIX_CONFIG = "rowPrefix"
ROW_PREFIX_DEFAULT = "default"

SUFFIX_CONFIG = "suffix"
SUFFIX_DEFAULT = "uuid"

PAYLOAD_COLUMN_CONFIG = "payloadColumn"
PAYLOAD_COLUMN_DEFAULT = "pCol"

INCREMENT_COLUMN_CONFIG = "incrementColumn"
INCREMENT_COLUMN_DEFAULT = "iCol"

INCREMENT_ROW_CONFIG = "incrementRow"
INCREMENT_ROW_DEFAULT = "incRow"

_SUFFIXES: dict[str, Callable[[], str]] = {
    "uuid": lambda: str(uuid.uuid4()),
    "random": lambda: str(random.getrandbits(31)),
    "timestamp": lambda: str(time.time_ns() // 1_000_000),
    "nano": lambda: str(time.perf_counter_ns()),
}


class SimpleEventSerializer(BaseSerializer):
    """Payload column write plus a per-event counter increment."""

    name = "simple"
    plugin_version = "1.0.0"

    _row_prefix: str
    _suffix: Callable[[], str]
    _payload_column: bytes
    _increment_column: bytes
    _increment_row: bytes

    def _configure(self, config: SerializerConfig) -> None:
        self._row_prefix = config.get_string(ROW_PREFIX_CONFIG, ROW_PREFIX_DEFAULT)

        suffix = config.get_string(SUFFIX_CONFIG, SUFFIX_DEFAULT)
        if suffix not in _SUFFIXES:
            raise ConfigurationError(f"Serializer option '{SUFFIX_CONFIG}' must be one of {sorted(_SUFFIXES)}, got {suffix!r}")
        self._suffix = _SUFFIXES[suffix]

        self._payload_column = config.get_string(PAYLOAD_COLUMN_CONFIG, PAYLOAD_COLUMN_DEFAULT).encode("utf-8")
        self._increment_column = config.get_string(INCREMENT_COLUMN_CONFIG, INCREMENT_COLUMN_DEFAULT).encode("utf-8")

        increment_row = config.get_string(INCREMENT_ROW_CONFIG, INCREMENT_ROW_DEFAULT)
        if self._increment_column and not increment_row:
            raise ConfigurationError(f"Serializer option '{INCREMENT_ROW_CONFIG}' cannot be empty when increments are enabled")
        self._increment_row = increment_row.encode("utf-8")

    def _row_key(self) -> bytes:
        return f"{self._row_prefix}{self._suffix()}".encode()

    def get_write_mutations(self) -> list[Write]:
        payload, family = self._require_event()
        if not self._payload_column:
            return []
        return [Write(row_key=self._row_key(), family=family, columns=((self._payload_column, payload),))]

    def get_increment_mutations(self) -> list[Increment]:
        _, family = self._require_event()
        if not self._increment_column:
            return []
        return [Increment(row_key=self._increment_row, family=family, column=self._increment_column)]
