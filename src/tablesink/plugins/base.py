# src/tablesink/plugins/base.py
"""Base class for serializer plugins.

Serializers MUST subclass BaseSerializer: the registry uses issubclass()
checks, which a Protocol with data members cannot support.

BaseSerializer owns the lifecycle bookkeeping so variants only implement
option parsing and mutation building:

    class MySerializer(BaseSerializer):
        name = "mine"

        def _configure(self, config: SerializerConfig) -> None:
            self._column = config.get_string("column", "body").encode()

        def get_write_mutations(self) -> list[Write]:
            payload, family = self._require_event()
            return [Write.of(self._next_row_key(), family, {self._column: payload})]

        def get_increment_mutations(self) -> list[Increment]:
            return []
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping

from tablesink.contracts import Increment, SerializerConfig, Write
from tablesink.core.rowkey import RowKeyGenerator, default_generator


class BaseSerializer(ABC):
    """Base class for event serializers.

    Per-event state (payload and family) is replaced wholesale by every
    initialize() call, so nothing leaks from one event to the next.

    dropped_events counts events for which the serializer gave up on the
    input (no match, wrong group count...). An event is counted at most once
    however many times its mutations are requested.
    """

    name: str
    plugin_version: str = "0.0.0"

    def __init__(self, row_keys: RowKeyGenerator | None = None) -> None:
        self._row_keys = row_keys if row_keys is not None else default_generator()
        self._config: SerializerConfig | None = None
        self._payload: bytes | None = None
        self._family: bytes | None = None
        self._drop_recorded = False
        self._closed = False
        self.dropped_events = 0

    @property
    def config(self) -> SerializerConfig:
        if self._config is None:
            raise RuntimeError(f"{type(self).__name__} used before configure()")
        return self._config

    def configure(self, config: SerializerConfig | Mapping[str, str]) -> None:
        """One-time setup.

        Raises:
            ConfigurationError: If an option is malformed.
            RuntimeError: If called a second time.
        """
        if self._config is not None:
            raise RuntimeError(f"{type(self).__name__} is already configured")
        cfg = config if isinstance(config, SerializerConfig) else SerializerConfig(config)
        self._configure(cfg)
        self._config = cfg

    @abstractmethod
    def _configure(self, config: SerializerConfig) -> None:
        """Parse and validate options. Raise ConfigurationError on bad input."""
        ...

    def initialize(self, payload: bytes, family: bytes) -> None:
        """Bind the serializer to one event, replacing any previous binding."""
        if self._config is None:
            raise RuntimeError(f"{type(self).__name__}.initialize() called before configure()")
        self._payload = bytes(payload)
        self._family = bytes(family)
        self._drop_recorded = False

    def _require_event(self) -> tuple[bytes, bytes]:
        if self._payload is None or self._family is None:
            raise RuntimeError(f"{type(self).__name__}: initialize() must be called before requesting mutations")
        return self._payload, self._family

    def _record_drop(self) -> None:
        if not self._drop_recorded:
            self._drop_recorded = True
            self.dropped_events += 1

    def _next_row_key(self) -> bytes:
        return self._row_keys.generate()

    @abstractmethod
    def get_write_mutations(self) -> list[Write]:
        """Writes for the bound event. May be empty; never raises on bad input."""
        ...

    @abstractmethod
    def get_increment_mutations(self) -> list[Increment]:
        """Increments for the bound event. May be empty; never raises on bad input."""
        ...

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release resources. Safe to call more than once."""
        self._closed = True
        self._payload = None
        self._family = None
