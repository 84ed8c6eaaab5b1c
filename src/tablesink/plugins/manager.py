# src/tablesink/plugins/manager.py
"""Serializer registry: discovery, registration and instantiation.

Uses pluggy for hook-based registration. The ``serializer`` config value is
looked up here by name; there is no dynamic class loading from strings.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import pluggy

from tablesink.contracts import ConfigurationError
from tablesink.core.logging import get_logger
from tablesink.core.rowkey import RowKeyGenerator
from tablesink.plugins.base import BaseSerializer
from tablesink.plugins.hookspecs import PROJECT_NAME, TableSinkSerializerSpec

# Used when the serializer selector is unset or blank
DEFAULT_SERIALIZER = "simple"

logger = get_logger(__name__)


@dataclass(frozen=True)
class SerializerSpec:
    """Registration record for a serializer plugin."""

    name: str
    version: str
    class_name: str

    @classmethod
    def from_plugin(cls, plugin_cls: type[BaseSerializer]) -> "SerializerSpec":
        return cls(name=plugin_cls.name, version=plugin_cls.plugin_version, class_name=plugin_cls.__name__)


class SerializerManager:
    """Manages serializer discovery, registration, and lookup.

    Usage:
        manager = SerializerManager()
        manager.register_builtin_plugins()

        serializer = manager.create_serializer("regex", {"regex": "(\\d+)", "colNames": "id"})
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(TableSinkSerializerSpec)
        self._serializers: dict[str, type[BaseSerializer]] = {}

    def register_builtin_plugins(self) -> None:
        """Register the serializers shipped with tablesink. Call once at startup."""
        from tablesink.plugins.serializers import BuiltinSerializers

        self.register(BuiltinSerializers())

    def register(self, plugin: Any) -> None:
        """Register a plugin object implementing tablesink_get_serializers."""
        self._pm.register(plugin)
        try:
            self._refresh_cache()
        except Exception:
            self._pm.unregister(plugin)
            raise

    def _refresh_cache(self) -> None:
        """Rebuild the name -> class cache from all registered hooks.

        Raises:
            ValueError: If two plugins use the same name, or a returned class is
                not a BaseSerializer subclass
        """
        new_serializers: dict[str, type[BaseSerializer]] = {}

        for serializers in self._pm.hook.tablesink_get_serializers():
            for cls in serializers:
                if not (isinstance(cls, type) and issubclass(cls, BaseSerializer)):
                    raise ValueError(f"Serializer plugin {cls!r} must subclass BaseSerializer")
                name = cls.name
                if name in new_serializers:
                    raise ValueError(f"Duplicate serializer plugin name: '{name}'. Already registered by {new_serializers[name].__name__}")
                new_serializers[name] = cls

        self._serializers = new_serializers

    def get_serializers(self) -> list[type[BaseSerializer]]:
        """Get all registered serializer classes."""
        return list(self._serializers.values())

    def get_serializer_specs(self) -> list[SerializerSpec]:
        """Registration records, sorted by name."""
        return sorted((SerializerSpec.from_plugin(cls) for cls in self._serializers.values()), key=lambda s: s.name)

    def get_serializer_by_name(self, name: str) -> type[BaseSerializer] | None:
        """Get serializer class by name."""
        return self._serializers.get(name)

    def create_serializer(
        self,
        name: str | None,
        options: Mapping[str, str] | None = None,
        *,
        row_keys: RowKeyGenerator | None = None,
    ) -> BaseSerializer:
        """Instantiate and configure the serializer selected by name.

        Args:
            name: Registered serializer name; None or blank selects the default
            options: Options passed to configure()
            row_keys: Row-key generator injected into the serializer

        Raises:
            ConfigurationError: If no serializer has that name, or its options are invalid
        """
        if name is None or not name.strip():
            logger.info("No serializer defined, using default", serializer=DEFAULT_SERIALIZER)
            name = DEFAULT_SERIALIZER

        cls = self._serializers.get(name)
        if cls is None:
            available = ", ".join(sorted(self._serializers)) or "<none>"
            raise ConfigurationError(f"Unknown serializer '{name}'. Available serializers: {available}")

        serializer = cls(row_keys=row_keys)
        try:
            serializer.configure(options or {})
        except ConfigurationError:
            logger.error("Could not configure event serializer", serializer=name)
            raise
        return serializer
