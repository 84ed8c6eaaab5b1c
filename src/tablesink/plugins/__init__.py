"""Serializer plugin system.

Serializers turn one event payload into storage mutations. They are
registered through pluggy hooks and selected by name from configuration.
"""

from tablesink.plugins.base import BaseSerializer
from tablesink.plugins.hookspecs import hookimpl, hookspec
from tablesink.plugins.manager import DEFAULT_SERIALIZER, SerializerManager, SerializerSpec
from tablesink.plugins.protocols import (
    Channel,
    EventSerializerProtocol,
    StorageClient,
    TableHandle,
    Transaction,
)

__all__ = [
    "DEFAULT_SERIALIZER",
    "BaseSerializer",
    "Channel",
    "EventSerializerProtocol",
    "SerializerManager",
    "SerializerSpec",
    "StorageClient",
    "TableHandle",
    "Transaction",
    "hookimpl",
    "hookspec",
]
