"""Shared contracts: events, mutations, status codes and errors.

Everything here is a leaf - contracts import nothing from core, plugins or sink.
"""

from tablesink.contracts.enums import CycleState, Status, TransactionState
from tablesink.contracts.errors import (
    ChannelFullError,
    ConfigurationError,
    EventDeliveryError,
    SetupError,
    TableSinkError,
    TransportError,
)
from tablesink.contracts.events import Event
from tablesink.contracts.mutations import Increment, Mutation, MutationBatch, Write
from tablesink.contracts.serializer_config import SerializerConfig

__all__ = [
    "ChannelFullError",
    "ConfigurationError",
    "CycleState",
    "Event",
    "EventDeliveryError",
    "Increment",
    "Mutation",
    "MutationBatch",
    "SerializerConfig",
    "SetupError",
    "Status",
    "TableSinkError",
    "TransactionState",
    "TransportError",
    "Write",
]
