"""Channel implementations."""

from tablesink.channel.memory import MemoryChannel, MemoryTransaction

__all__ = ["MemoryChannel", "MemoryTransaction"]
