"""Storage clients implementing the StorageClient / TableHandle protocols."""

from tablesink.storage.sql import SqlStorageClient, SqlTable

__all__ = ["SqlStorageClient", "SqlTable"]
