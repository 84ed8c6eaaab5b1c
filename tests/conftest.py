# tests/conftest.py
"""Shared test fixtures.

Storage doubles and config helpers live in tests/helpers/doubles.py so test
modules can import them directly.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os
from collections.abc import Iterator

import pytest
from hypothesis import Phase, Verbosity, settings

from tablesink.channel.memory import MemoryChannel
from tablesink.core.rowkey import RowKeyGenerator
from tablesink.storage.sql import SqlStorageClient
from tests.helpers.doubles import TEST_FAMILY, TEST_TABLE, TEST_TOKEN, RecordingStorage, RecordingTable

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


@pytest.fixture
def row_keys() -> RowKeyGenerator:
    """Row-key generator with a fixed token."""
    return RowKeyGenerator(TEST_TOKEN)


@pytest.fixture
def channel() -> MemoryChannel:
    return MemoryChannel()


@pytest.fixture
def recording_table() -> RecordingTable:
    return RecordingTable()


@pytest.fixture
def recording_storage(recording_table: RecordingTable) -> RecordingStorage:
    return RecordingStorage(recording_table)


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'tables.db'}"


@pytest.fixture
def sql_storage(sqlite_url: str) -> Iterator[SqlStorageClient]:
    """SqlStorageClient with the test table and family created."""
    client = SqlStorageClient(sqlite_url)
    client.create_table(TEST_TABLE, [TEST_FAMILY])
    yield client
    client.close()
