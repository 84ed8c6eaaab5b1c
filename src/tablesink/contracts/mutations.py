"""Storage mutations produced by serializers.

Two shapes exist because the storage backend treats them differently:
writes are submitted together as one batch, increments one at a time
(the backend has no batched increment).

Mutations are frozen. The write-ahead-log flag is applied by the committer
through with_durability(), which returns a copy.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import TypeAlias


def _as_bytes(value: bytes | str, what: str) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"{what} must be bytes or str, got {type(value).__name__}")


@dataclass(frozen=True, slots=True)
class Write:
    """Multi-column write of one row.

    Columns are stored as an ordered tuple of (qualifier, value) pairs so the
    mutation stays immutable and keeps declaration order.
    """

    row_key: bytes
    family: bytes
    columns: tuple[tuple[bytes, bytes], ...]
    durable: bool = True

    def __post_init__(self) -> None:
        if not self.row_key:
            raise ValueError("Write requires a non-empty row key")
        if not self.columns:
            raise ValueError("Write requires at least one column")

    @classmethod
    def of(
        cls,
        row_key: bytes,
        family: bytes | str,
        columns: Mapping[bytes | str, bytes | str] | Iterable[tuple[bytes | str, bytes | str]],
        *,
        durable: bool = True,
    ) -> "Write":
        """Build a Write from a mapping (or pairs), encoding str values as UTF-8."""
        pairs = columns.items() if isinstance(columns, Mapping) else columns
        return cls(
            row_key=row_key,
            family=_as_bytes(family, "family"),
            columns=tuple((_as_bytes(name, "column name"), _as_bytes(value, "column value")) for name, value in pairs),
            durable=durable,
        )

    def column_map(self) -> dict[bytes, bytes]:
        """Columns as an insertion-ordered dict."""
        return dict(self.columns)

    def with_durability(self, durable: bool) -> "Write":
        return replace(self, durable=durable)


@dataclass(frozen=True, slots=True)
class Increment:
    """Atomic add of delta to one counter column."""

    row_key: bytes
    family: bytes
    column: bytes
    delta: int = 1
    durable: bool = True

    def __post_init__(self) -> None:
        if not self.row_key:
            raise ValueError("Increment requires a non-empty row key")
        if not self.column:
            raise ValueError("Increment requires a column")

    def with_durability(self, durable: bool) -> "Increment":
        return replace(self, durable=durable)


Mutation: TypeAlias = Write | Increment


@dataclass
class MutationBatch:
    """Mutations accumulated for exactly one transaction cycle.

    Writes and increments are kept in separate lists, each in channel take
    order. A batch is never carried over to the next cycle.
    """

    writes: list[Write] = field(default_factory=list)
    increments: list[Increment] = field(default_factory=list)

    def extend(self, writes: Iterable[Write], increments: Iterable[Increment]) -> None:
        self.writes.extend(writes)
        self.increments.extend(increments)

    def with_durability(self, durable: bool) -> "MutationBatch":
        """Return a new batch with the WAL flag set uniformly on every mutation."""
        return MutationBatch(
            writes=[w.with_durability(durable) for w in self.writes],
            increments=[i.with_durability(durable) for i in self.increments],
        )

    @property
    def is_empty(self) -> bool:
        return not self.writes and not self.increments

    def __len__(self) -> int:
        return len(self.writes) + len(self.increments)
