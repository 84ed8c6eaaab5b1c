# src/tablesink/storage/sql.py
"""Wide-column storage emulated on a relational database.

Implements the StorageClient / TableHandle protocols with SQLAlchemy Core so
the sink can run against SQLite (tests, embedded use) or any server database.

Layout (all tables shared by every logical table):
    ts_tables(table_name)
    ts_column_families(table_name, family)
    ts_cells(table_name, row_key, family, qualifier, value, durable)

Semantics mirror the wide-column engine the sink was designed for:
- A write replaces the cells it names (last write wins per cell).
- A batch of writes runs in one SQL transaction here, but callers must not
  rely on that: the storage contract promises no cross-row atomicity.
- Increments add to a big-endian signed 64-bit counter cell.
- SQL has no per-write WAL switch; the durability flag is recorded on each
  cell instead.

Every SQLAlchemyError is re-raised as TransportError.
"""

from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from sqlalchemy import (
    Boolean,
    Column,
    LargeBinary,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    and_,
    bindparam,
    create_engine,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from tablesink.contracts import Increment, SetupError, TransportError, Write
from tablesink.core.logging import get_logger

logger = get_logger(__name__)

COUNTER_BYTES = 8

_metadata = MetaData()

tables_table = Table(
    "ts_tables",
    _metadata,
    Column("table_name", String(255), primary_key=True),
)

column_families_table = Table(
    "ts_column_families",
    _metadata,
    Column("table_name", String(255), nullable=False),
    Column("family", LargeBinary, nullable=False),
    PrimaryKeyConstraint("table_name", "family"),
)

cells_table = Table(
    "ts_cells",
    _metadata,
    Column("table_name", String(255), nullable=False),
    Column("row_key", LargeBinary, nullable=False),
    Column("family", LargeBinary, nullable=False),
    Column("qualifier", LargeBinary, nullable=False),
    Column("value", LargeBinary, nullable=False),
    Column("durable", Boolean, nullable=False, default=True),
    PrimaryKeyConstraint("table_name", "row_key", "family", "qualifier"),
)


def encode_counter(value: int) -> bytes:
    return value.to_bytes(COUNTER_BYTES, "big", signed=True)


def decode_counter(raw: bytes) -> int:
    if len(raw) != COUNTER_BYTES:
        raise TransportError(f"Cell is not a counter: expected {COUNTER_BYTES} bytes, found {len(raw)}")
    return int.from_bytes(raw, "big", signed=True)


@contextmanager
def _translate_errors(operation: str, table_name: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        raise TransportError(f"{operation} on table '{table_name}' failed: {e}") from e


class SqlTable:
    """Handle on one logical table. Owned by a single committer."""

    def __init__(self, engine: Engine, name: str) -> None:
        self._engine = engine
        self.name = name
        self._closed = False

    def _require_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"Table handle '{self.name}' is closed")

    @property
    def closed(self) -> bool:
        return self._closed

    def has_column_family(self, family: bytes) -> bool:
        self._require_open()
        cf = column_families_table.c
        query = select(func.count()).select_from(column_families_table).where(and_(cf.table_name == self.name, cf.family == family))
        with _translate_errors("Column family lookup", self.name), self._engine.connect() as conn:
            return bool(conn.execute(query).scalar_one())

    def submit_batch(self, writes: Sequence[Write]) -> None:
        """Apply all writes. Later cells override earlier ones with the same coordinates."""
        self._require_open()
        if not writes:
            return

        cells: dict[tuple[bytes, bytes, bytes], tuple[bytes, bool]] = {}
        for write in writes:
            for qualifier, value in write.columns:
                cells[(write.row_key, write.family, qualifier)] = (value, write.durable)

        rows = [
            {
                "table_name": self.name,
                "row_key": row_key,
                "family": family,
                "qualifier": qualifier,
                "value": value,
                "durable": durable,
            }
            for (row_key, family, qualifier), (value, durable) in cells.items()
        ]
        c = cells_table.c
        replace_stmt = delete(cells_table).where(
            and_(
                c.table_name == bindparam("b_table_name"),
                c.row_key == bindparam("b_row_key"),
                c.family == bindparam("b_family"),
                c.qualifier == bindparam("b_qualifier"),
            )
        )
        keys = [{f"b_{k}": row[k] for k in ("table_name", "row_key", "family", "qualifier")} for row in rows]

        with _translate_errors("Batch write", self.name), self._engine.begin() as conn:
            conn.execute(replace_stmt, keys)
            conn.execute(insert(cells_table), rows)
        logger.debug("Batch written", table=self.name, writes=len(writes), cells=len(rows))

    def submit_increment(self, increment: Increment) -> None:
        """Add increment.delta to the counter cell, creating it at zero if absent."""
        self._require_open()
        c = cells_table.c
        where = and_(
            c.table_name == self.name,
            c.row_key == increment.row_key,
            c.family == increment.family,
            c.qualifier == increment.column,
        )
        with _translate_errors("Increment", self.name), self._engine.begin() as conn:
            current = conn.execute(select(c.value).where(where)).scalar_one_or_none()
            if current is None:
                conn.execute(
                    insert(cells_table).values(
                        table_name=self.name,
                        row_key=increment.row_key,
                        family=increment.family,
                        qualifier=increment.column,
                        value=encode_counter(increment.delta),
                        durable=increment.durable,
                    )
                )
            else:
                total = decode_counter(current) + increment.delta
                conn.execute(update(cells_table).where(where).values(value=encode_counter(total), durable=increment.durable))

    # === Reads (diagnostics and tests) ===

    def get_row(self, row_key: bytes) -> dict[tuple[bytes, bytes], bytes]:
        """All cells of a row keyed by (family, qualifier)."""
        self._require_open()
        c = cells_table.c
        query = select(c.family, c.qualifier, c.value).where(and_(c.table_name == self.name, c.row_key == row_key))
        with _translate_errors("Row read", self.name), self._engine.connect() as conn:
            return {(r.family, r.qualifier): r.value for r in conn.execute(query)}

    def get_counter(self, row_key: bytes, family: bytes, column: bytes) -> int:
        """Current counter value, 0 when the cell does not exist."""
        raw = self.get_row(row_key).get((family, column))
        return 0 if raw is None else decode_counter(raw)

    def row_keys(self) -> list[bytes]:
        """Distinct row keys in ascending byte order."""
        self._require_open()
        c = cells_table.c
        query = select(c.row_key).where(c.table_name == self.name).distinct().order_by(c.row_key)
        with _translate_errors("Row scan", self.name), self._engine.connect() as conn:
            return list(conn.execute(query).scalars())

    def close(self) -> None:
        self._closed = True


class SqlStorageClient:
    """StorageClient backed by a SQLAlchemy engine.

    Args:
        url: SQLAlchemy database URL, e.g. ``sqlite:///events.db``
        engine: Existing engine to use instead of url (not disposed on close)
    """

    def __init__(self, url: str | None = None, *, engine: Engine | None = None) -> None:
        if (url is None) == (engine is None):
            raise ValueError("Provide exactly one of url or engine")
        self._owns_engine = engine is None
        self._engine = engine if engine is not None else create_engine(url)  # type: ignore[arg-type]
        with _translate_errors("Schema creation", "*"):
            _metadata.create_all(self._engine, checkfirst=True)

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_table(self, name: str, families: Sequence[bytes | str]) -> None:
        """Administrative helper: create a table with the given column families.

        Existing families are kept; new ones are added.
        """
        encoded = {f.encode("utf-8") if isinstance(f, str) else f for f in families}
        cf = column_families_table.c
        with _translate_errors("Table creation", name), self._engine.begin() as conn:
            if conn.execute(select(tables_table.c.table_name).where(tables_table.c.table_name == name)).first() is None:
                conn.execute(insert(tables_table).values(table_name=name))
            existing = set(conn.execute(select(cf.family).where(cf.table_name == name)).scalars())
            missing = sorted(encoded - existing)
            if missing:
                conn.execute(insert(column_families_table), [{"table_name": name, "family": f} for f in missing])
        logger.info("Table created", table=name, families=sorted(f.decode("utf-8", errors="replace") for f in encoded))

    def table_exists(self, name: str) -> bool:
        with _translate_errors("Table lookup", name), self._engine.connect() as conn:
            return conn.execute(select(tables_table.c.table_name).where(tables_table.c.table_name == name)).first() is not None

    def open_table(self, name: str) -> SqlTable:
        if not self.table_exists(name):
            raise SetupError(f"Table '{name}' does not exist")
        return SqlTable(self._engine, name)

    def close(self) -> None:
        """Dispose of the engine if this client created it."""
        if self._owns_engine:
            self._engine.dispose()
