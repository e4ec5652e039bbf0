"""Models for tables, chunks and dump bookkeeping.

A table is described once (``TableDescriptor``), split into one or more
``ChunkSpec`` row ranges, and every chunk is dumped into its own file.
``DumpJob`` carries the counters shared by all workers of one export run and
``DumpResult`` is the report handed back to the caller.

Usage:
    from db_dumper.dump.models import Column, TableDescriptor, ChunkSpec

    table = TableDescriptor(
        schema_name="shop",
        table_name="orders",
        avg_row_length=120,
        data_length=50_000_000,
        primary_key="id",
        columns=[Column(name="id", data_type="bigint")],
    )
    chunk = ChunkSpec(table=table, start=1, end=1024)
    chunk.predicate   # "WHERE `id` BETWEEN 1 AND 1024"
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from db_dumper.dump.escape import quote_identifier

# Substituted when information_schema reports no average row length
DEFAULT_AVG_ROW_LENGTH = 100

# TiDB's implicit row id, used when a table has no usable primary key column
ROW_ID_COLUMN = "_tidb_rowid"


class Column(BaseModel):
    """An insertable (non-generated) column and its declared type."""

    model_config = ConfigDict(frozen=True)

    name: str
    data_type: str = "varchar"


class TableInfo(BaseModel):
    """Size statistics for one table, as reported by information_schema."""

    model_config = ConfigDict(frozen=True)

    schema_name: str
    table_name: str
    avg_row_length: int = DEFAULT_AVG_ROW_LENGTH
    data_length: int = 0

    @field_validator("avg_row_length", mode="before")
    @classmethod
    def _coerce_avg_row_length(cls, value: object) -> int:
        if value is None or int(value) <= 0:
            return DEFAULT_AVG_ROW_LENGTH
        return int(value)

    @field_validator("data_length", mode="before")
    @classmethod
    def _coerce_data_length(cls, value: object) -> int:
        return int(value or 0)

    @property
    def name(self) -> str:
        """Dotted ``schema.table`` name used in logs and file names."""
        return f"{self.schema_name}.{self.table_name}"

    @property
    def qualified_name(self) -> str:
        """Backtick-quoted ``schema.table`` name for SQL text."""
        return f"{quote_identifier(self.schema_name)}.{quote_identifier(self.table_name)}"


class TableDescriptor(TableInfo):
    """Everything the planner and workers need to know about one table."""

    primary_key: str | None = None   # None: no usable key, dump as one unit
    columns: list[Column] = Field(default_factory=list)

    @property
    def uses_row_id(self) -> bool:
        return self.primary_key == ROW_ID_COLUMN

    @property
    def select_columns(self) -> list[Column]:
        """Columns projected by chunk queries (row id appended when it is the key)."""
        if self.uses_row_id:
            return [*self.columns, Column(name=ROW_ID_COLUMN, data_type="bigint")]
        return list(self.columns)

    @property
    def column_list(self) -> str:
        """Comma-joined, backtick-quoted column list."""
        return ",".join(quote_identifier(c.name) for c in self.select_columns)


class ChunkShape(str, Enum):
    """Which range filters a chunk carries."""

    WHOLE_TABLE = "whole_table"
    UNBOUNDED_LOW = "unbounded_low"
    BOUNDED = "bounded"
    UNBOUNDED_HIGH = "unbounded_high"
    UNBOUNDED = "unbounded"


class ChunkSpec(BaseModel):
    """One primary-key row range of a table, dumped as an independent unit.

    ``start`` and ``end`` are inclusive bounds; ``None`` means the side is
    unbounded. Adjacent chunks share no key values: the unbounded-low chunk
    selects ``pk < end + 1`` and the unbounded-high chunk ``pk > start - 1``,
    so together with ``BETWEEN`` every key lands in exactly one chunk.

    ``first_key`` is the smallest key at planning time.  It names the file
    of a chunk without a lower bound and never enters the predicate.
    """

    model_config = ConfigDict(frozen=True)

    table: TableDescriptor
    start: int | None = None
    end: int | None = None
    whole_table: bool = False
    first_key: int | None = None

    @property
    def shape(self) -> ChunkShape:
        if self.whole_table:
            return ChunkShape.WHOLE_TABLE
        if self.start is None and self.end is None:
            return ChunkShape.UNBOUNDED
        if self.start is None:
            return ChunkShape.UNBOUNDED_LOW
        if self.end is None:
            return ChunkShape.UNBOUNDED_HIGH
        return ChunkShape.BOUNDED

    @property
    def predicate(self) -> str:
        """``WHERE`` clause selecting this chunk's rows, or ``""``."""
        shape = self.shape
        if shape in (ChunkShape.WHOLE_TABLE, ChunkShape.UNBOUNDED):
            return ""
        pk = quote_identifier(self.table.primary_key)
        if shape is ChunkShape.UNBOUNDED_LOW:
            return f"WHERE {pk} < {self.end + 1}"
        if shape is ChunkShape.UNBOUNDED_HIGH:
            return f"WHERE {pk} > {self.start - 1}"
        return f"WHERE {pk} BETWEEN {self.start} AND {self.end}"

    @property
    def file_suffix(self) -> str:
        if self.whole_table:
            return ""
        if self.start is not None:
            return f".{self.start}"
        return f".{self.first_key if self.first_key is not None else 0}"

    @property
    def file_name(self) -> str:
        """Data file name, ordered by the chunk's starting key."""
        return f"{self.table.name}{self.file_suffix}.sql"


class DumpJob(BaseModel):
    """Counters shared by every worker of one export run.

    Workers run as tasks on a single event loop, so plain ``+= 1`` updates
    cannot interleave.
    """

    files_planned: int = 0
    files_completed: int = 0
    files_uploaded: int = 0
    artifacts: list[Path] = Field(default_factory=list)

    @property
    def done(self) -> bool:
        return self.files_completed == self.files_planned


class DumpResult(BaseModel):
    """Report returned by ``export_database()``."""

    snapshot: str
    output_dir: Path
    tables: list[str] = Field(default_factory=list)
    skipped_tables: dict[str, str] = Field(default_factory=dict)
    files_planned: int = 0
    files_completed: int = 0
    files_uploaded: int = 0
    elapsed_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.files_completed == self.files_planned
