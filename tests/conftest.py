"""Shared fixtures: an in-memory ``DumpSource``.

``FakeSource`` answers metadata calls from a dict of ``FakeTable`` objects
and evaluates the chunk predicates the worker generates, so dumps can be
checked row for row without a database.
"""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any

import pytest

from db_dumper.config.models import DumpSettings
from db_dumper.dump.models import Column, TableInfo
from db_dumper.exceptions import MetadataError

_FROM_RE = re.compile(r"FROM `([^`]+)`\.`([^`]+)`")
_LT_RE = re.compile(r"WHERE `([^`]+)` < (-?\d+)")
_GT_RE = re.compile(r"WHERE `([^`]+)` > (-?\d+)")
_BETWEEN_RE = re.compile(r"WHERE `([^`]+)` BETWEEN (-?\d+) AND (-?\d+)")


@dataclass
class FakeTable:
    schema_name: str
    table_name: str
    columns: list[Column]
    rows: list[tuple] = field(default_factory=list)
    primary_key: str | None = "id"
    avg_row_length: int = 100
    data_length: int | None = None
    ddl: str | None = None
    broken: bool = False

    @property
    def name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    def key_index(self) -> int:
        return [c.name for c in self.columns].index(self.primary_key)


class FakeSource:
    """In-memory ``DumpSource`` for tests."""

    def __init__(self, tables: list[FakeTable], fail_on: set[str] | None = None) -> None:
        self.tables = {t.name: t for t in tables}
        self.fail_on = fail_on or set()
        self.snapshot: str | None = None
        self.snapshot_calls = 0
        self.queries: list[str] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    def _table(self, schema: str, table: str) -> FakeTable:
        t = self.tables[f"{schema}.{table}"]
        if t.broken:
            raise MetadataError(f"Could not read columns of {schema}.{table}: boom")
        return t

    async def resolve_snapshot(self, snapshot: str | None = None) -> str:
        self.snapshot_calls += 1
        self.snapshot = snapshot or "2024-06-01 12:00:00"
        return self.snapshot

    async def list_tables(self, exclude_schemas=()) -> list[TableInfo]:
        return [
            TableInfo(
                schema_name=t.schema_name,
                table_name=t.table_name,
                avg_row_length=t.avg_row_length,
                data_length=(
                    t.data_length
                    if t.data_length is not None
                    else t.avg_row_length * len(t.rows)
                ),
            )
            for t in self.tables.values()
            if t.schema_name not in exclude_schemas
        ]

    async def primary_key_of(self, schema: str, table: str) -> str | None:
        return self._table(schema, table).primary_key

    async def min_max_of(self, schema: str, table: str, primary_key: str) -> tuple[Any, Any]:
        t = self._table(schema, table)
        if not t.rows:
            return None, None
        keys = [row[t.key_index()] for row in t.rows]
        return min(keys), max(keys)

    async def insertable_columns_of(self, schema: str, table: str) -> list[Column]:
        return list(self._table(schema, table).columns)

    async def show_create_table(self, schema: str, table: str) -> str:
        t = self._table(schema, table)
        return t.ddl or f"CREATE TABLE `{table}` (`id` bigint PRIMARY KEY)"

    def _select(self, sql: str) -> list[tuple]:
        schema, table = _FROM_RE.search(sql).groups()
        t = self.tables[f"{schema}.{table}"]
        idx = t.key_index() if t.primary_key else None

        if m := _BETWEEN_RE.search(sql):
            low, high = int(m.group(2)), int(m.group(3))
            return [r for r in t.rows if low <= r[idx] <= high]
        if m := _LT_RE.search(sql):
            bound = int(m.group(2))
            return [r for r in t.rows if r[idx] < bound]
        if m := _GT_RE.search(sql):
            bound = int(m.group(2))
            return [r for r in t.rows if r[idx] > bound]
        return list(t.rows)

    async def stream_rows(self, sql: str):
        self.queries.append(sql)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            rows = self._select(sql)
            for marker in self.fail_on:
                if marker in sql:
                    await asyncio.sleep(0)
                    raise RuntimeError(f"Lost connection during query ({marker})")
            for row in rows:
                await asyncio.sleep(0)
                yield row
        finally:
            self.active -= 1

    async def close(self) -> None:
        self.closed = True


ID_NAME_COLUMNS = [Column(name="id", data_type="bigint"), Column(name="name", data_type="varchar")]


def make_table(
    name: str = "shop.orders",
    n_rows: int = 5,
    **kwargs: Any,
) -> FakeTable:
    """Table with ``id``/``name`` columns and rows ``1..n_rows``."""
    schema, table = name.split(".")
    rows = [(i, f"row-{i}") for i in range(1, n_rows + 1)]
    return FakeTable(
        schema_name=schema,
        table_name=table,
        columns=list(ID_NAME_COLUMNS),
        rows=rows,
        **kwargs,
    )


@pytest.fixture
def settings(tmp_path):
    """Dump settings writing into a temporary directory."""
    return DumpSettings(
        output_dir=tmp_path / "dumpdir",
        file_target_size=100 * 1024,
        bulk_insert_limit=1024,
        concurrency=4,
    )
