"""Dump source protocol definition.

Defines the ``DumpSource`` Protocol the dump engine reads through.  All
methods are ``async def`` -- the engine is async-first.

Usage:
    from db_dumper.adapters.base import DumpSource

    async def count_rows(source: DumpSource, sql: str) -> int:
        n = 0
        async for _row in source.stream_rows(sql):
            n += 1
        return n
"""

from collections.abc import AsyncIterator, Sequence
from typing import Any, Protocol

from db_dumper.dump.models import Column, TableInfo


class DumpSource(Protocol):
    """Database interface the dump engine consumes.

    Implementations must give every call the same consistent-read view once
    ``resolve_snapshot()`` has run, and must open a separate connection per
    ``stream_rows()`` call so concurrent workers never share a cursor.
    """

    async def resolve_snapshot(self, snapshot: str | None = None) -> str:
        """Fix the snapshot every later read is pinned to.

        Called exactly once per export, before any table is read.

        Args:
            snapshot: Explicit snapshot reference (timestamp or TSO).  When
                ``None``, the implementation picks "now".

        Returns:
            The snapshot reference in effect.

        Raises:
            SnapshotError: If the snapshot cannot be read or set.
        """
        ...

    async def list_tables(self, exclude_schemas: Sequence[str] = ()) -> list[TableInfo]:
        """List user tables with their size statistics.

        Raises:
            MetadataError: If information_schema cannot be read.
        """
        ...

    async def primary_key_of(self, schema: str, table: str) -> str | None:
        """Name of the column chunks are ranged on, or ``None`` if there is none.

        Raises:
            MetadataError: If the key cannot be determined.
        """
        ...

    async def min_max_of(
        self, schema: str, table: str, primary_key: str
    ) -> tuple[Any, Any]:
        """Smallest and largest key values; ``(None, None)`` for an empty table.

        Raises:
            MetadataError: If the query fails.
        """
        ...

    async def insertable_columns_of(self, schema: str, table: str) -> list[Column]:
        """Non-generated columns in ordinal order.

        Raises:
            MetadataError: If the column list cannot be read or is empty.
        """
        ...

    async def show_create_table(self, schema: str, table: str) -> str:
        """``CREATE TABLE`` statement for the table, without trailing ``;``.

        Raises:
            MetadataError: If the statement cannot be read.
        """
        ...

    def stream_rows(self, sql: str) -> AsyncIterator[Sequence[Any]]:
        """Stream result rows of ``sql`` on a dedicated connection.

        Rows are yielded as sequences of driver-decoded values in column
        order.  Errors propagate to the caller unchanged.
        """
        ...

    async def close(self) -> None:
        """Release all connections."""
        ...
