"""Async TiDB dump source.

Provides ``AsyncTiDBAdapter``, an implementation of the ``DumpSource``
protocol using SQLAlchemy's async engine with the ``aiomysql`` driver.

Consistency comes from TiDB's ``tidb_snapshot`` session variable: the
snapshot is resolved once, then pinned on every connection the adapter
hands out, so all workers read the same point-in-time view no matter when
they run.

Usage:
    from db_dumper.adapters.tidb import AsyncTiDBAdapter

    adapter = AsyncTiDBAdapter("mysql://root@127.0.0.1:4000/")
    snapshot = await adapter.resolve_snapshot()
    tables = await adapter.list_tables()
    await adapter.close()
"""

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from db_dumper.dump.escape import quote_identifier
from db_dumper.dump.models import ROW_ID_COLUMN, Column, TableInfo
from db_dumper.exceptions import MetadataError, SnapshotError

logger = logging.getLogger(__name__)

# Never exported: system and catalog schemas
SYSTEM_SCHEMAS = ("mysql", "INFORMATION_SCHEMA", "PERFORMANCE_SCHEMA", "METRICS_SCHEMA")

_LIST_TABLES_SQL = """
    SELECT TABLE_SCHEMA, TABLE_NAME, AVG_ROW_LENGTH, DATA_LENGTH
    FROM INFORMATION_SCHEMA.TABLES
    WHERE TABLE_TYPE = 'BASE TABLE' AND TABLE_SCHEMA NOT IN :excluded
    ORDER BY TABLE_SCHEMA, TABLE_NAME
"""

_PRIMARY_KEY_SQL = """
    SELECT COLUMN_NAME
    FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE
    WHERE CONSTRAINT_NAME = 'PRIMARY' AND TABLE_SCHEMA = :schema AND TABLE_NAME = :table
    ORDER BY ORDINAL_POSITION
"""

_COLUMNS_SQL = """
    SELECT COLUMN_NAME, DATA_TYPE
    FROM INFORMATION_SCHEMA.COLUMNS
    WHERE TABLE_SCHEMA = :schema AND TABLE_NAME = :table
      AND EXTRA NOT LIKE :generated
    ORDER BY ORDINAL_POSITION
"""


def normalize_url(database_url: str) -> str:
    """Normalize a MySQL/TiDB URL to the ``mysql+aiomysql://`` scheme.

    Accepts ``mysql://``, ``tidb://`` and ``mysql+aiomysql://``.
    """
    url = database_url
    for alias in ("tidb://", "mysql://"):
        if url.startswith(alias):
            url = "mysql+aiomysql://" + url[len(alias):]
    return url


def create_async_engine_pooled(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async SQLAlchemy engine with connection pooling.

    Default pool settings:

    - ``pool_size=8``: one connection per default dump worker.
    - ``max_overflow=4``: metadata queries issued next to running workers.
    - ``pool_pre_ping=True``: Validate connections before checkout.
    - ``pool_recycle=300``: Recycle connections every 5 minutes.

    Args:
        database_url: Connection URL with ``mysql+aiomysql://`` scheme.
        **kwargs: Additional keyword arguments forwarded to
            ``create_async_engine``.

    Returns:
        Configured ``AsyncEngine``.
    """
    if "connect_timeout" not in database_url:
        separator = "&" if "?" in database_url else "?"
        database_url = f"{database_url}{separator}connect_timeout=10"

    defaults: dict[str, Any] = {
        "pool_size": 8,
        "max_overflow": 4,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "echo": False,
    }
    merged = {**defaults, **kwargs}

    return create_async_engine(database_url, **merged)


class AsyncTiDBAdapter:
    """TiDB implementation of the ``DumpSource`` protocol.

    Args:
        database_url: TiDB connection URL.  Accepts ``mysql://``,
            ``tidb://`` or ``mysql+aiomysql://`` schemes.
        snapshot: Snapshot reference to pin from the start.  Normally left
            ``None`` and set by ``resolve_snapshot()``.
        **engine_kwargs: Forwarded to ``create_async_engine_pooled``
            (e.g. ``pool_size`` to match the dump concurrency).
    """

    def __init__(
        self,
        database_url: str,
        snapshot: str | None = None,
        **engine_kwargs: Any,
    ) -> None:
        self.snapshot = snapshot
        self._engine: AsyncEngine = create_async_engine_pooled(
            normalize_url(database_url), **engine_kwargs
        )

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        """Check out a connection pinned to the current snapshot."""
        async with self._engine.connect() as conn:
            if self.snapshot is not None:
                await conn.execute(
                    text("SET @@tidb_snapshot = :snapshot"), {"snapshot": self.snapshot}
                )
            yield conn

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    async def resolve_snapshot(self, snapshot: str | None = None) -> str:
        """Fix the snapshot all later connections read from.

        Without an explicit reference the snapshot is one second before the
        server's current time, read once here so every worker shares it.
        """
        try:
            if snapshot is None:
                async with self._engine.connect() as conn:
                    result = await conn.execute(text("SELECT NOW() - INTERVAL 1 SECOND"))
                    value = result.scalar()
                snapshot = value.strftime("%Y-%m-%d %H:%M:%S") if isinstance(value, datetime) else str(value)

            self.snapshot = snapshot
            # Fail here rather than in the first worker if the server rejects it
            async with self.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            self.snapshot = None
            raise SnapshotError(
                f"Could not set tidb_snapshot. Check the connection URL and that the server is TiDB: {e}"
            ) from e

        logger.info("Using snapshot %s", snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def list_tables(self, exclude_schemas: Sequence[str] = SYSTEM_SCHEMAS) -> list[TableInfo]:
        """List base tables outside the excluded schemas."""
        query = text(_LIST_TABLES_SQL).bindparams(bindparam("excluded", expanding=True))
        try:
            async with self.connect() as conn:
                result = await conn.execute(query, {"excluded": list(exclude_schemas)})
                rows = result.fetchall()
        except SQLAlchemyError as e:
            raise MetadataError(f"Could not read tables from information_schema: {e}") from e

        return [
            TableInfo(
                schema_name=schema,
                table_name=table,
                avg_row_length=avg_row_length,
                data_length=data_length,
            )
            for schema, table, avg_row_length, data_length in rows
        ]

    async def primary_key_of(self, schema: str, table: str) -> str | None:
        """Pick the column chunks are ranged on.

        Tables with TiDB's implicit ``_tidb_rowid`` use it; otherwise the
        first column of the declared primary key.  ``None`` if neither exists.
        """
        qualified = f"{quote_identifier(schema)}.{quote_identifier(table)}"
        row_id_query = f"SELECT {ROW_ID_COLUMN} FROM {qualified} LIMIT 1"
        try:
            async with self.connect() as conn:
                await conn.execute(text(row_id_query))
            logger.debug(row_id_query)
            return ROW_ID_COLUMN
        except SQLAlchemyError:
            logger.debug("%s has no %s, reading declared primary key", qualified, ROW_ID_COLUMN)

        try:
            async with self.connect() as conn:
                result = await conn.execute(
                    text(_PRIMARY_KEY_SQL), {"schema": schema, "table": table}
                )
                row = result.first()
        except SQLAlchemyError as e:
            raise MetadataError(f"Could not determine primary key of {schema}.{table}: {e}") from e

        return row[0] if row else None

    async def min_max_of(self, schema: str, table: str, primary_key: str) -> tuple[Any, Any]:
        pk = quote_identifier(primary_key)
        query = (
            f"SELECT MIN({pk}), MAX({pk}) FROM "
            f"{quote_identifier(schema)}.{quote_identifier(table)}"
        )
        logger.debug(query)
        try:
            async with self.connect() as conn:
                result = await conn.execute(text(query))
                row = result.one()
        except SQLAlchemyError as e:
            raise MetadataError(f"Could not read key range of {schema}.{table}: {e}") from e
        return row[0], row[1]

    async def insertable_columns_of(self, schema: str, table: str) -> list[Column]:
        """Non-generated columns, needed for a restorable INSERT column list."""
        try:
            async with self.connect() as conn:
                result = await conn.execute(
                    text(_COLUMNS_SQL),
                    {"schema": schema, "table": table, "generated": "%GENERATED%"},
                )
                rows = result.fetchall()
        except SQLAlchemyError as e:
            raise MetadataError(f"Could not read columns of {schema}.{table}: {e}") from e

        if not rows:
            raise MetadataError(f"No insertable columns found for {schema}.{table}")
        return [Column(name=name, data_type=data_type) for name, data_type in rows]

    async def show_create_table(self, schema: str, table: str) -> str:
        query = f"SHOW CREATE TABLE {quote_identifier(schema)}.{quote_identifier(table)}"
        logger.debug(query)
        try:
            async with self.connect() as conn:
                result = await conn.execute(text(query))
                row = result.one()
        except SQLAlchemyError as e:
            raise MetadataError(f"Could not read CREATE TABLE for {schema}.{table}: {e}") from e
        return row[1]

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    async def stream_rows(self, sql: str) -> AsyncIterator[Sequence[Any]]:
        """Stream rows with a server-side cursor on a dedicated connection."""
        logger.debug(sql)
        async with self.connect() as conn:
            result = await conn.stream(text(sql))
            async for row in result:
                yield tuple(row)

    async def test_connection(self) -> bool:
        """Run ``SELECT 1`` to verify the server is reachable."""
        async with self._engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            return result.scalar() == 1

    async def close(self) -> None:
        """Dispose of the connection pool."""
        if self._engine:
            await self._engine.dispose()
