"""Dump one chunk of one table into its own file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from db_dumper.dump.escape import quote_value, to_raw
from db_dumper.dump.models import ChunkSpec
from db_dumper.dump.writer import BatchBuffer, OutputArtifact
from db_dumper.exceptions import ChunkDumpError

if TYPE_CHECKING:
    from db_dumper.adapters.base import DumpSource

logger = logging.getLogger(__name__)


def build_chunk_query(chunk: ChunkSpec) -> str:
    """SELECT statement for a chunk's rows.

    Projects the insertable columns (plus ``_tidb_rowid`` when the table is
    keyed on it, so restored rows keep their identity).
    """
    table = chunk.table
    query = f"SELECT {table.column_list} FROM {table.qualified_name}"
    if chunk.predicate:
        query = f"{query} {chunk.predicate}"
    return query


async def dump_chunk(
    source: DumpSource,
    chunk: ChunkSpec,
    output_dir: Path,
    bulk_insert_limit: int,
) -> Path:
    """Stream a chunk's rows into ``output_dir / chunk.file_name``.

    Args:
        source: Snapshot-pinned dump source.
        chunk: Range of rows to dump.
        output_dir: Directory the data file is written to.
        bulk_insert_limit: Target maximum size of each INSERT statement.

    Returns:
        Path of the closed data file.

    Raises:
        ChunkDumpError: If the query, a row conversion or a write fails.
            The file may be left incomplete; the export must not be trusted.
    """
    table = chunk.table
    columns = table.select_columns
    artifact = OutputArtifact(Path(output_dir) / chunk.file_name)
    batch = BatchBuffer(
        artifact,
        table.table_name,
        [c.name for c in columns],
        bulk_insert_limit,
    )
    query = build_chunk_query(chunk)

    try:
        try:
            async for row in source.stream_rows(query):
                batch.append_row(
                    [quote_value(to_raw(value), col.data_type) for value, col in zip(row, columns)]
                )
                if artifact.pending_len:
                    await artifact.aflush()
            batch.close()
        finally:
            await artifact.aclose()
    except Exception as e:
        raise ChunkDumpError(
            chunk, f"Could not dump {table.name} ({chunk.shape.value} chunk {chunk.file_name}): {e}"
        ) from e

    logger.debug(
        "Dumped %s: %d rows in %d statements, %d bytes",
        artifact.path.name,
        batch.rows,
        batch.statements,
        artifact.bytes_written,
    )
    return artifact.path
