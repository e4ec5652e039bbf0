"""Consistent export of a whole database.

``export_database()`` is the top-level driver: it fixes the snapshot,
discovers tables, writes each table's ``CREATE TABLE`` file and hands the
table to the ``Dispatcher``, then waits until every chunk is written.

Failure policy:

- Snapshot and table-listing failures abort before any table is read.
- A table whose key, columns or DDL cannot be read aborts the export,
  unless ``settings.skip_broken_tables`` is set; then the table is
  reported in ``DumpResult.skipped_tables`` and the export continues.
- Any chunk failure cancels the remaining work and raises
  ``DumpFailedError``.

Usage:
    from db_dumper.dump.export import export_database

    result = await export_database(adapter, settings, uploader=uploader)
    print(result.files_completed, result.elapsed_seconds)
"""

from __future__ import annotations

import fnmatch
import logging
import time
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from db_dumper.config.models import DumpSettings
from db_dumper.dump.dispatcher import Dispatcher
from db_dumper.dump.models import DumpJob, DumpResult, TableDescriptor, TableInfo
from db_dumper.exceptions import ChunkPlanningError, MetadataError

if TYPE_CHECKING:
    from db_dumper.adapters.base import DumpSource
    from db_dumper.storage.base import Uploader

logger = logging.getLogger(__name__)


def select_tables(tables: Iterable[TableInfo], patterns: Sequence[str]) -> list[TableInfo]:
    """Keep tables whose ``schema.table`` name matches any glob pattern.

    An empty pattern list keeps every table.  Matching is case-insensitive.

    Example:
        >>> select_tables(tables, ["shop.*", "crm.customers"])
    """
    tables = list(tables)
    if not patterns:
        return tables
    lowered = [p.lower() for p in patterns]
    return [
        t for t in tables
        if any(fnmatch.fnmatchcase(t.name.lower(), p) for p in lowered)
    ]


async def describe_table(source: DumpSource, info: TableInfo) -> TableDescriptor:
    """Complete a table's statistics with its key and insertable columns."""
    primary_key = await source.primary_key_of(info.schema_name, info.table_name)
    columns = await source.insertable_columns_of(info.schema_name, info.table_name)
    return TableDescriptor(
        **info.model_dump(),
        primary_key=primary_key,
        columns=columns,
    )


async def dump_create_table(source: DumpSource, table: TableInfo, output_dir: Path) -> Path:
    """Write ``<schema>.<table>-schema.sql`` holding the table's DDL.

    Returns:
        Path of the written schema file.
    """
    create_table = await source.show_create_table(table.schema_name, table.table_name)
    path = Path(output_dir) / f"{table.name}-schema.sql"
    path.write_text(f"{create_table};\n", encoding="utf-8")
    logger.debug("Wrote %s", path.name)
    return path


async def export_database(
    source: DumpSource,
    settings: DumpSettings,
    uploader: Uploader | None = None,
) -> DumpResult:
    """Dump every selected table at one consistent snapshot.

    Args:
        source: Dump source; its snapshot is fixed here.
        settings: Output, sizing, concurrency and table selection settings.
        uploader: Receives every finished file; ``None`` keeps files local.

    Returns:
        DumpResult with counters, skipped tables and elapsed time.

    Raises:
        SnapshotError: If the snapshot cannot be set.
        MetadataError: If tables cannot be listed.
        DumpFailedError: If a table or chunk fails.  Carries every
            collected error and the partial counters.

    Example:
        result = await export_database(adapter, DumpSettings(concurrency=16))
    """
    start = time.monotonic()

    snapshot = await source.resolve_snapshot(settings.snapshot)

    tables = select_tables(
        await source.list_tables(settings.exclude_schemas),
        settings.tables,
    )
    logger.info("Found %d table(s) to dump", len(tables))

    output_dir = Path(settings.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    job = DumpJob()
    dumped: list[str] = []
    skipped: dict[str, str] = {}

    async with Dispatcher(source, settings, job=job, uploader=uploader) as dispatcher:
        for info in tables:
            try:
                table = await describe_table(source, info)
                chunks = await dispatcher.plan_table(table)
                schema_path = await dump_create_table(source, info, output_dir)
                await dispatcher.dispatch_table(table, chunks)
            except (MetadataError, ChunkPlanningError) as e:
                if not settings.skip_broken_tables:
                    raise
                logger.warning("Skipping %s: %s", info.name, e)
                skipped[info.name] = str(e)
                continue

            dispatcher.upload(schema_path, "schema")
            dumped.append(info.name)

    elapsed = time.monotonic() - start
    logger.info(
        "Complete: %d file(s) from %d table(s) in %.1fs",
        job.files_completed,
        len(dumped),
        elapsed,
    )

    return DumpResult(
        snapshot=snapshot,
        output_dir=output_dir,
        tables=dumped,
        skipped_tables=skipped,
        files_planned=job.files_planned,
        files_completed=job.files_completed,
        files_uploaded=job.files_uploaded,
        elapsed_seconds=elapsed,
    )
