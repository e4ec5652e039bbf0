"""Concurrent chunk dispatch with bounded fan-out.

The ``Dispatcher`` plans each table, starts one worker task per chunk and
hands finished files to the uploader.  Tasks run in an ``asyncio.TaskGroup``
owned by the dispatcher; a semaphore caps how many chunks stream at once,
which also caps the number of open database connections.

Leaving the ``async with`` block waits for every worker and upload.  The
first failure cancels the tasks still running and every collected failure
is raised as one ``DumpFailedError``.

Usage:
    from db_dumper.dump.dispatcher import Dispatcher

    async with Dispatcher(source, settings, uploader=uploader) as dispatcher:
        for table in tables:
            await dispatcher.dispatch_table(table)
    print(dispatcher.job.files_completed)
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from db_dumper.config.models import DumpSettings
from db_dumper.dump.models import ChunkSpec, DumpJob, TableDescriptor
from db_dumper.dump.planner import needs_chunking, plan_chunks
from db_dumper.dump.worker import dump_chunk
from db_dumper.exceptions import DumpFailedError

if TYPE_CHECKING:
    from db_dumper.adapters.base import DumpSource
    from db_dumper.storage.base import UploadCategory, Uploader

logger = logging.getLogger(__name__)


def _flatten(group: BaseExceptionGroup) -> list[BaseException]:
    errors: list[BaseException] = []
    for error in group.exceptions:
        if isinstance(error, BaseExceptionGroup):
            errors.extend(_flatten(error))
        else:
            errors.append(error)
    return errors


class Dispatcher:
    """Plans tables into chunks and dumps the chunks concurrently.

    Args:
        source: Snapshot-pinned dump source.
        settings: Dump settings (target sizes, concurrency, output dir).
        job: Counters to update; a fresh ``DumpJob`` when omitted.
        uploader: Receives every finished file; ``None`` disables uploads.
    """

    def __init__(
        self,
        source: DumpSource,
        settings: DumpSettings,
        job: DumpJob | None = None,
        uploader: Uploader | None = None,
    ) -> None:
        self.source = source
        self.settings = settings
        self.job = job if job is not None else DumpJob()
        self.uploader = uploader
        self._semaphore = asyncio.Semaphore(settings.concurrency)
        self._group: asyncio.TaskGroup | None = None

    async def __aenter__(self) -> "Dispatcher":
        self._group = asyncio.TaskGroup()
        await self._group.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        # Workers finishing during the wait still queue uploads on the group
        try:
            await self._group.__aexit__(exc_type, exc_val, exc_tb)
        except BaseExceptionGroup as eg:
            raise DumpFailedError(_flatten(eg), self.job) from eg
        finally:
            self._group = None
        return False

    def _require_group(self) -> asyncio.TaskGroup:
        if self._group is None:
            raise RuntimeError("Dispatcher not started. Use 'async with Dispatcher(...)'.")
        return self._group

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    async def plan_table(self, table: TableDescriptor) -> list[ChunkSpec]:
        """Chunk plan for one table.

        The key range is only queried for tables large enough to split.
        """
        target = self.settings.file_target_size
        if not needs_chunking(table, target) or table.primary_key is None:
            return plan_chunks(table, target)

        min_pk, max_pk = await self.source.min_max_of(
            table.schema_name, table.table_name, table.primary_key
        )
        return plan_chunks(table, target, min_pk, max_pk)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch_table(
        self,
        table: TableDescriptor,
        chunks: list[ChunkSpec] | None = None,
    ) -> list[ChunkSpec]:
        """Start one worker per chunk of ``table`` without waiting.

        Args:
            table: Table to dump.
            chunks: Plan from ``plan_table()``; planned here when omitted.

        Returns:
            The chunks that were dispatched.
        """
        group = self._require_group()
        if chunks is None:
            chunks = await self.plan_table(table)

        for chunk in chunks:
            logger.debug(
                "Table: %s. Start: %s End: %s", table.name, chunk.start, chunk.end
            )
            self.job.files_planned += 1
            group.create_task(self._run_chunk(chunk), name=chunk.file_name)

        logger.info("Dispatched %s in %d file(s)", table.name, len(chunks))
        return chunks

    async def _run_chunk(self, chunk: ChunkSpec) -> None:
        async with self._semaphore:
            path = await dump_chunk(
                self.source,
                chunk,
                self.settings.output_dir,
                self.settings.bulk_insert_limit,
            )

        self.job.files_completed += 1
        self.job.artifacts.append(path)
        logger.debug(
            "Completed %s (%d/%d)",
            path.name,
            self.job.files_completed,
            self.job.files_planned,
        )
        self.upload(path, "table")

    def upload(self, path: Path, category: UploadCategory) -> None:
        """Queue ``path`` for upload; returns before the upload finishes."""
        if self.uploader is None:
            return
        self._require_group().create_task(
            self._upload(path, category), name=f"upload:{path.name}"
        )

    async def _upload(self, path: Path, category: UploadCategory) -> None:
        await asyncio.to_thread(self.uploader.upload, path, category)
        self.job.files_uploaded += 1
