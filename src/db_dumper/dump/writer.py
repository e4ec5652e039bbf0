"""Buffered output files and batched INSERT statement formatting.

``OutputArtifact`` is a file with an in-memory byte buffer in front of it.
``BatchBuffer`` turns value tuples into multi-row ``INSERT`` statements on
top of an artifact, starting a new statement whenever the next tuple would
push the buffered statement past ``bulk_insert_limit`` bytes.

The limit is checked before a tuple is appended, so a statement may exceed
it by up to one tuple; a tuple larger than the limit gets a statement of its
own.

Finished statements are sealed on the artifact, not written.  The owner
writes them with ``artifact.flush()`` or, inside the event loop, with
``await artifact.aflush()``.

Usage:
    from db_dumper.dump.writer import BatchBuffer, OutputArtifact

    artifact = OutputArtifact(Path("dumpdir/shop.orders.sql"))
    batch = BatchBuffer(artifact, "orders", ["id", "total"], bulk_insert_limit=1024)
    batch.append_row([b"1", b"'9.99'"])
    batch.close()
    artifact.close()
"""

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO

from db_dumper.dump.escape import quote_identifier

logger = logging.getLogger(__name__)

STATEMENT_TERMINATOR = b";\n"
ROW_SEPARATOR = b",\n"


class OutputArtifact:
    """A dump file owned by exactly one worker.

    Bytes move through two stages.  ``write()`` appends to the statement
    being built; ``seal()`` moves a finished statement to the pending
    stage without touching the disk.  ``flush()`` writes pending bytes
    inline and ``aflush()`` writes them from a worker thread, so the event
    loop never blocks on the file.

    The file is opened on first flush and is always created by ``close()``,
    even when nothing was written.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.bytes_written = 0
        self._buffer = bytearray()
        self._pending = bytearray()
        self._file: BinaryIO | None = None
        self._closed = False

    @property
    def buffer_len(self) -> int:
        return len(self._buffer)

    @property
    def pending_len(self) -> int:
        return len(self._pending)

    @property
    def has_content(self) -> bool:
        """Whether the buffer holds an unterminated statement."""
        return bool(self._buffer)

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> None:
        if self._closed:
            raise ValueError(f"Write to closed artifact: {self.path}")
        self._buffer += data

    def seal(self) -> None:
        """Move the buffered statement to the pending stage."""
        self._pending += self._buffer
        self._buffer.clear()

    def _open(self) -> BinaryIO:
        if self._file is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, "wb")
        return self._file

    def _write_pending(self) -> int:
        f = self._open()
        n = len(self._pending)
        if n:
            f.write(self._pending)
            self.bytes_written += n
            self._pending.clear()
            logger.debug("wrote %d bytes to %s", n, self.path.name)
        return n

    def flush(self) -> int:
        """Seal the buffer and write everything pending to disk.

        Returns:
            Number of bytes written.
        """
        self.seal()
        return self._write_pending()

    async def aflush(self) -> int:
        """Write sealed bytes to disk from a worker thread.

        The statement still being built stays in the buffer.

        Returns:
            Number of bytes written.
        """
        return await asyncio.to_thread(self._write_pending)

    def close(self) -> None:
        """Flush remaining bytes and close the file (idempotent)."""
        if self._closed:
            return
        self.flush()
        if self._file is not None:
            self._file.close()
            self._file = None
        self._closed = True

    async def aclose(self) -> None:
        """``close()`` from a worker thread."""
        await asyncio.to_thread(self.close)

    def __enter__(self) -> "OutputArtifact":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class BatchBuffer:
    """Formats rows into multi-row ``INSERT`` statements.

    Args:
        artifact: Destination artifact; the buffer is the artifact's own.
        table_name: Table name written after ``INSERT INTO``.
        column_names: Column names, in the order values are supplied.
        bulk_insert_limit: Target maximum size of one statement in bytes.
    """

    def __init__(
        self,
        artifact: OutputArtifact,
        table_name: str,
        column_names: Sequence[str],
        bulk_insert_limit: int,
    ) -> None:
        self.artifact = artifact
        self.bulk_insert_limit = bulk_insert_limit
        columns = ",".join(quote_identifier(c) for c in column_names)
        self._header = (
            f"INSERT INTO {quote_identifier(table_name)} ({columns}) VALUES \n"
        ).encode("utf-8")
        self.rows = 0
        self.statements = 0

    def append_row(self, values: Sequence[bytes]) -> None:
        """Append one row of already-quoted literal values."""
        tuple_text = b"(" + b",".join(values) + b")"

        if self.artifact.buffer_len + len(tuple_text) > self.bulk_insert_limit:
            self.flush()

        if not self.artifact.has_content:
            self.artifact.write(self._header)
            self.artifact.write(tuple_text)
            self.statements += 1
        else:
            self.artifact.write(ROW_SEPARATOR)
            self.artifact.write(tuple_text)

        self.rows += 1

    def flush(self) -> None:
        """Terminate the open statement, if any, and seal it for writing."""
        if self.artifact.has_content:
            self.artifact.write(STATEMENT_TERMINATOR)
            self.artifact.seal()

    def close(self) -> None:
        """Seal the final statement.  A buffer that saw no rows adds nothing."""
        self.flush()
