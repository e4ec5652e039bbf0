"""Exception hierarchy for the dump engine.

Every failure the engine raises derives from ``DumpError`` so callers (the
CLI in particular) can report it as a single terminal line.

Usage:
    from db_dumper.exceptions import DumpError, DumpFailedError

    try:
        result = await export_database(source, settings)
    except DumpFailedError as e:
        print(e.format_report())
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from db_dumper.dump.models import ChunkSpec, DumpJob


class DumpError(Exception):
    """Base class for all dump failures."""


class SnapshotError(DumpError):
    """Raised when the consistent-read snapshot cannot be established."""


class MetadataError(DumpError):
    """Raised when table metadata (tables, keys, columns, DDL) cannot be read."""


class ChunkPlanningError(DumpError):
    """Raised when a table's key range cannot be split into chunks."""


class ChunkDumpError(DumpError):
    """Raised when a single chunk fails to stream or write.

    Attributes:
        chunk: The chunk whose dump failed.
    """

    def __init__(self, chunk: ChunkSpec, message: str) -> None:
        super().__init__(message)
        self.chunk = chunk


class DumpFailedError(DumpError):
    """Raised when one or more dump tasks failed.

    The first failure cancels the remaining in-flight tasks; every failure
    collected before cancellation is kept in ``errors``.

    Attributes:
        errors: Failures collected from the dump tasks.
        job: Counters as they stood when the dump stopped.
    """

    def __init__(self, errors: list[BaseException], job: DumpJob | None = None) -> None:
        self.errors = errors
        self.job = job
        noun = "error" if len(errors) == 1 else "errors"
        super().__init__(f"Dump failed with {len(errors)} {noun}: {errors[0]}")

    def format_report(self) -> str:
        """Format the collected failures as a human-readable report."""
        noun = "error" if len(self.errors) == 1 else "errors"
        lines = [f"Dump failed ({len(self.errors)} {noun}):"]
        for error in self.errors:
            lines.append(f"  - {type(error).__name__}: {error}")
        if self.job is not None:
            lines.append(
                f"  Completed {self.job.files_completed} of "
                f"{self.job.files_planned} planned files"
            )
        return "\n".join(lines)
