"""Split tables into primary-key row ranges.

A table smaller than the target file size is dumped whole.  Larger tables
are cut into ranges of ``rows_per_chunk`` keys, where the row count is
derived from information_schema's average row length.  The first range has
no lower bound and the last has no upper bound, so rows inserted outside
``[min, max]`` before the snapshot was taken are still covered.

Keys are assumed to be dense integers.  Sparse keys only produce unevenly
sized files; non-integer bounds are rejected.

Usage:
    from db_dumper.dump.planner import plan_chunks

    chunks = plan_chunks(table, target_chunk_bytes=100 * 1024, min_pk=1, max_pk=250_000)
"""

from db_dumper.dump.models import ChunkSpec, TableDescriptor
from db_dumper.exceptions import ChunkPlanningError


def rows_per_chunk(avg_row_length: int, target_chunk_bytes: int) -> int:
    """Approximate number of rows that fill ``target_chunk_bytes``.

    Never less than 1, so degenerate statistics cannot stall the range walk.
    """
    if avg_row_length <= 0:
        raise ChunkPlanningError(f"avg_row_length must be positive, got {avg_row_length}")
    return max(1, target_chunk_bytes // avg_row_length)


def needs_chunking(table: TableDescriptor, target_chunk_bytes: int) -> bool:
    """Whether ``table`` is large enough to be split into ranges."""
    return table.data_length >= target_chunk_bytes


def _check_bound(table: TableDescriptor, name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ChunkPlanningError(
            f"Cannot chunk {table.name}: {name} of primary key "
            f"{table.primary_key!r} is {value!r}, expected an integer"
        )
    return value


def plan_chunks(
    table: TableDescriptor,
    target_chunk_bytes: int,
    min_pk: int | None = None,
    max_pk: int | None = None,
) -> list[ChunkSpec]:
    """Compute the ordered chunk ranges for one table.

    Args:
        table: Table to split.
        target_chunk_bytes: Desired size of each data file.
        min_pk: Smallest primary-key value (``None`` for an empty table).
        max_pk: Largest primary-key value (``None`` for an empty table).

    Returns:
        Chunks in key order.  A single whole-table chunk when the table is
        below the threshold, has no primary key, or is empty.

    Raises:
        ChunkPlanningError: If the key bounds are not integers or
            ``min_pk > max_pk``.

    Example:
        >>> [c.shape.value for c in plan_chunks(table, 1000, 1, 30)]
        ['unbounded_low', 'bounded', 'unbounded_high']
    """
    if (
        not needs_chunking(table, target_chunk_bytes)
        or table.primary_key is None
        or min_pk is None
        or max_pk is None
    ):
        return [ChunkSpec(table=table, whole_table=True)]

    low = _check_bound(table, "minimum", min_pk)
    high = _check_bound(table, "maximum", max_pk)
    if low > high:
        raise ChunkPlanningError(
            f"Cannot chunk {table.name}: minimum key {low} exceeds maximum {high}"
        )

    step = rows_per_chunk(table.avg_row_length, target_chunk_bytes)
    chunks: list[ChunkSpec] = []

    for i in range(low, high + 1, step):
        start: int | None = i
        end: int | None = i + step - 1

        if i == low:
            start = None
        if end >= high:
            end = None

        chunks.append(ChunkSpec(table=table, start=start, end=end, first_key=low))

    return chunks
