"""Tests for chunk queries and the per-chunk dump worker."""

import threading
from pathlib import Path

import pytest

from conftest import FakeSource, FakeTable, make_table
from db_dumper.dump.models import ChunkSpec, Column, TableDescriptor
from db_dumper.dump.worker import build_chunk_query, dump_chunk
from db_dumper.dump.writer import OutputArtifact
from db_dumper.exceptions import ChunkDumpError, DumpError


def _descriptor(primary_key: str | None = "id", **kwargs) -> TableDescriptor:
    return TableDescriptor(
        schema_name="shop",
        table_name="orders",
        primary_key=primary_key,
        columns=[Column(name="id", data_type="bigint"), Column(name="name", data_type="varchar")],
        **kwargs,
    )


# ============================================================================
# Test: build_chunk_query()
# ============================================================================


class TestBuildChunkQuery:
    def test_whole_table(self) -> None:
        chunk = ChunkSpec(table=_descriptor(), whole_table=True)
        assert build_chunk_query(chunk) == "SELECT `id`,`name` FROM `shop`.`orders`"

    def test_bounded(self) -> None:
        chunk = ChunkSpec(table=_descriptor(), start=10, end=20)
        assert build_chunk_query(chunk) == (
            "SELECT `id`,`name` FROM `shop`.`orders` WHERE `id` BETWEEN 10 AND 20"
        )

    def test_row_id_projected(self) -> None:
        chunk = ChunkSpec(table=_descriptor(primary_key="_tidb_rowid"), start=None, end=99)
        assert build_chunk_query(chunk) == (
            "SELECT `id`,`name`,`_tidb_rowid` FROM `shop`.`orders` "
            "WHERE `_tidb_rowid` < 100"
        )


# ============================================================================
# Test: dump_chunk()
# ============================================================================


class TestDumpChunk:
    """Streaming rows into one data file."""

    @pytest.mark.asyncio
    async def test_five_rows_one_statement(self, tmp_path: Path) -> None:
        source = FakeSource([make_table(n_rows=5)])
        chunk = ChunkSpec(table=_descriptor(), whole_table=True)

        path = await dump_chunk(source, chunk, tmp_path, 1024)

        assert path == tmp_path / "shop.orders.sql"
        data = path.read_bytes()
        assert data.startswith(b"INSERT INTO `orders` (`id`,`name`) VALUES \n(1,'row-1'),\n")
        assert data.endswith(b"(5,'row-5');\n")
        assert data.count(b"INSERT INTO") == 1

    @pytest.mark.asyncio
    async def test_range_is_filtered(self, tmp_path: Path) -> None:
        source = FakeSource([make_table(n_rows=10)])
        chunk = ChunkSpec(table=_descriptor(), start=4, end=6)

        path = await dump_chunk(source, chunk, tmp_path, 1024)

        assert path.name == "shop.orders.4.sql"
        assert path.read_bytes() == (
            b"INSERT INTO `orders` (`id`,`name`) VALUES \n"
            b"(4,'row-4'),\n(5,'row-5'),\n(6,'row-6');\n"
        )

    @pytest.mark.asyncio
    async def test_empty_range_creates_empty_file(self, tmp_path: Path) -> None:
        source = FakeSource([make_table(n_rows=3)])
        chunk = ChunkSpec(table=_descriptor(), start=100, end=None)

        path = await dump_chunk(source, chunk, tmp_path, 1024)

        assert path.exists()
        assert path.read_bytes() == b""

    @pytest.mark.asyncio
    async def test_values_are_escaped_and_nulls_rendered(self, tmp_path: Path) -> None:
        table = FakeTable(
            schema_name="shop",
            table_name="orders",
            columns=[Column(name="id", data_type="bigint"), Column(name="name", data_type="varchar")],
            rows=[(1, "O'Brien\n"), (2, None)],
        )
        source = FakeSource([table])
        chunk = ChunkSpec(table=_descriptor(), whole_table=True)

        path = await dump_chunk(source, chunk, tmp_path, 1024)

        assert b"(1,'O\\'Brien\\\n')" in path.read_bytes()
        assert b"(2,NULL)" in path.read_bytes()

    @pytest.mark.asyncio
    async def test_stream_failure_wrapped(self, tmp_path: Path) -> None:
        source = FakeSource([make_table(n_rows=3)], fail_on={"`orders`"})
        chunk = ChunkSpec(table=_descriptor(), whole_table=True)

        with pytest.raises(ChunkDumpError) as exc_info:
            await dump_chunk(source, chunk, tmp_path, 1024)

        assert exc_info.value.chunk is chunk
        assert "shop.orders" in str(exc_info.value)
        assert "Lost connection" in str(exc_info.value)
        assert isinstance(exc_info.value, DumpError)

    @pytest.mark.asyncio
    async def test_file_writes_leave_the_event_loop(self, tmp_path: Path, monkeypatch) -> None:
        source = FakeSource([make_table(n_rows=20)])
        chunk = ChunkSpec(table=_descriptor(), whole_table=True)
        write_threads = []
        write_pending = OutputArtifact._write_pending

        def recording_write(self):
            write_threads.append(threading.get_ident())
            return write_pending(self)

        monkeypatch.setattr(OutputArtifact, "_write_pending", recording_write)

        path = await dump_chunk(source, chunk, tmp_path, 80)

        assert len(write_threads) > 1
        assert threading.get_ident() not in write_threads
        assert path.read_bytes().count(b"INSERT INTO") > 1
