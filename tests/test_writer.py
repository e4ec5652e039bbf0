"""Tests for output artifacts and INSERT statement batching."""

from pathlib import Path

import pytest

from db_dumper.dump.writer import BatchBuffer, OutputArtifact

HEADER = b"INSERT INTO `orders` (`id`,`name`) VALUES \n"


def _row(i: int) -> list[bytes]:
    return [str(i).encode(), f"'row-{i}'".encode()]


# ============================================================================
# Test: OutputArtifact
# ============================================================================


class TestOutputArtifact:
    def test_file_created_on_close_even_if_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "sub" / "t.sql"
        artifact = OutputArtifact(path)
        artifact.close()
        assert path.exists()
        assert path.read_bytes() == b""

    def test_flush_writes_and_resets_buffer(self, tmp_path: Path) -> None:
        artifact = OutputArtifact(tmp_path / "t.sql")
        artifact.write(b"abc")
        assert artifact.buffer_len == 3
        assert artifact.flush() == 3
        assert artifact.buffer_len == 0
        assert artifact.bytes_written == 3
        artifact.close()
        assert (tmp_path / "t.sql").read_bytes() == b"abc"

    def test_close_is_idempotent(self, tmp_path: Path) -> None:
        artifact = OutputArtifact(tmp_path / "t.sql")
        artifact.write(b"x")
        artifact.close()
        artifact.close()
        assert artifact.closed
        assert artifact.bytes_written == 1

    def test_write_after_close_raises(self, tmp_path: Path) -> None:
        artifact = OutputArtifact(tmp_path / "t.sql")
        artifact.close()
        with pytest.raises(ValueError, match="closed"):
            artifact.write(b"x")

    def test_context_manager_closes(self, tmp_path: Path) -> None:
        with OutputArtifact(tmp_path / "t.sql") as artifact:
            artifact.write(b"data")
        assert artifact.closed
        assert (tmp_path / "t.sql").read_bytes() == b"data"

    def test_seal_does_not_touch_disk(self, tmp_path: Path) -> None:
        artifact = OutputArtifact(tmp_path / "t.sql")
        artifact.write(b"abc")
        artifact.seal()
        assert artifact.buffer_len == 0
        assert artifact.pending_len == 3
        assert not artifact.path.exists()

    @pytest.mark.asyncio
    async def test_aflush_writes_only_sealed_bytes(self, tmp_path: Path) -> None:
        artifact = OutputArtifact(tmp_path / "t.sql")
        artifact.write(b"done;")
        artifact.seal()
        artifact.write(b"open")

        assert await artifact.aflush() == 5
        assert artifact.pending_len == 0
        assert artifact.buffer_len == 4

        await artifact.aclose()
        assert artifact.closed
        assert artifact.path.read_bytes() == b"done;open"


# ============================================================================
# Test: BatchBuffer
# ============================================================================


class TestBatchBuffer:
    """Multi-row INSERT formatting."""

    def _dump(self, tmp_path: Path, rows: list[list[bytes]], limit: int) -> tuple[bytes, BatchBuffer]:
        artifact = OutputArtifact(tmp_path / "orders.sql")
        batch = BatchBuffer(artifact, "orders", ["id", "name"], limit)
        for row in rows:
            batch.append_row(row)
        batch.close()
        artifact.close()
        return artifact.path.read_bytes(), batch

    def test_single_statement(self, tmp_path: Path) -> None:
        data, batch = self._dump(tmp_path, [_row(1), _row(2), _row(3)], 1024)
        assert data == (
            HEADER
            + b"(1,'row-1'),\n(2,'row-2'),\n(3,'row-3');\n"
        )
        assert batch.rows == 3
        assert batch.statements == 1

    def test_split_at_tuple_boundary(self, tmp_path: Path) -> None:
        # Header (43 bytes) plus one 11-byte tuple fits; a second does not
        limit = len(HEADER) + len(b"(1,'row-1')") + 5
        data, batch = self._dump(tmp_path, [_row(1), _row(2)], limit)
        assert data == HEADER + b"(1,'row-1');\n" + HEADER + b"(2,'row-2');\n"
        assert batch.statements == 2

    def test_every_statement_is_terminated(self, tmp_path: Path) -> None:
        data, batch = self._dump(tmp_path, [_row(i) for i in range(1, 200)], 256)
        statements = data.split(b";\n")
        assert statements[-1] == b""
        assert len(statements) - 1 == batch.statements
        assert all(s.startswith(HEADER) for s in statements[:-1])
        assert data.count(b"(") == 199 + batch.statements

    def test_oversized_tuple_gets_own_statement(self, tmp_path: Path) -> None:
        big = [b"9", b"'" + b"x" * 500 + b"'"]
        data, batch = self._dump(tmp_path, [_row(1), big, _row(2)], 100)
        assert batch.statements == 3
        assert data.count(HEADER) == 3
        assert b";\n;\n" not in data

    def test_no_rows_writes_nothing(self, tmp_path: Path) -> None:
        data, batch = self._dump(tmp_path, [], 1024)
        assert data == b""
        assert batch.statements == 0

    def test_flush_on_empty_buffer_writes_no_terminator(self, tmp_path: Path) -> None:
        artifact = OutputArtifact(tmp_path / "orders.sql")
        batch = BatchBuffer(artifact, "orders", ["id", "name"], 1024)
        batch.flush()
        batch.flush()
        artifact.close()
        assert artifact.path.read_bytes() == b""

    def test_finished_statement_is_sealed_not_written(self, tmp_path: Path) -> None:
        artifact = OutputArtifact(tmp_path / "orders.sql")
        limit = len(HEADER) + len(b"(1,'row-1')") + 5
        batch = BatchBuffer(artifact, "orders", ["id", "name"], limit)
        batch.append_row(_row(1))
        batch.append_row(_row(2))

        assert artifact.pending_len == len(HEADER + b"(1,'row-1');\n")
        assert artifact.has_content
        assert not artifact.path.exists()
