"""Partitioned, parallel SQL dump engine.

Usage:
    from db_dumper.dump import export_database, plan_chunks, Dispatcher
"""

from db_dumper.dump.escape import escape, quote_identifier, quote_value, to_raw
from db_dumper.dump.models import (
    ChunkShape,
    ChunkSpec,
    Column,
    DumpJob,
    DumpResult,
    TableDescriptor,
    TableInfo,
)
from db_dumper.dump.planner import needs_chunking, plan_chunks, rows_per_chunk
from db_dumper.dump.writer import BatchBuffer, OutputArtifact
from db_dumper.dump.worker import build_chunk_query, dump_chunk
from db_dumper.dump.dispatcher import Dispatcher
from db_dumper.dump.export import describe_table, dump_create_table, export_database, select_tables

__all__ = [
    # Escaping
    "escape",
    "quote_identifier",
    "quote_value",
    "to_raw",
    # Models
    "ChunkShape",
    "ChunkSpec",
    "Column",
    "DumpJob",
    "DumpResult",
    "TableDescriptor",
    "TableInfo",
    # Planning
    "needs_chunking",
    "plan_chunks",
    "rows_per_chunk",
    # Writing
    "BatchBuffer",
    "OutputArtifact",
    "build_chunk_query",
    "dump_chunk",
    # Orchestration
    "Dispatcher",
    "describe_table",
    "dump_create_table",
    "export_database",
    "select_tables",
]
