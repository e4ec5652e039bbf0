"""db-dumper: consistent, parallel logical dumps of TiDB databases.

Splits large tables into primary-key ranges, dumps the ranges concurrently
at one snapshot into restorable SQL files, and optionally uploads the files
to S3.

Usage:
    from db_dumper import AsyncTiDBAdapter, DumpSettings, export_database

    adapter = AsyncTiDBAdapter("mysql://root@127.0.0.1:4000/")
    result = await export_database(adapter, DumpSettings(concurrency=16))
    await adapter.close()
"""

__version__ = "0.1.0"

# Adapters
from db_dumper.adapters.base import DumpSource
from db_dumper.adapters.tidb import AsyncTiDBAdapter

# Config
from db_dumper.config.loader import load_dump_config
from db_dumper.config.models import DatabaseProfile, DumpConfig, DumpSettings, StorageSettings

# Factory
from db_dumper.factory import ProfileNotFoundError, get_adapter, resolve_url

# Dump engine
from db_dumper.dump.dispatcher import Dispatcher
from db_dumper.dump.export import export_database
from db_dumper.dump.models import ChunkSpec, DumpJob, DumpResult, TableDescriptor
from db_dumper.dump.planner import plan_chunks

# Errors
from db_dumper.exceptions import (
    ChunkDumpError,
    ChunkPlanningError,
    DumpError,
    DumpFailedError,
    MetadataError,
    SnapshotError,
)

__all__ = [
    # Adapters
    "DumpSource",
    "AsyncTiDBAdapter",
    # Config
    "load_dump_config",
    "DatabaseProfile",
    "DumpConfig",
    "DumpSettings",
    "StorageSettings",
    # Factory
    "get_adapter",
    "resolve_url",
    "ProfileNotFoundError",
    # Dump engine
    "Dispatcher",
    "export_database",
    "plan_chunks",
    "ChunkSpec",
    "DumpJob",
    "DumpResult",
    "TableDescriptor",
    # Errors
    "DumpError",
    "SnapshotError",
    "MetadataError",
    "ChunkPlanningError",
    "ChunkDumpError",
    "DumpFailedError",
]
