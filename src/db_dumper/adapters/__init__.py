"""Dump source adapters.

Provides the ``DumpSource`` Protocol and the async TiDB implementation.

Usage:
    from db_dumper.adapters import DumpSource, AsyncTiDBAdapter
"""

from db_dumper.adapters.base import DumpSource
from db_dumper.adapters.tidb import AsyncTiDBAdapter

__all__ = [
    "DumpSource",
    "AsyncTiDBAdapter",
]
