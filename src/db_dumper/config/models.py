"""Pydantic models for dump configuration."""

from pathlib import Path

from pydantic import BaseModel, Field


# ============================================================================
# Connection
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from dump.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str = "tidb"


# ============================================================================
# Dump behaviour
# ============================================================================


class DumpSettings(BaseModel):
    """How tables are split, written and scheduled."""

    output_dir: Path = Path("dumpdir")
    file_target_size: int = Field(default=100 * 1024, ge=1)   # bytes per data file (goal)
    bulk_insert_limit: int = Field(default=1024, ge=1)        # bytes per INSERT statement (goal)
    concurrency: int = Field(default=8, ge=1)                 # chunks dumped at once
    snapshot: str | None = None                               # tidb_snapshot; None = now - 1s
    tables: list[str] = Field(default_factory=list)           # schema.table globs; empty = all
    exclude_schemas: list[str] = Field(
        default_factory=lambda: [
            "mysql",
            "INFORMATION_SCHEMA",
            "PERFORMANCE_SCHEMA",
            "METRICS_SCHEMA",
        ]
    )
    skip_broken_tables: bool = False   # report and skip tables whose metadata can't be read


class StorageSettings(BaseModel):
    """Where finished files are uploaded.  No bucket disables uploads."""

    bucket: str | None = None
    prefix: str = ""
    endpoint_url: str | None = None
    region: str | None = None


# ============================================================================
# Top level
# ============================================================================


class DumpConfig(BaseModel):
    """Complete configuration from dump.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    dump: DumpSettings = Field(default_factory=DumpSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
