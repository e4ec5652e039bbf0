"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from db_dumper.config import load_dump_config, DumpConfig, DumpSettings
"""

from db_dumper.config.loader import load_dump_config
from db_dumper.config.models import DatabaseProfile, DumpConfig, DumpSettings, StorageSettings

__all__ = [
    "load_dump_config",
    "DatabaseProfile",
    "DumpConfig",
    "DumpSettings",
    "StorageSettings",
]
