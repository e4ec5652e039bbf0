"""Dump source factory.

Resolves which database to dump and builds an ``AsyncTiDBAdapter`` for it.
Connection sources, highest priority first:

1. An explicit ``database_url`` argument.
2. An explicit ``profile_name`` argument (looked up in dump.toml).
3. The ``{env_prefix}DATABASE_URL`` environment variable.
4. The profile named by ``{env_prefix}DB_PROFILE``.
"""

import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import quote

from db_dumper.adapters.tidb import AsyncTiDBAdapter
from db_dumper.config.loader import load_dump_config
from db_dumper.config.models import DatabaseProfile, DumpConfig

logger = logging.getLogger(__name__)


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from the environment.

    Args:
        env_prefix: Prefix for the variable name (``APP_`` reads
            ``APP_DB_PROFILE``).

    Returns:
        Profile name.

    Raises:
        ProfileNotFoundError: If no profile is configured.
    """
    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Set {env_var}=<name>, pass --profile, or pass --url."
    )


def get_profile(
    profile_name: str,
    config: DumpConfig | None = None,
    config_path: Path | None = None,
) -> DatabaseProfile:
    """Look up a profile in dump.toml.

    Raises:
        ProfileNotFoundError: If the profile is not defined.
        FileNotFoundError: If the config file doesn't exist.
    """
    if config is None:
        config = load_dump_config(config_path)

    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys()) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in dump.toml. Available: {available}"
        )
    return config.profiles[profile_name]


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config.

    Returns:
        Connection URL with ``[YOUR-PASSWORD]`` replaced by the URL-quoted
        ``db_password``.
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


async def get_adapter(
    profile_name: str | None = None,
    database_url: str | None = None,
    env_prefix: str = "",
    config: DumpConfig | None = None,
    config_path: Path | None = None,
    **engine_kwargs: Any,
) -> AsyncTiDBAdapter:
    """Create a new dump source (no caching).

    Args:
        profile_name: Profile from dump.toml.
        database_url: Explicit connection URL; wins over everything else.
        env_prefix: Prefix for ``DATABASE_URL`` / ``DB_PROFILE`` lookup.
        config: Already-loaded config (avoids re-reading dump.toml).
        config_path: Config file to read when ``config`` is not given.
        **engine_kwargs: Forwarded to the adapter's engine.

    Returns:
        A new ``AsyncTiDBAdapter``; the caller must ``await adapter.close()``.

    Raises:
        ProfileNotFoundError: If no connection source is configured.

    Example:
        >>> adapter = await get_adapter(profile_name="prod", pool_size=16)
    """
    if database_url:
        return AsyncTiDBAdapter(database_url, **engine_kwargs)

    env_url = os.environ.get(f"{env_prefix}DATABASE_URL")
    if env_url and profile_name is None:
        logger.debug("Using %sDATABASE_URL", env_prefix)
        return AsyncTiDBAdapter(env_url, **engine_kwargs)

    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix)

    profile = get_profile(profile_name, config=config, config_path=config_path)
    logger.debug("Using profile %s", profile_name)
    return AsyncTiDBAdapter(resolve_url(profile), **engine_kwargs)
