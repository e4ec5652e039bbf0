"""Logging setup for the command line.

Library modules only call ``logging.getLogger(__name__)``; the CLI calls
``configure_logging()`` once to route records through rich.
"""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "DB_DUMPER_LOG_LEVEL"


def configure_logging(
    level: str | int | None = None,
    verbose: bool = False,
    console: Console | None = None,
) -> None:
    """Install a rich handler on the root logger.

    Level priority: ``level`` argument, ``--verbose`` (DEBUG), the
    ``DB_DUMPER_LOG_LEVEL`` environment variable, then INFO.

    Args:
        level: Explicit level name or number.
        verbose: Shortcut for DEBUG.
        console: Console to log to (default: stderr).
    """
    if level is None:
        level = "DEBUG" if verbose else os.environ.get(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, str):
        level = level.upper()

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # aiomysql/sqlalchemy chatter stays at WARNING unless asked for
    if not verbose:
        logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
        logging.getLogger("botocore").setLevel(logging.WARNING)
