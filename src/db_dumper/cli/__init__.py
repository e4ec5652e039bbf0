"""CLI for consistent, parallel SQL dumps.

Usage:
    DB_PROFILE=prod db-dumper dump
    db-dumper dump --url mysql://root@127.0.0.1:4000/ --output-dir /backups/today
    db-dumper dump --tables 'shop.*' --concurrency 16 --no-upload
    db-dumper plan --tables shop.orders
    db-dumper profiles

Commands:
    dump      - Dump all selected tables at one snapshot
    plan      - Show how tables would be split into files, without dumping
    profiles  - List available profiles
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from db_dumper.config.loader import DEFAULT_CONFIG_FILE, load_dump_config
from db_dumper.config.models import DumpConfig, DumpSettings
from db_dumper.dump.dispatcher import Dispatcher
from db_dumper.dump.export import describe_table, export_database, select_tables
from db_dumper.exceptions import (
    ChunkPlanningError,
    DumpError,
    DumpFailedError,
    MetadataError,
)
from db_dumper.factory import ProfileNotFoundError, get_adapter
from db_dumper.log import configure_logging
from db_dumper.storage import build_uploader

console = Console()
logger = logging.getLogger(__name__)


# ============================================================================
# Argument helpers
# ============================================================================


def _load_config(args: argparse.Namespace) -> DumpConfig:
    """Load dump.toml, or defaults when none exists and none was requested.

    Raises:
        FileNotFoundError: If ``--config`` names a missing file.
        ValueError: If the config is invalid.
    """
    config_path = getattr(args, "config", None)
    if config_path is not None:
        return load_dump_config(Path(config_path))

    default_path = Path.cwd() / DEFAULT_CONFIG_FILE
    if default_path.exists():
        return load_dump_config(default_path)
    return DumpConfig()


def _settings_from_args(args: argparse.Namespace, settings: DumpSettings) -> DumpSettings:
    """Apply command-line overrides on top of the configured settings."""
    overrides: dict = {}
    if getattr(args, "output_dir", None):
        overrides["output_dir"] = Path(args.output_dir)
    if getattr(args, "tables", None):
        overrides["tables"] = [t.strip() for t in args.tables.split(",") if t.strip()]
    for name in ("concurrency", "file_target_size", "bulk_insert_limit", "snapshot"):
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    if getattr(args, "skip_broken_tables", False):
        overrides["skip_broken_tables"] = True

    # Re-validate so CLI values get the same checks as TOML values
    return DumpSettings.model_validate({**settings.model_dump(), **overrides})


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_dump(args: argparse.Namespace) -> int:
    """Async implementation for dump command.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        config = _load_config(args)
        settings = _settings_from_args(args, config.dump)
        uploader = None if args.no_upload else build_uploader(config.storage)
        adapter = await get_adapter(
            profile_name=args.profile,
            database_url=args.url,
            env_prefix=args.env_prefix,
            config=config,
            pool_size=settings.concurrency,
        )
    except (ProfileNotFoundError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1

    try:
        result = await export_database(adapter, settings, uploader=uploader)
    except DumpFailedError as e:
        logger.error("Dump failed: %s", e)
        console.print(e.format_report())
        return 1
    except DumpError as e:
        logger.error("Dump failed: %s", e)
        return 1
    finally:
        await adapter.close()

    table = Table(title="Dump Complete", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Snapshot", f"[bold cyan]{result.snapshot}[/bold cyan]")
    table.add_row("Output", str(result.output_dir))
    table.add_row("Tables", str(len(result.tables)))
    table.add_row("Files", f"{result.files_completed}/{result.files_planned}")
    if uploader is not None:
        table.add_row("Uploaded", str(result.files_uploaded))
    table.add_row("Elapsed", f"{result.elapsed_seconds:.1f}s")
    console.print(table)

    if result.skipped_tables:
        console.print(f"\n[yellow]Skipped {len(result.skipped_tables)} table(s):[/yellow]")
        for name, reason in result.skipped_tables.items():
            console.print(f"  - {name}: {reason}")

    return 0


async def _async_plan(args: argparse.Namespace) -> int:
    """Async implementation for plan command.

    Reads metadata at one snapshot and prints every planned file; writes
    nothing.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        config = _load_config(args)
        settings = _settings_from_args(args, config.dump)
        adapter = await get_adapter(
            profile_name=args.profile,
            database_url=args.url,
            env_prefix=args.env_prefix,
            config=config,
        )
    except (ProfileNotFoundError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1

    table = Table(title="Dump Plan", show_header=True, header_style="bold")
    table.add_column("Table")
    table.add_column("Shape")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("File")

    total = 0
    skipped: dict[str, str] = {}
    try:
        snapshot = await adapter.resolve_snapshot(settings.snapshot)
        tables = select_tables(
            await adapter.list_tables(settings.exclude_schemas), settings.tables
        )
        dispatcher = Dispatcher(adapter, settings)
        for info in tables:
            try:
                descriptor = await describe_table(adapter, info)
                chunks = await dispatcher.plan_table(descriptor)
            except (MetadataError, ChunkPlanningError) as e:
                if not settings.skip_broken_tables:
                    raise
                logger.warning("Skipping %s: %s", info.name, e)
                skipped[info.name] = str(e)
                continue
            for chunk in chunks:
                table.add_row(
                    info.name,
                    chunk.shape.value,
                    "" if chunk.start is None else str(chunk.start),
                    "" if chunk.end is None else str(chunk.end),
                    chunk.file_name,
                )
                total += 1
    except DumpError as e:
        logger.error("Planning failed: %s", e)
        return 1
    finally:
        await adapter.close()

    console.print(table)
    console.print(
        f"\n[bold]{total}[/bold] file(s) from [bold]{len(tables) - len(skipped)}[/bold] table(s) "
        f"at snapshot [cyan]{snapshot}[/cyan]"
    )
    if skipped:
        console.print(f"\n[yellow]Skipped {len(skipped)} table(s):[/yellow]")
        for name, reason in skipped.items():
            console.print(f"  - {name}: {reason}")
    return 0


# ============================================================================
# Sync command wrappers (cmd_profiles reads local files only)
# ============================================================================


def cmd_dump(args: argparse.Namespace) -> int:
    """Dump all selected tables.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_dump(args))


def cmd_plan(args: argparse.Namespace) -> int:
    """Show the chunk plan.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_plan(args))


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from dump.toml.

    Reads only local TOML config -- no database calls.

    Returns:
        0 on success, 1 if the config cannot be read.
    """
    try:
        config = _load_config(args)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not config.profiles:
        console.print("[yellow]No profiles configured.[/yellow]")
        console.print(
            f"[dim]Add a[/dim] [cyan][profiles.<name>][/cyan] [dim]section to {DEFAULT_CONFIG_FILE}.[/dim]"
        )
        return 0

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        table.add_row(name, profile.provider, profile.description or "")

    console.print(table)
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--profile", "-p", help="Profile from dump.toml")
    parser.add_argument("--url", help="Connection URL (overrides profiles)")
    parser.add_argument(
        "--tables",
        help="Comma-separated schema.table globs to include (e.g., 'shop.*,crm.users')",
    )
    parser.add_argument(
        "--snapshot",
        help="tidb_snapshot to read at (default: server time minus one second)",
    )
    parser.add_argument(
        "--file-target-size",
        type=int,
        help="Target size of each data file in bytes",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="db-dumper",
        description="Consistent, parallel SQL dumps of TiDB databases",
    )

    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--config",
        "-c",
        help=f"Path to config file (default: ./{DEFAULT_CONFIG_FILE} if present)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log every query and file write",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # dump command
    p_dump = subparsers.add_parser("dump", help="Dump all selected tables")
    _add_connection_args(p_dump)
    p_dump.add_argument("--output-dir", "-o", help="Directory for dump files")
    p_dump.add_argument(
        "--concurrency",
        "-j",
        type=int,
        help="Number of chunks dumped at once",
    )
    p_dump.add_argument(
        "--bulk-insert-limit",
        type=int,
        help="Target size of each INSERT statement in bytes",
    )
    p_dump.add_argument(
        "--skip-broken-tables",
        action="store_true",
        help="Skip (and report) tables whose metadata cannot be read",
    )
    p_dump.add_argument(
        "--no-upload",
        action="store_true",
        help="Keep files local even if a storage bucket is configured",
    )
    p_dump.set_defaults(func=cmd_dump)

    # plan command
    p_plan = subparsers.add_parser("plan", help="Show the chunk plan without dumping")
    _add_connection_args(p_plan)
    p_plan.add_argument(
        "--skip-broken-tables",
        action="store_true",
        help="Leave out (and report) tables whose metadata cannot be read",
    )
    p_plan.set_defaults(func=cmd_plan)

    # profiles command
    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
