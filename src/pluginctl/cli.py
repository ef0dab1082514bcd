"""pluginctl CLI - keep local plugin catalogs in sync.

Usage:
    pluginctl update                    # Sync all catalogs, show new plugins/upgrades
    pluginctl list                      # List installed plugins
    pluginctl info <name>               # Show a plugin from the index
    pluginctl system receipts-upgrade   # One-time migration of install receipts
    pluginctl system status             # Show migration status

With PLUGINCTL_ENABLE_MULTI_INDEX set (to any value):
    pluginctl system index-upgrade      # One-time migration to the multi-index layout
    pluginctl index list|add|remove     # Manage additional catalogs
"""

from __future__ import annotations

import argparse
import logging
import os
import shutil
from typing import List, Mapping, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .catalog.registry import add_catalog, list_catalogs, remove_catalog
from .catalog.snapshot import load_manifest
from .config import ENABLE_MULTI_INDEX_SWITCH, Settings, multi_index_enabled
from .errors import PluginctlError
from .migration import MigrationDispatcher, MigrationOutcome, registered_migrations
from .migration.index_layout import index_migration, require_multi_index_layout
from .migration.receipts_layout import receipts_migration
from .names import DEFAULT_INDEX_NAME, parse_qualified_name
from .receipts import load_installed_receipts
from .update import ensure_catalogs_updated

console = Console(stderr=True, soft_wrap=True)
out = Console(soft_wrap=True)


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
        force=True,
    )


# --- Index Commands ---

def cmd_update(args: argparse.Namespace) -> int:
    """Update the local copy of every plugin index."""
    ensure_catalogs_updated(args.settings, console=console)
    return 0


def cmd_index_list(args: argparse.Namespace) -> int:
    """List configured indexes."""
    table = Table(title="Indexes")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("URL")

    for catalog in list_catalogs(args.settings):
        table.add_row(escape(catalog.name), escape(catalog.url))

    out.print(table)
    return 0


def cmd_index_add(args: argparse.Namespace) -> int:
    """Register an additional index."""
    catalog = add_catalog(args.settings, args.name, args.url)
    console.print(f"[green]Added index '{escape(catalog.name)}'.[/green]")
    console.print("Run [bold]pluginctl update[/bold] to fetch it.")
    return 0


def cmd_index_remove(args: argparse.Namespace) -> int:
    """Unregister an index and delete its local copy."""
    catalog = remove_catalog(args.settings, args.name)
    index_path = args.settings.paths.index_path(catalog.name)
    if index_path.exists():
        shutil.rmtree(index_path)
    console.print(f"[yellow]Removed index '{escape(catalog.name)}'.[/yellow]")
    return 0


# --- Plugin Commands ---

def cmd_list(args: argparse.Namespace) -> int:
    """List installed plugins."""
    receipts = load_installed_receipts(args.settings.paths.receipts_path())

    if not receipts:
        console.print("[yellow]No plugins installed.[/yellow]")
        return 0

    table = Table(title="Installed Plugins")
    table.add_column("Plugin", style="cyan", no_wrap=True)
    table.add_column("Version")
    table.add_column("Index", style="magenta")

    for receipt in receipts:
        table.add_row(
            escape(receipt.name),
            escape(receipt.version),
            escape(receipt.source or DEFAULT_INDEX_NAME),
        )

    out.print(table)
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    """Show a plugin's manifest from the local index."""
    settings: Settings = args.settings
    catalog, plugin = parse_qualified_name(args.name)
    if catalog != DEFAULT_INDEX_NAME and not settings.multi_index:
        raise PluginctlError(
            f"custom indexes require {ENABLE_MULTI_INDEX_SWITCH} to be set"
        )

    entry = load_manifest(settings.paths.index_plugins_path(catalog), plugin)
    out.print(f"NAME: {escape(entry.name)}")
    out.print(f"INDEX: {escape(catalog)}")
    out.print(f"VERSION: {escape(entry.version)}")
    out.print(f"PLATFORMS: {len(entry.platforms)}")
    return 0


# --- System Commands ---

def _dispatcher(settings: Settings) -> MigrationDispatcher:
    return MigrationDispatcher(settings.paths)


def cmd_receipts_upgrade(args: argparse.Namespace) -> int:
    """Reinstall all plugins with current-format receipts."""
    settings: Settings = args.settings
    migration = receipts_migration(
        prerequisite=lambda: ensure_catalogs_updated(settings, console=console),
    )
    outcome = _dispatcher(settings).run(migration)
    if outcome is MigrationOutcome.SKIPPED:
        console.print("Receipts are already up to date, nothing to do.")
    else:
        console.print("[green]Migrated installation receipts.[/green]")
    return 0


def cmd_index_upgrade(args: argparse.Namespace) -> int:
    """Move the plugin index to the multi-index layout."""
    outcome = _dispatcher(args.settings).run(index_migration())
    if outcome is MigrationOutcome.SKIPPED:
        console.print("Index layout is already up to date, nothing to do.")
    else:
        console.print("[green]Migrated plugin index to the multi-index layout.[/green]")
    return 0


def cmd_system_status(args: argparse.Namespace) -> int:
    """Show the state of every registered migration."""
    settings: Settings = args.settings
    dispatcher = _dispatcher(settings)

    table = Table(title="Migrations")
    table.add_column("Migration", style="cyan", no_wrap=True)
    table.add_column("Version", justify="right")
    table.add_column("State", no_wrap=True)
    table.add_column("Description")

    for migration in registered_migrations(settings.multi_index):
        state = dispatcher.state(migration)
        table.add_row(migration.name, str(migration.version), state.value, migration.description)

    out.print(table)
    return 0


# --- Parser Setup ---

def build_parser(environ: Optional[Mapping[str, str]] = None) -> argparse.ArgumentParser:
    """Build the command set for the given environment.

    Multi-index commands are only registered when the feature switch is
    present in ``environ``.
    """
    multi_index = multi_index_enabled(environ)

    parser = argparse.ArgumentParser(
        prog="pluginctl",
        description="pluginctl: keep local plugin indexes in sync",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )
    sub = parser.add_subparsers(dest="subcmd")

    # update
    p_update = sub.add_parser("update", help="Update the local copy of the plugin index")
    p_update.set_defaults(func=cmd_update)

    # list
    p_list = sub.add_parser("list", help="List installed plugins")
    p_list.set_defaults(func=cmd_list)

    # info
    p_info = sub.add_parser("info", help="Show information about a plugin")
    p_info.add_argument("name", help="Plugin name, optionally as INDEX/PLUGIN")
    p_info.set_defaults(func=cmd_info)

    # system
    p_system = sub.add_parser("system", help="Perform pluginctl maintenance tasks")
    system_sub = p_system.add_subparsers(dest="system_cmd")

    p_receipts = system_sub.add_parser(
        "receipts-upgrade",
        help="Perform a one-time migration of the installation receipts",
    )
    p_receipts.set_defaults(func=cmd_receipts_upgrade)

    p_status = system_sub.add_parser("status", help="Show migration status")
    p_status.set_defaults(func=cmd_system_status, layout_check=False)

    if multi_index:
        p_index_upgrade = system_sub.add_parser(
            "index-upgrade",
            help="Perform a one-time migration to the multi-index layout",
        )
        p_index_upgrade.set_defaults(func=cmd_index_upgrade, layout_check=False)

        p_index = sub.add_parser("index", help="Manage custom plugin indexes")
        index_sub = p_index.add_subparsers(dest="index_cmd")

        p_index_list = index_sub.add_parser("list", help="List configured indexes")
        p_index_list.set_defaults(func=cmd_index_list)

        p_index_add = index_sub.add_parser("add", help="Add a new index")
        p_index_add.add_argument("name", help="Index name")
        p_index_add.add_argument("url", help="Git or JSON URL of the index")
        p_index_add.set_defaults(func=cmd_index_add)

        p_index_remove = index_sub.add_parser("remove", help="Remove an index")
        p_index_remove.add_argument("name", help="Index name")
        p_index_remove.set_defaults(func=cmd_index_remove)

    return parser


def run(argv: Optional[List[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    environ = os.environ if environ is None else environ
    parser = build_parser(environ)
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if not getattr(args, "func", None):
        parser.print_help()
        return 2

    try:
        args.settings = Settings.load(environ)
        if getattr(args, "layout_check", True):
            require_multi_index_layout(args.settings.paths)
        return args.func(args)
    except PluginctlError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        return 130


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
