"""Receipts-layout migration.

Older installs tracked plugins only by their directory under ``store/``.
This migration reinstalls every tracked plugin so each gets a receipt in
the current format, resolved against the freshly synced default catalog.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from ..catalog.snapshot import PluginEntry, load_snapshot
from ..config import Paths
from ..errors import MigrationFailure, SnapshotNotFound
from ..names import DEFAULT_INDEX_NAME, is_safe_name
from ..receipts import Receipt, write_receipt
from .dispatcher import Migration

logger = logging.getLogger(__name__)

NAME = "receipts-upgrade"
VERSION = 1

Installer = Callable[[Paths, PluginEntry], None]


def record_install(paths: Paths, entry: PluginEntry) -> None:
    """Default installer: record the plugin with a current-format receipt."""
    write_receipt(paths, Receipt.from_entry(entry, source=DEFAULT_INDEX_NAME))


def tracked_plugins(paths: Paths) -> List[str]:
    """Names of plugins present in the store, sorted."""
    store = paths.store_path()
    if not store.exists():
        return []
    names = []
    for child in sorted(store.iterdir()):
        if not child.is_dir():
            continue
        if not is_safe_name(child.name):
            logger.warning("skipping store entry with unusable name %r", child.name)
            continue
        names.append(child.name)
    return names


def migrate_receipts(paths: Paths, installer: Installer = record_install) -> List[str]:
    """Reinstall every tracked plugin; return the names reinstalled."""
    plugins = tracked_plugins(paths)
    if not plugins:
        logger.info("no installed plugins to migrate")
        return []

    try:
        index = {p.name: p for p in load_snapshot(paths.index_plugins_path(DEFAULT_INDEX_NAME))}
    except SnapshotNotFound as e:
        raise MigrationFailure(NAME, f"plugin index is not available: {e}") from e

    reinstalled = []
    for name in plugins:
        entry = index.get(name)
        if entry is None:
            logger.warning("plugin %s is no longer in the index, skipping", name)
            continue
        logger.info("reinstalling %s %s", name, entry.version)
        installer(paths, entry)
        reinstalled.append(name)
    return reinstalled


def receipts_migration(
    installer: Installer = record_install,
    prerequisite: Optional[Callable[[], None]] = None,
) -> Migration:
    return Migration(
        name=NAME,
        version=VERSION,
        description="Reinstall all plugins with receipts in the current format",
        body=lambda paths: migrate_receipts(paths, installer),
        prerequisite=prerequisite,
    )
