"""The ``update`` operation: sync all catalogs and report what changed."""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from rich.console import Console

from .catalog.registry import list_catalogs
from .catalog.remote import RemoteSyncer
from .catalog.snapshot import PluginEntry, load_snapshot, load_snapshot_if_exists
from .catalog.sync import Syncer, SyncResult, sync_all
from .config import Paths, Settings
from .errors import ReceiptLoadFailure, SnapshotLoadFailure, SnapshotNotFound
from .locking import file_lock
from .migration.index_layout import require_multi_index_layout
from .names import DEFAULT_INDEX_NAME
from .receipts import installed_versions, load_installed_receipts
from .report import format_updated_plugins

logger = logging.getLogger(__name__)

err_console = Console(stderr=True)


def _default_mirror_lock(paths: Paths):
    return file_lock(paths.lock_path(f"index-{DEFAULT_INDEX_NAME}"))


def _load_pre_update_snapshot(paths: Paths) -> Optional[List[PluginEntry]]:
    try:
        with _default_mirror_lock(paths):
            return load_snapshot_if_exists(paths.index_plugins_path(DEFAULT_INDEX_NAME))
    except SnapshotLoadFailure as e:
        # Let update repair a broken mirror; there is just nothing to diff.
        logger.warning("ignoring unreadable plugin index before update: %s", e)
        return None


def ensure_catalogs_updated(
    settings: Settings,
    console: Optional[Console] = None,
    syncer: Optional[Syncer] = None,
    cancel: Optional[threading.Event] = None,
) -> SyncResult:
    """Sync every registered catalog and print newly available plugins.

    The confirmation line and the change report are printed even when
    some catalogs failed; the failure is raised afterwards as
    PartialSyncFailure.
    """
    console = console or err_console
    syncer = syncer or RemoteSyncer(timeout=settings.sync_timeout_s)
    paths = settings.paths

    require_multi_index_layout(paths)
    pre_update = _load_pre_update_snapshot(paths)

    catalogs = list_catalogs(settings)
    result = sync_all(
        catalogs,
        paths,
        syncer,
        max_workers=settings.sync_workers,
        timeout=settings.sync_timeout_s or None,
        cancel=cancel,
    )

    console.print("Updated the local copy of plugin index.", markup=False, highlight=False)

    # A mirror that was missing or empty before has nothing to compare against.
    if pre_update:
        try:
            with _default_mirror_lock(paths):
                post_update = load_snapshot(paths.index_plugins_path(DEFAULT_INDEX_NAME))
        except (SnapshotLoadFailure, SnapshotNotFound) as e:
            raise SnapshotLoadFailure(f"failed to load plugin index after update: {e}") from e

        try:
            receipts = load_installed_receipts(paths.receipts_path())
        except ReceiptLoadFailure as e:
            raise ReceiptLoadFailure(f"failed to load installed plugins list after update: {e}") from e

        report = format_updated_plugins(pre_update, post_update, installed_versions(receipts))
        if report:
            console.print(report, end="", markup=False, highlight=False)

    result.raise_for_failures()
    return result
