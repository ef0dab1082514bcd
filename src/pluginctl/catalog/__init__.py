"""Catalog Module for pluginctl.

Local mirrors of remote plugin catalogs ("indexes"). This module handles:
- The registry of configured catalogs
- Fetching remote catalogs into their local mirror
- Syncing all catalogs with per-catalog failure isolation
- Reading catalog snapshots from a mirror
"""

from .registry import Catalog, add_catalog, list_catalogs, remove_catalog
from .remote import RemoteSyncer
from .snapshot import PluginEntry, load_manifest, load_snapshot, load_snapshot_if_exists
from .sync import SyncResult, sync_all

__all__ = [
    "Catalog",
    "PluginEntry",
    "RemoteSyncer",
    "SyncResult",
    "add_catalog",
    "list_catalogs",
    "load_manifest",
    "load_snapshot",
    "load_snapshot_if_exists",
    "remove_catalog",
    "sync_all",
]
