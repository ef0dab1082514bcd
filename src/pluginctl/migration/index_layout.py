"""Index-layout migration.

Moves a single-catalog mirror at ``index/`` to ``index/default/`` so more
catalogs can live next to it, then marks existing receipts as installed
from the default catalog.

Each step checks where the previous run stopped, so the migration can be
resumed after an interruption at any point.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from ..config import Paths
from ..errors import LegacyLayoutError, MigrationFailure
from ..names import DEFAULT_INDEX_NAME
from ..receipts import load_installed_receipts, write_receipt
from .dispatcher import Migration

logger = logging.getLogger(__name__)

NAME = "index-upgrade"
VERSION = 1


def is_legacy_index(index_base: Path) -> bool:
    return (index_base / ".git").exists() or (index_base / "plugins").exists()


def _staging_path(paths: Paths) -> Path:
    return paths.root / "index.migrating"


def require_multi_index_layout(paths: Paths) -> None:
    """Refuse to use a single-index mirror while multi-index support is on.

    The mirror of the default catalog lives at ``index/default/`` in that
    mode, which would be nested inside a not yet migrated ``index/``.
    """
    if not paths.multi_index:
        return
    if is_legacy_index(paths.index_base()) or _staging_path(paths).exists():
        raise LegacyLayoutError(
            f"the plugin index at {paths.index_base()} uses the single-index layout; "
            "run 'pluginctl system index-upgrade' first"
        )


def _move_index(paths: Paths) -> None:
    index_base = paths.index_base()
    staging = _staging_path(paths)
    target = index_base / DEFAULT_INDEX_NAME

    if index_base.exists() and is_legacy_index(index_base):
        if staging.exists():
            raise MigrationFailure(NAME, f"both {index_base} and {staging} exist")
        logger.info("moving %s aside to %s", index_base, staging)
        os.replace(index_base, staging)

    if staging.exists():
        if target.exists():
            raise MigrationFailure(NAME, f"{target} already exists")
        index_base.mkdir(parents=True, exist_ok=True)
        logger.info("moving %s to %s", staging, target)
        os.replace(staging, target)


def _stamp_receipts(paths: Paths) -> int:
    stamped = 0
    for receipt in load_installed_receipts(paths.receipts_path()):
        if receipt.source:
            continue
        write_receipt(paths, dataclasses.replace(receipt, source=DEFAULT_INDEX_NAME))
        stamped += 1
    if stamped:
        logger.info("recorded the default index as source of %d receipts", stamped)
    return stamped


def migrate_index(paths: Paths) -> None:
    _move_index(paths)
    _stamp_receipts(paths)


def index_migration() -> Migration:
    return Migration(
        name=NAME,
        version=VERSION,
        description="Move the plugin index to the multi-index layout",
        body=migrate_index,
        requires_switch=True,
    )
