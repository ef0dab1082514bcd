"""Catalog snapshot loader.

Reads the plugin manifests of a local catalog mirror. A mirror that has
never been synced is reported separately from one that exists but cannot
be read, so callers can tolerate the first case and not the second.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from ..config import MANIFEST_EXTENSION
from ..errors import SnapshotLoadFailure, SnapshotNotFound
from ..names import is_safe_name, validate_name


@dataclass(frozen=True)
class PluginEntry:
    """One plugin manifest as found in a catalog."""
    name: str
    version: str
    platforms: Tuple[dict, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "apiVersion": "pluginctl/v1",
            "kind": "Plugin",
            "metadata": {"name": self.name},
            "spec": {
                "version": self.version,
                "platforms": list(self.platforms),
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PluginEntry":
        metadata = data.get("metadata") or {}
        spec = data.get("spec") or {}
        name = metadata.get("name", data.get("name", ""))
        version = spec.get("version", "")
        if not name or not isinstance(name, str):
            raise ValueError("manifest has no metadata.name")
        if not is_safe_name(name):
            raise ValueError(f"manifest name {name!r} is not allowed")
        if not version or not isinstance(version, str):
            raise ValueError(f"manifest {name!r} has no spec.version")
        return cls(
            name=name,
            version=version,
            platforms=tuple(spec.get("platforms") or ()),
        )


def _read_manifest(path: Path) -> PluginEntry:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        entry = PluginEntry.from_dict(data)
    except (OSError, ValueError, AttributeError) as e:
        raise SnapshotLoadFailure(f"failed to read plugin manifest {path}: {e}") from e

    if entry.name != path.stem:
        raise SnapshotLoadFailure(
            f"plugin name {entry.name!r} does not match file name {path.name!r}"
        )
    return entry


def load_snapshot(plugins_dir: Path) -> List[PluginEntry]:
    """Load every manifest in ``plugins_dir``, ordered by file name.

    Raises SnapshotNotFound if the directory does not exist yet and
    SnapshotLoadFailure if it exists but cannot be read.
    """
    if not plugins_dir.exists():
        raise SnapshotNotFound(f"plugin index {plugins_dir} does not exist")
    if not plugins_dir.is_dir():
        raise SnapshotLoadFailure(f"plugin index {plugins_dir} is not a directory")

    try:
        files = sorted(p for p in plugins_dir.iterdir() if p.suffix == MANIFEST_EXTENSION)
    except OSError as e:
        raise SnapshotLoadFailure(f"failed to list {plugins_dir}: {e}") from e

    return [_read_manifest(p) for p in files if p.is_file()]


def load_snapshot_if_exists(plugins_dir: Path) -> Optional[List[PluginEntry]]:
    """Like load_snapshot, but return None for a catalog that was never synced."""
    try:
        return load_snapshot(plugins_dir)
    except SnapshotNotFound:
        return None


def load_manifest(plugins_dir: Path, name: str) -> PluginEntry:
    """Load a single plugin manifest by name."""
    validate_name(name)
    path = plugins_dir / f"{name}{MANIFEST_EXTENSION}"
    if not path.exists():
        raise SnapshotNotFound(f"plugin {name!r} does not exist in the plugin index")
    return _read_manifest(path)
