"""Before/after comparison of a plugin index."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Collection, Dict, List, Optional, Sequence, Tuple

from .catalog.snapshot import PluginEntry


@dataclass
class IndexChanges:
    """Plugins that appeared, and installed plugins with a new version."""
    new: List[PluginEntry] = field(default_factory=list)
    upgraded: List[Tuple[PluginEntry, PluginEntry]] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.new or self.upgraded)


def diff_snapshots(
    pre: Optional[Sequence[PluginEntry]],
    post: Sequence[PluginEntry],
    installed: Collection[str],
) -> IndexChanges:
    """Compare two snapshots of the same catalog.

    Version changes are only reported for plugins named in ``installed``.
    Results keep the order of ``post``. An absent or empty ``pre`` snapshot
    means there is nothing to compare and no changes are reported.
    """
    changes = IndexChanges()
    if not pre:
        return changes

    old_index: Dict[str, PluginEntry] = {p.name: p for p in pre}
    for plugin in post:
        old = old_index.get(plugin.name)
        if old is None:
            changes.new.append(plugin)
            continue
        if plugin.name not in installed:
            continue
        if old.version != plugin.version:
            changes.upgraded.append((old, plugin))
    return changes


def _section(header: str, items: List[str]) -> str:
    lines = [f"  {header}:"]
    lines.extend(f"    * {item}" for item in items)
    return "\n".join(lines) + "\n"


def format_changes(changes: IndexChanges) -> str:
    out = ""
    if changes.new:
        out += _section("New plugins available", [p.name for p in changes.new])
    if changes.upgraded:
        out += _section(
            "Upgrades available for installed plugins",
            [f"{new.name} {old.version} -> {new.version}" for old, new in changes.upgraded],
        )
    return out


def format_updated_plugins(
    pre: Optional[Sequence[PluginEntry]],
    post: Sequence[PluginEntry],
    installed: Collection[str],
) -> str:
    """Render the changes between ``pre`` and ``post``; empty if none."""
    return format_changes(diff_snapshots(pre, post, installed))
