"""Installation receipts.

A receipt records that a plugin is installed, at which version and from
which catalog. One JSON file per plugin lives in ``receipts/``.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .catalog.snapshot import PluginEntry
from .config import MANIFEST_EXTENSION, Paths
from .errors import ReceiptLoadFailure
from .names import is_safe_name


@dataclass
class Receipt:
    """A record of one installed plugin."""
    name: str
    version: str
    platforms: Tuple[dict, ...] = field(default_factory=tuple)
    source: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "apiVersion": "pluginctl/v1",
            "kind": "Plugin",
            "metadata": {"name": self.name},
            "spec": {
                "version": self.version,
                "platforms": list(self.platforms),
            },
            "status": {},
        }
        if self.source:
            data["status"]["source"] = {"name": self.source}
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Receipt":
        metadata = data.get("metadata") or {}
        spec = data.get("spec") or {}
        status = data.get("status") or {}
        name = metadata.get("name", "")
        if not name or not is_safe_name(name):
            raise ValueError(f"receipt has an invalid name {name!r}")
        return cls(
            name=name,
            version=str(spec.get("version", "")),
            platforms=tuple(spec.get("platforms") or ()),
            source=(status.get("source") or {}).get("name"),
        )

    @classmethod
    def from_entry(cls, entry: PluginEntry, source: Optional[str] = None) -> "Receipt":
        return cls(name=entry.name, version=entry.version, platforms=entry.platforms, source=source)


def load_receipt(path: Path) -> Receipt:
    try:
        return Receipt.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, AttributeError) as e:
        raise ReceiptLoadFailure(f"failed to read receipt {path}: {e}") from e


def load_installed_receipts(receipts_dir: Path) -> List[Receipt]:
    """Load all receipts; an absent directory means nothing is installed."""
    if not receipts_dir.exists():
        return []
    try:
        files = sorted(p for p in receipts_dir.iterdir() if p.suffix == MANIFEST_EXTENSION)
    except OSError as e:
        raise ReceiptLoadFailure(f"failed to list receipts in {receipts_dir}: {e}") from e
    return [load_receipt(p) for p in files]


def installed_versions(receipts: Sequence[Receipt]) -> Dict[str, str]:
    return {r.name: r.version for r in receipts}


def write_receipt(paths: Paths, receipt: Receipt) -> Path:
    """Write a receipt, replacing any previous one atomically."""
    path = paths.receipt_path(receipt.name)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{receipt.name}-", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(receipt.to_dict(), f, indent=2)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    return path
