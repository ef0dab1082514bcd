from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .names import DEFAULT_INDEX_NAME, validate_name

APP = "pluginctl"

DEFAULT_INDEX_URI = "https://github.com/pluginctl/plugin-index.git"

# Presence of this variable, whatever its value, turns on multi-catalog support.
ENABLE_MULTI_INDEX_SWITCH = "PLUGINCTL_ENABLE_MULTI_INDEX"

MANIFEST_EXTENSION = ".json"


def multi_index_enabled(environ: Optional[Mapping[str, str]] = None) -> bool:
    environ = os.environ if environ is None else environ
    return ENABLE_MULTI_INDEX_SWITCH in environ


def default_root(environ: Optional[Mapping[str, str]] = None) -> Path:
    """
    Cross-platform install root:
      - $PLUGINCTL_ROOT when set
      - Windows: %APPDATA%\\pluginctl
      - macOS/Linux: $XDG_DATA_HOME/pluginctl or ~/.local/share/pluginctl
    """
    environ = os.environ if environ is None else environ
    if environ.get("PLUGINCTL_ROOT"):
        return Path(environ["PLUGINCTL_ROOT"]).expanduser()
    if os.name == "nt":
        base = environ.get("APPDATA") or str(Path.home())
        return Path(base) / APP
    return Path(environ.get("XDG_DATA_HOME", str(Path.home() / ".local" / "share"))) / APP


class Paths:
    """Filesystem layout of a pluginctl installation.

    With multi-catalog support disabled the default catalog is mirrored
    directly into ``index/``; once enabled, every catalog gets its own
    ``index/<name>/`` directory.
    """

    def __init__(self, root: Path, multi_index: bool = False):
        self.root = Path(root)
        self.multi_index = multi_index

    def index_base(self) -> Path:
        return self.root / "index"

    def index_path(self, name: str = DEFAULT_INDEX_NAME) -> Path:
        validate_name(name, "index name")
        if not self.multi_index:
            return self.index_base()
        return self.index_base() / name

    def index_plugins_path(self, name: str = DEFAULT_INDEX_NAME) -> Path:
        return self.index_path(name) / "plugins"

    def receipts_path(self) -> Path:
        return self.root / "receipts"

    def receipt_path(self, plugin: str) -> Path:
        validate_name(plugin)
        return self.receipts_path() / f"{plugin}{MANIFEST_EXTENSION}"

    def store_path(self) -> Path:
        return self.root / "store"

    def plugin_install_path(self, plugin: str) -> Path:
        validate_name(plugin)
        return self.store_path() / plugin

    def catalogs_config_path(self) -> Path:
        return self.root / "catalogs.json"

    def migrations_path(self) -> Path:
        return self.root / ".migrations"

    def lock_path(self, name: str) -> Path:
        validate_name(name, "lock name")
        return self.root / "locks" / f"{name}.lock"


@dataclass
class Settings:
    root: Path = Path(".")
    default_index_uri: str = DEFAULT_INDEX_URI
    sync_workers: int = 4
    sync_timeout_s: float = 300.0
    multi_index: bool = False

    @staticmethod
    def load(environ: Optional[Mapping[str, str]] = None, root: Optional[Path] = None) -> "Settings":
        environ = os.environ if environ is None else environ
        root = root or default_root(environ)
        path = root / "config.json"

        data: dict = {}
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                data = {}

        s = Settings(
            root=root,
            default_index_uri=str(data.get("default_index_uri", Settings.default_index_uri)),
            sync_workers=int(data.get("sync_workers", Settings.sync_workers)),
            sync_timeout_s=float(data.get("sync_timeout_s", Settings.sync_timeout_s)),
        )

        # Environment overrides (highest priority)
        s.default_index_uri = environ.get("PLUGINCTL_DEFAULT_INDEX_URI", s.default_index_uri)
        if environ.get("PLUGINCTL_SYNC_WORKERS"):
            s.sync_workers = int(environ["PLUGINCTL_SYNC_WORKERS"])
        if environ.get("PLUGINCTL_SYNC_TIMEOUT"):
            s.sync_timeout_s = float(environ["PLUGINCTL_SYNC_TIMEOUT"])
        s.sync_workers = max(1, s.sync_workers)

        # The switch is never persisted, only read from the environment.
        s.multi_index = multi_index_enabled(environ)
        return s

    @property
    def paths(self) -> Paths:
        return Paths(self.root, multi_index=self.multi_index)

    def save(self) -> Path:
        path = self.root / "config.json"
        path.parent.mkdir(parents=True, exist_ok=True)

        payload = {
            "default_index_uri": self.default_index_uri,
            "sync_workers": self.sync_workers,
            "sync_timeout_s": self.sync_timeout_s,
        }
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return path
