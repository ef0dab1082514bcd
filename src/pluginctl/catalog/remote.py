"""Remote catalog fetching.

Two kinds of remote are supported:
- git repositories, cloned on first sync and hard-reset to upstream after
- JSON documents served over HTTP(S), listing every plugin manifest
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

import requests

from ..config import MANIFEST_EXTENSION
from ..errors import RemoteSyncError, SyncAbandoned
from .snapshot import PluginEntry

logger = logging.getLogger(__name__)


def is_json_remote(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and parsed.path.endswith(".json")


def _kill(proc: subprocess.Popen) -> None:
    proc.kill()
    proc.communicate()


class RemoteSyncer:
    """Bring a local catalog mirror up to date with its remote.

    Instances are callables taking ``(url, local_path, cancel)`` so they can
    be handed to the sync engine. Once ``cancel`` is set a running git
    command is killed and a fetched JSON index is discarded unwritten.
    """

    poll_interval = 0.2

    def __init__(self, timeout: Optional[float] = 300.0, session: Optional[requests.Session] = None):
        self.timeout = timeout or None
        self._session = session or requests.Session()
        self._session.headers["Accept"] = "application/json"

    def __call__(self, url: str, local_path: Path, cancel: Optional[threading.Event] = None) -> None:
        cancel = cancel or threading.Event()
        if is_json_remote(url):
            self.sync_json(url, local_path, cancel)
        else:
            self.sync_git(url, local_path, cancel)

    # --- git ---

    def _git(self, args: List[str], cancel: threading.Event, cwd: Optional[Path] = None) -> str:
        cmd = ["git", *args]
        command = " ".join(cmd)
        logger.debug("Running %s", command)
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(cwd) if cwd else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError as e:
            raise RemoteSyncError("git is not installed") from e

        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel.is_set():
                    _kill(proc)
                    raise SyncAbandoned(f"command {command!r} was cancelled")
                if deadline is not None and time.monotonic() >= deadline:
                    _kill(proc)
                    raise RemoteSyncError(f"command {command!r} timed out after {self.timeout}s")

        if proc.returncode != 0:
            detail = (stderr or stdout or "").strip()
            raise RemoteSyncError(f"command {command!r} failed: {detail}")
        return stdout

    def sync_git(self, url: str, local_path: Path, cancel: threading.Event) -> None:
        if not (local_path / ".git").exists():
            logger.debug("Cloning %s into %s", url, local_path)
            created = not local_path.exists()
            local_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                self._git(["clone", "-v", url, str(local_path)], cancel)
            except (RemoteSyncError, SyncAbandoned):
                # A half-written clone would pass for a mirror next time.
                if created and local_path.exists():
                    shutil.rmtree(local_path, ignore_errors=True)
                raise
            return

        logger.debug("Fetching %s into %s", url, local_path)
        self._git(["fetch", "-v"], cancel, cwd=local_path)
        if cancel.is_set():
            raise SyncAbandoned(f"sync of {url} was cancelled")
        self._git(["reset", "--hard", "@{upstream}"], cancel, cwd=local_path)

    # --- JSON over HTTP ---

    def _fetch(self, url: str) -> object:
        try:
            response = self._session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            raise RemoteSyncError(f"HTTP error from {url}: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise RemoteSyncError(f"Cannot connect to index at {url}") from e
        except requests.exceptions.Timeout as e:
            raise RemoteSyncError(f"Timed out fetching {url}") from e
        except ValueError as e:
            raise RemoteSyncError(f"Index at {url} is not valid JSON: {e}") from e
        except requests.exceptions.RequestException as e:
            raise RemoteSyncError(f"Request to {url} failed: {e}") from e

    def sync_json(self, url: str, local_path: Path, cancel: threading.Event) -> None:
        data = self._fetch(url)
        try:
            items = data if isinstance(data, list) else (data or {}).get("plugins", [])
            entries = [PluginEntry.from_dict(item) for item in items]
        except (ValueError, AttributeError) as e:
            raise RemoteSyncError(f"Index at {url} contains an invalid manifest: {e}") from e

        if cancel.is_set():
            raise SyncAbandoned(f"sync of {url} was cancelled")

        local_path.mkdir(parents=True, exist_ok=True)
        plugins_dir = local_path / "plugins"

        # Build the new plugins/ next to the old one and swap, so a failure
        # leaves the previous mirror intact.
        staging = Path(tempfile.mkdtemp(prefix=".plugins-", dir=str(local_path)))
        try:
            for entry in entries:
                path = staging / f"{entry.name}{MANIFEST_EXTENSION}"
                path.write_text(json.dumps(entry.to_dict(), indent=2), encoding="utf-8")

            if cancel.is_set():
                raise SyncAbandoned(f"sync of {url} was cancelled")

            retired = local_path / ".plugins-old"
            if retired.exists():
                shutil.rmtree(retired)
            if plugins_dir.exists():
                plugins_dir.rename(retired)
            staging.rename(plugins_dir)
            if retired.exists():
                shutil.rmtree(retired)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        logger.debug("Wrote %d manifests to %s", len(entries), plugins_dir)
