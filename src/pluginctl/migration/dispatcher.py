"""Migration Dispatcher.

Runs one-time structural migrations of the install root. Each migration
has a completion marker; the marker is written as the very last step, so
a migration interrupted half-way is simply run again from the start.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from ..config import Paths
from ..errors import MigrationFailure, PluginctlError
from ..locking import file_lock, is_locked
from ..names import validate_name

logger = logging.getLogger(__name__)


class MigrationState(str, Enum):
    NOT_STARTED = "not-started"
    MIGRATING = "migrating"
    COMPLETED = "completed"


class MigrationOutcome(str, Enum):
    RAN = "ran"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Migration:
    """A named, versioned one-time migration.

    ``body`` performs the structural work and must be safe to re-run from
    the beginning. ``prerequisite`` runs right before the body, inside the
    migration lock.
    """
    name: str
    version: int
    description: str
    body: Callable[[Paths], None]
    requires_switch: bool = False
    prerequisite: Optional[Callable[[], None]] = None


class MarkerStore:
    """Completion markers, one JSON file per migration."""

    def __init__(self, directory: Path):
        self.directory = directory

    def path(self, name: str) -> Path:
        validate_name(name, "migration name")
        return self.directory / f"{name}.json"

    def read(self, name: str) -> Optional[dict]:
        path = self.path(name)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            # A marker that exists at all was written by os.replace as the
            # final step; its presence is what counts.
            logger.warning("migration marker %s is unreadable; treating as completed", path)
            return {"name": name}

    def is_completed(self, name: str) -> bool:
        return self.read(name) is not None

    def write(self, name: str, version: int) -> Path:
        path = self.path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "name": name,
            "version": version,
            "completed_at": datetime.now(timezone.utc).isoformat(),
        }
        fd, tmp = tempfile.mkstemp(prefix=f".{name}-", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        return path


class MigrationDispatcher:
    """Runs migrations at most once per install root."""

    def __init__(self, paths: Paths, markers: Optional[MarkerStore] = None):
        self.paths = paths
        self.markers = markers or MarkerStore(paths.migrations_path())

    def _running_lock(self, migration: Migration) -> Path:
        return self.paths.lock_path(f"migration-{migration.name}")

    def state(self, migration: Migration) -> MigrationState:
        if self.markers.is_completed(migration.name):
            return MigrationState.COMPLETED
        # Held only while the migration runs, in whichever process runs it.
        if is_locked(self._running_lock(migration)):
            return MigrationState.MIGRATING
        return MigrationState.NOT_STARTED

    def run(self, migration: Migration) -> MigrationOutcome:
        """Run ``migration`` unless it already completed.

        Raises MigrationFailure if the prerequisite or the body fails; no
        marker is written in that case.
        """
        with file_lock(self.paths.lock_path("migrations")):
            # Checked again under the lock: a concurrent run may have finished.
            if self.markers.is_completed(migration.name):
                logger.info("migration %s already completed, nothing to do", migration.name)
                return MigrationOutcome.SKIPPED

            try:
                with file_lock(self._running_lock(migration)):
                    logger.info("running migration %s (v%d)", migration.name, migration.version)
                    if migration.prerequisite is not None:
                        migration.prerequisite()
                    migration.body(self.paths)
            except MigrationFailure:
                raise
            except (PluginctlError, OSError) as e:
                raise MigrationFailure(migration.name, str(e)) from e

            self.markers.write(migration.name, migration.version)
            logger.info("migration %s completed", migration.name)
            return MigrationOutcome.RAN

    def pending(self, migrations: List[Migration]) -> List[Migration]:
        return [m for m in migrations if not self.markers.is_completed(m.name)]

    def run_pending(self, migrations: List[Migration]) -> List[Migration]:
        """Run not-yet-completed migrations in order, stopping at the first failure."""
        ran = []
        for migration in migrations:
            if self.run(migration) is MigrationOutcome.RAN:
                ran.append(migration)
        return ran
