"""Exclusive file locks.

Used to keep two processes from writing the same catalog mirror or running
the same migration at once, and to tell from outside whether either is
happening. The lock is advisory and released when the holding process
exits, so a crash never leaves a stale lock behind.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator

logger = logging.getLogger(__name__)


def _lock_file(handle: IO[str]) -> None:
    if os.name == "nt":
        import msvcrt

        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)  # type: ignore[attr-defined]
        return
    import fcntl

    fcntl.flock(handle.fileno(), fcntl.LOCK_EX)


def _unlock_file(handle: IO[str]) -> None:
    if os.name == "nt":
        import msvcrt

        try:
            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]
        except OSError:
            return
        return
    import fcntl

    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    except OSError:
        return


@contextmanager
def file_lock(path: Path) -> Iterator[Path]:
    """Hold an exclusive lock on ``path`` for the duration of the block.

    Blocks until the lock is available.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = path.open("a+", encoding="utf-8")
    try:
        logger.debug("Acquiring lock %s", path)
        _lock_file(handle)
        try:
            yield path
        finally:
            _unlock_file(handle)
    finally:
        handle.close()


def is_locked(path: Path) -> bool:
    """Return True if another holder currently has ``path`` locked."""
    if not path.exists():
        return False
    with path.open("a+", encoding="utf-8") as handle:
        try:
            if os.name == "nt":
                import msvcrt

                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)  # type: ignore[attr-defined]
            else:
                import fcntl

                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            return True
        _unlock_file(handle)
    return False
