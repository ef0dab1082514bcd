"""Catalog Sync Engine.

Brings every registered catalog's local mirror up to date. Catalogs are
independent: one failing never stops the others, and all failures are
reported together once every catalog has been attempted.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from ..config import Paths
from ..errors import PartialSyncFailure, SyncAbandoned
from ..locking import file_lock
from .registry import Catalog

logger = logging.getLogger(__name__)

# Called as syncer(url, local_path, cancel). Once cancel is set the syncer
# must stop without touching local_path any further.
Syncer = Callable[[str, Path, threading.Event], None]


@dataclass
class SyncResult:
    """Outcome of syncing a batch of catalogs."""
    synced: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    first_error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_failures(self) -> None:
        if self.failed:
            raise PartialSyncFailure(self.failed, self.first_error) from self.first_error


def _sync_one(
    catalog: Catalog,
    paths: Paths,
    syncer: Syncer,
    cancel: threading.Event,
) -> None:
    if cancel.is_set():
        raise SyncAbandoned(f"sync of index {catalog.name!r} was cancelled")

    index_path = paths.index_path(catalog.name)
    # One writer per mirror, across threads and processes.
    with file_lock(paths.lock_path(f"index-{catalog.name}")):
        if cancel.is_set():
            raise SyncAbandoned(f"sync of index {catalog.name!r} was cancelled")
        logger.debug("Updating the local copy of plugin index (%s)", index_path)
        syncer(catalog.url, index_path, cancel)


def sync_all(
    catalogs: Sequence[Catalog],
    paths: Paths,
    syncer: Syncer,
    max_workers: int = 4,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> SyncResult:
    """Sync every catalog, isolating failures per catalog.

    Args:
        catalogs: Catalogs to sync
        paths: Install layout used to locate each mirror
        syncer: Callable fetching ``(url, local_path, cancel)``
        max_workers: Upper bound on concurrent syncs
        timeout: Seconds to wait for all syncs before abandoning the rest
        cancel: Event that, once set, abandons syncs still in flight

    Failed catalog names are returned in catalog order; ``first_error`` is
    the error of the first failed catalog in that order.

    Syncs still running when the deadline passes or ``cancel`` is set are
    recorded as failed and signalled through ``cancel``. This returns only
    once every worker has stopped, so nothing writes a mirror afterwards.
    """
    cancel = cancel or threading.Event()
    result = SyncResult()
    if not catalogs:
        return result

    errors: Dict[str, BaseException] = {}
    deadline = time.monotonic() + timeout if timeout else None

    executor = ThreadPoolExecutor(
        max_workers=max(1, min(max_workers, len(catalogs))),
        thread_name_prefix="pluginctl-sync",
    )
    futures: Dict[Future, Catalog] = {
        executor.submit(_sync_one, catalog, paths, syncer, cancel): catalog
        for catalog in catalogs
    }
    pending = set(futures)
    try:
        while pending and not cancel.is_set():
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                break
            # Short waits so a cancel request is noticed promptly.
            step = 0.5 if remaining is None else min(0.5, remaining)
            done, pending = wait(pending, timeout=step, return_when=FIRST_COMPLETED)
            for future in done:
                catalog = futures[future]
                error = future.exception()
                if error is not None:
                    errors[catalog.name] = error
    except KeyboardInterrupt:
        cancel.set()
        raise
    finally:
        if pending:
            cancel.set()
            for future in pending:
                catalog = futures[future]
                future.cancel()
                errors[catalog.name] = SyncAbandoned(
                    f"gave up waiting for index {catalog.name!r} to sync"
                )
        executor.shutdown(wait=True, cancel_futures=True)

    for catalog in catalogs:
        error = errors.get(catalog.name)
        if error is None:
            result.synced.append(catalog.name)
            continue
        logger.info("failed to update index %r: %s", catalog.name, error)
        result.failed.append(catalog.name)
        if result.first_error is None:
            result.first_error = error
    return result
