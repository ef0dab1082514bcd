"""Error types raised by pluginctl.

Every error that reaches the command boundary derives from PluginctlError,
so the CLI can report it as a single line and exit non-zero.
"""

from __future__ import annotations

from typing import List, Optional


class PluginctlError(Exception):
    """Base class for pluginctl errors."""
    pass


class UnsafeIdentifier(PluginctlError):
    """A plugin or catalog name cannot be used to build a path."""

    def __init__(self, name: str, kind: str = "name"):
        self.name = name
        self.kind = kind
        super().__init__(f"{kind} {name!r} is not allowed")


class CatalogConfigError(PluginctlError):
    """The catalog registry could not be read or changed."""
    pass


class RemoteSyncError(PluginctlError):
    """The remote copy of a catalog could not be fetched."""
    pass


class SyncAbandoned(PluginctlError):
    """A catalog sync was given up on before it finished."""
    pass


class PartialSyncFailure(PluginctlError):
    """One or more catalogs failed to sync.

    Carries the names of the failed catalogs and the first underlying error.
    """

    def __init__(self, failed: List[str], cause: Optional[BaseException] = None):
        self.failed = list(failed)
        self.cause = cause
        message = f"failed to update the following indexes: {', '.join(self.failed)}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class LegacyLayoutError(PluginctlError):
    """The install root still uses the single-index layout."""
    pass


class SnapshotNotFound(PluginctlError):
    """The catalog mirror has never been synced."""
    pass


class SnapshotLoadFailure(PluginctlError):
    """The catalog mirror exists but could not be read."""
    pass


class ReceiptLoadFailure(PluginctlError):
    """Installation receipts could not be read."""
    pass


class MigrationFailure(PluginctlError):
    """A migration did not complete; its marker was not written."""

    def __init__(self, migration: str, message: str):
        self.migration = migration
        super().__init__(f"migration {migration!r} failed: {message}")
