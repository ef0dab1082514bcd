"""One-time migrations of the pluginctl install root.

Migrations are applied in the order returned by registered_migrations().
Migrations marked ``requires_switch`` only exist when multi-index support
is switched on in the environment.
"""

from typing import Callable, List, Optional

from .dispatcher import MarkerStore, Migration, MigrationDispatcher, MigrationOutcome, MigrationState
from .index_layout import index_migration
from .receipts_layout import Installer, receipts_migration, record_install


def registered_migrations(
    multi_index: bool,
    prerequisite: Optional[Callable[[], None]] = None,
    installer: Installer = record_install,
) -> List[Migration]:
    migrations = [
        receipts_migration(installer=installer, prerequisite=prerequisite),
        index_migration(),
    ]
    return [m for m in migrations if multi_index or not m.requires_switch]


__all__ = [
    "MarkerStore",
    "Migration",
    "MigrationDispatcher",
    "MigrationOutcome",
    "MigrationState",
    "registered_migrations",
    "receipts_migration",
    "index_migration",
]
