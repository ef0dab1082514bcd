"""Catalog registry.

Keeps the list of configured catalogs. The default catalog always exists;
additional catalogs are only available with multi-catalog support enabled
and are persisted in ``catalogs.json`` under the install root.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import List

from ..config import Settings
from ..errors import CatalogConfigError
from ..names import DEFAULT_INDEX_NAME, validate_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Catalog:
    """A named remote plugin catalog."""
    name: str
    url: str

    def to_dict(self) -> dict:
        return {"name": self.name, "url": self.url}

    @classmethod
    def from_dict(cls, data: dict) -> "Catalog":
        name = validate_name(str(data.get("name", "")), "index name")
        url = str(data.get("url", ""))
        if not url:
            raise CatalogConfigError(f"index {name!r} has no url")
        return cls(name=name, url=url)


def _load_entries(settings: Settings) -> List[Catalog]:
    path = settings.paths.catalogs_config_path()
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise CatalogConfigError(f"cannot read {path}: {e}") from e

    items = data if isinstance(data, list) else data.get("indexes", [])
    return [Catalog.from_dict(item) for item in items]


def _save_entries(settings: Settings, catalogs: List[Catalog]) -> None:
    path = settings.paths.catalogs_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"indexes": [c.to_dict() for c in catalogs]}
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def list_catalogs(settings: Settings) -> List[Catalog]:
    """Return configured catalogs, default first."""
    default = Catalog(name=DEFAULT_INDEX_NAME, url=settings.default_index_uri)
    if not settings.multi_index:
        return [default]

    catalogs = [default]
    for entry in _load_entries(settings):
        if entry.name == DEFAULT_INDEX_NAME:
            # A persisted default overrides the built-in location.
            catalogs[0] = entry
            continue
        catalogs.append(entry)
    return catalogs


def add_catalog(settings: Settings, name: str, url: str) -> Catalog:
    """Register a new catalog."""
    validate_name(name, "index name")
    if any(c.name == name for c in list_catalogs(settings)):
        raise CatalogConfigError(f"index {name!r} already exists")

    catalog = Catalog(name=name, url=url)
    _save_entries(settings, _load_entries(settings) + [catalog])
    logger.info("Added index %s (%s)", name, url)
    return catalog


def remove_catalog(settings: Settings, name: str) -> Catalog:
    """Unregister a catalog. Its local mirror is left for the caller to delete."""
    validate_name(name, "index name")
    if name == DEFAULT_INDEX_NAME:
        raise CatalogConfigError("the default index cannot be removed")

    entries = _load_entries(settings)
    remaining = [c for c in entries if c.name != name]
    if len(remaining) == len(entries):
        raise CatalogConfigError(f"index {name!r} does not exist")

    _save_entries(settings, remaining)
    logger.info("Removed index %s", name)
    return next(c for c in entries if c.name == name)
