"""Validation for plugin and catalog identifiers.

Names arrive from command arguments and end up as path segments, so
anything that could escape the intended directory is refused before a
path is ever built.
"""

from __future__ import annotations

from typing import Tuple

from .errors import UnsafeIdentifier

DEFAULT_INDEX_NAME = "default"


def is_safe_name(name: str) -> bool:
    """Return True if ``name`` is usable as a single path segment.

    Any ``..`` is refused, also inside a segment such as ``foo..bar``.
    """
    if not name or name in (".", ".."):
        return False
    if "/" in name or "\\" in name:
        return False
    if ".." in name:
        return False
    return "\x00" not in name


def validate_name(name: str, kind: str = "plugin name") -> str:
    """Return ``name`` unchanged or raise UnsafeIdentifier."""
    if not is_safe_name(name):
        raise UnsafeIdentifier(name, kind)
    return name


def parse_qualified_name(name: str) -> Tuple[str, str]:
    """Split ``catalog/plugin`` into its parts.

    An unqualified name belongs to the default catalog. Only one level of
    qualification is accepted, so ``catalog/sub-directory/plugin`` is
    refused the same way traversal sequences are.
    """
    if name.count("/") > 1:
        raise UnsafeIdentifier(name, "plugin name")
    if "/" not in name:
        return DEFAULT_INDEX_NAME, validate_name(name)

    catalog, _, plugin = name.partition("/")
    if not is_safe_name(catalog) or not is_safe_name(plugin):
        raise UnsafeIdentifier(name, "plugin name")
    return catalog, plugin
