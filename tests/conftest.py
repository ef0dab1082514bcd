"""Shared fixtures for pluginctl tests."""

import json
from pathlib import Path

import pytest

from pluginctl.config import Settings


def manifest(name, version, platforms=None):
    return {
        "apiVersion": "pluginctl/v1",
        "kind": "Plugin",
        "metadata": {"name": name},
        "spec": {"version": version, "platforms": platforms or []},
    }


def write_manifests(plugins_dir: Path, plugins: dict) -> None:
    """Write ``{name: version}`` as manifest files."""
    plugins_dir.mkdir(parents=True, exist_ok=True)
    for name, version in plugins.items():
        path = plugins_dir / f"{name}.json"
        path.write_text(json.dumps(manifest(name, version)), encoding="utf-8")


def write_receipts(receipts_dir: Path, plugins: dict) -> None:
    receipts_dir.mkdir(parents=True, exist_ok=True)
    for name, version in plugins.items():
        data = manifest(name, version)
        data["status"] = {"source": {"name": "default"}}
        (receipts_dir / f"{name}.json").write_text(json.dumps(data), encoding="utf-8")


@pytest.fixture
def settings(tmp_path):
    return Settings(root=tmp_path / "root", sync_workers=2, sync_timeout_s=30.0)


@pytest.fixture
def multi_settings(tmp_path):
    return Settings(root=tmp_path / "root", sync_workers=2, sync_timeout_s=30.0, multi_index=True)
