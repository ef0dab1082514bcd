"""Tests for settings and the feature switch."""

import json

from pluginctl.config import (
    DEFAULT_INDEX_URI,
    ENABLE_MULTI_INDEX_SWITCH,
    Settings,
    default_root,
    multi_index_enabled,
)


class TestMultiIndexSwitch:
    """The switch is about presence, not value."""

    def test_absent(self):
        assert multi_index_enabled({}) is False

    def test_empty_value_enables(self):
        assert multi_index_enabled({ENABLE_MULTI_INDEX_SWITCH: ""}) is True

    def test_false_value_still_enables(self):
        assert multi_index_enabled({ENABLE_MULTI_INDEX_SWITCH: "false"}) is True


class TestSettings:
    """Tests for Settings.load and save."""

    def test_defaults(self, tmp_path):
        s = Settings.load({}, root=tmp_path)
        assert s.root == tmp_path
        assert s.default_index_uri == DEFAULT_INDEX_URI
        assert s.sync_workers == 4
        assert s.multi_index is False

    def test_root_from_environment(self, tmp_path):
        assert default_root({"PLUGINCTL_ROOT": str(tmp_path)}) == tmp_path

    def test_file_values(self, tmp_path):
        (tmp_path / "config.json").write_text(
            json.dumps({"default_index_uri": "https://example.com/index.json", "sync_workers": 8}),
            encoding="utf-8",
        )
        s = Settings.load({}, root=tmp_path)
        assert s.default_index_uri == "https://example.com/index.json"
        assert s.sync_workers == 8

    def test_environment_overrides_file(self, tmp_path):
        (tmp_path / "config.json").write_text(json.dumps({"sync_workers": 8}), encoding="utf-8")
        s = Settings.load(
            {
                "PLUGINCTL_SYNC_WORKERS": "2",
                "PLUGINCTL_SYNC_TIMEOUT": "10",
                "PLUGINCTL_DEFAULT_INDEX_URI": "https://example.com/i.git",
                ENABLE_MULTI_INDEX_SWITCH: "",
            },
            root=tmp_path,
        )
        assert s.sync_workers == 2
        assert s.sync_timeout_s == 10.0
        assert s.default_index_uri == "https://example.com/i.git"
        assert s.multi_index is True
        assert s.paths.multi_index is True

    def test_corrupt_file_uses_defaults(self, tmp_path):
        (tmp_path / "config.json").write_text("{not json", encoding="utf-8")
        s = Settings.load({}, root=tmp_path)
        assert s.sync_workers == 4

    def test_save_and_load(self, tmp_path):
        s = Settings(root=tmp_path, default_index_uri="https://example.com/x.git", sync_workers=3)
        s.save()
        loaded = Settings.load({}, root=tmp_path)
        assert loaded.default_index_uri == "https://example.com/x.git"
        assert loaded.sync_workers == 3
