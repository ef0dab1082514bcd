"""Tests for the migration dispatcher and the concrete migrations."""

import json
import threading

import pytest

from pluginctl.config import Paths
from pluginctl.errors import LegacyLayoutError, MigrationFailure, PartialSyncFailure, RemoteSyncError
from pluginctl.locking import file_lock
from pluginctl.migration import (
    MarkerStore,
    Migration,
    MigrationDispatcher,
    MigrationOutcome,
    MigrationState,
    registered_migrations,
)
from pluginctl.migration.index_layout import index_migration, migrate_index, require_multi_index_layout
from pluginctl.migration.receipts_layout import migrate_receipts, receipts_migration, tracked_plugins
from pluginctl.receipts import load_installed_receipts

from conftest import write_manifests, write_receipts


class Body:
    """Counts invocations; fails while ``fail`` is set."""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = 0

    def __call__(self, paths):
        self.calls += 1
        if self.fail:
            raise OSError("disk on fire")


def migration(body, **kwargs):
    return Migration(name="test-migration", version=3, description="test", body=body, **kwargs)


class TestMarkerStore:
    """Tests for MarkerStore."""

    def test_absent(self, tmp_path):
        assert MarkerStore(tmp_path).is_completed("x") is False

    def test_write_and_read(self, tmp_path):
        store = MarkerStore(tmp_path / "markers")
        store.write("x", 2)
        data = store.read("x")
        assert data["name"] == "x"
        assert data["version"] == 2
        assert "completed_at" in data
        assert store.is_completed("x") is True

    def test_no_temp_files_left(self, tmp_path):
        store = MarkerStore(tmp_path)
        store.write("x", 1)
        assert [p.name for p in tmp_path.iterdir()] == ["x.json"]

    def test_unreadable_marker_counts_as_completed(self, tmp_path):
        (tmp_path / "x.json").write_text("garbage", encoding="utf-8")
        assert MarkerStore(tmp_path).is_completed("x") is True


class TestMigrationDispatcher:
    """Tests for MigrationDispatcher."""

    def test_runs_once(self, tmp_path):
        dispatcher = MigrationDispatcher(Paths(tmp_path))
        body = Body()
        m = migration(body)

        assert dispatcher.state(m) is MigrationState.NOT_STARTED
        assert dispatcher.run(m) is MigrationOutcome.RAN
        assert dispatcher.state(m) is MigrationState.COMPLETED

        marker = dispatcher.markers.path(m.name)
        before = marker.read_text(encoding="utf-8")

        assert dispatcher.run(m) is MigrationOutcome.SKIPPED
        assert body.calls == 1
        assert marker.read_text(encoding="utf-8") == before

    def test_failure_writes_no_marker_and_retries(self, tmp_path):
        dispatcher = MigrationDispatcher(Paths(tmp_path))
        body = Body(fail=True)
        m = migration(body)

        with pytest.raises(MigrationFailure, match="disk on fire"):
            dispatcher.run(m)
        assert not dispatcher.markers.is_completed(m.name)
        assert dispatcher.state(m) is MigrationState.NOT_STARTED

        body.fail = False
        assert dispatcher.run(m) is MigrationOutcome.RAN
        assert body.calls == 2

    def test_state_while_running(self, tmp_path):
        dispatcher = MigrationDispatcher(Paths(tmp_path))
        seen = []
        m = migration(lambda paths: seen.append(dispatcher.state(m)))

        dispatcher.run(m)

        assert seen == [MigrationState.MIGRATING]

    def test_state_seen_by_another_dispatcher(self, tmp_path):
        paths = Paths(tmp_path)
        observer = MigrationDispatcher(paths)
        started = threading.Event()
        release = threading.Event()

        def body(p):
            started.set()
            release.wait(5.0)

        m = migration(body)
        runner = threading.Thread(target=MigrationDispatcher(paths).run, args=(m,))
        runner.start()
        try:
            assert started.wait(5.0)
            assert observer.state(m) is MigrationState.MIGRATING
        finally:
            release.set()
            runner.join()

        assert observer.state(m) is MigrationState.COMPLETED

    def test_state_while_lock_held_elsewhere(self, tmp_path):
        paths = Paths(tmp_path)
        m = migration(Body())

        with file_lock(paths.lock_path("migration-test-migration")):
            assert MigrationDispatcher(paths).state(m) is MigrationState.MIGRATING
        assert MigrationDispatcher(paths).state(m) is MigrationState.NOT_STARTED

    def test_prerequisite_runs_before_body(self, tmp_path):
        order = []
        m = migration(lambda paths: order.append("body"), prerequisite=lambda: order.append("pre"))

        MigrationDispatcher(Paths(tmp_path)).run(m)

        assert order == ["pre", "body"]

    def test_prerequisite_failure_aborts(self, tmp_path):
        body = Body()

        def failing_sync():
            raise PartialSyncFailure(["default"], RemoteSyncError("offline"))

        dispatcher = MigrationDispatcher(Paths(tmp_path))
        with pytest.raises(MigrationFailure, match="default"):
            dispatcher.run(migration(body, prerequisite=failing_sync))

        assert body.calls == 0
        assert not dispatcher.markers.is_completed("test-migration")

    def test_prerequisite_skipped_when_completed(self, tmp_path):
        dispatcher = MigrationDispatcher(Paths(tmp_path))
        dispatcher.markers.write("test-migration", 3)
        calls = []

        outcome = dispatcher.run(migration(Body(), prerequisite=lambda: calls.append(1)))

        assert outcome is MigrationOutcome.SKIPPED
        assert calls == []

    def test_concurrent_runs_do_work_once(self, tmp_path):
        body = Body()
        m = migration(body)
        outcomes = []

        def worker():
            outcomes.append(MigrationDispatcher(Paths(tmp_path)).run(m))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert body.calls == 1
        assert sorted(o.value for o in outcomes) == ["ran", "skipped", "skipped", "skipped"]

    def test_run_pending_in_order(self, tmp_path):
        order = []
        first = Migration(name="first", version=1, description="", body=lambda p: order.append("first"))
        second = Migration(name="second", version=1, description="", body=lambda p: order.append("second"))
        dispatcher = MigrationDispatcher(Paths(tmp_path))
        dispatcher.markers.write("first", 1)

        assert dispatcher.pending([first, second]) == [second]
        ran = dispatcher.run_pending([first, second])

        assert ran == [second]
        assert order == ["second"]
        assert dispatcher.pending([first, second]) == []


class TestRegisteredMigrations:
    """Tests for registered_migrations."""

    def test_without_switch(self):
        assert [m.name for m in registered_migrations(False)] == ["receipts-upgrade"]

    def test_with_switch(self):
        names = [m.name for m in registered_migrations(True)]
        assert names == ["receipts-upgrade", "index-upgrade"]

    @pytest.mark.parametrize("multi_index", [False, True])
    def test_switch_gated_migrations_follow_the_switch(self, multi_index):
        gated = [m.name for m in registered_migrations(multi_index) if m.requires_switch]
        assert gated == (["index-upgrade"] if multi_index else [])


class TestReceiptsMigration:
    """Tests for the receipts-layout migration."""

    def test_tracked_plugins(self, settings):
        store = settings.paths.store_path()
        (store / "foo").mkdir(parents=True)
        (store / "bar").mkdir()
        (store / "stray-file").write_text("", encoding="utf-8")
        assert tracked_plugins(settings.paths) == ["bar", "foo"]

    def test_reinstalls_tracked_plugins(self, settings):
        (settings.paths.store_path() / "foo").mkdir(parents=True)
        (settings.paths.store_path() / "gone").mkdir()
        write_manifests(settings.paths.index_plugins_path(), {"foo": "1.5", "bar": "1.0"})

        reinstalled = migrate_receipts(settings.paths)

        assert reinstalled == ["foo"]
        receipts = load_installed_receipts(settings.paths.receipts_path())
        assert [(r.name, r.version, r.source) for r in receipts] == [("foo", "1.5", "default")]

    def test_custom_installer(self, settings):
        (settings.paths.store_path() / "foo").mkdir(parents=True)
        write_manifests(settings.paths.index_plugins_path(), {"foo": "1.5"})
        installed = []

        migrate_receipts(settings.paths, installer=lambda paths, entry: installed.append(entry.name))

        assert installed == ["foo"]

    def test_nothing_installed(self, settings):
        assert migrate_receipts(settings.paths) == []

    def test_missing_index_fails(self, settings):
        (settings.paths.store_path() / "foo").mkdir(parents=True)
        with pytest.raises(MigrationFailure, match="index"):
            migrate_receipts(settings.paths)

    def test_installer_failure_leaves_no_marker(self, settings):
        (settings.paths.store_path() / "foo").mkdir(parents=True)
        write_manifests(settings.paths.index_plugins_path(), {"foo": "1.5"})

        def broken(paths, entry):
            raise OSError("download failed")

        dispatcher = MigrationDispatcher(settings.paths)
        with pytest.raises(MigrationFailure):
            dispatcher.run(receipts_migration(installer=broken))
        assert not dispatcher.markers.is_completed("receipts-upgrade")

        assert dispatcher.run(receipts_migration()) is MigrationOutcome.RAN


class TestIndexMigration:
    """Tests for the index-layout migration."""

    def test_moves_legacy_index(self, tmp_path):
        legacy = Paths(tmp_path)
        write_manifests(legacy.index_plugins_path(), {"foo": "1.0"})
        write_receipts(legacy.receipts_path(), {})
        receipt = legacy.receipts_path() / "foo.json"
        receipt.write_text(
            json.dumps({"metadata": {"name": "foo"}, "spec": {"version": "1.0"}}),
            encoding="utf-8",
        )

        migrate_index(Paths(tmp_path, multi_index=True))

        assert (tmp_path / "index" / "default" / "plugins" / "foo.json").exists()
        assert not (tmp_path / "index" / "plugins").exists()
        receipts = load_installed_receipts(legacy.receipts_path())
        assert receipts[0].source == "default"

    def test_resumes_after_interruption(self, tmp_path):
        # Simulate a crash right after the legacy index was moved aside.
        staging = tmp_path / "index.migrating"
        write_manifests(staging / "plugins", {"foo": "1.0"})

        migrate_index(Paths(tmp_path, multi_index=True))

        assert (tmp_path / "index" / "default" / "plugins" / "foo.json").exists()
        assert not staging.exists()

    def test_already_migrated_layout_is_untouched(self, tmp_path):
        paths = Paths(tmp_path, multi_index=True)
        write_manifests(paths.index_plugins_path("default"), {"foo": "1.0"})

        migrate_index(paths)
        migrate_index(paths)

        assert (tmp_path / "index" / "default" / "plugins" / "foo.json").exists()

    def test_conflict_fails(self, tmp_path):
        write_manifests(tmp_path / "index.migrating" / "plugins", {"foo": "1.0"})
        write_manifests(tmp_path / "index" / "default" / "plugins", {"foo": "1.0"})

        with pytest.raises(MigrationFailure):
            migrate_index(Paths(tmp_path, multi_index=True))

    def test_marker_through_dispatcher(self, tmp_path):
        paths = Paths(tmp_path, multi_index=True)
        write_manifests(Paths(tmp_path).index_plugins_path(), {"foo": "1.0"})
        dispatcher = MigrationDispatcher(paths)

        assert dispatcher.run(index_migration()) is MigrationOutcome.RAN
        assert dispatcher.run(index_migration()) is MigrationOutcome.SKIPPED
        assert index_migration().requires_switch is True


class TestRequireMultiIndexLayout:
    """Tests for require_multi_index_layout."""

    def test_legacy_index_refused(self, tmp_path):
        write_manifests(tmp_path / "index" / "plugins", {"foo": "1.0"})
        with pytest.raises(LegacyLayoutError, match="index-upgrade"):
            require_multi_index_layout(Paths(tmp_path, multi_index=True))

    def test_interrupted_upgrade_refused(self, tmp_path):
        write_manifests(tmp_path / "index.migrating" / "plugins", {"foo": "1.0"})
        with pytest.raises(LegacyLayoutError):
            require_multi_index_layout(Paths(tmp_path, multi_index=True))

    def test_legacy_index_fine_without_switch(self, tmp_path):
        write_manifests(tmp_path / "index" / "plugins", {"foo": "1.0"})
        require_multi_index_layout(Paths(tmp_path))

    def test_migrated_or_fresh_root_accepted(self, tmp_path):
        paths = Paths(tmp_path, multi_index=True)
        require_multi_index_layout(paths)

        write_manifests(tmp_path / "index" / "plugins", {"foo": "1.0"})
        migrate_index(paths)
        require_multi_index_layout(paths)
