"""Tests for the file-per-key DiskStore."""

from __future__ import annotations

import logging
import os
import stat
import time
from pathlib import Path

import pytest

from discocache.cache.disk import (
    DIR_MODE,
    FILE_MODE,
    SERVER_GROUPS,
    CacheKey,
    DiskStore,
    sanitize_component,
    server_resources_key,
)


@pytest.fixture()
def store(cache_root: Path) -> DiskStore:
    return DiskStore(cache_root)


def _mode(path: Path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


# ------------------------------------------------------------------ #
# Key to path mapping
# ------------------------------------------------------------------ #


class TestCacheKey:
    def test_top_level_document(self) -> None:
        """Documents without a group-version live at the store root."""
        assert SERVER_GROUPS.relative_path() == Path("servergroups.json")

    def test_named_group_version_is_nested(self) -> None:
        """apps/v1 resources live under apps/v1/."""
        key = server_resources_key("apps/v1")
        assert key.relative_path() == Path("apps", "v1", "serverresources.json")

    def test_core_group_version(self) -> None:
        """The legacy core group-version is a single directory."""
        assert server_resources_key("v1").relative_path() == Path("v1", "serverresources.json")

    def test_unsafe_characters_are_replaced(self) -> None:
        """Characters outside the safe set become underscores."""
        key = server_resources_key("example.com:8443/v1 beta")
        assert key.relative_path() == Path("example.com_8443", "v1_beta", "serverresources.json")

    def test_str(self) -> None:
        """Keys print as name(group-version) in log messages."""
        assert str(SERVER_GROUPS) == "servergroups"
        assert str(server_resources_key("apps/v1")) == "serverresources(apps/v1)"

    @pytest.mark.parametrize("component", ["", ".", ".."])
    def test_traversal_components_rejected(self, component: str) -> None:
        """Empty and dot components could escape the store root."""
        with pytest.raises(ValueError):
            sanitize_component(component)

    def test_parent_reference_in_group_version_rejected(self) -> None:
        """A group-version cannot escape the store root."""
        with pytest.raises(ValueError):
            CacheKey("serverresources", "../v1").relative_path()


# ------------------------------------------------------------------ #
# Read / write
# ------------------------------------------------------------------ #


class TestReadWrite:
    def test_read_missing_returns_none(self, store: DiskStore) -> None:
        """A key that was never written is a miss, even without a root dir."""
        assert store.read(SERVER_GROUPS) is None

    def test_write_then_read(self, store: DiskStore) -> None:
        """A written document reads back as our own."""
        store.write(SERVER_GROUPS, b'{"kind": "APIGroupList"}\n')
        record = store.read(SERVER_GROUPS)
        assert record is not None
        assert record.data == b'{"kind": "APIGroupList"}\n'
        assert record.ours is True

    def test_modified_time_comes_from_file(self, store: DiskStore) -> None:
        """The record's timestamp is the file's mtime."""
        store.write(SERVER_GROUPS, b"{}")
        past = time.time() - 3600
        os.utime(store.path_for(SERVER_GROUPS), (past, past))
        record = store.read(SERVER_GROUPS)
        assert record is not None
        assert record.modified == pytest.approx(past, abs=1)
        assert record.age >= 3599

    def test_overwrite_replaces_content(self, store: DiskStore) -> None:
        """A second write replaces the first."""
        store.write(SERVER_GROUPS, b"first")
        store.write(SERVER_GROUPS, b"second")
        record = store.read(SERVER_GROUPS)
        assert record is not None
        assert record.data == b"second"

    def test_no_temp_files_left_behind(self, store: DiskStore, cache_root: Path) -> None:
        """Only the final file remains after a write."""
        store.write(SERVER_GROUPS, b"{}")
        store.write(server_resources_key("apps/v1"), b"{}")
        leftovers = [p for p in cache_root.rglob("*") if p.name.endswith(".tmp")]
        assert leftovers == []

    def test_file_from_another_writer_is_not_ours(self, cache_root: Path) -> None:
        """A file written by a different store instance is reported as foreign."""
        DiskStore(cache_root).write(SERVER_GROUPS, b"{}")
        record = DiskStore(cache_root).read(SERVER_GROUPS)
        assert record is not None
        assert record.ours is False


# ------------------------------------------------------------------ #
# Permissions
# ------------------------------------------------------------------ #


class TestPermissions:
    def test_directories_and_files_modes(self, store: DiskStore, cache_root: Path) -> None:
        """Every directory the store creates is 0750 and every file 0660."""
        store.write(SERVER_GROUPS, b"{}")
        store.write(server_resources_key("a/v1"), b"{}")
        store.write(server_resources_key("v1"), b"{}")

        seen_files = 0
        for dirpath, dirnames, filenames in os.walk(cache_root):
            assert _mode(Path(dirpath)) == DIR_MODE, dirpath
            for name in filenames:
                assert _mode(Path(dirpath, name)) == FILE_MODE, name
                seen_files += 1
        assert seen_files == 3

    def test_modes_ignore_umask(self, store: DiskStore, cache_root: Path) -> None:
        """A restrictive umask does not change the modes."""
        old_umask = os.umask(0o077)
        try:
            store.write(server_resources_key("apps/v1"), b"{}")
        finally:
            os.umask(old_umask)
        assert _mode(cache_root) == DIR_MODE
        assert _mode(cache_root / "apps" / "v1") == DIR_MODE
        assert _mode(cache_root / "apps" / "v1" / "serverresources.json") == FILE_MODE

    def test_existing_parent_is_not_touched(self, tmp_path: Path) -> None:
        """Only directories the store creates get DIR_MODE."""
        parent = tmp_path / "shared"
        parent.mkdir(mode=0o755)
        os.chmod(parent, 0o755)
        DiskStore(parent / "server").write(SERVER_GROUPS, b"{}")
        assert _mode(parent) == 0o755
        assert _mode(parent / "server") == DIR_MODE


# ------------------------------------------------------------------ #
# Failure handling
# ------------------------------------------------------------------ #


class TestFailures:
    def test_write_fails_when_root_is_a_file(self, tmp_path: Path) -> None:
        """Write errors propagate as OSError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(OSError):
            DiskStore(blocker).write(SERVER_GROUPS, b"{}")
        assert blocker.read_text() == "not a directory"

    def test_read_error_is_a_miss(self, tmp_path: Path) -> None:
        """Non-existence errors other than ENOENT are reported as misses."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        assert DiskStore(blocker).read(SERVER_GROUPS) is None


# ------------------------------------------------------------------ #
# Clear
# ------------------------------------------------------------------ #


class TestClear:
    def test_clear_removes_directory(self, store: DiskStore, cache_root: Path) -> None:
        """Clearing removes every file under the root."""
        store.write(server_resources_key("apps/v1"), b"{}")
        store.clear()
        assert not cache_root.exists()
        assert store.read(server_resources_key("apps/v1")) is None

    def test_clear_missing_directory_is_noop(self, store: DiskStore, cache_root: Path) -> None:
        """Clearing a store that never wrote anything is harmless."""
        store.clear()
        store.clear()
        assert not cache_root.exists()

    def test_write_after_clear_is_served(self, store: DiskStore) -> None:
        """Files written after a clear are served again."""
        store.write(SERVER_GROUPS, b"old")
        store.clear()
        store.write(SERVER_GROUPS, b"new")
        record = store.read(SERVER_GROUPS)
        assert record is not None
        assert record.data == b"new"
        assert record.ours is True

    def test_foreign_files_ignored_after_clear(self, store: DiskStore, cache_root: Path) -> None:
        """After a clear, files this store did not write are never served."""
        store.clear()
        DiskStore(cache_root).write(SERVER_GROUPS, b"{}")
        assert store.path_for(SERVER_GROUPS).exists()
        assert store.read(SERVER_GROUPS) is None

    def test_clear_bumps_epoch(self, store: DiskStore) -> None:
        """Every clear starts a new epoch."""
        before = store.epoch
        store.clear()
        assert store.epoch == before + 1

    def test_write_from_before_clear_is_dropped(self, store: DiskStore) -> None:
        """Data obtained before a clear is neither written nor served."""
        epoch = store.epoch
        store.clear()
        assert store.write(SERVER_GROUPS, b"{}", epoch=epoch) is False
        assert not store.path_for(SERVER_GROUPS).exists()
        assert store.read(SERVER_GROUPS) is None

    def test_write_with_current_epoch_is_served(self, store: DiskStore) -> None:
        """A write tagged with the current epoch is kept."""
        store.clear()
        assert store.write(SERVER_GROUPS, b"{}", epoch=store.epoch) is True
        record = store.read(SERVER_GROUPS)
        assert record is not None
        assert record.ours is True

    def test_clear_failure_is_logged(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        """A failed removal is a warning, not an error."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with caplog.at_level(logging.WARNING, logger="discocache.cache.disk"):
            DiskStore(blocker).clear()
        assert "Failed to remove discovery cache" in caplog.text
