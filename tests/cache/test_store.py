# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the on-disk cache: hits and misses, recovery from damaged
entries, listing, and eviction.
"""

import json
from pathlib import Path

import pytest

from evalrs.cache.exceptions import CacheCorruptionError
from evalrs.cache.store import ENTRY_FILE, CacheManager
from evalrs.project.manifest import ProjectManifest


def _manifest(**deps: object) -> ProjectManifest:
    return ProjectManifest(dependencies=dict(deps))


class TestLookup:
    def test_first_lookup_is_a_miss(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(_manifest(num_cpus="*"))

        assert entry.hit is False
        assert entry.path == cache_root / entry.key
        assert entry.manifest_path.is_file()
        assert (entry.path / ENTRY_FILE).is_file()

    def test_second_lookup_is_a_hit(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        first = cache.lookup(_manifest(num_cpus="*"))
        second = cache.lookup(_manifest(num_cpus="*"))

        assert second.hit is True
        assert second.key == first.key
        assert second.created_at == first.created_at
        assert second.last_used >= first.last_used

    def test_different_versions_get_different_entries(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        loose = cache.lookup(_manifest(num_cpus="*"))
        pinned = cache.lookup(_manifest(num_cpus="1.2.0"))

        assert loose.key != pinned.key
        assert pinned.hit is False
        assert len(cache.list_entries()) == 2

    def test_marker_records_dependencies(self, cache_root: Path) -> None:
        entry = CacheManager(cache_root).lookup(_manifest(b="*", a="1"))
        data = json.loads((entry.path / ENTRY_FILE).read_text(encoding="utf-8"))
        assert data["key"] == entry.key
        assert data["dependencies"] == [["a", "1"], ["b", "*"]]

    def test_open_entry_yields_the_entry(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        with cache.open_entry(_manifest(a="*")) as entry:
            assert entry.path.is_dir()
        with cache.open_entry(_manifest(a="*")) as again:
            assert again.hit is True

    def test_open_entry_looks_up_under_the_use_lock(self, cache_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        cache = CacheManager(cache_root)
        seen = []
        real_lookup = cache.lookup

        def recording_lookup(manifest: ProjectManifest):
            seen.append(cache.evict(max_entries=0))
            return real_lookup(manifest)

        cache.lookup(_manifest(a="*"))
        monkeypatch.setattr(cache, "lookup", recording_lookup)
        with cache.open_entry(_manifest(a="*")) as entry:
            assert entry.hit is True

        assert seen == [[]]


class TestRecovery:
    def test_missing_marker_is_a_miss(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(_manifest(a="*"))
        (entry.path / ENTRY_FILE).unlink()

        with pytest.raises(CacheCorruptionError, match="interrupted write"):
            cache._read_entry(entry.key)

        recovered = cache.lookup(_manifest(a="*"))
        assert recovered.hit is False
        assert (recovered.path / ENTRY_FILE).is_file()

    def test_tampered_manifest_is_rebuilt(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(_manifest(a="*"))
        original = entry.manifest_path.read_text(encoding="utf-8")
        entry.manifest_path.write_text(original + "\n[features]\n", encoding="utf-8")

        recovered = cache.lookup(_manifest(a="*"))
        assert recovered.hit is False
        assert recovered.manifest_path.read_text(encoding="utf-8") == original

    def test_marker_for_another_dependency_set_is_rejected(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(_manifest(a="*"))
        marker = entry.path / ENTRY_FILE
        data = json.loads(marker.read_text(encoding="utf-8"))
        data["dependencies"] = [["a", "9.9.9"]]
        marker.write_text(json.dumps(data), encoding="utf-8")

        with pytest.raises(CacheCorruptionError, match="do not hash to the key"):
            cache._read_entry(entry.key)
        assert cache.lookup(_manifest(a="*")).hit is False

    def test_garbage_marker(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(_manifest(a="*"))
        (entry.path / ENTRY_FILE).write_text("{not json", encoding="utf-8")

        assert cache.lookup(_manifest(a="*")).hit is False

    def test_stale_files_are_dropped_on_rebuild(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(_manifest(a="*"))
        (entry.path / ENTRY_FILE).unlink()
        entry.lockfile_path.write_text("# stale\n", encoding="utf-8")

        recovered = cache.lookup(_manifest(a="*"))
        assert not recovered.lockfile_path.exists()


class TestLockfile:
    def test_store_lockfile(self, cache_root: Path, tmp_path: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(_manifest(a="*"))
        produced = tmp_path / "Cargo.lock"
        produced.write_text("# v1\n", encoding="utf-8")

        assert cache.store_lockfile(entry, produced) is True
        assert cache.store_lockfile(entry, produced) is False
        assert entry.lockfile_path.read_text(encoding="utf-8") == "# v1\n"

    def test_missing_lockfile_is_ignored(self, cache_root: Path, tmp_path: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(_manifest(a="*"))
        assert cache.store_lockfile(entry, tmp_path / "nope.lock") is False

    def test_lockfile_survives_a_hit(self, cache_root: Path, tmp_path: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(_manifest(a="*"))
        entry.lockfile_path.write_text("# resolved\n", encoding="utf-8")

        again = cache.lookup(_manifest(a="*"))
        assert again.lockfile_path.read_text(encoding="utf-8") == "# resolved\n"


class TestListing:
    def test_empty_root(self, tmp_path: Path) -> None:
        assert CacheManager(tmp_path / "missing").list_entries() == []

    def test_most_recently_used_first(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        old = cache.lookup(_manifest(a="*"))
        new = cache.lookup(_manifest(b="*"))
        cache.lookup(_manifest(a="*"))

        keys = [entry.key for entry in cache.list_entries()]
        assert keys == [old.key, new.key]

    def test_ignores_foreign_directories(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        cache.lookup(_manifest(a="*"))
        (cache_root / "not-a-key").mkdir()
        assert len(cache.list_entries()) == 1


class TestEviction:
    def test_max_entries_keeps_most_recent(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        first = cache.lookup(_manifest(a="*"))
        second = cache.lookup(_manifest(b="*"))
        third = cache.lookup(_manifest(c="*"))

        removed = cache.evict(max_entries=2)

        assert removed == [first.key]
        assert not first.path.exists()
        assert second.path.exists()
        assert third.path.exists()

    def test_max_age(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(_manifest(a="*"))

        assert cache.evict(max_age_seconds=60, now=entry.last_used + 30) == []
        assert cache.evict(max_age_seconds=60, now=entry.last_used + 120) == [entry.key]

    def test_no_limits_keeps_valid_entries(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        cache.lookup(_manifest(a="*"))
        assert cache.evict() == []

    def test_torn_entries_are_collected(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        entry = cache.lookup(_manifest(a="*"))
        (entry.path / ENTRY_FILE).unlink()

        assert cache.evict() == [entry.key]
        assert not entry.path.exists()

    def test_entry_in_use_is_skipped(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        with cache.open_entry(_manifest(a="*")) as busy:
            assert cache.evict(max_entries=0) == []
            assert busy.path.exists()
        assert cache.evict(max_entries=0) == [busy.key]

    def test_clear(self, cache_root: Path) -> None:
        cache = CacheManager(cache_root)
        cache.lookup(_manifest(a="*"))
        cache.lookup(_manifest(b="*"))

        assert cache.clear() == 2
        assert cache.list_entries() == []
