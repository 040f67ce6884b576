# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
The on-disk project cache.

One entry per dependency set, filed under its cache key:

    <root>/
      locks/<key>.lock, <key>.use
      <key>/
        entry.json     commit marker: key, dependencies, manifest checksum, timestamps
        Cargo.toml
        Cargo.lock     once cargo has resolved the graph
        target/        shared CARGO_TARGET_DIR, so dependencies compile once
        runs/          per-evaluation projects (see evalrs.project.materializer)

What gets cached is the resolved dependency graph and its compiled
artifacts. The snippet's own source is never reused: every evaluation
writes a fresh main.rs.

Consistency rules:
  - entry.json is written last, atomically. An entry directory without it
    is a torn write and counts as a miss.
  - On every lookup the recorded dependencies are re-hashed and must give
    the key back, and Cargo.toml must match its recorded checksum. Anything
    else is a CacheCorruptionError, which we log and recover from by
    deleting the entry and starting over. The user never sees it.
  - Lookup and creation run under the exclusive per-key lock. Callers of
    open_entry also hold the shared use lock while they build, which is
    how eviction knows an entry is busy.
"""

import json
import shutil
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from evalrs.cache.exceptions import CacheCorruptionError
from evalrs.cache.key import CACHE_FORMAT_VERSION, canonical_dependencies, compute_cache_key, short_key
from evalrs.cache.locking import LOCKS_DIRNAME, KeyLock, lock_path_for
from evalrs.logging.logger import get_logger
from evalrs.project.manifest import ProjectManifest, render_manifest
from evalrs.utils.filesystem import atomic_write, safe_read
from evalrs.utils.hashing import compute_sha256, compute_sha256_text

logger = get_logger(__name__)

ENTRY_FILE = "entry.json"
MANIFEST_FILE = "Cargo.toml"
LOCK_FILE = "Cargo.lock"
TARGET_DIRNAME = "target"
RUNS_DIRNAME = "runs"

_KEY_LENGTH = 64
_HEX = frozenset("0123456789abcdef")


def _looks_like_key(name: str) -> bool:
    return len(name) == _KEY_LENGTH and set(name) <= _HEX


@dataclass(frozen=True)
class CacheEntry:
    """A validated cache entry as seen at lookup time."""

    key: str
    path: Path
    dependencies: dict[str, object]
    edition: str
    created_at: float
    last_used: float
    hit: bool = False

    @property
    def manifest_path(self) -> Path:
        return self.path / MANIFEST_FILE

    @property
    def lockfile_path(self) -> Path:
        return self.path / LOCK_FILE

    @property
    def target_dir(self) -> Path:
        return self.path / TARGET_DIRNAME

    @property
    def runs_dir(self) -> Path:
        return self.path / RUNS_DIRNAME

    def to_json(self) -> dict[str, object]:
        return {
            "key": self.key,
            "path": str(self.path),
            "dependencies": self.dependencies,
            "edition": self.edition,
            "created_at": self.created_at,
            "last_used": self.last_used,
        }


class CacheManager:
    """
    Looks up, creates and evicts cache entries under an explicit root.

    Nothing here is global: tests point it at a tmp_path, the CLI at the
    configured cache root.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def entry_dir(self, key: str) -> Path:
        return self.root / key

    def _lock(self, key: str) -> KeyLock:
        return KeyLock(lock_path_for(self.root, key))

    def _use_lock(self, key: str) -> KeyLock:
        return KeyLock(lock_path_for(self.root, key, "use"))

    # Reading and validating

    def _read_entry(self, key: str) -> Optional[CacheEntry]:
        """
        Load and validate the entry for `key`.

        Returns None if there is no entry directory at all.

        Raises:
            CacheCorruptionError: The directory exists but doesn't hold a
                consistent entry for this key.
        """
        entry_dir = self.entry_dir(key)
        if not entry_dir.is_dir():
            return None

        marker = entry_dir / ENTRY_FILE
        if not marker.is_file():
            raise CacheCorruptionError(key, "missing entry.json (interrupted write)")

        try:
            data = json.loads(safe_read(marker))
        except (OSError, ValueError) as err:
            raise CacheCorruptionError(key, f"unreadable entry.json: {err}") from err

        if not isinstance(data, dict):
            raise CacheCorruptionError(key, "entry.json is not an object")
        if data.get("format") != CACHE_FORMAT_VERSION:
            raise CacheCorruptionError(key, f"format {data.get('format')!r} != {CACHE_FORMAT_VERSION}")
        if data.get("key") != key:
            raise CacheCorruptionError(key, f"recorded key {str(data.get('key'))[:12]} differs")

        pairs = data.get("dependencies")
        edition = data.get("edition")
        if not isinstance(pairs, list) or not isinstance(edition, str):
            raise CacheCorruptionError(key, "dependencies or edition missing")
        try:
            dependencies = {str(name): spec for name, spec in pairs}
        except (TypeError, ValueError) as err:
            raise CacheCorruptionError(key, f"malformed dependency list: {err}") from err

        if compute_cache_key(dependencies, edition) != key:
            raise CacheCorruptionError(key, "recorded dependencies do not hash to the key")

        manifest_path = entry_dir / MANIFEST_FILE
        if not manifest_path.is_file():
            raise CacheCorruptionError(key, "Cargo.toml is missing")
        if compute_sha256(manifest_path) != data.get("manifest_sha256"):
            raise CacheCorruptionError(key, "Cargo.toml does not match its checksum")

        try:
            created_at = float(data["created_at"])
            last_used = float(data["last_used"])
        except (KeyError, TypeError, ValueError) as err:
            raise CacheCorruptionError(key, f"bad timestamps: {err}") from err

        return CacheEntry(
            key=key,
            path=entry_dir,
            dependencies=dependencies,
            edition=edition,
            created_at=created_at,
            last_used=last_used,
        )

    def _write_marker(self, entry: CacheEntry, manifest_sha256: str) -> None:
        data = {
            "format": CACHE_FORMAT_VERSION,
            "key": entry.key,
            "edition": entry.edition,
            "dependencies": canonical_dependencies(entry.dependencies),
            "manifest_sha256": manifest_sha256,
            "created_at": entry.created_at,
            "last_used": entry.last_used,
        }
        atomic_write(entry.path / ENTRY_FILE, json.dumps(data, indent=2, sort_keys=True))

    # Creating

    def _create_entry(self, manifest: ProjectManifest, key: str) -> CacheEntry:
        entry_dir = self.entry_dir(key)
        if entry_dir.exists():
            shutil.rmtree(entry_dir)
        entry_dir.mkdir(parents=True)

        manifest_text = render_manifest(manifest)
        atomic_write(entry_dir / MANIFEST_FILE, manifest_text)

        now = time.time()
        entry = CacheEntry(
            key=key,
            path=entry_dir,
            dependencies=dict(manifest.dependencies),
            edition=manifest.edition,
            created_at=now,
            last_used=now,
            hit=False,
        )
        # Written last: until this lands the entry doesn't exist as far as
        # any reader is concerned.
        self._write_marker(entry, compute_sha256_text(manifest_text))
        return entry

    def _lookup_or_create(self, manifest: ProjectManifest, key: str) -> CacheEntry:
        try:
            existing = self._read_entry(key)
        except CacheCorruptionError as err:
            logger.warning(
                "Discarding inconsistent cache entry",
                extra={"key": short_key(key), "reason": err.reason},
            )
            existing = None

        if existing is not None:
            refreshed = CacheEntry(
                key=existing.key,
                path=existing.path,
                dependencies=existing.dependencies,
                edition=existing.edition,
                created_at=existing.created_at,
                last_used=time.time(),
                hit=True,
            )
            self._write_marker(refreshed, compute_sha256(existing.manifest_path))
            logger.info(
                "Cache hit",
                extra={"key": short_key(key), "dependencies": sorted(existing.dependencies)},
            )
            return refreshed

        entry = self._create_entry(manifest, key)
        logger.info(
            "Cache miss, created entry",
            extra={"key": short_key(key), "dependencies": sorted(entry.dependencies)},
        )
        return entry

    def lookup(self, manifest: ProjectManifest) -> CacheEntry:
        """
        Return a valid entry for the manifest's dependency set, creating it
        if needed. Runs under the key's exclusive lock.
        """
        key = manifest.cache_key
        with self._lock(key).hold():
            return self._lookup_or_create(manifest, key)

    @contextmanager
    def open_entry(self, manifest: ProjectManifest) -> Iterator[CacheEntry]:
        """
        lookup(), then keep the entry marked in-use while the with-block runs.

        The shared use lock is taken first, so eviction cannot remove the
        entry between the lookup and the build.
        """
        with self._use_lock(manifest.cache_key).hold(shared=True):
            yield self.lookup(manifest)

    def store_lockfile(self, entry: CacheEntry, lockfile: Path) -> bool:
        """
        Copy a run's Cargo.lock into the entry so the next run skips
        resolution. Returns True if the entry's copy changed.
        """
        if not lockfile.is_file():
            return False
        content = lockfile.read_text(encoding="utf-8")
        current = entry.lockfile_path
        if current.is_file() and current.read_text(encoding="utf-8") == content:
            return False
        atomic_write(current, content)
        logger.debug("Stored Cargo.lock", extra={"key": short_key(entry.key)})
        return True

    # Listing and eviction

    def _key_dirs(self) -> list[Path]:
        if not self.root.is_dir():
            return []
        return sorted(
            child for child in self.root.iterdir()
            if child.is_dir() and child.name != LOCKS_DIRNAME and _looks_like_key(child.name)
        )

    def list_entries(self) -> list[CacheEntry]:
        """All valid entries, most recently used first."""
        entries = []
        for entry_dir in self._key_dirs():
            try:
                entry = self._read_entry(entry_dir.name)
            except CacheCorruptionError as err:
                logger.debug(
                    "Skipping inconsistent entry",
                    extra={"key": short_key(entry_dir.name), "reason": err.reason},
                )
                continue
            if entry is not None:
                entries.append(entry)
        return sorted(entries, key=lambda e: e.last_used, reverse=True)

    def _remove_if_idle(self, key: str) -> bool:
        lock = self._use_lock(key)
        if not lock.acquire(blocking=False):
            logger.debug("Entry in use, not evicting", extra={"key": short_key(key)})
            return False
        try:
            shutil.rmtree(self.entry_dir(key), ignore_errors=True)
        finally:
            lock.release()
        return True

    def evict(
        self,
        *,
        max_entries: Optional[int] = None,
        max_age_seconds: Optional[float] = None,
        now: Optional[float] = None,
    ) -> list[str]:
        """
        Remove least recently used entries.

        An entry goes if it is older than max_age_seconds, or if it falls
        outside the max_entries most recently used. Directories that aren't
        valid entries are garbage and always go. Entries held by a running
        evaluation are skipped. Returns the removed keys.
        """
        current = time.time() if now is None else now
        valid = self.list_entries()
        valid_keys = {entry.key for entry in valid}

        doomed: list[str] = [d.name for d in self._key_dirs() if d.name not in valid_keys]
        for rank, entry in enumerate(valid):
            too_many = max_entries is not None and rank >= max_entries
            too_old = max_age_seconds is not None and current - entry.last_used > max_age_seconds
            if too_many or too_old:
                doomed.append(entry.key)

        removed = [key for key in doomed if self._remove_if_idle(key)]
        if removed:
            logger.info(
                "Evicted cache entries",
                extra={"count": len(removed), "keys": [short_key(k) for k in removed]},
            )
        return removed

    def clear(self) -> int:
        """Remove every entry that isn't in use. Returns how many went."""
        return sum(1 for entry_dir in self._key_dirs() if self._remove_if_idle(entry_dir.name))
