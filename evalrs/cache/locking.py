# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Per-key file locks for the cache.

Each cache key gets its own pair of lock files under `<root>/locks/`, so work
on different keys never contends. We use flock(2):

  - `<key>.lock` is taken exclusively while an entry is looked up or created
  - `<key>.use` is taken shared by every evaluation for as long as it uses
    the entry, and exclusively by eviction, so eviction can see an entry
    is busy and skip it

flock conversions between shared and exclusive are not atomic, so the two
roles use separate files.

Every KeyLock opens its own file descriptor. flock locks belong to the
open file description, which means two KeyLocks for the same key conflict
even inside one process. That covers threads in a long-running service as
well as separate CLI processes.

Lock files are never deleted. Unlinking a lock file while another process
has it open would let two processes "hold" the same lock on different
inodes.
"""

import fcntl
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from evalrs.cache.exceptions import CacheLockError

LOCKS_DIRNAME = "locks"


def lock_path_for(root: Path, key: str, kind: str = "lock") -> Path:
    return root / LOCKS_DIRNAME / f"{key}.{kind}"


class KeyLock:
    """A flock-based lock on one cache key."""

    def __init__(self, lock_path: Path) -> None:
        self._path = lock_path
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def _open(self) -> int:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            return os.open(self._path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as err:
            raise CacheLockError(f"Cannot open lock file {self._path}: {err}") from err

    def acquire(self, *, shared: bool = False, blocking: bool = True) -> bool:
        """
        Take the lock. Returns False only when blocking=False and someone
        else holds a conflicting lock.

        If this KeyLock already holds the lock, the mode is converted in place.
        """
        fd = self._fd if self._fd is not None else self._open()
        flags = fcntl.LOCK_SH if shared else fcntl.LOCK_EX
        if not blocking:
            flags |= fcntl.LOCK_NB

        try:
            fcntl.flock(fd, flags)
        except BlockingIOError:
            if self._fd is None:
                os.close(fd)
            return False
        except BaseException:
            if self._fd is None:
                os.close(fd)
            raise

        self._fd = fd
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    @contextmanager
    def hold(self, *, shared: bool = False) -> Iterator["KeyLock"]:
        """Blocking acquire for the duration of a with-block."""
        self.acquire(shared=shared)
        try:
            yield self
        finally:
            self.release()
