# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Safe filesystem operations for evalrs.

The cache directory outlives any single evaluation, so every file we put
there has to survive a crash or a Ctrl-C halfway through:
  - writes must be atomic (no partial files on failure)
  - an interrupted write must not leave something a later run reads as valid

Atomic writes work by writing to a temporary file in the same directory as
the target, then renaming. Rename on the same filesystem is atomic on POSIX.
If the process dies mid-write, you get a leftover temp file instead of a
corrupted target file, and leftover temp files never match a real name.
"""

import tempfile
from pathlib import Path

TEMP_PREFIX = ".evalrs_tmp_"


def atomic_write(target_path: Path, content: str, encoding: str = "utf-8") -> None:
    """
    Write content to a file atomically.

    We write to a temp file in the same directory, then rename it onto the
    target path. Same directory means same filesystem, which is what makes
    the rename atomic.

    Args:
        target_path: Where the final file should end up.
        content: The string content to write.
        encoding: Text encoding to use.

    Raises:
        OSError: If the write or rename fails.
    """
    atomic_write_bytes(target_path, content.encode(encoding))


def atomic_write_bytes(target_path: Path, data: bytes) -> None:
    """
    Write binary data to a file atomically. Same approach as atomic_write.

    Args:
        target_path: Where the final file should end up.
        data: The raw bytes to write.

    Raises:
        OSError: If the write or rename fails.
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)

    temp_fd = tempfile.NamedTemporaryFile(
        mode="wb",
        dir=str(target_path.parent),
        prefix=TEMP_PREFIX,
        suffix=".tmp",
        delete=False,
    )
    temp_path = Path(temp_fd.name)

    try:
        temp_fd.write(data)
        temp_fd.flush()
        temp_fd.close()
        temp_path.replace(target_path)
    except BaseException:
        temp_fd.close()
        if temp_path.exists():
            temp_path.unlink()
        raise


def safe_read(file_path: Path, encoding: str = "utf-8") -> str:
    """
    Read a text file with proper error context.

    Raises:
        FileNotFoundError: If the path doesn't exist.
        IsADirectoryError: If the path is a directory.
        OSError: For other I/O errors.
    """
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")
    if not file_path.is_file():
        raise IsADirectoryError(f"Expected a file, got a directory: {file_path}")
    return file_path.read_text(encoding=encoding)
