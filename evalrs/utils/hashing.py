# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Hashing utilities for evalrs.

SHA256 shows up in three places: the cache key, the checksum of a cached
Cargo.toml (so we can tell when it drifted from its key), and the token
that names a per-run project directory.
"""

import hashlib
from pathlib import Path

HASH_BUFFER_SIZE = 65536  # 64 KiB


def compute_sha256(file_path: Path) -> str:
    """
    Compute the SHA256 hex digest of a file, reading it in chunks.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        OSError: If the file can't be read.
    """
    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(HASH_BUFFER_SIZE)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.hexdigest()


def compute_sha256_bytes(data: bytes) -> str:
    """Compute the SHA256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_sha256_text(text: str) -> str:
    """SHA256 of a string's UTF-8 encoding."""
    return compute_sha256_bytes(text.encode("utf-8"))
