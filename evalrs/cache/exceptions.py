# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Exceptions for the cache subsystem.

CacheCorruptionError never reaches the user: the store catches it, throws the
entry away and rebuilds. It exists so the validation code can say exactly
what was wrong, and so the log line is useful.
"""


class CacheError(Exception):
    """Base for all cache errors."""


class CacheCorruptionError(CacheError):
    """An on-disk entry doesn't match the key it is filed under."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"cache entry {key[:12]} is inconsistent: {reason}")
        self.key = key
        self.reason = reason


class CacheLockError(CacheError):
    """The lock for a cache key could not be set up."""
