# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Cache key computation.

The key is a SHA256 over a canonical JSON rendering of everything that
decides what `cargo` resolves and compiles for the dependency graph:
the sorted (name, version spec) pairs, the edition, and a format version
for the cache layout itself. Snippet bodies are not part of it. Two
snippets with the same dependencies share one resolved graph and one
target directory.

Canonical here means: pairs sorted by name, dict keys sorted, no
whitespace. Declaring A then B gives the same key as B then A, and
`num_cpus` with no version gives a different key than `num_cpus = "1.2.0"`.
"""

import json
from collections.abc import Mapping

from evalrs.utils.hashing import compute_sha256_text

# Bump when the on-disk entry layout changes so old entries read as misses.
CACHE_FORMAT_VERSION = 1

SHORT_KEY_LENGTH = 12


def canonical_dependencies(dependencies: Mapping[str, object]) -> list[list[object]]:
    """Sorted [name, spec] pairs, the form that gets hashed and stored."""
    return [[name, dependencies[name]] for name in sorted(dependencies)]


def compute_cache_key(dependencies: Mapping[str, object], edition: str) -> str:
    """Return the lowercase hex cache key for a dependency mapping."""
    document = {
        "format": CACHE_FORMAT_VERSION,
        "edition": edition,
        "dependencies": canonical_dependencies(dependencies),
    }
    payload = json.dumps(document, sort_keys=True, separators=(",", ":"))
    return compute_sha256_text(payload)


def short_key(key: str) -> str:
    return key[:SHORT_KEY_LENGTH]
