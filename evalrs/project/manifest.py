# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Project manifest generation.

The manifest is the Cargo.toml of the throwaway project. Its dependency table
is exactly the set of crates the snippet declared:

  no annotation        -> name = "*"
  "1.2.0"              -> name = "1.2.0"
  { path = "../x" }    -> [dependencies.name] path = "/abs/x"

Relative `path` entries are made absolute against the directory evalrs was
started from. The generated project lives in the cache, so a relative path
would otherwise point somewhere inside the cache directory.

The package name is derived from the cache key. The same dependency set
always gets the same name, which keeps cargo's fingerprints in the shared
target directory stable between runs.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import toml

from evalrs.cache.key import compute_cache_key, short_key
from evalrs.snippet.models import Declaration

ANY_VERSION = "*"
PACKAGE_VERSION = "0.0.0"
PACKAGE_PREFIX = "evalrs_"

# A dependency table needs one of these to say where the crate comes from.
_SOURCE_KEYS = ("version", "path", "git")


@dataclass(frozen=True)
class ProjectManifest:
    """Everything that goes into Cargo.toml."""

    dependencies: dict[str, object] = field(default_factory=dict)
    edition: str = "2021"

    @property
    def cache_key(self) -> str:
        return compute_cache_key(self.dependencies, self.edition)

    @property
    def project_name(self) -> str:
        return f"{PACKAGE_PREFIX}{short_key(self.cache_key)}"


def _manifest_value(spec: object, base_dir: Path) -> object:
    if spec is None:
        return ANY_VERSION
    if isinstance(spec, str):
        return spec

    table = dict(spec)  # type: ignore[call-overload]
    path = table.get("path")
    if isinstance(path, str):
        resolved = Path(path).expanduser()
        if not resolved.is_absolute():
            resolved = (base_dir / resolved).resolve()
        table["path"] = resolved.as_posix()
    if not any(key in table for key in _SOURCE_KEYS):
        table = {"version": ANY_VERSION, **table}
    return table


def build_manifest(
    declarations: Iterable[Declaration],
    *,
    edition: str = "2021",
    base_dir: Optional[Path] = None,
) -> ProjectManifest:
    """
    Turn parsed declarations into a ProjectManifest.

    Args:
        declarations: Already deduplicated by the parser.
        edition: Rust edition for [package].
        base_dir: What relative `path` dependencies are relative to.
                  Defaults to the current working directory.
    """
    root = base_dir if base_dir is not None else Path.cwd()
    dependencies = {
        decl.name: _manifest_value(decl.version_spec, root)
        for decl in declarations
    }
    return ProjectManifest(dependencies=dependencies, edition=edition)


def render_manifest(manifest: ProjectManifest) -> str:
    """Render the manifest as Cargo.toml text."""
    document = {
        "package": {
            "name": manifest.project_name,
            "version": PACKAGE_VERSION,
            "edition": manifest.edition,
            "publish": False,
        },
        "dependencies": {
            name: manifest.dependencies[name] for name in sorted(manifest.dependencies)
        },
    }
    return toml.dumps(document)
