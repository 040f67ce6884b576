# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Project materializer.

Turns a parsed snippet plus a cache entry into a Cargo project on disk.

The entry holds what is shared between evaluations with the same
dependencies (Cargo.toml, Cargo.lock, target/). Each evaluation still gets
its own directory under `<entry>/runs/`, named after a hash of the source
plus a random suffix, so two concurrent evaluations of different snippets
never write the same main.rs. The run directory gets copies of the entry's
Cargo.toml and Cargo.lock and a freshly written src/main.rs. Cargo is
pointed at the entry's target/ through CARGO_TARGET_DIR by the build driver.

When the run is over, a Cargo.lock that cargo produced or updated is copied
back into the entry and the run directory is deleted.
"""

import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Optional

from evalrs.cache.store import MANIFEST_FILE, CacheEntry, CacheManager
from evalrs.logging.logger import get_logger
from evalrs.snippet.models import Snippet
from evalrs.snippet.wrapper import WRAP_LINE_OFFSET, wrap_body
from evalrs.utils.filesystem import atomic_write
from evalrs.utils.hashing import compute_sha256_text

logger = get_logger(__name__)

SOURCE_TOKEN_LENGTH = 16
MAIN_FILE = Path("src") / "main.rs"


@dataclass(frozen=True)
class SourceFile:
    """
    The generated main.rs.

    `line_offset` is how many lines the toolchain sees above the user's
    first line: rustc's line N is the user's line N - line_offset.
    """

    text: str
    line_offset: int
    wrapped: bool

    @property
    def token(self) -> str:
        return compute_sha256_text(self.text)[:SOURCE_TOKEN_LENGTH]


def render_source(snippet: Snippet, *, print_result: bool = False) -> SourceFile:
    """
    Build main.rs for a parsed snippet.

    Declarations were blanked out of the body by the parser. They come back
    as canonical items (`#[macro_use]` is what needs them; plain ones are
    harmless on 2018+):
      - wrapped body: all of them on the `fn main() {` line, offset stays 1
      - complete program: each one back on its own original line, offset 0

    Raises:
        WrapError: print_result on a snippet that has its own `fn main`.
    """
    if snippet.has_explicit_entry_point and not print_result:
        items_by_line: dict[int, list[str]] = {}
        for decl in snippet.declarations:
            items_by_line.setdefault(decl.line_number - 1, []).append(decl.item_text)

        lines = snippet.body.split("\n")
        for index, items in items_by_line.items():
            rest = lines[index].strip(" \t")
            lines[index] = " ".join(items + [rest]) if rest else " ".join(items)
        return SourceFile(text="\n".join(lines), line_offset=0, wrapped=False)

    prelude = " ".join(decl.item_text for decl in snippet.declarations)
    text = wrap_body(snippet.body, prelude=prelude, print_result=print_result)
    return SourceFile(text=text, line_offset=WRAP_LINE_OFFSET, wrapped=True)


def materialize(entry: CacheEntry, source: SourceFile) -> Path:
    """
    Create a run directory for one evaluation and return its path.

    The directory is a complete Cargo project: the entry's Cargo.toml, its
    Cargo.lock if resolution already happened, and src/main.rs.
    """
    entry.runs_dir.mkdir(parents=True, exist_ok=True)
    run_dir = Path(tempfile.mkdtemp(prefix=f"{source.token}_", dir=str(entry.runs_dir)))

    try:
        shutil.copyfile(entry.manifest_path, run_dir / MANIFEST_FILE)
        if entry.lockfile_path.is_file():
            shutil.copyfile(entry.lockfile_path, run_dir / entry.lockfile_path.name)
        atomic_write(run_dir / MAIN_FILE, source.text)
    except BaseException:
        shutil.rmtree(run_dir, ignore_errors=True)
        raise

    logger.debug(
        "Project materialized",
        extra={
            "path": str(run_dir),
            "reused_lockfile": (run_dir / entry.lockfile_path.name).is_file(),
            "line_offset": source.line_offset,
        },
    )
    return run_dir


def cleanup_run(run_dir: Path) -> None:
    """Remove a run directory and everything inside it."""
    if run_dir.is_dir():
        shutil.rmtree(run_dir, ignore_errors=True)
        logger.debug("Run directory cleaned up", extra={"path": str(run_dir)})


class ProjectContext:
    """
    Context manager that materializes a run directory on enter and cleans
    it up on exit.

    Usage:
        with cache.open_entry(manifest) as entry:
            with ProjectContext(cache, entry, source) as project_dir:
                run_project(project_dir, target_dir=entry.target_dir)

    On exit, whatever Cargo.lock cargo left in the run directory is handed
    back to the cache, even if the build failed: resolution may well have
    succeeded before compilation didn't.
    """

    def __init__(self, cache: CacheManager, entry: CacheEntry, source: SourceFile) -> None:
        self._cache = cache
        self._entry = entry
        self._source = source
        self._run_dir: Optional[Path] = None

    def __enter__(self) -> Path:
        self._run_dir = materialize(self._entry, self._source)
        return self._run_dir

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._run_dir is None:
            return
        try:
            if exc_type is None:
                self._cache.store_lockfile(self._entry, self._run_dir / self._entry.lockfile_path.name)
        finally:
            cleanup_run(self._run_dir)
