# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Evaluation executor.

One evaluation, start to finish:

    raw text
      -> parse_snippet        declarations out, body blanked in place
      -> build_manifest       dependency table, cache key
      -> render_source        wrap in fn main if needed
      -> cache.open_entry     reuse or create the entry for this key
      -> ProjectContext       fresh run directory with the new main.rs
      -> run_project          cargo run against the shared target dir

Everything before `run_project` is cheap and synchronous. Parse and wrap
errors surface before the cache is touched, so a typo in an annotation
never creates a cache entry.

With caching disabled the same flow runs against a throwaway cache root
that is deleted afterwards.
"""

import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from evalrs.build.driver import BuildResult, run_project
from evalrs.cache.key import short_key
from evalrs.cache.store import CacheManager
from evalrs.config.schema import EvalrsConfig
from evalrs.logging.logger import get_logger
from evalrs.project.manifest import ProjectManifest, build_manifest, render_manifest
from evalrs.project.materializer import ProjectContext, SourceFile, render_source
from evalrs.snippet.models import Snippet
from evalrs.snippet.parser import parse_snippet

logger = get_logger(__name__)

_SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class PreparedSnippet:
    """Everything derived from the text before touching the disk."""

    snippet: Snippet
    manifest: ProjectManifest
    source: SourceFile

    @property
    def cache_key(self) -> str:
        return self.manifest.cache_key


@dataclass(frozen=True)
class EvaluationResult:
    """What one evaluation produced."""

    snippet: Snippet
    manifest: ProjectManifest
    cache_key: str
    cache_hit: bool
    source: SourceFile
    build: BuildResult


def prepare(text: str, config: EvalrsConfig, base_dir: Optional[Path] = None) -> PreparedSnippet:
    """
    Parse, build the manifest and render main.rs. Pure apart from resolving
    relative path dependencies against `base_dir`.

    Raises:
        ParseError: Malformed declaration or annotation.
        WrapError: print_result on a complete program.
    """
    snippet = parse_snippet(text, unhide=config.snippet.unhide_doc_lines)
    manifest = build_manifest(
        snippet.declarations,
        edition=config.build.edition,
        base_dir=base_dir,
    )
    source = render_source(snippet, print_result=config.snippet.print_result)
    return PreparedSnippet(snippet=snippet, manifest=manifest, source=source)


def emit(prepared: PreparedSnippet) -> str:
    """Cargo.toml and main.rs as one printable document."""
    return (
        f"# Cargo.toml\n{render_manifest(prepared.manifest)}\n"
        f"// src/main.rs\n{prepared.source.text}"
    )


def _evict(cache: CacheManager, config: EvalrsConfig) -> None:
    settings = config.cache
    if settings.max_entries is None and settings.max_age_days is None:
        return
    max_age = None
    if settings.max_age_days is not None:
        max_age = settings.max_age_days * _SECONDS_PER_DAY
    cache.evict(max_entries=settings.max_entries, max_age_seconds=max_age)


def _execute(prepared: PreparedSnippet, cache: CacheManager, config: EvalrsConfig, capture_output: bool) -> EvaluationResult:
    build = config.build
    with cache.open_entry(prepared.manifest) as entry:
        with ProjectContext(cache, entry, prepared.source) as project_dir:
            result = run_project(
                project_dir,
                target_dir=entry.target_dir,
                cargo_command=build.cargo_command,
                quiet=build.quiet,
                offline=build.offline,
                timeout_seconds=build.timeout_seconds,
                capture_output=capture_output,
            )

    logger.info(
        "Evaluation finished",
        extra={
            "key": short_key(entry.key),
            "cache_hit": entry.hit,
            "exit_code": result.exit_code,
            "elapsed_seconds": round(result.elapsed_seconds, 3),
        },
    )
    return EvaluationResult(
        snippet=prepared.snippet,
        manifest=prepared.manifest,
        cache_key=entry.key,
        cache_hit=entry.hit,
        source=prepared.source,
        build=result,
    )


def evaluate(
    text: str,
    config: EvalrsConfig,
    *,
    base_dir: Optional[Path] = None,
    capture_output: bool = False,
) -> EvaluationResult:
    """
    Evaluate a snippet end to end.

    Raises:
        ParseError / WrapError: The snippet itself is at fault.
        BuildError: cargo could not be launched.
    """
    prepared = prepare(text, config, base_dir)
    logger.debug(
        "Snippet prepared",
        extra={
            "key": short_key(prepared.cache_key),
            "dependencies": prepared.snippet.dependency_names,
            "wrapped": prepared.source.wrapped,
            "line_offset": prepared.source.line_offset,
        },
    )

    if not config.cache.enabled:
        with tempfile.TemporaryDirectory(prefix="evalrs_nocache_") as scratch:
            return _execute(prepared, CacheManager(Path(scratch)), config, capture_output)

    cache = CacheManager(config.cache.resolve_root())
    result = _execute(prepared, cache, config, capture_output)
    _evict(cache, config)
    return result
