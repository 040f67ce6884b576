# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Type-safe configuration schemas for evalrs.

Every config section gets its own frozen pydantic model. Frozen means once
you create it, you cannot mutate it. CLI overrides produce a new config via
`model_copy(update=...)` instead of poking at fields.

The models use pydantic v2's ConfigDict with:
  - frozen=True: immutability after construction
  - extra="forbid": unknown fields cause immediate failure
  - validate_default=True: even defaults get type-checked

Every section has defaults, so an empty YAML mapping (or no file at all)
gives a working configuration.
"""

import tempfile
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CACHE_DIRNAME = "evalrs_cache"
SUPPORTED_EDITIONS = ("2015", "2018", "2021", "2024")


class GlobalConfig(BaseModel):
    """Cross-cutting settings: config schema version and logging."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    config_version: str = Field(
        default="1.0.0",
        description="Schema version for compatibility tracking, e.g. '1.0.0'",
    )
    log_level: str = Field(
        default="WARNING",
        description="One of DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional path for file-based log output",
    )

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level '{value}'")
        return upper


class CacheConfig(BaseModel):
    """
    Where resolved projects live and how long we keep them.

    Eviction is optional. With both limits unset the cache only grows, which
    is fine for a developer machine.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    enabled: bool = Field(
        default=True,
        description="Reuse resolved dependency sets between runs",
    )
    root: Optional[str] = Field(
        default=None,
        description="Cache root directory (default: <tempdir>/evalrs_cache)",
    )
    max_entries: Optional[int] = Field(
        default=None,
        ge=1,
        description="Keep at most this many entries, evicting least recently used",
    )
    max_age_days: Optional[float] = Field(
        default=None,
        gt=0,
        description="Evict entries not used for this many days",
    )

    def resolve_root(self) -> Path:
        """The effective cache root as an absolute path."""
        if self.root is not None:
            return Path(self.root).expanduser().resolve()
        return Path(tempfile.gettempdir()) / DEFAULT_CACHE_DIRNAME


class BuildConfig(BaseModel):
    """How we invoke cargo."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    cargo_command: str = Field(default="cargo", description="cargo executable to run")
    edition: str = Field(default="2021", description="Rust edition of the generated crate")
    quiet: bool = Field(
        default=False,
        description="Pass --quiet so cargo only prints diagnostics on failure",
    )
    offline: bool = Field(default=False, description="Pass --offline to cargo")
    timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Kill the build/run after this many seconds",
    )

    @field_validator("edition")
    @classmethod
    def _check_edition(cls, value: str) -> str:
        if value not in SUPPORTED_EDITIONS:
            raise ValueError(
                f"edition must be one of {', '.join(SUPPORTED_EDITIONS)}, got '{value}'"
            )
        return value


class SnippetConfig(BaseModel):
    """How a snippet is turned into a main.rs."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    print_result: bool = Field(
        default=False,
        description='Wrap the body as println!("{:?}", { body })',
    )
    unhide_doc_lines: bool = Field(
        default=True,
        description="Strip rustdoc '# ' hidden-line markers before wrapping",
    )


class EvalrsConfig(BaseModel):
    """
    Top-level config container.

    A YAML file may contain any subset of the sections. Missing sections get
    their defaults.
    """

    model_config = ConfigDict(
        frozen=True, extra="forbid", validate_default=True, populate_by_name=True,
    )

    global_config: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    cache: CacheConfig = Field(default_factory=CacheConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    snippet: SnippetConfig = Field(default_factory=SnippetConfig)
