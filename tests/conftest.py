# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Shared pytest fixtures for evalrs tests.

Nothing here needs a real Rust toolchain. Where a test has to run "cargo",
it gets `fake_cargo`: a tiny shell script that accepts the same arguments,
writes a Cargo.lock the way a real resolution would, and echoes what it
saw so tests can assert on it.
"""

import stat
import textwrap
from pathlib import Path

import pytest

from evalrs.config.schema import BuildConfig, CacheConfig, EvalrsConfig


@pytest.fixture()
def cache_root(tmp_path: Path) -> Path:
    root = tmp_path / "cache"
    root.mkdir()
    return root


@pytest.fixture()
def fake_cargo(tmp_path: Path) -> Path:
    """
    A stand-in for cargo.

    Invoked as `fake_cargo run --manifest-path <dir>/Cargo.toml [flags]`.
    Prints the generated main.rs, the target dir and the flags, writes a
    Cargo.lock next to the manifest, and exits with $FAKE_CARGO_EXIT.
    """
    script = tmp_path / "bin" / "fake-cargo"
    script.parent.mkdir()
    script.write_text(
        textwrap.dedent("""\
            #!/bin/sh
            manifest="$3"
            dir=$(dirname "$manifest")
            shift 3
            printf '# resolved by fake cargo\\n' > "$dir/Cargo.lock"
            echo "flags=$*"
            echo "target=$CARGO_TARGET_DIR"
            cat "$dir/src/main.rs"
            if [ -n "$FAKE_CARGO_MARKER" ]; then (sleep 1; touch "$FAKE_CARGO_MARKER") & fi
            if [ -n "$FAKE_CARGO_SLEEP" ]; then sleep "$FAKE_CARGO_SLEEP"; fi
            exit "${FAKE_CARGO_EXIT:-0}"
        """),
        encoding="utf-8",
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture()
def eval_config(cache_root: Path, fake_cargo: Path) -> EvalrsConfig:
    """A config wired to the temp cache root and the fake cargo."""
    return EvalrsConfig(
        cache=CacheConfig(root=str(cache_root)),
        build=BuildConfig(cargo_command=str(fake_cargo)),
    )


@pytest.fixture()
def tmp_config_file(tmp_path: Path) -> Path:
    """A small valid config YAML file."""
    config_content = textwrap.dedent("""\
        global:
          config_version: "1.0.0"
          log_level: "DEBUG"
        build:
          quiet: true
          edition: "2018"
    """)
    config_file = tmp_path / "evalrs.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def invalid_config_file(tmp_path: Path) -> Path:
    """Valid YAML, but an unknown key."""
    config_file = tmp_path / "invalid.yaml"
    config_file.write_text("build:\n  turbo: true\n", encoding="utf-8")
    return config_file


@pytest.fixture()
def broken_yaml_file(tmp_path: Path) -> Path:
    """A file that isn't valid YAML at all."""
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("{{not: yaml: at: all:::", encoding="utf-8")
    return config_file
