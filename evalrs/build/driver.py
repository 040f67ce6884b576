# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Build driver: runs `cargo run` on a materialized project.

One child process, no shell, an optional hard timeout, and the exit code
passed straight back. By default the child inherits our stdout and stderr,
so the program's output (and cargo's build messages) stream to the user as
they happen. Services and tests can ask for captured output instead.

cargo runs in its own session, so cargo, rustc and the user's program form
one process group. A timeout, or an interrupt while we wait, kills that
whole group. Killing only cargo would leave the program running.

CARGO_TARGET_DIR points at the cache entry's target directory. That is where
the compiled dependency graph lives, and sharing it is the whole point of
the cache. Cargo takes its own lock on the target directory, so concurrent
builds against one entry queue up instead of stepping on each other.
"""

import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from evalrs.build.exceptions import BuildError
from evalrs.logging.logger import get_logger

logger = get_logger(__name__)

TIMEOUT_EXIT_CODE = -1


@dataclass(frozen=True)
class BuildResult:
    """What came back from `cargo run`."""

    success: bool
    exit_code: int
    stdout: str
    stderr: str
    elapsed_seconds: float
    timed_out: bool = False


def build_command(
    manifest_path: Path,
    *,
    cargo_command: str = "cargo",
    quiet: bool = False,
    offline: bool = False,
) -> list[str]:
    """The argv for `cargo run` against a given Cargo.toml."""
    command = [cargo_command, "run", "--manifest-path", str(manifest_path)]
    if quiet:
        command.append("--quiet")
    if offline:
        command.append("--offline")
    return command


def _build_env(target_dir: Optional[Path]) -> dict[str, str]:
    env = dict(os.environ)
    if target_dir is not None:
        env["CARGO_TARGET_DIR"] = str(target_dir)
    return env


def _as_text(data: object) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return str(data)


def _kill_group(process: subprocess.Popen[str]) -> None:
    """SIGKILL cargo's whole process group. The group id is cargo's pid."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        # Already reaped, nothing left in the group.
        pass


def run_project(
    project_dir: Path,
    *,
    target_dir: Optional[Path] = None,
    cargo_command: str = "cargo",
    quiet: bool = False,
    offline: bool = False,
    timeout_seconds: Optional[float] = None,
    capture_output: bool = False,
) -> BuildResult:
    """
    Build and run the project in `project_dir`.

    Args:
        project_dir: A directory holding Cargo.toml and src/main.rs.
        target_dir: Shared build directory (CARGO_TARGET_DIR).
        cargo_command: The cargo executable.
        quiet: Pass --quiet, so cargo stays silent unless the build fails.
        offline: Pass --offline.
        timeout_seconds: Kill cargo (and the program) after this long.
        capture_output: Capture stdout/stderr instead of streaming them.

    Returns:
        A BuildResult. A failed compile or non-zero exit is a normal result.

    Raises:
        BuildError: cargo could not be started at all.
    """
    command = build_command(
        project_dir / "Cargo.toml",
        cargo_command=cargo_command,
        quiet=quiet,
        offline=offline,
    )
    start = time.monotonic()
    stream = subprocess.PIPE if capture_output else None

    try:
        process = subprocess.Popen(
            command,
            stdout=stream,
            stderr=stream,
            text=True,
            cwd=str(project_dir),
            env=_build_env(target_dir),
            start_new_session=True,
        )
    except FileNotFoundError as err:
        logger.error(
            "cargo not found, is Rust installed?",
            extra={"cargo_command": cargo_command},
        )
        raise BuildError(f"cargo executable not found: {cargo_command}") from err
    except PermissionError as err:
        raise BuildError(f"cannot execute {cargo_command}: {err}") from err

    try:
        stdout, stderr = process.communicate(timeout=timeout_seconds)
    except subprocess.TimeoutExpired:
        _kill_group(process)
        stdout, stderr = process.communicate()
        elapsed = time.monotonic() - start
        logger.warning(
            "cargo run timed out",
            extra={"timeout_seconds": timeout_seconds, "project_dir": str(project_dir)},
        )
        return BuildResult(
            success=False,
            exit_code=TIMEOUT_EXIT_CODE,
            stdout=_as_text(stdout),
            stderr=_as_text(stderr) + f"\nevalrs: timed out after {timeout_seconds}s\n",
            elapsed_seconds=elapsed,
            timed_out=True,
        )
    except BaseException:
        _kill_group(process)
        process.wait()
        raise

    elapsed = time.monotonic() - start
    success = process.returncode == 0

    logger.debug(
        "cargo run finished",
        extra={
            "success": success,
            "exit_code": process.returncode,
            "elapsed_seconds": round(elapsed, 3),
            "project_dir": str(project_dir),
        },
    )

    return BuildResult(
        success=success,
        exit_code=process.returncode,
        stdout=_as_text(stdout),
        stderr=_as_text(stderr),
        elapsed_seconds=elapsed,
    )
