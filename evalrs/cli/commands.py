# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Subcommand handlers for the evalrs CLI.

Each function here corresponds to one CLI subcommand and returns an exit
code. Diagnostics go through the structured logger on stderr; stdout is
reserved for the evaluated program and for data the user asked for
(`--emit`, `cache list`, `info`).
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from evalrs.build.exceptions import BuildError
from evalrs.cache.key import short_key
from evalrs.cache.store import CacheManager
from evalrs.cli.exit_codes import (
    CONFIG_ERROR,
    RUNTIME_ERROR,
    SUCCESS,
    TIMEOUT,
    USER_ERROR,
    from_program_exit,
)
from evalrs.config.exceptions import ConfigError, ConfigValidationError
from evalrs.config.loader import default_config, load_config
from evalrs.config.schema import EvalrsConfig
from evalrs.logging.logger import configure_logging, get_logger
from evalrs.runtime.environment import check_minimum_python, get_system_info
from evalrs.snippet.exceptions import ParseError, SnippetError

_SECONDS_PER_DAY = 86400.0


def _load(args: argparse.Namespace, command_name: str) -> tuple[int, EvalrsConfig | None, logging.Logger]:
    """
    The shared setup that every command needs: load config, set up logging.

    Returns (exit_code, config, logger). If exit_code is not SUCCESS the
    caller should return it immediately.
    """
    cli_level = getattr(args, "log_level", None)
    config_path = getattr(args, "config", None)
    logger = get_logger(f"evalrs.cli.{command_name}", log_level=cli_level or "WARNING")

    try:
        config = load_config(Path(config_path)) if config_path else default_config()
    except ConfigError as err:
        logger.error(
            "Configuration error",
            extra={"command": command_name, "error": str(err)},
        )
        return CONFIG_ERROR, None, logger

    log_level = cli_level or config.global_config.log_level
    log_file = Path(config.global_config.log_file) if config.global_config.log_file else None
    configure_logging(log_level, log_file)

    try:
        check_minimum_python()
    except RuntimeError as err:
        logger.error("Unsupported environment", extra={"error": str(err)})
        return RUNTIME_ERROR, None, logger

    try:
        config = _apply_overrides(config, args)
    except ConfigError as err:
        logger.error(
            "Configuration error",
            extra={"command": command_name, "error": str(err)},
        )
        return CONFIG_ERROR, None, logger

    return SUCCESS, config, logger


def _apply_overrides(config: EvalrsConfig, args: argparse.Namespace) -> EvalrsConfig:
    """
    Fold command-line flags into the frozen config.

    The merged values go back through schema validation, so a flag is held
    to the same bounds as the YAML field it overrides.

    Raises:
        ConfigValidationError: A flag value the schema rejects.
    """
    cache_updates: dict[str, object] = {}
    build_updates: dict[str, object] = {}
    snippet_updates: dict[str, object] = {}

    if getattr(args, "cache_dir", None):
        cache_updates["root"] = str(Path(args.cache_dir).expanduser().resolve())
    if getattr(args, "no_cache", False):
        cache_updates["enabled"] = False
    if getattr(args, "quiet", False):
        build_updates["quiet"] = True
    if getattr(args, "offline", False):
        build_updates["offline"] = True
    if getattr(args, "timeout", None) is not None:
        build_updates["timeout_seconds"] = args.timeout
    if getattr(args, "print_result", False):
        snippet_updates["print_result"] = True

    data = config.model_dump(by_alias=True)
    data["cache"].update(cache_updates)
    data["build"].update(build_updates)
    data["snippet"].update(snippet_updates)

    try:
        return EvalrsConfig.model_validate(data)
    except ValidationError as err:
        raise ConfigValidationError(f"Invalid command-line option:\n{err}") from err


def _read_snippet(args: argparse.Namespace) -> str:
    if args.snippet is not None:
        return args.snippet
    return sys.stdin.read()


def handle_run(args: argparse.Namespace) -> int:
    """Evaluate a snippet given as an argument or on stdin."""
    exit_code, config, logger = _load(args, "run")
    if exit_code != SUCCESS or config is None:
        return exit_code

    from evalrs.runner.executor import emit, evaluate, prepare

    try:
        text = _read_snippet(args)
    except (OSError, UnicodeDecodeError) as err:
        logger.error("Cannot read snippet from standard input", extra={"error": str(err)})
        return USER_ERROR

    try:
        if args.emit:
            sys.stdout.write(emit(prepare(text, config, Path(os.getcwd()))))
            return SUCCESS

        result = evaluate(text, config, base_dir=Path(os.getcwd()))
    except ParseError as err:
        logger.error(
            "Cannot parse snippet",
            extra={"line_number": err.line_number, "line": err.line.rstrip("\r"), "error": err.reason},
        )
        sys.stderr.write(f"evalrs: {err}\n")
        return USER_ERROR
    except SnippetError as err:
        logger.error("Cannot wrap snippet", extra={"error": str(err)})
        sys.stderr.write(f"evalrs: {err}\n")
        return USER_ERROR
    except BuildError as err:
        logger.error("Build could not start", extra={"error": str(err)})
        sys.stderr.write(f"evalrs: {err}\n")
        return RUNTIME_ERROR
    except Exception as err:
        logger.error("Evaluation failed", extra={"error": str(err)}, exc_info=True)
        return RUNTIME_ERROR

    if result.build.timed_out:
        return TIMEOUT
    return from_program_exit(result.build.exit_code)


def handle_cache(args: argparse.Namespace) -> int:
    """List or clean the project cache."""
    exit_code, config, logger = _load(args, "cache")
    if exit_code != SUCCESS or config is None:
        return exit_code

    cache = CacheManager(config.cache.resolve_root())

    try:
        if args.action == "list":
            for entry in cache.list_entries():
                record = entry.to_json()
                record["short_key"] = short_key(entry.key)
                sys.stdout.write(json.dumps(record, sort_keys=True) + "\n")
            return SUCCESS

        if args.all:
            removed = cache.clear()
            logger.info("Cache cleared", extra={"removed": removed, "root": str(cache.root)})
            return SUCCESS

        max_entries = args.max_entries if args.max_entries is not None else config.cache.max_entries
        max_age_days = args.max_age_days if args.max_age_days is not None else config.cache.max_age_days
        if max_entries is None and max_age_days is None:
            logger.error(
                "Nothing to clean: pass --all, --max-entries or --max-age-days",
                extra={"command": "cache"},
            )
            return USER_ERROR

        cache.evict(
            max_entries=max_entries,
            max_age_seconds=max_age_days * _SECONDS_PER_DAY if max_age_days is not None else None,
        )
        return SUCCESS

    except Exception as err:
        logger.error("Cache command failed", extra={"error": str(err)}, exc_info=True)
        return RUNTIME_ERROR


def handle_info(args: argparse.Namespace) -> int:
    """Print environment and cache information as JSON."""
    exit_code, config, logger = _load(args, "info")
    if exit_code != SUCCESS or config is None:
        return exit_code

    from evalrs import __version__

    info = get_system_info(config.build.cargo_command)
    record = {
        "evalrs_version": __version__,
        "python_version": info.python_version,
        "platform": info.platform,
        "architecture": info.architecture,
        "cargo_path": info.cargo_path,
        "cargo_version": info.cargo_version,
        "cache_enabled": config.cache.enabled,
        "cache_root": str(config.cache.resolve_root()),
    }
    sys.stdout.write(json.dumps(record, indent=2) + "\n")
    if info.cargo_path is None:
        logger.warning("cargo not found on PATH", extra={"cargo_command": config.build.cargo_command})
    return SUCCESS
