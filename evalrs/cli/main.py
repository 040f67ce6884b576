# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI entrypoint for evalrs.

Every operation is a subcommand of `evalrs`. The global options (--config,
--log-level) are inherited by every subcommand through argparse's parent
parser mechanism.

Usage:
    evalrs run 'println!("{}", 1 + 1)'
    echo 'extern crate num_cpus; println!("{}", num_cpus::get())' | evalrs run
    evalrs run -p '2 + 2'
    evalrs cache list
    evalrs cache clean --max-entries 20
    evalrs info
"""

import argparse
import sys

from evalrs import __version__
from evalrs.cli.commands import handle_cache, handle_info, handle_run
from evalrs.cli.exit_codes import USER_ERROR


def _positive_float(text: str) -> float:
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: '{text}'") from None
    if not value > 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {text}")
    return value


def _build_global_parser() -> argparse.ArgumentParser:
    """
    Build the parent parser with global options.

    add_help=False so its help text doesn't collide with the subcommand
    parsers that inherit it. Defaults are suppressed so a subcommand parser
    doesn't overwrite a value given before the subcommand name.
    """
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--config",
        type=str,
        default=argparse.SUPPRESS,
        help="Path to YAML configuration file.",
    )
    parent.add_argument(
        "--log-level",
        type=str,
        default=argparse.SUPPRESS,
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging verbosity level (default: from config, else WARNING).",
    )
    return parent


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "snippet",
        nargs="?",
        default=None,
        help="Rust code snippet to evaluate. Read from standard input if omitted.",
    )
    parser.add_argument(
        "-p",
        "--print-result",
        action="store_true",
        dest="print_result",
        help='Print the value of the snippet using println!("{:?}", result).',
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Don't show cargo's build messages if the build succeeds.",
    )
    parser.add_argument(
        "--cache-dir",
        type=str,
        default=None,
        dest="cache_dir",
        help="Cache root directory (overrides config).",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        dest="no_cache",
        help="Build in a throwaway directory instead of the cache.",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Run cargo with --offline.",
    )
    parser.add_argument(
        "--timeout",
        type=_positive_float,
        default=None,
        help="Kill the build and the program after this many seconds.",
    )
    parser.add_argument(
        "--emit",
        action="store_true",
        help="Print the generated Cargo.toml and main.rs instead of running them.",
    )


def _add_cache_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "action",
        choices=["list", "clean"],
        help="list: show cached dependency sets. clean: evict entries.",
    )
    parser.add_argument(
        "--cache-dir",
        type=str,
        default=None,
        dest="cache_dir",
        help="Cache root directory (overrides config).",
    )
    parser.add_argument(
        "--max-entries",
        type=int,
        default=None,
        dest="max_entries",
        help="Keep only this many most recently used entries.",
    )
    parser.add_argument(
        "--max-age-days",
        type=float,
        default=None,
        dest="max_age_days",
        help="Remove entries unused for this many days.",
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="Remove every entry that is not in use.",
    )


def build_parser() -> argparse.ArgumentParser:
    parent = _build_global_parser()

    root_parser = argparse.ArgumentParser(
        prog="evalrs",
        description="evalrs, a Rust code snippet evaluator.",
        parents=[parent],
    )
    root_parser.add_argument("--version", action="version", version=f"evalrs {__version__}")
    subparsers = root_parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser(
        "run", parents=[parent], help="Evaluate a Rust snippet.",
    )
    _add_run_arguments(run_parser)
    run_parser.set_defaults(func=handle_run)

    cache_parser = subparsers.add_parser(
        "cache", parents=[parent], help="Inspect or clean the project cache.",
    )
    _add_cache_arguments(cache_parser)
    cache_parser.set_defaults(func=handle_cache)

    info_parser = subparsers.add_parser(
        "info", parents=[parent], help="Display environment and cache info.",
    )
    info_parser.set_defaults(func=handle_info)

    return root_parser


def main(argv: list[str] | None = None) -> None:
    """
    Main CLI entrypoint. This is what pyproject.toml's [project.scripts] points to.

    If no subcommand is given, we show help and exit with USER_ERROR.
    """
    root_parser = build_parser()
    args = root_parser.parse_args(argv)

    if not hasattr(args, "func") or args.func is None:
        root_parser.print_help()
        sys.exit(USER_ERROR)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
