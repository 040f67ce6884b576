# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI exit codes.

`evalrs run` exits with the evaluated program's own exit code when cargo ran
to completion, so these only apply when evalrs itself stopped the show.
They overlap with program exit codes: a shell script can't
tell "the snippet exited 1" from "the snippet didn't parse", and the
structured log on stderr says which it was.
"""

SUCCESS: int = 0
USER_ERROR: int = 1
CONFIG_ERROR: int = 2
RUNTIME_ERROR: int = 3
TIMEOUT: int = 124
SIGNAL_BASE: int = 128


def from_program_exit(exit_code: int) -> int:
    """Map a child's return code to ours. Killed by signal N becomes 128 + N."""
    if exit_code < 0:
        return SIGNAL_BASE + (-exit_code)
    return exit_code
