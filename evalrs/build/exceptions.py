# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Build driver errors.

A program that fails to compile, or compiles and exits non-zero, is not an
error here: its exit code and output are relayed as-is in a BuildResult.
BuildError is only for the case where there is no exit code to relay,
because cargo itself could not be started.
"""


class BuildError(Exception):
    """cargo could not be launched."""
