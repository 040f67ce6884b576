# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
evalrs: a Rust snippet evaluator.

Feed it a few lines of Rust and it builds a throwaway Cargo project around
them, runs it, and hands the output back. Dependencies are declared inline
with `extern crate` lines and resolved projects are cached per dependency set.
"""

__version__ = "0.1.0"
