# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Errors raised while reading a snippet.

These are the only errors in evalrs that are the user's fault, so they carry
enough context (line number, offending text) to be reported as-is.
"""


class SnippetError(Exception):
    """Base for all snippet errors."""


class ParseError(SnippetError):
    """A declaration line or its trailing annotation could not be understood."""

    def __init__(self, message: str, line_number: int, line: str) -> None:
        super().__init__(f"line {line_number}: {message}: {line.strip()}")
        self.reason = message
        self.line_number = line_number
        self.line = line


class DuplicateDeclarationError(ParseError):
    """The same crate was declared twice with different version specs."""

    def __init__(self, name: str, first_line: int, line_number: int, line: str) -> None:
        super().__init__(
            f"crate '{name}' already declared on line {first_line} with a different version",
            line_number,
            line,
        )
        self.name = name
        self.first_line = first_line


class WrapError(SnippetError):
    """The snippet cannot be wrapped the way the caller asked."""
