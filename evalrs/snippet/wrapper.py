# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Snippet wrapper.

Most snippets are a handful of statements, not a program. If the body has no
`fn main`, we put it inside one:

    fn main() {          <- line 1, added
    <body line 1>        <- line 2
    ...
    }                    <- added

So toolchain line numbers are the user's line numbers plus WRAP_LINE_OFFSET.
Bodies that already define `fn main` are returned exactly as given.

Everything here is a pure string transformation.
"""

import re

from evalrs.snippet.exceptions import WrapError

WRAP_LINE_OFFSET = 1

# `fn main()` at the start of a line, with the qualifiers rustc accepts on it.
# An empty parameter list is required, so `fn main(&self)` in an impl block
# is not an entry point. The only thing allowed in front of it is the
# `extern crate` prelude that wrap_body puts on the opening line.
_PRELUDE_ITEM = r"(?:#\[macro_use\]\s*)?extern\s+crate\s+[A-Za-z_][A-Za-z0-9_]*\s*;\s*"
_ENTRY_POINT = re.compile(
    rf"^(?:{_PRELUDE_ITEM})*"
    r"(?:pub(?:\([^)]*\))?\s+)?(?:async\s+)?(?:unsafe\s+)?fn\s+main\s*\(\s*\)"
)

_PRINT_OPEN = 'println!("{:?}", {'
_PRINT_CLOSE = "});"


def _entry_point_lines(body: str) -> list[int]:
    return [
        index + 1
        for index, line in enumerate(body.split("\n"))
        if _ENTRY_POINT.match(line.lstrip())
    ]


def has_entry_point(body: str) -> bool:
    """True if some line, ignoring leading whitespace, starts an `fn main()` signature."""
    return bool(_entry_point_lines(body))


def unhide_doc_lines(text: str) -> str:
    """
    Drop rustdoc hidden-line markers.

    Doc examples hide setup lines behind a leading `# `; a line that is just
    `#` is a hidden blank line. `#[attr]` and `#!` are real Rust and stay.
    """
    lines = []
    for line in text.split("\n"):
        stripped = line.rstrip("\r")
        if stripped.startswith("# "):
            line = line[2:]
        elif stripped == "#":
            line = line[1:]
        lines.append(line)
    return "\n".join(lines)


def wrap_body(body: str, *, prelude: str = "", print_result: bool = False) -> str:
    """
    Wrap a body in `fn main` unless it already has one.

    Args:
        body: Snippet body with declarations already stripped.
        prelude: Crate-level items to put on the opening line, in front of
                 `fn main`. Kept on the same line so the offset stays 1.
        print_result: Print the value of the body's tail expression with
                      `{:?}`.

    Raises:
        WrapError: print_result was asked for but the body is already a
                   complete program, so there is no tail expression to print.
    """
    entry_lines = _entry_point_lines(body)
    if entry_lines:
        if print_result:
            raise WrapError(
                f"cannot print a result: the snippet defines its own `fn main` "
                f"(line {entry_lines[0]})"
            )
        return body

    opening = "fn main() {"
    closing = "}"
    if print_result:
        opening = f"{opening} {_PRINT_OPEN}"
        closing = f"{_PRINT_CLOSE} {closing}"
    if prelude:
        opening = f"{prelude} {opening}"

    return f"{opening}\n{body}\n{closing}\n"
