# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Declaration parser.

A snippet declares its external crates the 2015-edition way:

    extern crate rand;
    extern crate num_cpus; // "1.2.0"
    #[macro_use] extern crate serde_json; // { version = "1", features = ["preserve_order"] }
    extern crate mylib; // { path = "../mylib" }

The parser walks the text one line at a time. For each line it runs a small
scanner over the line's prefix: optional rustdoc hidden-line marker, optional
`#[macro_use]`, the `extern` and `crate` keywords, an identifier, and `;`.
If that matches, the declaration text is blanked out of the line and anything
after it (more declarations, or ordinary code) is left at its original
column. Lines that don't match are passed through untouched. The body always
has exactly as many lines as the input, so rustc's line numbers stay
meaningful.

A `//` comment right after the `;` is the version annotation. It's TOML:
a bare string is a version requirement, an inline table is a Cargo
dependency table, and the full Cargo form `name = ...` is
unwrapped to its value.

Known limitation: there is no tokenizer behind this. A line inside a
multi-line string literal or a `/* */` block that happens to start with
`extern crate x;` is read as a declaration.
"""

from typing import Optional

import toml

from evalrs.logging.logger import get_logger
from evalrs.snippet.exceptions import DuplicateDeclarationError, ParseError
from evalrs.snippet.models import Declaration, Snippet, VersionSpec
from evalrs.snippet.wrapper import has_entry_point, unhide_doc_lines

logger = get_logger(__name__)

# Crates that ship with the toolchain. Declaring them is legal Rust but they
# never belong in [dependencies].
SYSROOT_CRATES: frozenset[str] = frozenset({
    "std",
    "core",
    "alloc",
    "proc_macro",
    "test",
    "self",
})

_STRING_KEYS = frozenset({"version", "path", "git", "branch", "tag", "rev", "package", "registry"})
_BOOL_KEYS = frozenset({"default-features", "optional"})
_LIST_KEYS = frozenset({"features"})
ANNOTATION_KEYS: frozenset[str] = _STRING_KEYS | _BOOL_KEYS | _LIST_KEYS

_HIDDEN_MARKER = "# "
_MACRO_USE = "#[macro_use]"


class _LineScanner:
    """Cursor over a single line. Only knows the handful of tokens we need."""

    def __init__(self, text: str, pos: int = 0) -> None:
        self.text = text
        self.pos = pos

    def skip_whitespace(self) -> int:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] in " \t":
            self.pos += 1
        return self.pos - start

    def accept(self, literal: str) -> bool:
        if self.text.startswith(literal, self.pos):
            self.pos += len(literal)
            return True
        return False

    def accept_keyword(self, word: str) -> bool:
        """Match `word` followed by at least one blank."""
        if not self.text.startswith(word, self.pos):
            return False
        end = self.pos + len(word)
        if end >= len(self.text) or self.text[end] not in " \t":
            return False
        self.pos = end
        self.skip_whitespace()
        return True

    def read_identifier(self) -> Optional[str]:
        start = self.pos
        if start >= len(self.text):
            return None
        first = self.text[start]
        if not (first.isascii() and (first.isalpha() or first == "_")):
            return None
        end = start + 1
        while end < len(self.text) and (
            self.text[end].isascii() and (self.text[end].isalnum() or self.text[end] == "_")
        ):
            end += 1
        ident = self.text[start:end]
        if ident == "_":
            return None
        self.pos = end
        return ident

    @property
    def rest(self) -> str:
        return self.text[self.pos:]


def _scan_declaration(scanner: _LineScanner, allow_hidden: bool) -> Optional[tuple[str, bool]]:
    """
    Try to read one declaration at the scanner's position.

    On success the scanner sits right after the `;` and (name, macro_use)
    is returned. On failure the scanner position is restored.
    """
    start = scanner.pos
    scanner.skip_whitespace()
    if allow_hidden and scanner.accept(_HIDDEN_MARKER):
        scanner.skip_whitespace()

    macro_use = False
    if scanner.accept(_MACRO_USE):
        macro_use = True
        scanner.skip_whitespace()

    if scanner.accept_keyword("extern") and scanner.accept_keyword("crate"):
        name = scanner.read_identifier()
        if name is not None and name not in SYSROOT_CRATES:
            scanner.skip_whitespace()
            if scanner.accept(";"):
                return name, macro_use

    scanner.pos = start
    return None


def _plain(value: object) -> object:
    """toml hands back its own dict subclass for inline tables; flatten that."""
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def _validate_table(table: dict[str, object], line_number: int, line: str) -> dict[str, object]:
    if not table:
        raise ParseError("empty dependency table in annotation", line_number, line)

    for key, value in table.items():
        if key not in ANNOTATION_KEYS:
            raise ParseError(
                f"unsupported key '{key}' in annotation (allowed: {', '.join(sorted(ANNOTATION_KEYS))})",
                line_number,
                line,
            )
        if key in _STRING_KEYS and not (isinstance(value, str) and value):
            raise ParseError(f"'{key}' must be a non-empty string", line_number, line)
        if key in _BOOL_KEYS and not isinstance(value, bool):
            raise ParseError(f"'{key}' must be a boolean", line_number, line)
        if key in _LIST_KEYS and not (
            isinstance(value, list) and all(isinstance(item, str) for item in value)
        ):
            raise ParseError(f"'{key}' must be a list of strings", line_number, line)

    return table


def parse_annotation(name: str, annotation: str, line_number: int, line: str) -> VersionSpec:
    """
    Turn the text after `//` into a version spec.

    Accepted shapes:
      "1.2.0"                       -> "1.2.0"
      { path = "../x" }             -> {"path": "../x"}
      name = "1.2.0" / name = {...} -> the value, if `name` matches the crate

    Raises:
        ParseError: For anything else, including TOML that doesn't parse.
    """
    text = annotation.strip()
    if not text:
        return None

    value: object
    try:
        value = toml.loads(f"value = {text}")["value"]
    except (ValueError, IndexError):
        try:
            parsed = toml.loads(text)
        except (ValueError, IndexError) as err:
            raise ParseError(f"malformed version annotation ({err})", line_number, line) from err
        if list(parsed) != [name]:
            raise ParseError(
                f"annotation must describe crate '{name}'",
                line_number,
                line,
            )
        value = parsed[name]

    value = _plain(value)
    if isinstance(value, str):
        if not value.strip():
            raise ParseError("empty version string in annotation", line_number, line)
        return value
    if isinstance(value, dict):
        return _validate_table(value, line_number, line)

    raise ParseError(
        f"annotation must be a version string or a table, got {type(value).__name__}",
        line_number,
        line,
    )


def _strip_line(line: str, line_number: int) -> tuple[list[Declaration], str]:
    """Pull every leading declaration off one line. Returns (declarations, new line)."""
    ending = ""
    content = line
    if content.endswith("\r"):
        content, ending = content[:-1], "\r"

    scanner = _LineScanner(content)
    found: list[Declaration] = []

    while True:
        match = _scan_declaration(scanner, allow_hidden=not found)
        if match is None:
            break
        name, macro_use = match

        spec: VersionSpec = None
        tail = scanner.rest.lstrip(" \t")
        if tail.startswith("//"):
            spec = parse_annotation(name, tail[2:], line_number, line)
            scanner.pos = len(content)

        found.append(
            Declaration(
                name=name,
                version_spec=spec,
                raw_text=content,
                line_number=line_number,
                macro_use=macro_use,
            )
        )

    if not found:
        return [], line

    remainder = scanner.rest
    if not remainder.strip():
        return found, ending

    # Keep the remaining code at its original column.
    indent_len = len(content) - len(content.lstrip(" \t"))
    padding = " " * (scanner.pos - indent_len)
    return found, content[:indent_len] + padding + remainder + ending


def strip_declarations(text: str) -> tuple[list[Declaration], str]:
    """
    Extract declarations and blank them out of the text.

    Returns the declarations in source order (duplicates with an identical
    spec collapsed to the first) and the body with the same line count as
    `text`.

    Raises:
        ParseError: A malformed annotation.
        DuplicateDeclarationError: The same crate declared with two different specs.
    """
    declarations: list[Declaration] = []
    seen: dict[str, Declaration] = {}
    body_lines: list[str] = []

    for index, line in enumerate(text.split("\n")):
        line_number = index + 1
        found, new_line = _strip_line(line, line_number)
        body_lines.append(new_line)

        for decl in found:
            previous = seen.get(decl.name)
            if previous is None:
                seen[decl.name] = decl
                declarations.append(decl)
            elif previous.version_spec != decl.version_spec:
                raise DuplicateDeclarationError(decl.name, previous.line_number, line_number, line)
            elif decl.macro_use and not previous.macro_use:
                # Same crate, same version: keep the macro import either way.
                merged = Declaration(
                    name=previous.name,
                    version_spec=previous.version_spec,
                    raw_text=previous.raw_text,
                    line_number=previous.line_number,
                    macro_use=True,
                )
                seen[decl.name] = merged
                declarations[declarations.index(previous)] = merged

    return declarations, "\n".join(body_lines)


def parse_snippet(text: str, *, unhide: bool = False) -> Snippet:
    """
    Parse raw snippet text into a Snippet.

    With `unhide=True` the rustdoc `# ` markers are stripped from the body
    after the declarations are pulled out, which is what you want for code
    copied from documentation.

    Raises:
        ParseError: See strip_declarations.
    """
    declarations, body = strip_declarations(text)
    if unhide:
        body = unhide_doc_lines(body)

    snippet = Snippet(
        raw_text=text,
        declarations=tuple(declarations),
        body=body,
        has_explicit_entry_point=has_entry_point(body),
    )

    logger.debug(
        "Snippet parsed",
        extra={
            "declarations": snippet.dependency_names,
            "lines": text.count("\n") + 1,
            "has_entry_point": snippet.has_explicit_entry_point,
        },
    )
    return snippet
