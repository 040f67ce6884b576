# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Data models for snippets.

Frozen dataclasses, same as everything else that flows through the pipeline:
once the parser hands a snippet over, nothing downstream gets to change it.
"""

from dataclasses import dataclass
from typing import Union

# None means "no annotation", a str is a plain version requirement and a
# dict is a Cargo dependency table such as {"path": "../foo"}.
VersionSpec = Union[None, str, dict[str, object]]


@dataclass(frozen=True)
class Declaration:
    """One `extern crate` line the user wrote."""

    name: str
    version_spec: VersionSpec
    raw_text: str
    line_number: int
    macro_use: bool = False

    @property
    def item_text(self) -> str:
        """The declaration as a canonical Rust item, annotation dropped."""
        item = f"extern crate {self.name};"
        if self.macro_use:
            return f"#[macro_use] {item}"
        return item


@dataclass(frozen=True)
class Snippet:
    """
    A parsed snippet.

    `body` has the same number of lines as `raw_text`; declaration text is
    blanked out in place so toolchain line numbers still point at the right
    spot in the user's input.
    """

    raw_text: str
    declarations: tuple[Declaration, ...]
    body: str
    has_explicit_entry_point: bool

    @property
    def dependency_names(self) -> list[str]:
        return [decl.name for decl in self.declarations]
