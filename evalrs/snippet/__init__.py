# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Snippet handling: everything that looks at the user's text.

Subsystems:
  - parser: pulls `extern crate` declarations (and their version
    annotations) out of the snippet
  - wrapper: decides whether the body needs a synthesized `fn main`
  - models: the immutable records passed between the two
"""
