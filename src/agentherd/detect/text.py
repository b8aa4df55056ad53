"""Terminal text helpers shared by the detectors."""

from __future__ import annotations

import re

# CSI sequences (colors, cursor moves, private modes like ?25l), OSC strings
# terminated by BEL or ST, and the remaining two-byte escapes.
_ANSI_RE = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|\x1b[@-Z\\-_]"
)

_LINE_SPLIT = re.compile(r"\r?\n")


def strip_ansi(text: str) -> str:
    """Strip ANSI escape sequences from text."""
    return _ANSI_RE.sub("", text)


def split_lines(text: str) -> list[str]:
    """Split on CRLF or LF after stripping escape sequences."""
    return _LINE_SPLIT.split(strip_ansi(text))
