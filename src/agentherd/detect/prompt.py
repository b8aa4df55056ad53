"""Permission prompt detection over raw agent transcripts.

The agent CLI asks for approval with a numbered menu printed into its
scrolling output::

    ⏺ Bash(rm -rf build)
      ...
    Do you want to proceed?
    ❯ 1. Yes
      2. Yes, and don't ask again this session
      3. No, and tell Claude what to do differently
    Esc to cancel

There is no structured channel for this, so detection is a heuristic over a
short lookback window. The window sizes and the two-option threshold are part
of the contract with callers: they decide how far back a prompt may have
scrolled and still count as active. Change the phrasings only together with
the transcript fixtures under ``tests/fixtures``.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any

from agentherd.detect.text import split_lines

# How far back (newest first) to look for the question line.
QUESTION_WINDOW = 30
# Offsets after the question within which the footer/cursor must appear,
# options are collected, and how far back the tool name is searched.
CONFIRM_WINDOW = 15
OPTION_WINDOW = 10
TOOL_WINDOW = 20
CONTEXT_LINES_BEFORE = 10
MIN_OPTIONS = 2

UNKNOWN_TOOL = "Unknown"

KNOWN_TOOLS = (
    "Bash",
    "Read",
    "Write",
    "Edit",
    "MultiEdit",
    "Grep",
    "Glob",
    "Task",
    "WebFetch",
    "WebSearch",
    "NotebookEdit",
)

_QUESTION_RE = re.compile(r"(Do you want|Would you like) to proceed\?", re.IGNORECASE)
_FOOTER_RE = re.compile(r"Esc to cancel|ctrl-g to edit", re.IGNORECASE)
_CANCEL_RE = re.compile(r"Esc to cancel", re.IGNORECASE)
_CURSOR_RE = re.compile(r"^\s*❯")
_OPTION_RE = re.compile(r"^\s*[❯>]?\s*(\d+)\.\s+(.+)$")
_BULLET_TOOL_RE = re.compile(r"[●◐·⏺]\s*(\w+)\s*\(")
# Longest names first so MultiEdit is not read as Edit.
_KEYWORD_TOOL_RE = re.compile(
    r"^\s*("
    + "|".join(sorted(KNOWN_TOOLS, key=len, reverse=True))
    + r")(?:\s*\(|\s+\w)",
    re.IGNORECASE,
)

BYPASS_WARNING_KEYWORD = "WARNING"
BYPASS_MODE_PHRASE = "Bypass Permissions mode"


@dataclass(frozen=True)
class PromptOption:
    number: str
    label: str


@dataclass(frozen=True)
class PermissionPrompt:
    """An interactive choice the agent is currently waiting on."""

    tool: str
    context: str
    options: list[PromptOption] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def option_numbers(self) -> list[str]:
        return [o.number for o in self.options]


def parse_permission_prompt(text: str) -> PermissionPrompt | None:
    """Parse the active permission prompt out of ``text``, if any."""
    return find_permission_prompt(split_lines(text))


def find_permission_prompt(lines: list[str]) -> PermissionPrompt | None:
    """Same as :func:`parse_permission_prompt` over pre-split, ANSI-free lines."""
    question = _find_question(lines)
    if question is None:
        return None

    if not _is_confirmed(lines, question):
        return None

    options, last_option = _collect_options(lines, question)
    if len(options) < MIN_OPTIONS:
        return None

    start = max(0, question - CONTEXT_LINES_BEFORE)
    context = "\n".join(lines[start : last_option + 1]).strip()

    return PermissionPrompt(
        tool=_find_tool(lines, question),
        context=context,
        options=options,
    )


def detect_bypass_warning(text: str) -> bool:
    """True when the bypass-permissions warning banner is in ``text``."""
    return BYPASS_WARNING_KEYWORD in text and BYPASS_MODE_PHRASE in text


def _find_question(lines: list[str]) -> int | None:
    floor = max(0, len(lines) - QUESTION_WINDOW)
    for i in range(len(lines) - 1, floor - 1, -1):
        if _QUESTION_RE.search(lines[i]):
            return i
    return None


def _is_confirmed(lines: list[str], question: int) -> bool:
    """A footer or a selection cursor must follow the question closely.

    Without either, the question is most likely a stale one that has
    already been answered and scrolled up.
    """
    end = min(len(lines), question + CONFIRM_WINDOW)
    for line in lines[question + 1 : end]:
        if _FOOTER_RE.search(line) or _CURSOR_RE.match(line):
            return True
    return False


def _collect_options(
    lines: list[str], question: int
) -> tuple[list[PromptOption], int]:
    options: list[PromptOption] = []
    last = question
    end = min(len(lines), question + OPTION_WINDOW)
    for i in range(question + 1, end):
        line = lines[i]
        if _CANCEL_RE.search(line):
            break
        m = _OPTION_RE.match(line)
        if m:
            options.append(PromptOption(number=m.group(1), label=m.group(2).strip()))
            last = i
    return options, last


def _find_tool(lines: list[str], question: int) -> str:
    floor = max(0, question - TOOL_WINDOW)
    for i in range(question, floor - 1, -1):
        m = _BULLET_TOOL_RE.search(lines[i])
        if m:
            return m.group(1)
        m = _KEYWORD_TOOL_RE.match(lines[i])
        if m:
            return m.group(1)
    return UNKNOWN_TOOL
