"""Detectors that derive structured events from raw agent output."""

from agentherd.detect.prompt import (
    PermissionPrompt,
    PromptOption,
    detect_bypass_warning,
    parse_permission_prompt,
)
from agentherd.detect.text import strip_ansi

__all__ = [
    "PermissionPrompt",
    "PromptOption",
    "detect_bypass_warning",
    "parse_permission_prompt",
    "strip_ansi",
]
