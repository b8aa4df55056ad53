"""Shared fixtures: stand-in agent scripts and a fast-teardown manager."""

from __future__ import annotations

import sys

import pytest
import pytest_asyncio

from agentherd.config import SessionConfig
from agentherd.session.manager import SessionManager

# Echoes each stdin line; exits cleanly on EOF.
ECHO_AGENT = """
import sys
print("ready", flush=True)
for line in sys.stdin:
    print("got: " + line.rstrip("\\n"), flush=True)
"""

# Prints the repr of every raw stdin byte.
BYTES_AGENT = """
import sys
print("ready", flush=True)
while True:
    b = sys.stdin.buffer.read(1)
    if not b:
        break
    print(repr(b), flush=True)
"""

# Ignores EOF; dies on SIGTERM.
SLEEPY_AGENT = """
import time
print("ready", flush=True)
while True:
    time.sleep(0.05)
"""

# Ignores EOF and SIGTERM; only SIGKILL works.
STUBBORN_AGENT = """
import signal, time
signal.signal(signal.SIGTERM, signal.SIG_IGN)
print("ready", flush=True)
while True:
    time.sleep(0.05)
"""

PROMPT_AGENT = """
import sys
for line in ["Bash(ls -la)", "", "Do you want to proceed?", "\\u276f 1. Yes", "  2. No", "Esc to cancel"]:
    print(line, flush=True)
sys.stdin.read()
"""

BYPASS_AGENT = """
import sys
print("WARNING: Claude Code running in Bypass Permissions mode", flush=True)
sys.stdin.read()
"""


def python_args(script: str) -> list[str]:
    return ["-c", script]


@pytest.fixture
def session_config() -> SessionConfig:
    config = SessionConfig(
        command=sys.executable,
        default_args=python_args(ECHO_AGENT),
        kill_grace_seconds=0.2,
        force_kill_seconds=0.3,
    )
    config.env["PYTHONIOENCODING"] = "utf-8"
    return config


@pytest_asyncio.fixture
async def manager(session_config: SessionConfig):
    mgr = SessionManager(session_config)
    yield mgr
    await mgr.shutdown()
