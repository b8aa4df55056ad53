"""Lifecycle log lines for session events.

Every significant event (create, send, kill, error) becomes one timestamped
line. The line always goes through :mod:`logging`; an optional sink (usually
a file appender) receives it too. Sink failures are ignored so that logging
can never break a session.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

logger = logging.getLogger("agentherd.session")

LogSink = Callable[[str], None]


def file_sink(path: str | os.PathLike[str]) -> LogSink:
    """Build a sink that appends each line to ``path``.

    Parent directories are created up front.
    """
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)

    def _append(line: str) -> None:
        with open(target, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    return _append


class SessionLog:
    """Formats lifecycle messages and fans them out to logging + sink."""

    def __init__(self, sink: LogSink | None = None, source: str = "SessionManager") -> None:
        self._sink = sink
        self._source = source

    def format(self, message: str) -> str:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        return f"[{timestamp}] [{self._source}] {message}"

    def log(self, message: str, level: int = logging.INFO) -> None:
        line = self.format(message)
        logger.log(level, "%s", line)
        if self._sink is None:
            return
        try:
            self._sink(line)
        except Exception:
            pass

    def error(self, message: str) -> None:
        self.log(message, level=logging.ERROR)
