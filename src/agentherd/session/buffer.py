"""Bounded output buffer for agent sessions."""

from __future__ import annotations

import asyncio
import os
import re
import threading
from collections import deque

MAX_OUTPUT_LINES = 200

_LINE_SPLIT = re.compile(r"\r?\n")


class OutputBuffer:
    """Thread-safe ring buffer of output lines.

    Keeps at most ``max_lines`` entries; the oldest are evicted first.
    Each complete line is stored with ``os.linesep`` re-attached, so
    concatenating the entries reproduces the stream (modulo terminator
    normalization and eviction). A chunk that does not end in a newline
    leaves its tail as a separate partial entry.

    An ``asyncio.Event`` is set whenever new data arrives, allowing
    consumers to ``await`` instead of polling.  Call ``attach_loop()``
    once from the asyncio thread to enable this.
    """

    def __init__(self, max_lines: int = MAX_OUTPUT_LINES) -> None:
        if max_lines < 1:
            raise ValueError("max_lines must be positive")
        self._lines: deque[str] = deque(maxlen=max_lines)
        self._max_lines = max_lines
        self._total_lines: int = 0  # Total entries ever added
        self._lock = threading.Lock()
        self._data_event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Attach an asyncio event loop so appends can signal waiters.

        Must be called from the asyncio thread (or pass an explicit loop).
        """
        self._loop = loop or asyncio.get_running_loop()
        self._data_event = asyncio.Event()

    def append(self, line: str) -> None:
        """Append a single pre-framed entry."""
        with self._lock:
            self._lines.append(line)
            self._total_lines += 1
        self._notify()

    def append_text(self, text: str) -> int:
        """Split ``text`` into lines and append them.

        Returns the number of entries added.
        """
        pieces = _LINE_SPLIT.split(text)
        last = len(pieces) - 1
        entries = [p + os.linesep for p in pieces[:last]]
        if pieces[last]:
            entries.append(pieces[last])
        if not entries:
            return 0
        with self._lock:
            self._lines.extend(entries)
            self._total_lines += len(entries)
        self._notify()
        return len(entries)

    def _notify(self) -> None:
        if self._data_event is None or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._data_event.set)
        except RuntimeError:
            # Loop already closed; nobody is waiting any more.
            self._data_event = None

    async def wait_for_data(self, timeout: float | None = None) -> bool:
        """Wait until new data is appended (or timeout).

        Returns True if data arrived, False on timeout.
        Resets the event so the next call blocks again.
        """
        if self._data_event is None:
            await asyncio.sleep(0.05)
            return True
        try:
            await asyncio.wait_for(self._data_event.wait(), timeout=timeout)
            self._data_event.clear()
            return True
        except asyncio.TimeoutError:
            return False

    async def wait_for(self, pattern: str, timeout: float = 10.0) -> bool:
        """Wait until the buffered text matches ``pattern``.

        Returns False if the deadline passes first.
        """
        compiled = re.compile(pattern)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if compiled.search(self.text()):
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await self.wait_for_data(timeout=min(remaining, 0.5))

    def read_all(self) -> list[str]:
        """Return a snapshot of every buffered entry."""
        with self._lock:
            return list(self._lines)

    def read_tail(self, n: int = 50) -> list[str]:
        """Return the last ``n`` entries."""
        if n <= 0:
            return []
        with self._lock:
            lines = list(self._lines)
        return lines[-n:] if len(lines) > n else lines

    def tail_text(self, n: int = 50) -> str:
        return "".join(self.read_tail(n))

    def text(self) -> str:
        with self._lock:
            return "".join(self._lines)

    @property
    def max_lines(self) -> int:
        return self._max_lines

    @property
    def line_count(self) -> int:
        """Current number of entries in the buffer."""
        with self._lock:
            return len(self._lines)

    @property
    def total_lines(self) -> int:
        """Total number of entries ever added."""
        with self._lock:
            return self._total_lines

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()
            self._total_lines = 0
