"""Wire protocol: decouples session supervision from its consumers.

Session events flow from the manager to subscribers (the HTTP/WebSocket
layer, the CLI). Subscribers get their own queue; the manager never waits
on them.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    SESSION_CREATED = "session_created"
    OUTPUT = "output"
    STATUS = "status"
    SESSION_EXIT = "session_exit"
    SESSION_KILLED = "session_killed"
    ERROR = "error"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Async message bus: session manager -> subscribers.

    Single-producer, multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def send_created(self, session_id: str, pid: int, cwd: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SESSION_CREATED,
                session_id=session_id,
                data={"pid": pid, "cwd": cwd},
            )
        )

    def send_output(self, session_id: str, text: str) -> None:
        self.send(
            WireEvent(type=EventType.OUTPUT, session_id=session_id, data={"text": text})
        )

    def send_status(self, session_id: str, status: str) -> None:
        self.send(
            WireEvent(
                type=EventType.STATUS, session_id=session_id, data={"status": status}
            )
        )

    def send_exit(
        self,
        session_id: str,
        exit_code: int | None,
        signal_name: str | None = None,
        last_output: str = "",
    ) -> None:
        """Notify subscribers that a session's process exited."""
        self.send(
            WireEvent(
                type=EventType.SESSION_EXIT,
                session_id=session_id,
                data={
                    "exit_code": exit_code,
                    "signal": signal_name,
                    "last_output": last_output[-500:],
                },
            )
        )

    def send_killed(self, session_id: str) -> None:
        self.send(WireEvent(type=EventType.SESSION_KILLED, session_id=session_id))

    def send_error(self, session_id: str, error: str) -> None:
        self.send(
            WireEvent(type=EventType.ERROR, session_id=session_id, data={"error": error})
        )

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        if self._closed:
            return
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
