"""Agent session supervision.

Each session is one agent CLI child process with piped stdio, a bounded
output buffer, and a caller-driven status. The manager owns all sessions
and tears them down with a graceful-then-forced escalation.
"""

from agentherd.session.buffer import OutputBuffer
from agentherd.session.errors import (
    DuplicateSessionError,
    NotFoundError,
    OfflineError,
    SessionError,
    SpawnError,
    UnknownControlError,
)
from agentherd.session.handle import ProcessHandle, SessionStatus
from agentherd.session.manager import SessionManager
from agentherd.session.wire import EventType, Wire, WireEvent

__all__ = [
    "DuplicateSessionError",
    "EventType",
    "NotFoundError",
    "OfflineError",
    "OutputBuffer",
    "ProcessHandle",
    "SessionError",
    "SessionManager",
    "SessionStatus",
    "SpawnError",
    "UnknownControlError",
    "Wire",
    "WireEvent",
]
