"""Error taxonomy for session operations.

Every failure the caller-facing API can raise derives from
:class:`SessionError`, so the HTTP layer can catch one type and map the
subclass to a status code.
"""

from __future__ import annotations


class SessionError(Exception):
    """Base class for all session errors."""

    def __init__(self, message: str, session_id: str | None = None) -> None:
        super().__init__(message)
        self.session_id = session_id


class DuplicateSessionError(SessionError):
    """A session with the requested id is already registered."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} already exists", session_id)


class SpawnError(SessionError):
    """The child process could not be created."""


class NotFoundError(SessionError):
    """No session is registered under the given id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found", session_id)


class OfflineError(SessionError):
    """The session's process has exited or its stdin is gone."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} is not running", session_id)


class UnknownControlError(SessionError):
    """``send_control`` was given a symbol outside the supported set."""

    def __init__(self, symbol: str, session_id: str | None = None) -> None:
        super().__init__(f"Unknown control character: {symbol}", session_id)
        self.symbol = symbol
