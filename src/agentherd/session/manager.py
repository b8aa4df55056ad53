"""Session manager: owns every supervised agent process."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from agentherd.config import SessionConfig
from agentherd.detect.prompt import (
    PermissionPrompt,
    detect_bypass_warning,
    parse_permission_prompt,
)
from agentherd.session import lifecycle
from agentherd.session.buffer import OutputBuffer
from agentherd.session.errors import (
    DuplicateSessionError,
    NotFoundError,
    SpawnError,
    UnknownControlError,
)
from agentherd.session.handle import ProcessHandle, SessionStatus
from agentherd.session.log import LogSink, SessionLog, file_sink
from agentherd.session.wire import Wire

CONTROL_CHARS: dict[str, str] = {
    "interrupt": "\x03",  # Ctrl+C
    "end-of-input": "\x04",  # Ctrl+D
    "suspend": "\x1a",  # Ctrl+Z
}


def resolve_control(symbol: str) -> str:
    """Map a control symbol to its byte.

    Raises UnknownControlError for anything else.
    """
    try:
        return CONTROL_CHARS[symbol]
    except KeyError:
        raise UnknownControlError(symbol) from None


class SessionManager:
    """Manages the lifecycle of agent sessions.

    Everything that touches a session goes through here. The manager
    ensures:
    - Exactly one process per session id
    - Sessions can be looked up, listed and written to by id
    - Sessions leave the registry only after their process is gone
    - All sessions are torn down by shutdown() (no orphan processes)
    - Lifecycle events reach the log sink and the Wire (if attached)

    Create one per host process and call ``shutdown()`` before exiting.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        wire: Wire | None = None,
        log_sink: LogSink | None = None,
    ) -> None:
        self.config = config or SessionConfig()
        if log_sink is None and self.config.log_file:
            log_sink = file_sink(self.config.log_file)
        self._log = SessionLog(log_sink)
        self._wire = wire
        self._sessions: dict[str, ProcessHandle] = {}
        # Serializes inserts and deletes; lookups don't take it.
        self._lock = asyncio.Lock()

    async def create(
        self,
        session_id: str,
        cwd: str,
        args: list[str] | None = None,
        on_output: Callable[[str], None] | None = None,
        on_exit: Callable[[int | None], None] | None = None,
    ) -> ProcessHandle:
        """Spawn an agent process and register it under ``session_id``.

        Args:
            session_id: Caller-chosen unique id.
            cwd: Working directory for the agent.
            args: Agent arguments; the configured defaults when empty.
            on_output: Called with every decoded output chunk.
            on_exit: Called with the exit code (None if killed by signal).

        Raises:
            DuplicateSessionError: ``session_id`` is already registered.
            SpawnError: The process could not be started.
        """
        async with self._lock:
            if session_id in self._sessions:
                raise DuplicateSessionError(session_id)

            self._log.log(f"Creating session {session_id} in {cwd}")

            command = [self.config.command, *(args or self.config.default_args)]
            handle = ProcessHandle(
                id=session_id,
                command=command,
                cwd=cwd,
                env=dict(self.config.env),
                buffer=OutputBuffer(self.config.max_output_lines),
            )
            handle.set_callbacks(
                on_output=self._output_listener(session_id, on_output),
                on_exit=self._exit_listener(on_exit),
                on_error=self._on_error,
            )

            try:
                await handle.start()
            except SpawnError as e:
                self._log.error(f"Session {session_id} failed to start: {e}")
                if self._wire:
                    self._wire.send_error(session_id, str(e))
                raise

            self._sessions[session_id] = handle

        self._log.log(f"Session {session_id} started (PID: {handle.pid})")
        if self._wire:
            self._wire.send_created(session_id, handle.pid, cwd)
        return handle

    def _output_listener(
        self, session_id: str, on_output: Callable[[str], None] | None
    ) -> Callable[[str], None]:
        wire = self._wire

        def _listener(text: str) -> None:
            if wire:
                wire.send_output(session_id, text)
            if on_output:
                on_output(text)

        return _listener

    def _exit_listener(
        self, on_exit: Callable[[int | None], None] | None
    ) -> Callable[[ProcessHandle, int | None], None]:
        def _listener(handle: ProcessHandle, exit_code: int | None) -> None:
            how = f"code {exit_code}" if handle.exit_signal is None else handle.exit_signal
            self._log.log(f"Session {handle.id} exited with {how}")
            if self._wire:
                tail = handle.buffer.tail_text(3)
                self._wire.send_exit(handle.id, exit_code, handle.exit_signal, tail)
            if on_exit:
                on_exit(exit_code)

        return _listener

    def _on_error(self, handle: ProcessHandle, message: str) -> None:
        self._log.error(f"Session {handle.id} error: {message}")
        if self._wire:
            self._wire.send_error(handle.id, message)

    def _require(self, session_id: str) -> ProcessHandle:
        handle = self._sessions.get(session_id)
        if handle is None:
            raise NotFoundError(session_id)
        return handle

    def send_text(self, session_id: str, text: str) -> None:
        """Type ``text`` followed by a newline into the session.

        Raises:
            NotFoundError: Unknown session.
            OfflineError: The process is gone or its stdin is closed.
        """
        handle = self._require(session_id)
        handle.write(text + "\n")
        self._log.log(f"Sending text to session {session_id}: {text[:50]}...")

    def send_control(self, session_id: str, symbol: str) -> None:
        """Send a control byte: ``interrupt``, ``end-of-input`` or ``suspend``.

        Raises:
            NotFoundError: Unknown session.
            UnknownControlError: ``symbol`` is not one of the three.
            OfflineError: The process is gone or its stdin is closed.
        """
        handle = self._require(session_id)
        try:
            char = resolve_control(symbol)
        except UnknownControlError as e:
            e.session_id = session_id
            raise
        handle.write(char)
        self._log.log(f"Sending {symbol} to session {session_id}")

    def get_output(self, session_id: str, lines: int = 50) -> str:
        """Return the last ``lines`` buffered lines, concatenated."""
        return self._require(session_id).buffer.tail_text(lines)

    def get_all_output(self, session_id: str) -> str:
        return self._require(session_id).buffer.text()

    def detect_permission_prompt(self, session_id: str) -> PermissionPrompt | None:
        """Parse the permission prompt currently shown by the session, if any."""
        output = self.get_output(session_id, self.config.detect_window_lines)
        return parse_permission_prompt(output)

    def detect_bypass_warning(self, session_id: str) -> bool:
        output = self.get_output(session_id, self.config.detect_window_lines)
        return detect_bypass_warning(output)

    async def kill(self, session_id: str) -> None:
        """Terminate a session and remove it from tracking.

        Unknown ids are ignored.
        """
        handle = self._sessions.get(session_id)
        if handle is None:
            return

        self._log.log(f"Killing session {session_id} (PID: {handle.pid})")
        await lifecycle.terminate(
            handle,
            grace=self.config.kill_grace_seconds,
            force_grace=self.config.force_kill_seconds,
        )

        async with self._lock:
            if self._sessions.get(session_id) is handle:
                del self._sessions[session_id]

        self._log.log(f"Session {session_id} killed")
        if self._wire:
            self._wire.send_killed(session_id)

    def list(self) -> list[ProcessHandle]:
        return list(self._sessions.values())

    def list_sessions(self) -> list[dict[str, Any]]:
        """List all sessions as JSON-ready dicts."""
        return [h.to_dict() for h in self._sessions.values()]

    def get(self, session_id: str) -> ProcessHandle | None:
        """Get a session by id, or None."""
        return self._sessions.get(session_id)

    def is_alive(self, session_id: str) -> bool:
        handle = self._sessions.get(session_id)
        if handle is None:
            return False
        return handle.poll()

    def update_status(self, session_id: str, status: SessionStatus | str) -> None:
        """Set a caller-driven status; unknown ids are ignored.

        An offline session stays offline.
        """
        handle = self._sessions.get(session_id)
        if handle is None:
            return
        status = SessionStatus(status)
        if not handle.set_status(status):
            self._log.log(
                f"Ignoring status {status.value} for offline session {session_id}"
            )
            return
        if self._wire:
            self._wire.send_status(session_id, status.value)

    async def shutdown(self) -> int:
        """Kill every session concurrently. Call before the host exits.

        Returns the number of sessions that were terminated.
        """
        self._log.log("Shutting down all sessions...")
        count = await lifecycle.run_all(list(self._sessions), self.kill)
        self._log.log("All sessions terminated")
        return count

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
