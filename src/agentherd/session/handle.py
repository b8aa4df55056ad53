"""Process handle for one supervised agent child process."""

from __future__ import annotations

import asyncio
import codecs
import enum
import logging
import os
import signal
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from agentherd.session.buffer import OutputBuffer
from agentherd.session.errors import OfflineError, SpawnError

logger = logging.getLogger(__name__)

READ_CHUNK = 4096
# How long the exit watcher lets the readers drain before reporting an exit.
DRAIN_TIMEOUT = 0.5


class SessionStatus(enum.Enum):
    """Lifecycle states for a session.

    IDLE and WORKING are set by callers; OFFLINE is set here when the
    process goes away and is terminal.
    """

    IDLE = "idle"
    WORKING = "working"
    OFFLINE = "offline"


OutputCallback = Callable[[str], None]
ExitCallback = Callable[["ProcessHandle", "int | None"], None]
ErrorCallback = Callable[["ProcessHandle", str], None]


@dataclass
class ProcessHandle:
    """A supervised child process with piped stdio.

    Wraps the agent process with:
    - Process group isolation (start_new_session) for tree-wide signals
    - One reader task per output stream feeding a bounded buffer
    - An exit watcher that marks the session offline
    - Output/exit/error callbacks for the owning manager

    stdout and stderr are decoded incrementally, so multi-byte characters
    split across reads survive intact.
    """

    id: str
    command: list[str] = field(default_factory=list)
    cwd: str = field(default_factory=os.getcwd)
    env: dict[str, str] = field(default_factory=dict)
    buffer: OutputBuffer = field(default_factory=OutputBuffer)
    created_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)

    # Set once the process is gone
    exit_code: int | None = field(default=None, init=False)
    exit_signal: str | None = field(default=None, init=False)

    # Internal state
    _proc: asyncio.subprocess.Process | None = field(default=None, init=False, repr=False)
    _pid: int = field(default=0, init=False)
    _status: SessionStatus = field(default=SessionStatus.IDLE, init=False)
    _readers: list[asyncio.Task] = field(default_factory=list, init=False, repr=False)
    _watcher: asyncio.Task | None = field(default=None, init=False, repr=False)
    _on_output: OutputCallback | None = field(default=None, init=False, repr=False)
    _on_exit: ExitCallback | None = field(default=None, init=False, repr=False)
    _on_error: ErrorCallback | None = field(default=None, init=False, repr=False)

    def set_callbacks(
        self,
        on_output: OutputCallback | None = None,
        on_exit: ExitCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Register listeners; must be called before :meth:`start`.

        ``on_output`` gets each decoded chunk as read (not split into
        lines). ``on_exit`` gets ``(handle, exit_code)``, with ``None`` as
        the code when a signal ended the process. ``on_error`` gets stream
        failures that cannot be raised to any caller.
        """
        self._on_output = on_output
        self._on_exit = on_exit
        self._on_error = on_error

    async def start(self) -> None:
        """Spawn the process in its own process group."""
        if not self.command:
            raise SpawnError("No command given", self.id)

        env = {**os.environ, **self.env}
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            raise SpawnError(
                f"Failed to spawn {self.command[0]}: {e}", self.id
            ) from e

        if not self._proc.pid:
            raise SpawnError(f"Failed to spawn {self.command[0]}: no pid", self.id)

        self._pid = self._proc.pid
        self._status = SessionStatus.IDLE
        self.last_activity = time.monotonic()

        self.buffer.attach_loop(asyncio.get_running_loop())

        assert self._proc.stdout is not None and self._proc.stderr is not None
        self._readers = [
            asyncio.create_task(self._read_loop(self._proc.stdout, "stdout")),
            asyncio.create_task(self._read_loop(self._proc.stderr, "stderr")),
        ]
        self._watcher = asyncio.create_task(self._watch_exit())

        logger.debug(
            "Session %s spawned: pid=%d cmd=%s", self.id, self._pid, " ".join(self.command)
        )

    async def _read_loop(self, stream: asyncio.StreamReader, name: str) -> None:
        """Forward one output stream into the buffer until EOF."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await stream.read(READ_CHUNK)
                if not data:
                    break
                self._handle_output(decoder.decode(data))
            self._handle_output(decoder.decode(b"", final=True))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._report_error(f"{name} error: {e}")

    def _handle_output(self, text: str) -> None:
        if not text:
            return
        self.buffer.append_text(text)
        self.last_activity = time.monotonic()
        if self._on_output:
            try:
                self._on_output(text)
            except Exception:
                logger.exception("Error in on_output callback for session %s", self.id)

    async def _watch_exit(self) -> None:
        assert self._proc is not None
        try:
            returncode = await self._proc.wait()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._report_error(f"wait failed: {e}")
            return
        self._mark_exited(returncode)
        # Let the readers flush what the process wrote before it died.
        # Grandchildren that inherited the pipes can hold them open longer.
        if self._readers:
            await asyncio.wait(self._readers, timeout=DRAIN_TIMEOUT)
        if self._on_exit:
            try:
                self._on_exit(self, self.exit_code)
            except Exception:
                logger.exception("Error in on_exit callback for session %s", self.id)

    def _mark_exited(self, returncode: int) -> None:
        if self.exit_code is not None or self.exit_signal is not None:
            return
        if returncode < 0:
            try:
                self.exit_signal = signal.Signals(-returncode).name
            except ValueError:
                self.exit_signal = str(-returncode)
        else:
            self.exit_code = returncode
        self._status = SessionStatus.OFFLINE
        logger.debug(
            "Session %s exited (code=%s signal=%s)", self.id, self.exit_code, self.exit_signal
        )

    def _report_error(self, message: str) -> None:
        self._status = SessionStatus.OFFLINE
        if self._on_error:
            try:
                self._on_error(self, message)
            except Exception:
                logger.exception("Error in on_error callback for session %s", self.id)

    def write(self, data: str) -> None:
        """Write ``data`` to the process's stdin without waiting.

        Raises OfflineError once the process has exited, the session is
        offline, or stdin is gone. Pipe errors surface asynchronously and
        close the transport, so they show up here on the next write.
        """
        stdin = self._proc.stdin if self._proc is not None else None
        if (
            self._status is SessionStatus.OFFLINE
            or self.has_exited
            or stdin is None
            or stdin.is_closing()
        ):
            raise OfflineError(self.id)
        stdin.write(data.encode("utf-8"))
        self.last_activity = time.monotonic()

    def close_stdin(self) -> None:
        """Close stdin so a cooperative child sees end of input."""
        if self._proc is None or self._proc.stdin is None:
            return
        if not self._proc.stdin.is_closing():
            self._proc.stdin.close()

    def send_signal(self, sig: signal.Signals) -> bool:
        """Signal the whole process group.

        The group outlives its leader while any member is still running,
        so this still delivers after the agent itself has exited. Returns
        False once nothing is left to signal.
        """
        if self._proc is None or not self._pid:
            return False
        try:
            if hasattr(os, "killpg"):
                # start_new_session makes the child its own group leader
                os.killpg(self._pid, sig)
            elif self.has_exited:
                return False
            else:
                self._proc.send_signal(sig)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pid)
            return False
        logger.debug("Sent %s to session %s (pid=%d)", sig.name, self.id, self._pid)
        return True

    def group_alive(self) -> bool:
        """Whether any process in the session's group is still around."""
        if not self._pid or not hasattr(os, "killpg"):
            return not self.has_exited
        try:
            os.killpg(self._pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait until the exit has been recorded.

        Returns False if ``timeout`` elapsed first.
        """
        if self._watcher is None:
            return True
        done, _ = await asyncio.wait({self._watcher}, timeout=timeout)
        return bool(done)

    def poll(self) -> bool:
        """Re-check the process and return whether it is still alive."""
        if self._status is SessionStatus.OFFLINE:
            return False
        if self._proc is None:
            return False
        returncode = self._proc.returncode
        if returncode is not None:
            self._mark_exited(returncode)
            return False
        return True

    def set_status(self, status: SessionStatus) -> bool:
        """Apply a caller-driven status change.

        OFFLINE is terminal; returns False when the change was refused.
        """
        self.last_activity = time.monotonic()
        if self._status is SessionStatus.OFFLINE and status is not SessionStatus.OFFLINE:
            return False
        self._status = status
        return True

    def mark_offline(self) -> None:
        self._status = SessionStatus.OFFLINE

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def has_exited(self) -> bool:
        return self._proc is None or self._proc.returncode is not None

    @property
    def alive(self) -> bool:
        return self._status is not SessionStatus.OFFLINE and not self.has_exited

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready summary for listings."""
        return {
            "id": self.id,
            "pid": self._pid,
            "cwd": self.cwd,
            "command": " ".join(self.command),
            "status": self._status.value,
            "alive": self.alive,
            "lines": self.buffer.line_count,
            "uptime": round(time.monotonic() - self.created_at, 3),
            "idle_for": round(time.monotonic() - self.last_activity, 3),
            "exit_code": self.exit_code,
            "exit_signal": self.exit_signal,
        }
