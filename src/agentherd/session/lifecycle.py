"""Graceful-then-forced termination of session processes."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Awaitable, Callable, Iterable

from agentherd.session.handle import ProcessHandle

logger = logging.getLogger(__name__)

KILL_GRACE_SECONDS = 1.0
FORCE_KILL_SECONDS = 2.0
REAP_TIMEOUT = 2.0


async def terminate(
    handle: ProcessHandle,
    grace: float = KILL_GRACE_SECONDS,
    force_grace: float = FORCE_KILL_SECONDS,
    reap_timeout: float = REAP_TIMEOUT,
) -> None:
    """Stop ``handle``'s process, escalating until it is gone.

    1. Close stdin so the agent can exit on its own.
    2. After ``grace`` seconds, SIGTERM the process group.
    3. After ``force_grace`` more seconds, SIGKILL it.

    Each wait runs to completion; a stage is skipped only when the process
    is already known to be dead when it is reached. Once the agent itself
    is gone, whatever is left of its process group gets SIGTERM and, after
    ``force_grace``, SIGKILL. The handle ends up OFFLINE whichever stage
    finished it.
    """
    handle.close_stdin()

    if not handle.has_exited:
        await asyncio.sleep(grace)
        if not handle.has_exited:
            logger.debug("Session %s ignored EOF, sending SIGTERM", handle.id)
            handle.send_signal(signal.SIGTERM)
            await asyncio.sleep(force_grace)
            if not handle.has_exited:
                logger.debug("Session %s ignored SIGTERM, sending SIGKILL", handle.id)
                handle.send_signal(signal.SIGKILL)

    # Reap so exit bookkeeping (and the on_exit callback) has run.
    if not await handle.wait(timeout=reap_timeout):
        logger.warning("Session %s (pid=%d) was not reaped in time", handle.id, handle.pid)

    await _sweep_group(handle, force_grace)
    handle.mark_offline()


async def _sweep_group(handle: ProcessHandle, force_grace: float) -> None:
    """Stop processes the agent left behind in its group."""
    if not handle.group_alive():
        return
    logger.debug("Session %s left processes behind, sending SIGTERM", handle.id)
    if not handle.send_signal(signal.SIGTERM):
        return
    await asyncio.sleep(force_grace)
    if handle.group_alive():
        logger.debug("Session %s leftovers ignored SIGTERM, sending SIGKILL", handle.id)
        handle.send_signal(signal.SIGKILL)


async def run_all(
    session_ids: Iterable[str], kill: Callable[[str], Awaitable[None]]
) -> int:
    """Run ``kill`` for every id concurrently and wait for all of them.

    Returns how many ids were processed. Failures are logged, not raised,
    so one stuck session cannot keep the others alive.
    """
    ids = list(session_ids)
    if not ids:
        return 0
    results = await asyncio.gather(*(kill(sid) for sid in ids), return_exceptions=True)
    for sid, result in zip(ids, results):
        if isinstance(result, BaseException):
            logger.error("Failed to terminate session %s: %s", sid, result)
    return len(ids)
