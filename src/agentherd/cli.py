"""CLI entry point for agentherd."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from agentherd.config import AgentherdConfig, SessionConfig
from agentherd.detect.prompt import (
    PermissionPrompt,
    detect_bypass_warning,
    parse_permission_prompt,
)
from agentherd.session.buffer import OutputBuffer
from agentherd.session.errors import OfflineError, SessionError
from agentherd.session.manager import SessionManager
from agentherd.session.wire import EventType, Wire

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="agentherd",
    help="Supervise interactive agent CLI sessions and surface their prompts.",
    no_args_is_help=True,
)

# Lines typed on our stdin that are sent as control bytes instead of text
_INPUT_CONTROLS = {
    "/interrupt": "interrupt",
    "/eof": "end-of-input",
    "/suspend": "suspend",
}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _render_prompt(prompt: PermissionPrompt) -> Panel:
    body = Text()
    body.append(prompt.context + "\n\n")
    for option in prompt.options:
        body.append(f"  {option.number}. ", style="bold cyan")
        body.append(option.label + "\n")
    return Panel(body, title=f"Permission requested: {prompt.tool}", border_style="yellow")


async def _forward_stdin(manager: SessionManager, session_id: str) -> None:
    """Type each line from our stdin into the session."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    try:
        await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
        )
    except (ValueError, OSError) as e:
        logger.warning("Not forwarding stdin: %s", e)
        return

    while True:
        raw = await reader.readline()
        if not raw:
            return
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        try:
            symbol = _INPUT_CONTROLS.get(line)
            if symbol:
                manager.send_control(session_id, symbol)
            else:
                manager.send_text(session_id, line)
        except OfflineError:
            return


async def _run_session(
    session_id: str,
    cwd: str,
    args: list[str],
    config: SessionConfig,
    console: Console,
    forward_input: bool = True,
) -> int:
    """Run one session until its process exits; returns its exit code."""
    wire = Wire()
    manager = SessionManager(config, wire=wire)
    queue = wire.subscribe()

    try:
        await manager.create(session_id, cwd, args or None)
    except SessionError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1

    input_task = (
        asyncio.create_task(_forward_stdin(manager, session_id)) if forward_input else None
    )
    shown: PermissionPrompt | None = None
    bypass_reported = False
    exit_code: int | None = None

    try:
        while True:
            event = await queue.get()
            if event is None:
                break

            if event.type == EventType.OUTPUT:
                sys.stdout.write(event.data.get("text", ""))
                sys.stdout.flush()

                prompt = manager.detect_permission_prompt(session_id)
                if prompt is not None and prompt != shown:
                    console.print(_render_prompt(prompt))
                shown = prompt

                if not bypass_reported and manager.detect_bypass_warning(session_id):
                    console.print("[bold red]Agent is running in Bypass Permissions mode[/bold red]")
                    bypass_reported = True

            elif event.type == EventType.ERROR:
                console.print(f"[red]Session error:[/red] {event.data.get('error', '')}")

            elif event.type == EventType.SESSION_EXIT:
                exit_code = event.data.get("exit_code")
                signal_name = event.data.get("signal")
                if signal_name:
                    console.print(f"[dim]Session ended by {signal_name}[/dim]")
                break
    finally:
        if input_task is not None:
            input_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await input_task
        await manager.shutdown()
        wire.close()

    return exit_code if exit_code is not None else 1


@app.command()
def run(
    args: list[str] | None = typer.Argument(
        None, help="Arguments for the agent (put them after --)."
    ),
    cwd: str = typer.Option(".", "--cwd", "-C", help="Working directory for the agent."),
    session_id: str = typer.Option("cli", "--id", help="Session id."),
    no_input: bool = typer.Option(
        False, "--no-input", help="Do not forward stdin to the agent."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run an agent session, stream its output and flag permission prompts.

    Type a line to send it to the agent; /interrupt, /eof and /suspend send
    the matching control character.
    """
    setup_logging(verbose)

    work_dir = os.path.abspath(cwd)
    if not os.path.isdir(work_dir):
        typer.echo(f"Error: Directory not found: {work_dir}", err=True)
        raise typer.Exit(2)

    config = AgentherdConfig.load(config_file)
    console = Console()

    exit_code = asyncio.run(
        _run_session(
            session_id,
            work_dir,
            list(args or []),
            config.session,
            console,
            forward_input=not no_input,
        )
    )
    raise typer.Exit(exit_code)


@app.command()
def detect(
    transcript: str = typer.Argument(help="Path to a captured agent transcript."),
    lines: int = typer.Option(
        50, "--lines", "-n", help="How many trailing lines to scan."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
) -> None:
    """Detect a permission prompt in a transcript. Exits 1 if there is none."""
    path = Path(transcript)
    if not path.is_file():
        typer.echo(f"Error: File not found: {transcript}", err=True)
        raise typer.Exit(2)

    buffer = OutputBuffer()
    buffer.append_text(path.read_text(encoding="utf-8", errors="replace"))
    window = buffer.tail_text(lines)

    prompt = parse_permission_prompt(window)
    bypass = detect_bypass_warning(window)

    if as_json:
        typer.echo(
            json.dumps(
                {
                    "prompt": prompt.to_dict() if prompt else None,
                    "bypass_warning": bypass,
                },
                ensure_ascii=False,
                indent=2,
            )
        )
    else:
        console = Console()
        if prompt:
            console.print(_render_prompt(prompt))
        else:
            console.print("No permission prompt detected.")
        if bypass:
            console.print("[bold red]Bypass Permissions warning present[/bold red]")

    raise typer.Exit(0 if prompt else 1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
