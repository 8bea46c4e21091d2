"""CLI entry point for proterm."""

from __future__ import annotations

import asyncio
import getpass
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.table import Table

from proterm import __version__
from proterm.config import ProtermConfig
from proterm.session.wire import EventType, Wire
from proterm.terminal.render import to_rich_text

if TYPE_CHECKING:
    from proterm.pty.process import RemoteShell
    from proterm.session.session import TerminalSession
    from proterm.session.wire import WireEvent
    from proterm.terminal.escape import StyledSpan

app = typer.Typer(
    name="proterm",
    help="A terminal shell that runs every command on a managed pseudo-terminal.",
    no_args_is_help=True,
)

console = Console(highlight=False, soft_wrap=True)

_ALL_SOURCES = frozenset({"echo", "process", "prompt", "system"})
_INTERACTIVE_SOURCES = frozenset({"process", "prompt", "system"})


def setup_logging(verbose: bool = False) -> None:
    # Session chatter would interleave with command output, so INFO stays off
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(
    config_file: str | None, shell_path: str | None = None
) -> ProtermConfig:
    config = ProtermConfig.load(config_file)
    if shell_path:
        config.shell.path = shell_path
    return config


def _print_spans(spans: list[StyledSpan]) -> None:
    if spans:
        console.print(to_rich_text(spans), end="")


def _render(event: WireEvent, session_id: str, sources: frozenset[str]) -> None:
    if event.type is not EventType.OUTPUT or event.data.get("session_id") != session_id:
        return
    if event.data.get("source") in sources:
        _print_spans(event.data["spans"])


def _flush(
    queue: asyncio.Queue[WireEvent | None], session_id: str, sources: frozenset[str]
) -> None:
    """Render whatever is already queued without waiting."""
    while not queue.empty():
        event = queue.get_nowait()
        if event is not None:
            _render(event, session_id, sources)


async def _follow(
    session: TerminalSession,
    queue: asyncio.Queue[WireEvent | None],
    sources: frozenset[str],
) -> None:
    """Render a running command until its session is idle again.

    Credential prompts are answered with hidden input.
    """
    loop = asyncio.get_running_loop()
    while True:
        event = await queue.get()
        if event is None:
            return
        if event.data.get("session_id") != session.id:
            continue
        if event.type is EventType.OUTPUT:
            _render(event, session.id, sources)
        elif event.type is EventType.STATE_CHANGED:
            state = event.data["state"]
            if state == "awaiting_secret":
                secret = await loop.run_in_executor(None, getpass.getpass, "")
                session.send_secret(secret)
            elif state == "idle":
                _flush(queue, session.id, sources)
                return


@app.command()
def shell(
    cwd: str | None = typer.Option(
        None, "--cwd", "-C", help="Starting directory (default: home)."
    ),
    shell_path: str | None = typer.Option(
        None, "--shell", "-s", help="Shell executable to run commands with."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Start an interactive session (type `exit` to leave)."""
    setup_logging(verbose)
    config = _load_config(config_file, shell_path)
    if cwd and not Path(cwd).is_dir():
        typer.echo(f"Error: Directory not found: {cwd}", err=True)
        raise typer.Exit(1)

    console.print(f"[bold]proterm v{__version__}[/bold] ({config.shell.executable})")
    asyncio.run(_run_shell(config, cwd))


async def _run_shell(config: ProtermConfig, cwd: str | None) -> None:
    from proterm.session.manager import SessionManager
    from proterm.session.persistence import SessionStore

    wire = Wire()
    queue = wire.subscribe()
    manager = SessionManager(config, wire=wire, store=SessionStore(config.state_path))
    # Pick up where the last run left off; the first session is the active one
    session_id = (await manager.restore(cwd=cwd))[0]
    session = manager.get(session_id)
    _print_spans(session.scrollback.spans())
    _flush(queue, session_id, frozenset())

    loop = asyncio.get_running_loop()
    try:
        while True:
            try:
                line = await loop.run_in_executor(None, input)
            except EOFError:
                console.print()
                break

            stripped = line.strip()
            if stripped in ("exit", "quit", "logout"):
                break
            if stripped == "clear":
                console.clear()
                session.clear()
                _flush(queue, session_id, _ALL_SOURCES)
                continue

            if not manager.submit(session_id, line):
                console.print(session.prompt, end="", markup=False)
                continue
            if session.state == "idle":
                # Handled synchronously (cd)
                _flush(queue, session_id, _INTERACTIVE_SOURCES)
                continue
            await _follow(session, queue, _INTERACTIVE_SOURCES)
    finally:
        await manager.cleanup()
        wire.close()


@app.command()
def run(
    command: str = typer.Argument(help="Command line to execute."),
    cwd: str | None = typer.Option(None, "--cwd", "-C", help="Working directory."),
    shell_path: str | None = typer.Option(
        None, "--shell", "-s", help="Shell executable to run the command with."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run one command on a fresh PTY and exit with its status."""
    setup_logging(verbose)
    config = _load_config(config_file, shell_path)
    exit_code = asyncio.run(_run_once(config, command, cwd))
    raise typer.Exit(exit_code)


async def _run_once(config: ProtermConfig, command: str, cwd: str | None) -> int:
    from proterm.session.session import TerminalSession

    wire = Wire()
    queue = wire.subscribe()
    session = TerminalSession(config, cwd=cwd or Path.cwd(), wire=wire)
    _flush(queue, session.id, frozenset())
    sources = frozenset({"process", "system"})
    try:
        if not session.submit(command):
            typer.echo("Error: empty command", err=True)
            return 2
        if session.state != "idle":
            await _follow(session, queue, sources)
        await session.wait_until_idle()
        _flush(queue, session.id, sources)
    finally:
        await session.close()
        wire.close()

    status = session.last_exit
    if status is None:
        # The child could not be started
        return 1
    if status.signal is not None:
        return 128 + status.signal
    return status.code or 0


@app.command()
def ssh(
    host: str = typer.Argument(help="Remote host."),
    user: str | None = typer.Option(None, "--user", "-u", help="Remote user."),
    port: int | None = typer.Option(None, "--port", "-p", help="SSH port."),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Open an interactive remote session through the ssh client."""
    from proterm.pty.process import RemoteShell

    setup_logging(verbose)
    config = _load_config(config_file)
    backend = RemoteShell(host=host, user=user, port=port)
    asyncio.run(_run_remote(config, backend))


async def _run_remote(config: ProtermConfig, backend: RemoteShell) -> None:
    from proterm.session.manager import SessionManager
    from proterm.session.session import SessionState

    wire = Wire()
    queue = wire.subscribe()
    manager = SessionManager(config, wire=wire)
    session_id = await manager.open_session(
        backend=backend, title=backend.label
    )
    session = manager.get(session_id)
    _flush(queue, session_id, frozenset())
    if not session.attach():
        typer.echo("Error: could not attach to session", err=True)
        return

    done = asyncio.Event()

    async def _consume() -> None:
        while True:
            event = await queue.get()
            if event is None:
                break
            _render(event, session_id, _INTERACTIVE_SOURCES)
            if (
                event.type is EventType.STATE_CHANGED
                and event.data.get("session_id") == session_id
                and event.data["state"] == "idle"
            ):
                done.set()
                break

    consumer = asyncio.create_task(_consume())
    loop = asyncio.get_running_loop()
    try:
        while not done.is_set():
            secret = session.state is SessionState.AWAITING_SECRET
            try:
                if secret:
                    line = await loop.run_in_executor(None, getpass.getpass, "")
                else:
                    line = await loop.run_in_executor(None, input)
            except EOFError:
                break
            if done.is_set():
                break
            if secret:
                session.send_secret(line)
            else:
                session.send_input(line + "\n")
    finally:
        await manager.cleanup()
        wire.close()
        await consumer


@app.command()
def sessions(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """List the sessions remembered from the last run."""
    from proterm.session.persistence import SessionStore

    config = _load_config(config_file)
    records = asyncio.run(SessionStore(config.state_path).load())
    if not records:
        typer.echo(f"No saved sessions in {config.state_path}")
        return

    table = Table(title="Saved sessions")
    table.add_column("#", justify="right")
    table.add_column("ID")
    table.add_column("Title")
    for i, record in enumerate(records, 1):
        table.add_row(str(i), record.id, record.title)
    console.print(table)


if __name__ == "__main__":
    app()
