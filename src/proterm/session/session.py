"""Terminal session — one shell conversation with its own PTY and scrollback."""

from __future__ import annotations

import asyncio
import enum
import getpass
import logging
import socket
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from proterm.config import ProtermConfig
from proterm.errors import AllocationFailed, DirectoryInvalid, SpawnFailed, WriteFailed
from proterm.pty.allocator import PtyPair, allocate
from proterm.pty.buffer import ScrollbackBuffer
from proterm.pty.process import (
    ExecutionRequest,
    ExitStatus,
    LocalShell,
    ProcessController,
    ProcessHandle,
    SessionBackend,
)
from proterm.session.directory import display_path, parse_cd, resolve_directory
from proterm.session.secret import SecretPromptDetector
from proterm.terminal.escape import InterpreterState, StyledSpan, interpret

if TYPE_CHECKING:
    from proterm.session.wire import Wire

logger = logging.getLogger(__name__)

ELEVATION_HINT = (
    "\n"
    "Privilege elevation failed without any output.\n"
    "\n"
    "Elevation tools such as sudo may insist on a fully interactive terminal.\n"
    "Alternatives:\n"
    "  - run the command from your system terminal\n"
    "  - use `sudo -S` to read the password from standard input\n"
    "  - configure sudo not to require a tty for this command\n"
    "\n"
)


class SessionState(enum.StrEnum):
    """Lifecycle states for a terminal session."""

    IDLE = "idle"
    RUNNING = "running"  # A child process is attached
    AWAITING_SECRET = "awaiting_secret"  # The child is asking for a credential


class TerminalSession:
    """A managed terminal session.

    Owns the working directory, the scrollback, the command history and at
    most one child process at a time:

    - ``submit`` runs one command per child (``shell -l -c <command>``),
      except ``cd`` which is handled in-process
    - ``attach`` runs the backend's bare interactive process instead,
      for the lifetime of the session (SSH, long-lived shells)
    - output is drained in a background task, interpreted into styled
      spans and appended to scrollback in production order
    - ``close`` hangs up on the child, waits for the reader to stop and
      releases both PTY descriptors

    While idle the scrollback always ends with the current prompt.

    Credential prompts are recognized only while a child is attached, so
    AWAITING_SECRET is entered from RUNNING and never from IDLE.
    """

    def __init__(
        self,
        config: ProtermConfig | None = None,
        *,
        cwd: Path | str | None = None,
        backend: SessionBackend | None = None,
        session_id: str | None = None,
        title: str | None = None,
        controller: ProcessController | None = None,
        wire: Wire | None = None,
        detector: SecretPromptDetector | None = None,
        allocator: Callable[[int, int], PtyPair] = allocate,
    ) -> None:
        self.config = config or ProtermConfig()
        self.id: str = session_id or uuid.uuid4().hex
        self.title: str = title or f"Session {self.id[:4]}"
        self.cwd: Path = Path(cwd).absolute() if cwd else Path.home()
        self.backend: SessionBackend = backend or LocalShell(
            shell_path=self.config.shell.executable, login=self.config.shell.login
        )
        self.scrollback = ScrollbackBuffer(max_chars=self.config.scrollback.max_chars)
        self.history: list[str] = []
        self.last_exit: ExitStatus | None = None
        self.rows = self.config.terminal.rows
        self.cols = self.config.terminal.cols

        self._controller = controller or ProcessController(self.config.terminal)
        self._wire = wire
        self._detector = detector or SecretPromptDetector()
        self._allocator = allocator
        self._user = _current_user()
        self._host = socket.gethostname().split(".")[0]

        self._state = SessionState.IDLE
        self._handle: ProcessHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._command: str | None = None
        self._previous_cwd: Path | None = None
        self._interp_state = InterpreterState()
        self._visible_output = 0
        self._closed = False

        self._append(self.prompt, "prompt")

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def process(self) -> ProcessHandle | None:
        """The attached child, if any."""
        return self._handle

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def shell_path(self) -> str:
        return self.config.shell.executable

    @property
    def last_command(self) -> str | None:
        return self.history[-1] if self.history else None

    @property
    def display_cwd(self) -> str:
        return display_path(self.cwd)

    @property
    def prompt(self) -> str:
        return self.config.session.prompt_template.format(
            user=self._user, host=self._host, cwd=self.display_cwd
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, command: str) -> bool:
        """Run a command line. Returns False if it was rejected.

        Rejected (nothing changes) while a child is attached or when the
        command is blank. ``cd`` is resolved synchronously; anything else
        is handed to a background task and this returns immediately.
        """
        trimmed = command.strip()
        if self._closed or self._state is not SessionState.IDLE or not trimmed:
            logger.debug(
                "Session %s rejected %r (state=%s)", self.id, command, self._state
            )
            return False

        target = parse_cd(trimmed)
        loop = None if target is not None else asyncio.get_running_loop()

        self.history.append(trimmed)
        self._append(trimmed + "\n", "echo")

        if target is not None:
            changed = self._change_directory(target)
            self.last_exit = ExitStatus(code=0 if changed else 1)
            self._append(self.prompt, "prompt")
            return True

        self._start(loop, ExecutionRequest(command=trimmed))  # type: ignore[arg-type]
        return True

    def attach(self) -> bool:
        """Start the backend's interactive process (e.g. ``ssh host``).

        The session stays RUNNING until that process exits; feed it with
        ``send_input`` and ``send_secret``.
        """
        if self._closed or self._state is not SessionState.IDLE:
            return False
        loop = asyncio.get_running_loop()
        self._append("\n", "echo")
        self._start(loop, ExecutionRequest(command=None))
        return True

    def send_input(self, text: str) -> bool:
        """Write raw keyboard input to the attached child."""
        return self._write(text.encode("utf-8"))

    def send_secret(self, value: str) -> bool:
        """Write ``value`` plus a newline to the child as keyboard input.

        Valid while RUNNING or AWAITING_SECRET. The value is never echoed
        into scrollback by us (the child's terminal has echo off).
        """
        if not self._write((value + "\n").encode("utf-8")):
            return False
        if self._state is SessionState.AWAITING_SECRET:
            self._set_state(SessionState.RUNNING)
        return True

    def clear(self) -> None:
        """Reset scrollback to the banner plus a fresh prompt.

        The attached child, if any, keeps running; the prompt is left for
        when it finishes.
        """
        self.scrollback.clear()
        if self._wire:
            self._wire.send_cleared(self.id)
        self._append(self.config.session.banner, "system")
        if self._handle is None and self._state is SessionState.IDLE:
            self._append(self.prompt, "prompt")

    def resize(self, rows: int, cols: int) -> None:
        """Change the window size; the kernel sends SIGWINCH to the child."""
        self.rows, self.cols = rows, cols
        if self._handle is not None:
            self._handle.pty.resize(rows, cols)

    def detect_secret_prompt(self) -> bool:
        """Re-classify the scrollback tail and move between RUNNING and
        AWAITING_SECRET. Returns whether a credential prompt is showing."""
        awaiting = self._state is SessionState.AWAITING_SECRET
        showing = self._detector.evaluate(
            self.scrollback.last_line(), self.prompt, awaiting
        )
        if showing and not awaiting and self._state is SessionState.RUNNING:
            logger.debug("Session %s: credential prompt detected", self.id)
            self._set_state(SessionState.AWAITING_SECRET)
        elif awaiting and not showing:
            self._set_state(
                SessionState.RUNNING if self._handle is not None else SessionState.IDLE
            )
        return showing

    async def wait_until_idle(self) -> None:
        """Wait for the background task of the current command, if any."""
        task = self._task
        if task is not None:
            await asyncio.shield(task)

    async def close(self) -> None:
        """Terminate the child, stop the reader, release the PTY.

        Idempotent. The session object stays usable for reading.
        """
        if self._closed:
            return
        self._closed = True
        handle = self._handle
        if handle is not None:
            status = await self._controller.terminate(handle)
            logger.info("Session %s: terminated pid=%d (%s)", self.id, handle.pid, status)
        if self._task is not None:
            await asyncio.shield(self._task)
        logger.info("Session %s closed", self.id)

    def info(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "state": self._state.value,
            "cwd": str(self.cwd),
            "backend": self.backend.label,
            "command": self._command,
            "chars": self.scrollback.length,
        }

    # ------------------------------------------------------------------
    # Command execution (background task)
    # ------------------------------------------------------------------

    def _start(self, loop: asyncio.AbstractEventLoop, request: ExecutionRequest) -> None:
        self._command = request.command
        self._set_state(SessionState.RUNNING)
        self._task = loop.create_task(self._run(request), name=f"session-{self.id[:8]}")

    async def _run(self, request: ExecutionRequest) -> None:
        command = request.command
        status: ExitStatus | None = None
        self.last_exit = None
        self._interp_state = InterpreterState()
        self._visible_output = 0
        try:
            try:
                pair = self._allocator(self.rows, self.cols)
                handle = self._controller.spawn(
                    request, pair, self.cwd, self.backend, self._previous_cwd
                )
            except (AllocationFailed, SpawnFailed) as e:
                logger.warning("Session %s could not start %r: %s", self.id, command, e)
                self._append(f"Error: {e}\n", "system")
                return

            self._handle = handle
            if self._closed:
                # close() ran before we had a child to terminate
                await self._controller.terminate(handle)

            status = await self._controller.drain(handle, self._on_output)
            self._flush_output()
            self.last_exit = status
            logger.info("Session %s: %r finished (%s)", self.id, command, status)

            if not self._closed and command and self._needs_elevation_hint(command, status):
                self._append(ELEVATION_HINT, "system")
        except Exception:
            logger.exception("Session %s: error while running %r", self.id, command)
            if not self._closed:
                self._append("Error: command failed unexpectedly\n", "system")
        finally:
            self._handle = None
            self._command = None
            self._finish(command, status)

    def _on_output(self, data: bytes) -> None:
        spans, self._interp_state = interpret(data, self._interp_state)
        self._append_process(spans)

    def _flush_output(self) -> None:
        spans, _ = interpret(b"", self._interp_state, final=True)
        self._interp_state = InterpreterState()
        self._append_process(spans)

    def _append_process(self, spans: list[StyledSpan]) -> None:
        if not spans:
            return
        self._visible_output += sum(len(span.text.strip()) for span in spans)
        self._append_spans(spans, "process")

    def _needs_elevation_hint(self, command: str, status: ExitStatus) -> bool:
        prefixes = tuple(self.config.session.elevation_prefixes)
        return (
            command.startswith(prefixes)
            and not status.success
            and self._visible_output == 0
        )

    def _finish(self, command: str | None, status: ExitStatus | None) -> None:
        if self._closed:
            self._set_state(SessionState.IDLE)
            return
        if self.scrollback.last_line():
            self._append("\n", "system")
        self._append(self.prompt, "prompt")
        self._set_state(SessionState.IDLE)
        if self._wire:
            tail = self.scrollback.read_tail(4)[:-1]
            self._wire.send_command_finished(
                self.id,
                command,
                status.code if status else None,
                "\n".join(tail),
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _write(self, data: bytes) -> bool:
        handle = self._handle
        if handle is None or self._state not in (
            SessionState.RUNNING,
            SessionState.AWAITING_SECRET,
        ):
            logger.debug("Session %s: no child to write to", self.id)
            return False
        try:
            self._controller.write_input(handle, data)
        except WriteFailed as e:
            logger.warning("Session %s: %s", self.id, e)
            if self._wire:
                self._wire.send_error(str(e), session_id=self.id)
            return False
        return True

    def _change_directory(self, target: str) -> bool:
        try:
            new_cwd = resolve_directory(target, self.cwd, self._previous_cwd)
        except DirectoryInvalid as e:
            self._append(f"{e}\n", "system")
            return False
        self._previous_cwd, self.cwd = self.cwd, new_cwd
        logger.debug("Session %s: cwd -> %s", self.id, new_cwd)
        if self._wire:
            self._wire.send_directory(self.id, str(new_cwd), self.display_cwd)
        return True

    def _append(self, text: str, source: str) -> None:
        if text:
            self._append_spans([StyledSpan(text)], source)

    def _append_spans(self, spans: list[StyledSpan], source: str) -> None:
        self.scrollback.append_spans(spans)
        if self._wire:
            self._wire.send_output(self.id, spans, source)
        self.detect_secret_prompt()

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        logger.debug("Session %s: %s -> %s", self.id, previous, state)
        if self._wire:
            self._wire.send_state(self.id, state.value, previous.value)


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "user"
