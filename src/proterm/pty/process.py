"""Process controller — run children on a PTY and drain their output.

A child gets the PTY slave as stdin/stdout/stderr and as its controlling
terminal, in a fresh session/process group so the whole tree can be
signalled at once. The parent closes its copy of the slave right after the
spawn; from then on the master is the only descriptor it holds, and it stays
open until ``drain`` has read everything the child wrote.

Uses subprocess.Popen (not os.fork) to avoid deadlocks when spawned from
within an asyncio event loop on macOS.
"""

from __future__ import annotations

import asyncio
import errno
import fcntl
import logging
import os
import select
import signal
import subprocess
import termios
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from proterm.config import TerminalConfig
from proterm.errors import SpawnFailed, WriteFailed
from proterm.pty.allocator import PtyPair

logger = logging.getLogger(__name__)

READ_SIZE = 4096
# How long a reader blocks in select() before re-checking whether to stop
READ_POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class ExecutionRequest:
    """What to run: a one-shot command line, or ``None`` for a bare
    interactive process that lives as long as the session."""

    command: str | None = None

    @property
    def interactive(self) -> bool:
        return self.command is None


@dataclass(frozen=True)
class LocalShell:
    """Commands run through a local shell."""

    shell_path: str = "/bin/bash"
    login: bool = True

    def argv(self, request: ExecutionRequest) -> list[str]:
        args = [self.shell_path]
        if self.login:
            args.append("-l")
        if request.command is not None:
            args += ["-c", request.command]
        return args

    @property
    def label(self) -> str:
        return os.path.basename(self.shell_path)


@dataclass(frozen=True)
class RemoteShell:
    """Commands run on a remote host through the ssh client."""

    host: str
    user: str | None = None
    port: int | None = None
    ssh_path: str = "ssh"

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}" if self.user else self.host

    def argv(self, request: ExecutionRequest) -> list[str]:
        args = [self.ssh_path]
        if request.command is not None:
            # Force a remote tty so one-shot commands can still prompt
            args.append("-t")
        if self.port:
            args += ["-p", str(self.port)]
        args.append(self.destination)
        if request.command is not None:
            args.append(request.command)
        return args

    @property
    def label(self) -> str:
        return f"ssh {self.destination}"


SessionBackend = LocalShell | RemoteShell


@dataclass(frozen=True)
class ExitStatus:
    """How a child ended: an exit ``code`` or a terminating ``signal``."""

    code: int | None = None
    signal: int | None = None

    @classmethod
    def from_returncode(cls, returncode: int) -> ExitStatus:
        if returncode < 0:
            return cls(signal=-returncode)
        return cls(code=returncode)

    @property
    def success(self) -> bool:
        return self.code == 0

    def __str__(self) -> str:
        if self.signal is not None:
            try:
                name = signal.Signals(self.signal).name
            except ValueError:
                name = str(self.signal)
            return f"killed by {name}"
        return f"exit {self.code}"


@dataclass
class ProcessHandle:
    """A running child bound to a PTY pair."""

    process: subprocess.Popen
    pty: PtyPair
    argv: list[str]
    pgid: int
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def alive(self) -> bool:
        return self.process.poll() is None

    @property
    def reading_stopped(self) -> bool:
        return self._stop.is_set()

    def stop_reading(self) -> None:
        self._stop.set()


class ProcessController:
    """Spawns, feeds, reaps and terminates PTY-bound children."""

    def __init__(self, terminal: TerminalConfig | None = None) -> None:
        self.terminal = terminal or TerminalConfig()

    def build_argv(
        self, request: ExecutionRequest, backend: SessionBackend
    ) -> list[str]:
        if isinstance(backend, (LocalShell, RemoteShell)):
            return backend.argv(request)
        raise TypeError(f"Unsupported session backend: {backend!r}")

    def build_env(
        self, pty: PtyPair, cwd: Path, oldpwd: Path | None = None
    ) -> dict[str, str]:
        """Environment for a child: ours plus the terminal contract."""
        env = {**os.environ, **self.terminal.env}
        env["TERM"] = self.terminal.term
        env["COLORTERM"] = self.terminal.colorterm
        env["PWD"] = str(cwd)
        env["OLDPWD"] = str(oldpwd or Path.home())
        env["TTY"] = pty.slave_path
        env["LINES"] = str(self.terminal.rows)
        env["COLUMNS"] = str(self.terminal.cols)
        env.pop("PROMPT_COMMAND", None)
        return env

    def spawn(
        self,
        request: ExecutionRequest,
        pty: PtyPair,
        cwd: Path,
        backend: SessionBackend,
        oldpwd: Path | None = None,
    ) -> ProcessHandle:
        """Start a child on the PTY slave.

        The controller takes ownership of ``pty``: on success the slave is
        closed in the parent (the child holds its own copy); on failure both
        descriptors are closed before ``SpawnFailed`` is raised.
        """
        argv = self.build_argv(request, backend)
        env = self.build_env(pty, cwd, oldpwd)

        try:
            proc = subprocess.Popen(
                argv,
                stdin=pty.slave_fd,
                stdout=pty.slave_fd,
                stderr=pty.slave_fd,
                start_new_session=True,  # Creates new process group
                preexec_fn=_acquire_controlling_tty,
                env=env,
                cwd=str(cwd),
                close_fds=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            pty.close()
            reason = getattr(e, "strerror", None) or str(e)
            raise SpawnFailed(f"{argv[0]}: {reason}") from e

        # Parent always closes slave fd once the child has it
        pty.close_slave()

        try:
            pgid = os.getpgid(proc.pid)
        except ProcessLookupError:
            pgid = proc.pid

        logger.info(
            "Spawned pid=%d pgid=%d on %s: %s",
            proc.pid,
            pgid,
            pty.slave_path,
            " ".join(argv),
        )
        return ProcessHandle(process=proc, pty=pty, argv=argv, pgid=pgid)

    def write_input(self, handle: ProcessHandle, data: bytes) -> None:
        """Write keyboard input to the child through the PTY master."""
        if not handle.pty.master_open:
            raise WriteFailed("PTY is already closed")
        view = memoryview(data)
        try:
            while view:
                written = os.write(handle.pty.master_fd, view)
                view = view[written:]
        except OSError as e:
            raise WriteFailed(f"Error writing to PTY: {e.strerror or e}") from e

    async def wait(self, handle: ProcessHandle) -> ExitStatus:
        """Wait for the child to exit and reap it."""
        loop = asyncio.get_running_loop()
        returncode = await loop.run_in_executor(None, handle.process.wait)
        return ExitStatus.from_returncode(returncode)

    async def drain(
        self, handle: ProcessHandle, on_output: Callable[[bytes], None]
    ) -> ExitStatus:
        """Feed every byte the child writes to ``on_output``, then reap it.

        Reads until end-of-stream (all holders of the slave have exited),
        until the child has exited and the master stays quiet for one poll
        interval, or until ``stop_reading()``. The master is closed only
        after that, on every path.
        """
        loop = asyncio.get_running_loop()
        try:
            while True:
                data = await loop.run_in_executor(None, _read_chunk, handle)
                if data is None:
                    if handle.reading_stopped or not handle.alive:
                        break
                    continue
                if not data:
                    break
                on_output(data)
            return await self.wait(handle)
        except BaseException:
            # Never leave a zombie behind, whatever interrupted us
            if handle.alive:
                _signal_group(handle, signal.SIGKILL)
                handle.process.wait()
            raise
        finally:
            handle.pty.close()

    async def terminate(
        self, handle: ProcessHandle, grace: float | None = None
    ) -> ExitStatus:
        """Hang up on the child's process group, escalating to SIGKILL.

        Also tells the reader to stop, so ``drain`` returns even if a
        detached grandchild still holds the slave.
        """
        grace = self.terminal.terminate_grace if grace is None else grace
        try:
            if handle.alive:
                _signal_group(handle, signal.SIGHUP)
                _signal_group(handle, signal.SIGCONT)
                try:
                    return await asyncio.wait_for(self.wait(handle), timeout=grace)
                except asyncio.TimeoutError:
                    logger.warning(
                        "pid=%d ignored SIGHUP for %.1fs, sending SIGKILL",
                        handle.pid,
                        grace,
                    )
                    _signal_group(handle, signal.SIGKILL)
                    return await self.wait(handle)
            return ExitStatus.from_returncode(handle.process.wait())
        finally:
            handle.stop_reading()


def _acquire_controlling_tty() -> None:
    """Runs in the child between fork and exec.

    start_new_session=True already called setsid(); make the PTY slave
    (now fd 0) the controlling terminal so programs like sudo and ssh can
    open /dev/tty.
    """
    try:
        fcntl.ioctl(0, termios.TIOCSCTTY, 0)
    except OSError:
        pass


def _read_chunk(handle: ProcessHandle) -> bytes | None:
    """Blocking read with a timeout. Runs in the executor.

    Returns None on timeout and b"" at end-of-stream.
    """
    fd = handle.pty.master_fd
    try:
        ready, _, _ = select.select([fd], [], [], READ_POLL_INTERVAL)
        if not ready:
            return None
        return os.read(fd, READ_SIZE)
    except OSError as e:
        # Linux reports EIO once the slave side is closed everywhere
        if e.errno != errno.EIO:
            logger.debug("PTY read on fd %d ended: %s", fd, e)
        return b""


def _signal_group(handle: ProcessHandle, sig: signal.Signals) -> None:
    try:
        os.killpg(handle.pgid, sig)
        logger.debug("Sent %s to pgid=%d", sig.name, handle.pgid)
    except ProcessLookupError:
        logger.debug("Process group already gone: %d", handle.pgid)
    except PermissionError as e:
        logger.warning("Cannot signal pgid=%d: %s", handle.pgid, e)
