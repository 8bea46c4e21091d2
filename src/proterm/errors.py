"""Error taxonomy for the command-execution engine.

None of these are fatal to the application: sessions catch them, render a
line into scrollback (or log it) and return to idle.
"""

from __future__ import annotations


class TerminalError(Exception):
    """Base class for proterm errors."""


class AllocationFailed(TerminalError):
    """A pseudo-terminal pair could not be created."""


class SpawnFailed(TerminalError):
    """The child executable was missing or could not be executed."""


class DirectoryInvalid(TerminalError):
    """A ``cd`` target does not exist or is not a directory."""

    def __init__(self, target: str, reason: str) -> None:
        super().__init__(f"cd: {target}: {reason}")
        self.target = target
        self.reason = reason


class WriteFailed(TerminalError):
    """Writing keyboard input to the PTY master failed."""


class SessionNotFound(TerminalError, KeyError):
    """No session with the given id is tracked by the manager."""

    def __str__(self) -> str:
        return f"Unknown session: {self.args[0]}" if self.args else "Unknown session"
