"""PTY process management — pseudo-terminal pairs, children and scrollback.

Every command runs on its own PTY with process group isolation; output is
drained in the background into a bounded scrollback buffer, and every
descriptor is closed exactly once.
"""

from proterm.pty.allocator import PtyPair, allocate
from proterm.pty.buffer import ScrollbackBuffer
from proterm.pty.process import (
    ExecutionRequest,
    ExitStatus,
    LocalShell,
    ProcessController,
    ProcessHandle,
    RemoteShell,
    SessionBackend,
)

__all__ = [
    "ExecutionRequest",
    "ExitStatus",
    "LocalShell",
    "ProcessController",
    "ProcessHandle",
    "PtyPair",
    "RemoteShell",
    "ScrollbackBuffer",
    "SessionBackend",
    "allocate",
]
