"""PTY allocation — open a master/slave pseudo-terminal pair."""

from __future__ import annotations

import fcntl
import logging
import os
import pty
import struct
import termios
from dataclasses import dataclass, field

from proterm.errors import AllocationFailed

logger = logging.getLogger(__name__)


@dataclass
class PtyPair:
    """An open pseudo-terminal pair.

    Each descriptor is closed at most once; the close methods are safe to
    call repeatedly and only the first call reaches ``os.close``.
    """

    master_fd: int
    slave_fd: int
    slave_path: str
    _master_open: bool = field(default=True, init=False, repr=False)
    _slave_open: bool = field(default=True, init=False, repr=False)

    @property
    def master_open(self) -> bool:
        return self._master_open

    @property
    def slave_open(self) -> bool:
        return self._slave_open

    @property
    def closed(self) -> bool:
        return not (self._master_open or self._slave_open)

    def close_slave(self) -> None:
        if not self._slave_open:
            return
        self._slave_open = False
        _close_fd(self.slave_fd, "slave")

    def close_master(self) -> None:
        if not self._master_open:
            return
        self._master_open = False
        _close_fd(self.master_fd, "master")

    def close(self) -> None:
        self.close_slave()
        self.close_master()

    def resize(self, rows: int, cols: int) -> None:
        """Set the terminal window size seen by the child."""
        if self._master_open:
            set_window_size(self.master_fd, rows, cols)


def allocate(rows: int = 24, cols: int = 80) -> PtyPair:
    """Open a new PTY pair with the given window size.

    Raises:
        AllocationFailed: If any step fails. Descriptors opened before the
            failing step are closed first.
    """
    try:
        master_fd, slave_fd = pty.openpty()
    except OSError as e:
        raise AllocationFailed(f"Could not create pseudo-terminal: {e}") from e

    try:
        slave_path = os.ttyname(slave_fd)
        set_window_size(slave_fd, rows, cols)
    except OSError as e:
        _close_fd(slave_fd, "slave")
        _close_fd(master_fd, "master")
        raise AllocationFailed(f"Could not open slave terminal: {e}") from e

    logger.debug(
        "Allocated PTY master=%d slave=%d (%s)", master_fd, slave_fd, slave_path
    )
    return PtyPair(master_fd=master_fd, slave_fd=slave_fd, slave_path=slave_path)


def set_window_size(fd: int, rows: int, cols: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


def _close_fd(fd: int, label: str) -> None:
    try:
        os.close(fd)
    except OSError as e:
        logger.warning("Error closing PTY %s fd %d: %s", label, fd, e)
