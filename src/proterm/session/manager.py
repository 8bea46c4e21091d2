"""Session manager — the collection of open terminal sessions."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from proterm.config import ProtermConfig
from proterm.errors import SessionNotFound
from proterm.pty.process import ProcessController, SessionBackend
from proterm.session.persistence import SessionSnapshot, SessionStore
from proterm.session.session import TerminalSession

if TYPE_CHECKING:
    from proterm.session.wire import Wire

logger = logging.getLogger(__name__)


class SessionManager:
    """Manages the lifecycle of multiple terminal sessions.

    The presentation layer goes through here. The manager ensures:
    - Sessions are tracked in opening order and can be looked up by ID
    - Closing a session terminates its child before forgetting it
    - All sessions are closed on cleanup (no orphan processes)
    - The list of open sessions is persisted (if a store is attached)
    - Open/close notifications are fired via Wire (if attached)

    Collaborators are passed in, never looked up globally.
    """

    def __init__(
        self,
        config: ProtermConfig | None = None,
        wire: Wire | None = None,
        store: SessionStore | None = None,
        controller: ProcessController | None = None,
    ) -> None:
        self.config = config or ProtermConfig()
        self._wire = wire
        self._store = store
        self._controller = controller or ProcessController(self.config.terminal)
        self._sessions: dict[str, TerminalSession] = {}

    async def open_session(
        self,
        cwd: Path | str | None = None,
        backend: SessionBackend | None = None,
        title: str | None = None,
        session_id: str | None = None,
    ) -> str:
        """Open a new idle session and return its id."""
        session = TerminalSession(
            self.config,
            cwd=cwd,
            backend=backend,
            session_id=session_id,
            title=title,
            controller=self._controller,
            wire=self._wire,
        )
        self._sessions[session.id] = session
        logger.info("Opened session %s (%s)", session.id, session.backend.label)
        if self._wire:
            self._wire.send_session_opened(session.id, session.title)
        await self.save()
        return session.id

    async def close_session(self, session_id: str) -> None:
        """Close a session and remove it from tracking."""
        session = self.get(session_id)
        await session.close()
        self._sessions.pop(session_id, None)
        if self._wire:
            self._wire.send_session_closed(session.id, session.title)
        await self.save()

    def get(self, session_id: str) -> TerminalSession:
        """Get a session by ID."""
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None

    def submit(self, session_id: str, command: str) -> bool:
        return self.get(session_id).submit(command)

    def attach(self, session_id: str) -> bool:
        return self.get(session_id).attach()

    def send_secret(self, session_id: str, value: str) -> bool:
        return self.get(session_id).send_secret(value)

    def send_input(self, session_id: str, text: str) -> bool:
        return self.get(session_id).send_input(text)

    def read_scrollback(self, session_id: str) -> str:
        return self.get(session_id).scrollback.contents()

    def current_directory(self, session_id: str) -> Path:
        return self.get(session_id).cwd

    def list_sessions(self) -> list[dict[str, Any]]:
        """List all open sessions."""
        return [s.info() for s in self._sessions.values()]

    def snapshots(self) -> list[SessionSnapshot]:
        return [
            SessionSnapshot(id=s.id, title=s.title) for s in self._sessions.values()
        ]

    async def save(self) -> None:
        if self._store is not None:
            await self._store.save(self.snapshots())

    async def restore(self, cwd: Path | str | None = None) -> list[str]:
        """Recreate the persisted sessions as empty sessions under the same ids.

        Every restored session starts in ``cwd`` (home by default). Opens a
        single default session when nothing was persisted.
        """
        records = await self._store.load() if self._store is not None else []
        if not records:
            return [await self.open_session(cwd=cwd)]
        restored = []
        for record in records:
            if record.id in self._sessions:
                continue
            restored.append(
                await self.open_session(
                    cwd=cwd, session_id=record.id, title=record.title or None
                )
            )
        logger.info("Restored %d session(s)", len(restored))
        return restored

    async def cleanup(self) -> None:
        """Close all sessions without forgetting them on disk. Called on shutdown."""
        for session in list(self._sessions.values()):
            await session.close()
        self._sessions.clear()
        logger.info("All terminal sessions cleaned up")

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
