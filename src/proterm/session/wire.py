"""Wire protocol — decouples sessions from whoever is watching them.

Sessions and the session manager push events onto the wire; a view layer
(the CLI here) subscribes and renders them. Notification delivery and
similar observers hang off the same wire instead of being global singletons.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    SESSION_OPENED = "session_opened"
    SESSION_CLOSED = "session_closed"
    OUTPUT = "output"
    STATE_CHANGED = "state_changed"
    DIRECTORY_CHANGED = "directory_changed"
    COMMAND_FINISHED = "command_finished"
    CLEARED = "cleared"
    ERROR = "error"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Async message bus: sessions -> UI subscribers.

    Single-producer, multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def send_output(self, session_id: str, spans: list[Any], source: str) -> None:
        """Scrollback grew. ``source`` is echo, process, prompt or system."""
        self.send(
            WireEvent(
                type=EventType.OUTPUT,
                data={"session_id": session_id, "spans": spans, "source": source},
            )
        )

    def send_state(self, session_id: str, state: str, previous: str) -> None:
        self.send(
            WireEvent(
                type=EventType.STATE_CHANGED,
                data={"session_id": session_id, "state": state, "previous": previous},
            )
        )

    def send_directory(self, session_id: str, cwd: str, display: str) -> None:
        self.send(
            WireEvent(
                type=EventType.DIRECTORY_CHANGED,
                data={"session_id": session_id, "cwd": cwd, "display": display},
            )
        )

    def send_command_finished(
        self,
        session_id: str,
        command: str | None,
        exit_code: int | None,
        last_output: str = "",
    ) -> None:
        """Notify subscribers that a child process finished."""
        self.send(
            WireEvent(
                type=EventType.COMMAND_FINISHED,
                data={
                    "session_id": session_id,
                    "command": command,
                    "exit_code": exit_code,
                    "last_output": last_output[:500],
                },
            )
        )

    def send_session_opened(self, session_id: str, title: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SESSION_OPENED,
                data={"session_id": session_id, "title": title},
            )
        )

    def send_session_closed(self, session_id: str, title: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SESSION_CLOSED,
                data={"session_id": session_id, "title": title},
            )
        )

    def send_cleared(self, session_id: str) -> None:
        self.send(WireEvent(type=EventType.CLEARED, data={"session_id": session_id}))

    def send_error(self, error: str, session_id: str | None = None) -> None:
        self.send(
            WireEvent(
                type=EventType.ERROR, data={"error": error, "session_id": session_id}
            )
        )

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
