"""Terminal sessions — state machine, collection, persistence and events."""

from proterm.session.manager import SessionManager
from proterm.session.persistence import SessionSnapshot, SessionStore
from proterm.session.secret import SecretPromptDetector
from proterm.session.session import SessionState, TerminalSession
from proterm.session.wire import EventType, Wire, WireEvent

__all__ = [
    "EventType",
    "SecretPromptDetector",
    "SessionManager",
    "SessionSnapshot",
    "SessionState",
    "SessionStore",
    "TerminalSession",
    "Wire",
    "WireEvent",
]
