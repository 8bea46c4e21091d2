"""Scrollback buffer for terminal sessions."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable

from proterm.terminal.escape import DEFAULT_ATTRIBUTES, StyledSpan, TextAttributes


class ScrollbackBuffer:
    """Thread-safe, bounded, append-only store of styled output.

    Holds at most ``max_chars`` characters. When an append overflows,
    characters are dropped from the front: whole spans first, then the head
    of the oldest remaining span. The tail is never touched, so the content
    always ends with the same suffix an unbounded buffer would have.

    Appends are atomic with respect to readers: ``contents()`` and
    ``spans()`` never observe a half-applied append.
    """

    def __init__(self, max_chars: int = 50_000) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self.max_chars = max_chars
        self._spans: deque[StyledSpan] = deque()
        self._length: int = 0
        self._total_appended: int = 0  # Total characters ever added
        self._lock = threading.Lock()

    def append(self, text: str, attributes: TextAttributes = DEFAULT_ATTRIBUTES) -> None:
        """Append plain text under one set of attributes."""
        if text:
            self.append_spans([StyledSpan(text, attributes)])

    def append_spans(self, spans: Iterable[StyledSpan]) -> None:
        """Append styled spans as one atomic mutation."""
        with self._lock:
            added = 0
            for span in spans:
                if not span.text:
                    continue
                last = self._spans[-1] if self._spans else None
                if last is not None and last.attributes == span.attributes:
                    self._spans[-1] = StyledSpan(last.text + span.text, span.attributes)
                else:
                    self._spans.append(span)
                added += len(span.text)
            self._length += added
            self._total_appended += added
            self._evict()

    def _evict(self) -> None:
        # Caller holds the lock
        excess = self._length - self.max_chars
        while excess > 0 and self._spans:
            head = self._spans[0]
            if len(head.text) <= excess:
                self._spans.popleft()
                excess -= len(head.text)
                self._length -= len(head.text)
            else:
                self._spans[0] = StyledSpan(head.text[excess:], head.attributes)
                self._length -= excess
                excess = 0

    def contents(self) -> str:
        """All buffered text, attributes stripped."""
        with self._lock:
            return "".join(span.text for span in self._spans)

    def spans(self) -> list[StyledSpan]:
        """Snapshot of the buffered styled spans."""
        with self._lock:
            return list(self._spans)

    def read_tail(self, n: int = 100) -> list[str]:
        """Read the last N lines (the unterminated last line included)."""
        if n <= 0:
            return []
        lines = self.contents().split("\n")
        return lines[-n:] if len(lines) > n else lines

    def last_line(self) -> str:
        """The text after the final newline."""
        with self._lock:
            parts: list[str] = []
            for span in reversed(self._spans):
                idx = span.text.rfind("\n")
                if idx != -1:
                    parts.append(span.text[idx + 1 :])
                    break
                parts.append(span.text)
        return "".join(reversed(parts))

    @property
    def length(self) -> int:
        """Current number of characters in the buffer."""
        with self._lock:
            return self._length

    @property
    def total_appended(self) -> int:
        """Total number of characters ever added."""
        with self._lock:
            return self._total_appended

    def __len__(self) -> int:
        return self.length

    def clear(self) -> None:
        """Clear the buffer."""
        with self._lock:
            self._spans.clear()
            self._length = 0
            self._total_appended = 0
