"""Escape interpreter — turn raw PTY output into styled text spans.

The interpreter is a pure function over an explicit state value::

    state = InterpreterState()
    spans, state = interpret(chunk1, state)
    spans, state = interpret(chunk2, state)
    spans, state = interpret(b"", state, final=True)

Everything that has to survive a chunk boundary lives in the state:
the current SGR attributes, an incomplete UTF-8 tail, an incomplete escape
sequence and whether the previous chunk ended in a carriage return.

Only Select Graphic Rendition (``ESC [ ... m``) changes output. Every other
control sequence (cursor movement, erase, mode toggles, OSC titles) is
recognized and dropped. Any other character, C0 controls such as BEL or
BS included, passes through as text. There is no screen model.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace

from proterm.terminal.colors import Color

logger = logging.getLogger(__name__)

ESC = "\x1b"
CSI = "\x1b["

# Unterminated sequences longer than this are dropped instead of buffered
MAX_PENDING = 4096

_CSI_RE = re.compile(r"\x1b\[([\x30-\x3f]*)([\x20-\x2f]*)([\x40-\x7e])")
_CSI_PARTIAL_RE = re.compile(r"\x1b\[[\x30-\x3f]*[\x20-\x2f]*\Z")
# OSC, DCS, SOS, PM, APC: terminated by BEL or ST (ESC \)
_STRING_RE = re.compile(r"\x1b[\]PX^_].*?(?:\x07|\x1b\\)", re.DOTALL)
# Two-byte escapes and charset designations (ESC ( B, ESC =, ESC 7, ...)
_SHORT_RE = re.compile(r"\x1b[\x20-\x2f]*[\x30-\x7e]")
_SHORT_PARTIAL_RE = re.compile(r"\x1b[\x20-\x2f]*\Z")


@dataclass(frozen=True)
class TextAttributes:
    """SGR state. ``None`` colors mean the terminal default."""

    foreground: Color | None = None
    background: Color | None = None
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strikethrough: bool = False

    @property
    def is_default(self) -> bool:
        return self == DEFAULT_ATTRIBUTES


DEFAULT_ATTRIBUTES = TextAttributes()


@dataclass(frozen=True)
class StyledSpan:
    """A run of text rendered with one set of attributes."""

    text: str
    attributes: TextAttributes = DEFAULT_ATTRIBUTES

    def __len__(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class InterpreterState:
    """Everything ``interpret`` carries from one chunk to the next."""

    attributes: TextAttributes = DEFAULT_ATTRIBUTES
    pending_bytes: bytes = b""
    pending_escape: str = ""
    after_cr: bool = False


def interpret(
    data: bytes | str,
    state: InterpreterState | None = None,
    *,
    final: bool = False,
) -> tuple[list[StyledSpan], InterpreterState]:
    """Interpret one chunk of terminal output.

    Args:
        data: Raw bytes from the PTY (or already-decoded text).
        state: State returned by the previous call; ``None`` starts fresh.
        final: End of stream. Flushes an incomplete UTF-8 tail as
            replacement characters and drops an unterminated escape.

    Returns:
        (spans, new_state). Adjacent spans never share attributes and no
        span is empty.
    """
    state = state or InterpreterState()

    if isinstance(data, bytes):
        raw = state.pending_bytes + data
        if final:
            complete, tail = raw, b""
        else:
            complete, tail = _split_incomplete_utf8(raw)
        text = complete.decode("utf-8", errors="replace")
    else:
        prefix = state.pending_bytes.decode("utf-8", errors="replace")
        text, tail = prefix + data, b""

    after_cr = state.after_cr
    if text:
        if after_cr and text[0] == "\n":
            text = text[1:]
        after_cr = text.endswith("\r")
        text = normalize_newlines(text)

    spans, attributes, pending = _scan(state.pending_escape + text, state.attributes)

    if final:
        if pending:
            logger.debug("Dropping unterminated escape sequence: %r", pending[:32])
        pending = ""
        after_cr = False
    elif len(pending) > MAX_PENDING:
        logger.debug("Dropping oversized escape sequence (%d chars)", len(pending))
        pending = ""

    return spans, InterpreterState(
        attributes=attributes,
        pending_bytes=tail,
        pending_escape=pending,
        after_cr=after_cr,
    )


def normalize_newlines(text: str) -> str:
    """``\\r\\n`` and bare ``\\r`` both become ``\\n``."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def strip_escapes(text: str) -> str:
    """Plain text of a complete string, all control sequences removed."""
    spans, _ = interpret(text, final=True)
    return plain_text(spans)


def plain_text(spans: list[StyledSpan]) -> str:
    return "".join(span.text for span in spans)


def apply_sgr(codes: list[int], attributes: TextAttributes) -> TextAttributes:
    """Apply a Select Graphic Rendition parameter list.

    An empty list is a reset. Unrecognized codes are ignored.
    """
    if not codes:
        return DEFAULT_ATTRIBUTES

    attrs = attributes
    i = 0
    while i < len(codes):
        code = codes[i]
        if code == 0:
            attrs = DEFAULT_ATTRIBUTES
        elif code == 1:
            attrs = replace(attrs, bold=True)
        elif code == 3:
            attrs = replace(attrs, italic=True)
        elif code == 4:
            attrs = replace(attrs, underline=True)
        elif code == 9:
            attrs = replace(attrs, strikethrough=True)
        elif code == 22:
            attrs = replace(attrs, bold=False)
        elif code == 23:
            attrs = replace(attrs, italic=False)
        elif code == 24:
            attrs = replace(attrs, underline=False)
        elif code == 29:
            attrs = replace(attrs, strikethrough=False)
        elif 30 <= code <= 37:
            attrs = replace(attrs, foreground=Color.indexed(code - 30))
        elif 90 <= code <= 97:
            attrs = replace(attrs, foreground=Color.indexed(code - 90 + 8))
        elif 40 <= code <= 47:
            attrs = replace(attrs, background=Color.indexed(code - 40))
        elif 100 <= code <= 107:
            attrs = replace(attrs, background=Color.indexed(code - 100 + 8))
        elif code == 39:
            attrs = replace(attrs, foreground=None)
        elif code == 49:
            attrs = replace(attrs, background=None)
        elif code in (38, 48):
            color, consumed = _extended_color(codes, i + 1)
            if color is not None:
                if code == 38:
                    attrs = replace(attrs, foreground=color)
                else:
                    attrs = replace(attrs, background=color)
            i += consumed
        i += 1
    return attrs


def _extended_color(codes: list[int], start: int) -> tuple[Color | None, int]:
    """Parse the tail of ``38;...`` / ``48;...``.

    Returns the color (or None if malformed) and how many codes were used.
    """
    if start >= len(codes):
        return None, 0
    mode = codes[start]
    if mode == 5:
        if start + 1 < len(codes):
            index = codes[start + 1]
            return (Color.indexed(index) if 0 <= index <= 255 else None), 2
        return None, 1
    if mode == 2:
        if start + 3 < len(codes):
            r, g, b = codes[start + 1 : start + 4]
            return Color.from_rgb(r, g, b), 4
        return None, len(codes) - start
    return None, 1


def _parse_params(params: str) -> list[int]:
    if not params:
        return []
    codes = []
    for part in params.replace(":", ";").split(";"):
        # Empty parameters default to 0
        codes.append(int(part) if part.isdigit() else 0)
    return codes


def _scan(
    text: str, attributes: TextAttributes
) -> tuple[list[StyledSpan], TextAttributes, str]:
    """Split text into spans. Returns (spans, attributes, unterminated tail)."""
    spans: list[StyledSpan] = []
    pos = 0
    n = len(text)

    while pos < n:
        esc = text.find(ESC, pos)
        if esc == -1:
            _emit(spans, text[pos:], attributes)
            break
        if esc > pos:
            _emit(spans, text[pos:esc], attributes)

        if esc + 1 >= n:
            return spans, attributes, text[esc:]

        introducer = text[esc + 1]
        if introducer == "[":
            m = _CSI_RE.match(text, esc)
            if m:
                params, intermediates, final_byte = m.groups()
                private = params[:1] in ("<", "=", ">", "?")
                if final_byte == "m" and not intermediates and not private:
                    attributes = apply_sgr(_parse_params(params), attributes)
                # Any other CSI (cursor, erase, ?25l, ?7h, ...) is discarded
                pos = m.end()
                continue
            if _CSI_PARTIAL_RE.match(text, esc):
                return spans, attributes, text[esc:]
            # Malformed: drop the introducer, keep what follows as text
            pos = esc + 2
            continue

        if introducer in "]PX^_":
            m = _STRING_RE.match(text, esc)
            if m is None:
                return spans, attributes, text[esc:]
            pos = m.end()
            continue

        m = _SHORT_RE.match(text, esc)
        if m:
            pos = m.end()
            continue
        if _SHORT_PARTIAL_RE.match(text, esc):
            return spans, attributes, text[esc:]
        pos = esc + 1

    return spans, attributes, ""


def _emit(spans: list[StyledSpan], text: str, attributes: TextAttributes) -> None:
    if not text:
        return
    if spans and spans[-1].attributes == attributes:
        spans[-1] = StyledSpan(spans[-1].text + text, attributes)
    else:
        spans.append(StyledSpan(text, attributes))


def _split_incomplete_utf8(data: bytes) -> tuple[bytes, bytes]:
    """Split off a UTF-8 sequence truncated at the end of ``data``."""
    for back in range(1, min(3, len(data)) + 1):
        byte = data[-back]
        if byte & 0xC0 == 0x80:
            continue
        if 0xC2 <= byte <= 0xF4:
            need = 2 if byte < 0xE0 else 3 if byte < 0xF0 else 4
            if need > back:
                return data[:-back], data[-back:]
        break
    return data, b""
