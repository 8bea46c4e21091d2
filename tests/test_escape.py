"""Tests for the escape interpreter (proterm.terminal.escape)."""

from __future__ import annotations

import random

import pytest

from proterm.terminal.colors import Color
from proterm.terminal.escape import (
    DEFAULT_ATTRIBUTES,
    InterpreterState,
    StyledSpan,
    TextAttributes,
    apply_sgr,
    interpret,
    plain_text,
    strip_escapes,
)


def _feed(*chunks: bytes) -> list[StyledSpan]:
    """Interpret chunks in order and return all spans, merged."""
    state = InterpreterState()
    out: list[StyledSpan] = []
    for chunk in chunks:
        spans, state = interpret(chunk, state)
        out.extend(spans)
    spans, _ = interpret(b"", state, final=True)
    out.extend(spans)
    merged: list[StyledSpan] = []
    for span in out:
        if merged and merged[-1].attributes == span.attributes:
            merged[-1] = StyledSpan(merged[-1].text + span.text, span.attributes)
        else:
            merged.append(span)
    return merged


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------


class TestPlainText:
    def test_single_default_span(self) -> None:
        spans, state = interpret(b"hello world\n")
        assert spans == [StyledSpan("hello world\n")]
        assert state.attributes is DEFAULT_ATTRIBUTES

    def test_empty_input(self) -> None:
        spans, state = interpret(b"")
        assert spans == []
        assert state == InterpreterState()

    def test_tabs_kept(self) -> None:
        spans, _ = interpret(b"a\tb")
        assert plain_text(spans) == "a\tb"

    def test_bare_controls_kept(self) -> None:
        spans, _ = interpret(b"ding\x07 back\x08space\x00")
        assert spans == [StyledSpan("ding\x07 back\x08space\x00")]

    def test_str_input(self) -> None:
        spans, _ = interpret("café")
        assert plain_text(spans) == "café"


class TestNewlines:
    def test_crlf(self) -> None:
        spans, _ = interpret(b"one\r\ntwo\r\n")
        assert plain_text(spans) == "one\ntwo\n"

    def test_bare_cr(self) -> None:
        spans, _ = interpret(b"one\rtwo")
        assert plain_text(spans) == "one\ntwo"

    def test_crlf_split_across_chunks(self) -> None:
        assert plain_text(_feed(b"one\r", b"\ntwo")) == "one\ntwo"

    def test_cr_then_text_across_chunks(self) -> None:
        assert plain_text(_feed(b"one\r", b"two")) == "one\ntwo"


# ---------------------------------------------------------------------------
# SGR
# ---------------------------------------------------------------------------


class TestSgr:
    def test_red_then_reset(self) -> None:
        spans, state = interpret(b"\x1b[31mHELLO\x1b[0m world")
        assert spans == [
            StyledSpan("HELLO", TextAttributes(foreground=Color.indexed(1))),
            StyledSpan(" world"),
        ]
        assert state.attributes == DEFAULT_ATTRIBUTES

    def test_empty_params_is_reset(self) -> None:
        spans, state = interpret(b"\x1b[1mB\x1b[mN")
        assert spans[0].attributes.bold is True
        assert spans[1] == StyledSpan("N")
        assert state.attributes.is_default

    def test_attributes_persist_across_chunks(self) -> None:
        state = InterpreterState()
        _, state = interpret(b"\x1b[1;4m", state)
        spans, state = interpret(b"text", state)
        assert spans[0].attributes.bold
        assert spans[0].attributes.underline

    def test_bright_colors(self) -> None:
        attrs = apply_sgr([92, 103], DEFAULT_ATTRIBUTES)
        assert attrs.foreground == Color.indexed(10)
        assert attrs.background == Color.indexed(11)

    def test_256_color(self) -> None:
        attrs = apply_sgr([38, 5, 196], DEFAULT_ATTRIBUTES)
        assert attrs.foreground == Color.indexed(196)
        assert attrs.foreground.triplet == (255, 0, 0)

    def test_256_color_background(self) -> None:
        attrs = apply_sgr([48, 5, 244], DEFAULT_ATTRIBUTES)
        assert attrs.background.triplet == (128, 128, 128)

    def test_truecolor(self) -> None:
        attrs = apply_sgr([38, 2, 10, 20, 30], DEFAULT_ATTRIBUTES)
        assert attrs.foreground == Color.from_rgb(10, 20, 30)

    def test_truecolor_truncated_ignored(self) -> None:
        attrs = apply_sgr([38, 2, 10], DEFAULT_ATTRIBUTES)
        assert attrs.foreground is None

    def test_colon_separated(self) -> None:
        spans, _ = interpret(b"\x1b[38:5:21mx")
        assert spans[0].attributes.foreground == Color.indexed(21)

    def test_default_color_codes(self) -> None:
        attrs = apply_sgr([31, 42], DEFAULT_ATTRIBUTES)
        attrs = apply_sgr([39], attrs)
        assert attrs.foreground is None
        assert attrs.background == Color.indexed(2)
        attrs = apply_sgr([49], attrs)
        assert attrs.is_default

    def test_flag_resets(self) -> None:
        attrs = apply_sgr([1, 3, 4, 9], DEFAULT_ATTRIBUTES)
        assert attrs == TextAttributes(
            bold=True, italic=True, underline=True, strikethrough=True
        )
        assert apply_sgr([22, 23, 24, 29], attrs).is_default

    def test_unknown_codes_ignored(self) -> None:
        attrs = apply_sgr([1, 73], DEFAULT_ATTRIBUTES)
        assert attrs == TextAttributes(bold=True)

    def test_adjacent_spans_never_share_attributes(self) -> None:
        spans, _ = interpret(b"a\x1b[1m\x1b[22mb\x1b[31mc\x1b[31md")
        for left, right in zip(spans, spans[1:]):
            assert left.attributes != right.attributes
        assert plain_text(spans) == "abcd"


# ---------------------------------------------------------------------------
# Non-SGR sequences
# ---------------------------------------------------------------------------


class TestDiscardedSequences:
    def test_cursor_and_erase(self) -> None:
        spans, state = interpret(b"\x1b[2J\x1b[H\x1b[10;5Hok\x1b[K")
        assert spans == [StyledSpan("ok")]
        assert state.attributes.is_default

    def test_private_modes(self) -> None:
        spans, _ = interpret(b"\x1b[?25l\x1b[?2004hprompt\x1b[?25h")
        assert plain_text(spans) == "prompt"

    def test_private_m_is_not_sgr(self) -> None:
        spans, _ = interpret(b"\x1b[>4;1mtext")
        assert spans == [StyledSpan("text")]

    def test_osc_title_bel(self) -> None:
        spans, _ = interpret(b"\x1b]0;my title\x07after")
        assert spans == [StyledSpan("after")]

    def test_osc_string_terminator(self) -> None:
        spans, _ = interpret(b"\x1b]8;;http://x\x1b\\link")
        assert plain_text(spans) == "link"

    def test_charset_designation(self) -> None:
        spans, _ = interpret(b"\x1b(Bplain\x1b=")
        assert plain_text(spans) == "plain"

    def test_strip_escapes(self) -> None:
        assert strip_escapes("\x1b[1;32mok\x1b[0m \x1b]2;t\x07done") == "ok done"


# ---------------------------------------------------------------------------
# Chunk boundaries
# ---------------------------------------------------------------------------


class TestChunking:
    def test_split_utf8(self) -> None:
        data = "héllo ✓".encode()
        # Split inside the two-byte e-acute and the three-byte check mark
        spans = _feed(data[:2], data[2:9], data[9:])
        assert plain_text(spans) == "héllo ✓"

    def test_split_utf8_pending_tail(self) -> None:
        check = "✓".encode()
        spans, state = interpret(b"x" + check[:2])
        assert plain_text(spans) == "x"
        assert state.pending_bytes == check[:2]

    def test_truncated_utf8_at_end_of_stream(self) -> None:
        check = "✓".encode()
        spans = _feed(b"x" + check[:2])
        assert plain_text(spans) == "x�"

    def test_split_csi(self) -> None:
        spans = _feed(b"\x1b[3", b"1mred")
        assert spans == [StyledSpan("red", TextAttributes(foreground=Color.indexed(1)))]

    def test_split_after_escape(self) -> None:
        spans = _feed(b"a\x1b", b"[1mb")
        assert spans == [StyledSpan("a"), StyledSpan("b", TextAttributes(bold=True))]

    def test_split_osc(self) -> None:
        spans = _feed(b"\x1b]0;ti", b"tle\x07text")
        assert spans == [StyledSpan("text")]

    def test_unterminated_escape_dropped_at_end(self) -> None:
        spans = _feed(b"done\x1b[12")
        assert spans == [StyledSpan("done")]

    def test_byte_at_a_time_matches_whole(self) -> None:
        data = "\x1b[1;31mError:\x1b[0m café\r\n\x1b]0;t\x07ok\r\n".encode()
        whole = _feed(data)
        pieces = _feed(*(data[i : i + 1] for i in range(len(data))))
        assert pieces == whole
        assert plain_text(whole) == "Error: café\nok\n"


class TestRoundTrip:
    @pytest.mark.parametrize(
        "data, expected",
        [
            (b"plain", "plain"),
            (b"a\r\nb\rc\n", "a\nb\nc\n"),
            (b"\x1b[1;31mbold red\x1b[0m\r\n", "bold red\n"),
            (b"\x1b[?1049h\x1b[H\x1b[2Jscreen\x1b[?1049l", "screen"),
            (b"\x1b]0;title\x07\x1b(B\x1b[38;5;208mx\x1b[39m", "x"),
            (b"tab\there\x00\x1b[0K", "tab\there\x00"),
            ("naïve ✓\r\n".encode(), "naïve ✓\n"),
        ],
    )
    def test_text_is_input_without_controls(self, data: bytes, expected: str) -> None:
        assert plain_text(_feed(data)) == expected
        assert plain_text(_feed(*(data[i : i + 1] for i in range(len(data))))) == expected


_TEXT_PIECES = [
    "a", "word ", "Z9", "\t", "\x07", "\x08", "\x00", "é", "✓", "😀", "\n", "\r\n"
]
_ESCAPE_PIECES = [
    "\x1b[0m",
    "\x1b[1;31m",
    "\x1b[38;5;208m",
    "\x1b[48;2;1;2;3m",
    "\x1b[m",
    "\x1b[2J",
    "\x1b[10;5H",
    "\x1b[?25l",
    "\x1b]0;title\x07",
    "\x1b]8;;http://x\x1b\\",
    "\x1b(B",
    "\x1b=",
]


def _random_stream(rng: random.Random) -> tuple[bytes, str]:
    """A byte stream of mixed text and escapes, plus its expected plain text."""
    pieces = []
    expected = []
    for _ in range(rng.randint(1, 40)):
        if rng.random() < 0.3:
            pieces.append(rng.choice(_ESCAPE_PIECES))
        else:
            piece = rng.choice(_TEXT_PIECES)
            pieces.append(piece)
            expected.append(piece)
    return "".join(pieces).encode(), "".join(expected).replace("\r\n", "\n")


def _random_split(rng: random.Random, data: bytes) -> list[bytes]:
    count = min(len(data) - 1, rng.randint(0, 8))
    cuts = sorted(rng.sample(range(1, len(data)), k=count))
    bounds = [0, *cuts, len(data)]
    return [data[start:end] for start, end in zip(bounds, bounds[1:])]


class TestRandomizedRoundTrip:
    @pytest.mark.parametrize("seed", range(50))
    def test_any_split_yields_input_text(self, seed: int) -> None:
        rng = random.Random(seed)
        data, expected = _random_stream(rng)
        whole = _feed(data)
        assert plain_text(whole) == expected
        assert _feed(*_random_split(rng, data)) == whole
