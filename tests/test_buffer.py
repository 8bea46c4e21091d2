"""Tests for proterm.pty.buffer.ScrollbackBuffer."""

from __future__ import annotations

import pytest

from proterm.pty.buffer import ScrollbackBuffer
from proterm.terminal.colors import Color
from proterm.terminal.escape import StyledSpan, TextAttributes

RED = TextAttributes(foreground=Color.indexed(1))


class TestScrollbackBasics:
    def test_empty(self) -> None:
        buf = ScrollbackBuffer()
        assert buf.length == 0
        assert buf.total_appended == 0
        assert buf.contents() == ""
        assert buf.spans() == []

    def test_default_capacity(self) -> None:
        assert ScrollbackBuffer().max_chars == 50_000

    def test_append(self) -> None:
        buf = ScrollbackBuffer()
        buf.append("hello ")
        buf.append("world")
        assert buf.contents() == "hello world"
        assert len(buf) == 11

    def test_append_empty_is_noop(self) -> None:
        buf = ScrollbackBuffer()
        buf.append("")
        buf.append_spans([StyledSpan("")])
        assert buf.spans() == []

    def test_same_attributes_merge(self) -> None:
        buf = ScrollbackBuffer()
        buf.append("a")
        buf.append("b")
        assert buf.spans() == [StyledSpan("ab")]

    def test_different_attributes_kept_apart(self) -> None:
        buf = ScrollbackBuffer()
        buf.append("plain ")
        buf.append("red", RED)
        spans = buf.spans()
        assert len(spans) == 2
        assert spans[1] == StyledSpan("red", RED)


class TestScrollbackEviction:
    def test_cap_enforced(self) -> None:
        buf = ScrollbackBuffer(max_chars=10)
        buf.append("0123456789")
        buf.append("abc")
        assert buf.contents() == "3456789abc"
        assert buf.length == 10
        assert buf.total_appended == 13

    def test_single_append_larger_than_cap(self) -> None:
        buf = ScrollbackBuffer(max_chars=4)
        buf.append("abcdefgh")
        assert buf.contents() == "efgh"

    def test_evicts_whole_spans_then_head(self) -> None:
        buf = ScrollbackBuffer(max_chars=5)
        buf.append("aaa")
        buf.append("bbb", RED)
        buf.append("cc")
        spans = buf.spans()
        assert "".join(s.text for s in spans) == "bbbcc"
        assert spans[0].attributes == RED

    def test_suffix_matches_unbounded(self) -> None:
        chunks = [f"line {i}\n" * (i % 7 + 1) for i in range(200)]
        bounded = ScrollbackBuffer(max_chars=97)
        unbounded = ScrollbackBuffer(max_chars=10**9)
        for chunk in chunks:
            bounded.append(chunk)
            unbounded.append(chunk)
            assert bounded.length <= 97
        assert unbounded.contents().endswith(bounded.contents())
        assert bounded.length == 97

    def test_styled_suffix_preserved(self) -> None:
        buf = ScrollbackBuffer(max_chars=6)
        buf.append_spans([StyledSpan("xxxx"), StyledSpan("RED", RED), StyledSpan("zz")])
        spans = buf.spans()
        assert spans == [StyledSpan("x"), StyledSpan("RED", RED), StyledSpan("zz")]


class TestScrollbackRead:
    def test_read_tail(self) -> None:
        buf = ScrollbackBuffer()
        buf.append("a\nb\nc\nprompt % ")
        assert buf.read_tail(2) == ["c", "prompt % "]

    def test_read_tail_more_than_available(self) -> None:
        buf = ScrollbackBuffer()
        buf.append("a\nb")
        assert buf.read_tail(10) == ["a", "b"]

    @pytest.mark.parametrize("n", [0, -1])
    def test_read_tail_nothing_requested(self, n: int) -> None:
        buf = ScrollbackBuffer()
        buf.append("a\nb\nc")
        assert buf.read_tail(n) == []

    def test_last_line_spans_multiple_spans(self) -> None:
        buf = ScrollbackBuffer()
        buf.append("first\nPass")
        buf.append("word: ", RED)
        assert buf.last_line() == "Password: "

    def test_last_line_after_newline_is_empty(self) -> None:
        buf = ScrollbackBuffer()
        buf.append("done\n")
        assert buf.last_line() == ""


class TestScrollbackClear:
    def test_clear(self) -> None:
        buf = ScrollbackBuffer()
        buf.append("something")
        buf.clear()
        assert buf.length == 0
        assert buf.contents() == ""
