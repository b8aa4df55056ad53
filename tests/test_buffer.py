"""Tests for agentherd.session.buffer.OutputBuffer."""

from __future__ import annotations

import asyncio
import os

import pytest

from agentherd.session.buffer import MAX_OUTPUT_LINES, OutputBuffer

NL = os.linesep


class TestOutputBufferBasics:
    def test_empty(self) -> None:
        buf = OutputBuffer()
        assert buf.line_count == 0
        assert buf.total_lines == 0
        assert buf.text() == ""
        assert buf.max_lines == MAX_OUTPUT_LINES == 200

    def test_rejects_zero_capacity(self) -> None:
        with pytest.raises(ValueError):
            OutputBuffer(max_lines=0)

    def test_append(self) -> None:
        buf = OutputBuffer()
        buf.append("hello" + NL)
        buf.append("world" + NL)
        assert buf.line_count == 2
        assert buf.total_lines == 2

    def test_append_text_reattaches_terminators(self) -> None:
        buf = OutputBuffer()
        added = buf.append_text("line1\nline2\nline3\n")
        assert added == 3
        assert buf.read_all() == ["line1" + NL, "line2" + NL, "line3" + NL]

    def test_crlf_is_normalized(self) -> None:
        buf = OutputBuffer()
        buf.append_text("a\r\nb\r\n")
        assert buf.read_all() == ["a" + NL, "b" + NL]

    def test_trailing_partial_line_kept_as_is(self) -> None:
        buf = OutputBuffer()
        buf.append_text("done\n> ")
        assert buf.read_all() == ["done" + NL, "> "]

    def test_empty_trailing_piece_not_stored(self) -> None:
        buf = OutputBuffer()
        buf.append_text("only\n")
        assert buf.line_count == 1

    def test_empty_text_adds_nothing(self) -> None:
        buf = OutputBuffer()
        assert buf.append_text("") == 0
        assert buf.total_lines == 0

    def test_blank_lines_preserved(self) -> None:
        buf = OutputBuffer()
        buf.append_text("a\n\nb\n")
        assert buf.read_all() == ["a" + NL, NL, "b" + NL]

    def test_concatenation_reproduces_stream(self) -> None:
        buf = OutputBuffer()
        chunks = ["Bash(ls", " -la)\n", "\nDo you want", " to proceed?\n❯ 1. Yes\n"]
        for chunk in chunks:
            buf.append_text(chunk)
        assert buf.text() == "".join(chunks).replace("\n", NL)


class TestOutputBufferOverflow:
    def test_maxlen_enforced(self) -> None:
        buf = OutputBuffer(max_lines=5)
        for i in range(10):
            buf.append_text(f"line {i}\n")
        assert buf.line_count == 5
        assert buf.total_lines == 10
        assert buf.read_all() == [f"line {i}{NL}" for i in range(5, 10)]

    def test_overflow_within_one_chunk(self) -> None:
        buf = OutputBuffer(max_lines=3)
        buf.append_text("a\nb\nc\nd\ne\n")
        assert buf.read_all() == ["c" + NL, "d" + NL, "e" + NL]

    @pytest.mark.parametrize("count", [0, 1, 199, 200, 201, 450])
    def test_keeps_last_lines_in_order(self, count: int) -> None:
        buf = OutputBuffer()
        lines = [f"entry {i}\n" for i in range(count)]
        for line in lines:
            buf.append_text(line)
        expected = [line.replace("\n", NL) for line in lines[-200:]] if lines else []
        assert buf.read_all() == expected
        assert buf.line_count == min(count, 200)


class TestOutputBufferRead:
    def test_read_tail(self) -> None:
        buf = OutputBuffer()
        for i in range(10):
            buf.append(f"line {i}")
        assert buf.read_tail(3) == ["line 7", "line 8", "line 9"]

    def test_read_tail_more_than_available(self) -> None:
        buf = OutputBuffer()
        buf.append("a")
        buf.append("b")
        assert buf.read_tail(10) == ["a", "b"]

    def test_read_tail_zero(self) -> None:
        buf = OutputBuffer()
        buf.append("a")
        assert buf.read_tail(0) == []

    def test_tail_text_concatenates(self) -> None:
        buf = OutputBuffer()
        buf.append_text("one\ntwo\nthree\n")
        assert buf.tail_text(2) == f"two{NL}three{NL}"

    def test_read_all_is_a_snapshot(self) -> None:
        buf = OutputBuffer()
        buf.append("a")
        snapshot = buf.read_all()
        buf.append("b")
        assert snapshot == ["a"]


class TestOutputBufferClear:
    def test_clear(self) -> None:
        buf = OutputBuffer()
        for i in range(5):
            buf.append(f"line {i}")
        buf.clear()
        assert buf.line_count == 0
        assert buf.total_lines == 0
        assert buf.text() == ""


class TestOutputBufferWaiting:
    @pytest.mark.asyncio
    async def test_wait_for_data_wakes_on_append(self) -> None:
        buf = OutputBuffer()
        buf.attach_loop()
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, buf.append_text, "hi\n")
        assert await buf.wait_for_data(timeout=2.0) is True

    @pytest.mark.asyncio
    async def test_wait_for_data_times_out(self) -> None:
        buf = OutputBuffer()
        buf.attach_loop()
        assert await buf.wait_for_data(timeout=0.05) is False

    @pytest.mark.asyncio
    async def test_wait_for_pattern(self) -> None:
        buf = OutputBuffer()
        buf.attach_loop()
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, buf.append_text, "booting\n")
        loop.call_later(0.1, buf.append_text, "ready>\n")
        assert await buf.wait_for(r"ready>", timeout=2.0) is True

    @pytest.mark.asyncio
    async def test_wait_for_pattern_deadline(self) -> None:
        buf = OutputBuffer()
        buf.attach_loop()
        buf.append_text("nothing useful\n")
        assert await buf.wait_for(r"ready>", timeout=0.1) is False
