"""Tests for output formatting, truncation and stream draining."""

from __future__ import annotations

import asyncio

import pytest

from vestibule.services.output import MAX_OUTPUT_CHARS, drain_lines, format_output, truncate_output


class TestTruncateOutput:
    def test_short_output_unchanged(self) -> None:
        assert truncate_output("hello\n") == "hello\n"

    def test_empty_output(self) -> None:
        assert truncate_output("") == ""

    def test_exactly_at_limit_not_truncated(self) -> None:
        text = "a" * MAX_OUTPUT_CHARS
        assert truncate_output(text) == text

    def test_long_output_keeps_prefix_and_notice(self) -> None:
        text = "".join(str(i % 10) for i in range(MAX_OUTPUT_CHARS + 500))
        result = truncate_output(text)
        assert result == text[:MAX_OUTPUT_CHARS] + "\n\n[Output truncated - exceeded 30000 characters]"

    def test_custom_limit(self) -> None:
        assert truncate_output("abcdef", 3) == "abc\n\n[Output truncated - exceeded 3 characters]"


class TestFormatOutput:
    def test_stdout_only(self) -> None:
        assert format_output(["a\n", "b\n"], []) == "a\nb\n"

    def test_stderr_follows_stdout(self) -> None:
        assert format_output(["out\n"], ["bad\n"]) == "out\nError: bad\n"

    def test_completed_marker(self) -> None:
        assert format_output(["x\n"], [], completed=True) == "x\n[Process completed]\n"

    def test_nothing(self) -> None:
        assert format_output([], []) == ""


class TestDrainLines:
    @pytest.mark.asyncio
    async def test_lines_normalized(self) -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(b"one\r\ntwo\nthree")
        reader.feed_eof()
        sink: list[str] = []
        await drain_lines(reader, sink)
        assert sink == ["one\n", "two\n", "three\n"]

    @pytest.mark.asyncio
    async def test_invalid_utf8_replaced(self) -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(b"caf\xff\n")
        reader.feed_eof()
        sink: list[str] = []
        await drain_lines(reader, sink)
        assert sink == ["caf\ufffd\n"]

    @pytest.mark.asyncio
    async def test_overlong_line_is_omitted(self) -> None:
        reader = asyncio.StreamReader(limit=8)
        reader.feed_data(b"0123456789abcdef\nok\n")
        reader.feed_eof()
        sink: list[str] = []
        await drain_lines(reader, sink)
        assert sink == ["[line too long, omitted]\n", "ok\n"]

    @pytest.mark.asyncio
    async def test_none_stream(self) -> None:
        sink: list[str] = []
        await drain_lines(None, sink)
        assert sink == []
