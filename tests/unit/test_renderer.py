"""Tests for the interactive and fallback renderers."""

from __future__ import annotations

import asyncio
import io
import time
from unittest.mock import patch

import pytest
from rich.console import Console

from vestibule.cli.renderer import (
    FallbackRenderer,
    InteractiveRenderer,
    create_renderer,
    supports_interactive,
)
from vestibule.cli.store import MessageStore
from vestibule.config import UIConfig
from vestibule.models import ChatTurn, Role


@pytest.fixture(autouse=True)
def _xterm(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TERM", "xterm-256color")
    for var in ("FORCE_COLOR", "NO_COLOR", "TTY_COMPATIBLE", "TTY_INTERACTIVE"):
        monkeypatch.delenv(var, raising=False)


def _tty_console() -> Console:
    return Console(file=io.StringIO(), force_terminal=True, color_system="truecolor", width=80, height=24)


def _plain_console(width: int = 40) -> Console:
    return Console(file=io.StringIO(), width=width)


class TestCapabilityProbe:
    def test_terminal_with_color(self) -> None:
        assert supports_interactive(_tty_console())

    def test_not_a_terminal(self) -> None:
        assert not supports_interactive(_plain_console())

    def test_no_color_system(self) -> None:
        console = Console(file=io.StringIO(), force_terminal=True, color_system=None)
        assert not supports_interactive(console)

    def test_dumb_terminal(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TERM", "dumb")
        assert not supports_interactive(_tty_console())

    def test_forced_fallback(self) -> None:
        assert not supports_interactive(_tty_console(), force_fallback=True)

    def test_create_renderer_picks_variant(self) -> None:
        store = MessageStore()
        assert isinstance(create_renderer(store, UIConfig(), console=_tty_console()), InteractiveRenderer)
        assert isinstance(create_renderer(store, UIConfig(), console=_plain_console()), FallbackRenderer)
        forced = UIConfig(force_fallback=True)
        assert isinstance(create_renderer(store, forced, console=_tty_console()), FallbackRenderer)


class TestInteractiveRenderer:
    @pytest.mark.asyncio
    async def test_burst_of_notifications_refreshes_once(self) -> None:
        console = _tty_console()
        store = MessageStore()
        renderer = InteractiveRenderer(store, console=console, alternate_screen=False)
        store.append(ChatTurn(Role.ASSISTANT, ""))
        await renderer.start()
        try:
            await asyncio.sleep(0.2)
            with patch.object(renderer._live, "refresh", wraps=renderer._live.refresh) as refresh:
                for _ in range(20):
                    store.append_to_current_assistant_turn("x")
                await asyncio.sleep(0.3)
            assert refresh.call_count == 1
        finally:
            await renderer.stop()
        assert "x" * 20 in console.file.getvalue()

    @pytest.mark.asyncio
    async def test_requests_inside_interval_wait_for_it(self) -> None:
        store = MessageStore()
        renderer = InteractiveRenderer(store, console=_tty_console(), alternate_screen=False, min_interval=0.1)
        await renderer.start()
        times: list[float] = []
        real_refresh = renderer._live.refresh

        def timed_refresh() -> None:
            times.append(time.monotonic())
            real_refresh()

        try:
            await asyncio.sleep(0.2)
            with patch.object(renderer._live, "refresh", side_effect=timed_refresh):
                store.append(ChatTurn(Role.INFO, "one"))
                while not times:
                    await asyncio.sleep(0.005)
                store.append(ChatTurn(Role.INFO, "two"))
                store.append(ChatTurn(Role.INFO, "three"))
                await asyncio.sleep(0.4)
        finally:
            await renderer.stop()
        assert len(times) == 2
        assert times[1] - times[0] >= 0.09

    @pytest.mark.asyncio
    async def test_input_change_is_drawn(self) -> None:
        console = _tty_console()
        renderer = InteractiveRenderer(MessageStore(), console=console, alternate_screen=False)
        await renderer.start()
        try:
            renderer.on_input_changed("echo typed")
            await asyncio.sleep(0.2)
        finally:
            await renderer.stop()
        assert "echo typed" in console.file.getvalue()

    @pytest.mark.asyncio
    async def test_render_failure_reported_once(self) -> None:
        store = MessageStore()
        renderer = InteractiveRenderer(store, console=_tty_console(), alternate_screen=False)
        with patch.object(renderer, "_update_layout", side_effect=RuntimeError("boom")):
            await renderer.start()
            try:
                store.append(ChatTurn(Role.INFO, "trigger"))
                await asyncio.sleep(0.3)
            finally:
                await renderer.stop()
        errors = [t for t in store.snapshot() if t.role is Role.ERROR]
        assert [t.content for t in errors] == ["Render error: boom"]

    @pytest.mark.asyncio
    async def test_stop_unsubscribes(self) -> None:
        store = MessageStore()
        renderer = InteractiveRenderer(store, console=_tty_console(), alternate_screen=False)
        await renderer.start()
        await renderer.stop()
        store.append(ChatTurn(Role.INFO, "late"))
        assert renderer._drain_requests() == 0

    def test_message_area_shows_newest_turns(self) -> None:
        store = MessageStore()
        renderer = InteractiveRenderer(store, console=_tty_console())
        turns = tuple(ChatTurn(Role.INFO, f"turn {i}") for i in range(10))
        text = renderer._messages_text(turns, height=3, width=40)
        assert text.plain == "Info: turn 7\nInfo: turn 8\nInfo: turn 9"

    def test_message_content_is_not_markup(self) -> None:
        renderer = InteractiveRenderer(MessageStore(), console=_tty_console())
        text = renderer._messages_text((ChatTurn(Role.USER, "[bold]x[/bold]"),), height=5, width=40)
        assert text.plain == "You: [bold]x[/bold]"


class TestFallbackRenderer:
    def test_new_turns_printed_as_lines(self) -> None:
        console = _plain_console()
        store = MessageStore()
        FallbackRenderer(store, console=console)
        store.append(ChatTurn(Role.SYSTEM, "hello"))
        store.append(ChatTurn(Role.USER, "ls"))
        assert console.file.getvalue() == "System: hello\nYou: ls\n"

    def test_streaming_overwrites_current_line(self) -> None:
        console = _plain_console(width=40)
        store = MessageStore()
        FallbackRenderer(store, console=console)
        store.append(ChatTurn(Role.SYSTEM, "hello"))
        store.append(ChatTurn(Role.ASSISTANT, ""))
        store.append_to_current_assistant_turn("Hi")
        store.append_to_current_assistant_turn(" there")
        store.append(ChatTurn(Role.USER, "next"))

        blank = "\r" + " " * 39 + "\r"
        assert console.file.getvalue() == (
            "System: hello\n"
            "Assistant: "
            f"{blank}Assistant: Hi"
            f"{blank}Assistant: Hi there"
            "\nYou: next\n"
        )

    def test_long_stream_keeps_tail_on_one_line(self) -> None:
        console = _plain_console(width=30)
        store = MessageStore()
        FallbackRenderer(store, console=console)
        store.append(ChatTurn(Role.ASSISTANT, ""))
        store.update_current_assistant_turn("word " * 20 + "END")
        last_line = console.file.getvalue().rsplit("\r", 1)[-1]
        assert last_line.startswith("Assistant: ")
        assert last_line.endswith("END")
        assert len(last_line) <= 29

    @pytest.mark.asyncio
    async def test_input_echo_and_clear(self) -> None:
        console = _plain_console(width=20)
        store = MessageStore()
        renderer = FallbackRenderer(store, console=console)
        renderer.on_input_changed("pw")
        renderer.on_input_changed("pwd")
        renderer.on_input_changed("")
        store.append(ChatTurn(Role.USER, "pwd"))
        blank = "\r" + " " * 19 + "\r"
        assert console.file.getvalue() == f"> pw{blank}> pwd{blank}You: pwd\n"

    @pytest.mark.asyncio
    async def test_start_and_stop(self) -> None:
        console = _plain_console(width=80)
        store = MessageStore()
        renderer = FallbackRenderer(store, console=console)
        await renderer.start()
        store.append(ChatTurn(Role.ASSISTANT, "partial"))
        await renderer.stop()
        output = console.file.getvalue()
        assert output.startswith("Enter=Send")
        assert "Ctrl+C=Clear/Exit" in output
        assert output.endswith("Assistant: partial\n")
        store.append(ChatTurn(Role.INFO, "after stop"))
        assert "after stop" not in console.file.getvalue()
