"""Terminal rendering of the conversation.

Two renderers share one contract: they subscribe to the message store,
read it only through snapshots, and never own conversation data.
``create_renderer`` picks one at startup from the console's capabilities.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from ..models import ChatTurn, Role
from .store import MessageStore, StoreEvent, StoreEventKind
from .theme import DEFAULT_THEME, Theme

if TYPE_CHECKING:
    from ..config import UIConfig

logger = logging.getLogger(__name__)

_INPUT_MAX_LINES = 8


def role_label(role: Role) -> str:
    return "You" if role is Role.USER else role.value


def _flatten(text: str) -> str:
    return " ".join(text.split())


class BaseRenderer(ABC):
    """Observer of a ``MessageStore`` that draws it on a rich console."""

    def __init__(self, store: MessageStore, *, console: Console | None = None, theme: Theme = DEFAULT_THEME) -> None:
        self.store = store
        self.console = console or Console()
        self.theme = theme
        self._unsubscribe = store.subscribe(self._on_store_event)
        self._last_failure = ""

    @abstractmethod
    def _on_store_event(self, event: StoreEvent) -> None: ...

    @abstractmethod
    def on_input_changed(self, text: str) -> None: ...

    @abstractmethod
    async def start(self) -> None: ...

    async def stop(self) -> None:
        self._unsubscribe()

    def _style(self, turn: ChatTurn) -> str:
        return turn.color or self.theme.color_for(turn.role)

    def _report_failure(self, exc: BaseException) -> None:
        """Surface a render failure as an Error turn, once per distinct message."""
        message = f"Render error: {exc}"
        if message == self._last_failure:
            return
        self._last_failure = message
        self.store.append(ChatTurn(Role.ERROR, message, color=self.theme.error_color))


class InteractiveRenderer(BaseRenderer):
    """Full-screen layout with a message panel above an input panel.

    Store notifications only enqueue a redraw request. One consumer task
    drains the queue and redraws at most once per ``min_interval``, so a
    burst of streamed tokens costs a single refresh.
    """

    def __init__(
        self,
        store: MessageStore,
        *,
        console: Console | None = None,
        theme: Theme = DEFAULT_THEME,
        min_interval: float = 0.05,
        idle_recheck: float = 0.016,
        alternate_screen: bool = True,
    ) -> None:
        super().__init__(store, console=console, theme=theme)
        self._min_interval = min_interval
        self._idle_recheck = idle_recheck
        self._alternate_screen = alternate_screen
        self._requests: queue.SimpleQueue[str] = queue.SimpleQueue()
        self._input_text = ""
        self._layout = Layout(name="root")
        self._layout.split_column(Layout(name="messages", ratio=1), Layout(name="input", size=3))
        self._live: Live | None = None
        self._task: asyncio.Task[None] | None = None
        self._last_refresh = 0.0
        self.refresh_count = 0

    def _on_store_event(self, event: StoreEvent) -> None:
        self.request_redraw(event.kind.value)

    def on_input_changed(self, text: str) -> None:
        self._input_text = text
        self.request_redraw("input")

    def request_redraw(self, reason: str = "state") -> None:
        """Queue a redraw; safe to call from any thread."""
        self._requests.put(reason)

    def _drain_requests(self) -> int:
        count = 0
        while True:
            try:
                self._requests.get_nowait()
            except queue.Empty:
                return count
            count += 1

    async def start(self) -> None:
        if self._task is not None:
            return
        self._live = Live(
            self._layout,
            console=self.console,
            auto_refresh=False,
            screen=self._alternate_screen,
            redirect_stdout=False,
            redirect_stderr=False,
        )
        self._live.start()
        self._drain_requests()
        self._redraw()
        self._task = asyncio.create_task(self._consume())

    async def stop(self) -> None:
        await super().stop()
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        if self._live is not None:
            self._live.stop()
            self._live = None

    async def _consume(self) -> None:
        while True:
            if not self._drain_requests():
                await asyncio.sleep(self._idle_recheck)
                continue
            remaining = self._min_interval - (time.monotonic() - self._last_refresh)
            if remaining > 0:
                await asyncio.sleep(remaining)
                self._drain_requests()
            self._redraw()

    def _redraw(self) -> None:
        try:
            self._update_layout()
            if self._live is not None:
                self._live.refresh()
        except Exception as e:
            logger.exception("Render failed")
            self._report_failure(e)
        self._last_refresh = time.monotonic()
        self.refresh_count += 1

    def _update_layout(self) -> None:
        width, height = self.console.size
        input_lines = min(self._input_text.count("\n") + 1, _INPUT_MAX_LINES)
        input_size = input_lines + 2
        self._layout["input"].size = input_size

        body_height = max(height - input_size - 2, 1)
        turns = self.store.snapshot()
        self._layout["messages"].update(
            Panel(
                self._messages_text(turns, body_height, max(width - 4, 1)),
                title="Vestibule",
                border_style=self.theme.chrome_color,
            )
        )
        self._layout["input"].update(
            Panel(
                self._input_renderable(input_lines),
                subtitle=self.theme.help_text,
                border_style=self.theme.chrome_color,
            )
        )

    def _messages_text(self, turns: tuple[ChatTurn, ...], height: int, width: int) -> Text:
        # Walk back from the newest turn until the panel is full
        visible: list[ChatTurn] = []
        used = 0
        for turn in reversed(turns):
            rows = sum(len(line) // width + 1 for line in f"{role_label(turn.role)}: {turn.content}".split("\n"))
            if visible and used + rows > height:
                break
            visible.append(turn)
            used += rows

        text = Text(overflow="fold")
        for turn in reversed(visible):
            style = self._style(turn)
            text.append(f"{role_label(turn.role)}: ", style=f"bold {style}")
            text.append(turn.content, style=style if turn.role is Role.ERROR else "")
            text.append("\n")
        text.rstrip()
        return text

    def _input_renderable(self, max_lines: int) -> Text:
        lines = self._input_text.split("\n")[-max_lines:]
        text = Text(self.theme.input_prompt, style=f"bold {self.theme.user_color}")
        text.append("\n".join(lines))
        text.append("▌", style=self.theme.chrome_color)
        return text


class FallbackRenderer(BaseRenderer):
    """Line-oriented output for terminals that cannot redraw in place.

    Each new turn is printed once. The line under the cursor is either the
    streaming Assistant turn or the input echo; only that line is ever
    rewritten.
    """

    _LINE_NONE = ""
    _LINE_INPUT = "input"
    _LINE_STREAM = "stream"

    def __init__(self, store: MessageStore, *, console: Console | None = None, theme: Theme = DEFAULT_THEME) -> None:
        super().__init__(store, console=console, theme=theme)
        self._lock = threading.Lock()
        self._line = self._LINE_NONE
        self._stream_index = -1
        self._input_text = ""

    async def start(self) -> None:
        # Turns are printed as they arrive; only the key hints are left to show
        with self._lock:
            self._end_current_line()
            self.console.print(Text(self.theme.help_text, style=self.theme.chrome_color), highlight=False)

    async def stop(self) -> None:
        await super().stop()
        with self._lock:
            if self._line == self._LINE_STREAM:
                self._write("\n")
            elif self._line == self._LINE_INPUT:
                self._clear_line()
            self._line = self._LINE_NONE

    def _write(self, data: str) -> None:
        self.console.file.write(data)
        self.console.file.flush()

    def _clear_line(self) -> None:
        self._write("\r" + " " * max(self.console.width - 1, 0) + "\r")

    def _fit(self, prefix: str, content: str) -> str:
        # Keep only the tail so the rewritten line never wraps
        room = max(self.console.width - 1 - len(prefix), 1)
        flat = _flatten(content)
        return flat[-room:]

    def _print_turn(self, turn: ChatTurn) -> None:
        label = f"{role_label(turn.role)}: "
        self.console.print(
            Text.assemble((label, f"bold {self._style(turn)}"), turn.content),
            soft_wrap=True,
            highlight=False,
        )

    def _print_stream_line(self, turn: ChatTurn | None, content: str) -> None:
        label = "Assistant: "
        style = self._style(turn) if turn is not None else self.theme.assistant_color
        self.console.print(
            Text.assemble((label, f"bold {style}"), self._fit(label, content)),
            end="",
            soft_wrap=True,
            highlight=False,
        )
        self.console.file.flush()

    def _print_input_line(self) -> None:
        prompt = self.theme.input_prompt
        self.console.print(Text(prompt + self._fit(prompt, self._input_text)), end="", soft_wrap=True, highlight=False)
        self.console.file.flush()

    def _end_current_line(self) -> None:
        if self._line == self._LINE_STREAM:
            self._write("\n")
        elif self._line == self._LINE_INPUT:
            self._clear_line()
        self._line = self._LINE_NONE

    def _on_store_event(self, event: StoreEvent) -> None:
        try:
            with self._lock:
                self._apply(event)
        except Exception as e:
            logger.exception("Fallback render failed")
            self._report_failure(e)

    def _apply(self, event: StoreEvent) -> None:
        if event.kind is StoreEventKind.CLEARED:
            self._end_current_line()
            self._stream_index = -1
            return

        if event.kind is StoreEventKind.ADDED and event.turn is not None:
            self._end_current_line()
            if event.turn.role is Role.ASSISTANT:
                self._stream_index = event.index
                self._print_stream_line(event.turn, event.turn.content)
                self._line = self._LINE_STREAM
                return
            self._stream_index = -1
            self._print_turn(event.turn)
            if self._input_text:
                self._print_input_line()
                self._line = self._LINE_INPUT
            return

        if event.kind is StoreEventKind.UPDATED:
            if event.index != self._stream_index or self._line != self._LINE_STREAM:
                logger.debug("Ignoring update to settled turn %d", event.index)
                return
            self._clear_line()
            self._print_stream_line(None, event.content)

    def on_input_changed(self, text: str) -> None:
        with self._lock:
            self._input_text = text
            if self._line == self._LINE_STREAM:
                return
            if self._line == self._LINE_INPUT:
                self._clear_line()
            if text:
                self._print_input_line()
                self._line = self._LINE_INPUT
            else:
                self._line = self._LINE_NONE


def supports_interactive(console: Console, force_fallback: bool = False) -> bool:
    """True when the console can redraw a multi-region layout in place."""
    if force_fallback:
        return False
    return console.is_terminal and not console.is_dumb_terminal and console.color_system is not None


def create_renderer(
    store: MessageStore,
    config: UIConfig,
    *,
    console: Console | None = None,
    theme: Theme = DEFAULT_THEME,
) -> BaseRenderer:
    console = console or Console()
    if supports_interactive(console, config.force_fallback):
        logger.debug("Using interactive renderer")
        return InteractiveRenderer(
            store,
            console=console,
            theme=theme,
            min_interval=config.min_redraw_interval_ms / 1000,
            idle_recheck=config.idle_recheck_ms / 1000,
            alternate_screen=config.alternate_screen,
        )
    logger.debug("Using fallback renderer")
    return FallbackRenderer(store, console=console, theme=theme)
