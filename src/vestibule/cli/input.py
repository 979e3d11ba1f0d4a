"""Raw key capture and line editing for the chat input.

Two tasks cooperate: a capture task polls the key source and pushes
events into a bounded queue, and a processing task applies them to the
line buffer strictly in arrival order.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class Key(Enum):
    CHAR = "char"
    ENTER = "enter"
    BACKSPACE = "backspace"
    DELETE = "delete"
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"
    HOME = "home"
    END = "end"
    INTERRUPT = "interrupt"  # Ctrl+C
    EOF = "eof"  # Ctrl+D
    OTHER = "other"


_NAVIGATION = {Key.DELETE, Key.LEFT, Key.RIGHT, Key.UP, Key.DOWN, Key.HOME, Key.END}


@dataclass(frozen=True)
class KeyEvent:
    key: Key
    char: str = ""
    continuation: bool = False  # Enter with Shift/Alt held: insert newline instead of submitting


class InputState(Enum):
    IDLE = "idle"
    EDITING = "editing"


class KeySource(Protocol):
    def read_keys(self) -> list[KeyEvent]:
        """Return pending key events without blocking (empty list when none)."""
        ...

    def close(self) -> None: ...


def translate_key_presses(presses: list[Any]) -> list[KeyEvent]:
    """Convert prompt_toolkit ``KeyPress`` objects into ``KeyEvent``s.

    Escape immediately followed by Enter (Alt+Enter) becomes a
    continuation Enter. Bracketed paste is expanded character by
    character with newlines as continuations, so a paste never submits.
    """
    from prompt_toolkit.keys import Keys

    simple = {
        Keys.ControlH: Key.BACKSPACE,
        Keys.Delete: Key.DELETE,
        Keys.Left: Key.LEFT,
        Keys.Right: Key.RIGHT,
        Keys.Up: Key.UP,
        Keys.Down: Key.DOWN,
        Keys.Home: Key.HOME,
        Keys.End: Key.END,
        Keys.ControlC: Key.INTERRUPT,
        Keys.ControlD: Key.EOF,
    }

    events: list[KeyEvent] = []
    after_escape = False
    for press in presses:
        key = press.key
        if key == Keys.Escape:
            after_escape = True
            continue
        if key == Keys.ControlM:
            events.append(KeyEvent(Key.ENTER, continuation=after_escape))
        elif key == Keys.ControlJ:
            events.append(KeyEvent(Key.ENTER, continuation=True))
        elif key == Keys.BracketedPaste:
            for ch in press.data.replace("\r\n", "\n").replace("\r", "\n"):
                if ch == "\n":
                    events.append(KeyEvent(Key.ENTER, continuation=True))
                else:
                    events.append(KeyEvent(Key.CHAR, char=ch))
        elif key in simple:
            events.append(KeyEvent(simple[key]))
        elif not isinstance(key, Keys) and len(key) == 1:
            events.append(KeyEvent(Key.CHAR, char=key))
        else:
            events.append(KeyEvent(Key.OTHER))
        after_escape = False
    return events


class TerminalKeySource:
    """Reads keys from the controlling terminal in raw mode via prompt_toolkit."""

    def __init__(self) -> None:
        from prompt_toolkit.input import create_input

        # Kitty keyboard protocol Shift+Enter (iTerm2, kitty, WezTerm, foot).
        try:
            from prompt_toolkit.input import vt100_parser
            from prompt_toolkit.keys import Keys

            vt100_parser.ANSI_SEQUENCES["\x1b[13;2u"] = Keys.ControlJ
        except ImportError:
            pass

        self._input = create_input()
        self._raw_mode = self._input.raw_mode()
        self._raw_mode.__enter__()
        self._closed = False

    def read_keys(self) -> list[KeyEvent]:
        presses = self._input.read_keys()
        if not presses:
            # A lone ESC (or partial sequence) stays buffered until flushed.
            presses = self._input.flush_keys()
        return translate_key_presses(presses)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._raw_mode.__exit__(None, None, None)
        finally:
            self._input.close()


SubmitListener = Callable[[str], None]
ChangeListener = Callable[[str], None]
InterruptListener = Callable[[], None]


class InputProcessor:
    def __init__(
        self,
        key_source: KeySource | None = None,
        *,
        queue_size: int = 256,
        poll_interval: float = 0.01,
    ) -> None:
        self._key_source = key_source
        self._queue: asyncio.Queue[KeyEvent] = asyncio.Queue(maxsize=queue_size)
        self._poll_interval = poll_interval
        self._lock = threading.Lock()
        self._buffer = ""
        self._submit_listeners: list[SubmitListener] = []
        self._change_listeners: list[ChangeListener] = []
        self._interrupt_listeners: list[InterruptListener] = []
        self._capture_task: asyncio.Task[None] | None = None
        self._process_task: asyncio.Task[None] | None = None

    def on_submitted(self, listener: SubmitListener) -> None:
        self._submit_listeners.append(listener)

    def on_changed(self, listener: ChangeListener) -> None:
        self._change_listeners.append(listener)

    def on_interrupt(self, listener: InterruptListener) -> None:
        self._interrupt_listeners.append(listener)

    @property
    def current_input(self) -> str:
        with self._lock:
            return self._buffer

    @property
    def state(self) -> InputState:
        with self._lock:
            return InputState.EDITING if self._buffer else InputState.IDLE

    @property
    def running(self) -> bool:
        return self._process_task is not None and not self._process_task.done()

    def clear_input(self) -> None:
        with self._lock:
            self._buffer = ""
        self._emit(self._change_listeners, "")

    async def start(self) -> None:
        if self._process_task is not None:
            return
        self._process_task = asyncio.create_task(self._process())
        if self._key_source is not None:
            self._capture_task = asyncio.create_task(self._capture())

    async def stop(self) -> None:
        tasks = [t for t in (self._capture_task, self._process_task) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._capture_task = None
        self._process_task = None
        if self._key_source is not None:
            self._key_source.close()

    async def feed(self, event: KeyEvent) -> None:
        """Queue a key event; waits while the queue is full."""
        await self._queue.put(event)

    async def _capture(self) -> None:
        assert self._key_source is not None
        while True:
            try:
                events = self._key_source.read_keys()
            except OSError as e:
                logger.warning("Key capture stopped: %s", e)
                return
            for event in events:
                await self._queue.put(event)
            if not events:
                await asyncio.sleep(self._poll_interval)

    async def _process(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self.process_key(event)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued key has been processed."""
        await self._queue.join()

    def process_key(self, event: KeyEvent) -> None:
        submitted: str | None = None
        interrupt = False

        with self._lock:
            key = event.key
            if key is Key.ENTER and event.continuation:
                self._buffer += "\n"
            elif key is Key.ENTER:
                if not self._buffer.strip():
                    return
                submitted = self._buffer
                self._buffer = ""
            elif key is Key.BACKSPACE:
                self._buffer = self._buffer[:-1]
            elif key is Key.CHAR:
                if event.char and event.char.isprintable():
                    self._buffer += event.char
            elif key is Key.INTERRUPT:
                # Ctrl+C clears a non-empty line, otherwise asks to exit
                if self._buffer:
                    self._buffer = ""
                else:
                    interrupt = True
            elif key is Key.EOF:
                if self._buffer:
                    return
                interrupt = True
            elif key in _NAVIGATION or key is Key.OTHER:
                pass
            current = self._buffer

        if interrupt:
            for listener in list(self._interrupt_listeners):
                self._call(listener)
            return
        if submitted is not None:
            self._emit(self._submit_listeners, submitted)
        self._emit(self._change_listeners, current)

    def _emit(self, listeners: list[Callable[[str], None]], text: str) -> None:
        for listener in list(listeners):
            self._call(listener, text)

    @staticmethod
    def _call(listener: Callable[..., None], *args: Any) -> None:
        try:
            listener(*args)
        except Exception:
            logger.exception("Input listener failed")
