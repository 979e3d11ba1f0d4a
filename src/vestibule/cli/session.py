"""Session coordinator: wires input, store, renderer and the shell engine."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from rich.console import Console

from ..config import AppConfig
from ..models import ChatTurn, Role
from ..services.context import SessionContext
from ..services.executor import ProcessExecutor
from ..services.jobs import JobRegistry
from ..tools import ToolRegistry, register_default_tools
from .input import InputProcessor, KeySource
from .renderer import BaseRenderer, create_renderer
from .store import MessageStore
from .theme import DEFAULT_THEME, Theme

logger = logging.getLogger(__name__)

SubmittedCallback = Callable[[str], Union[None, Awaitable[None]]]

WELCOME_MESSAGE = "Welcome to Vestibule!"


class SessionCoordinator:
    """Owns one conversation and the runtime pieces that serve it.

    Submitted lines become User turns and are then handed to every
    ``subscribe_submitted`` callback. Coroutine callbacks run as tracked
    tasks; whatever they raise is shown as an Error turn. An external
    assistant streams its reply with ``start_assistant_turn`` followed by
    repeated ``append_to_current_assistant_turn`` calls.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        key_source: KeySource | None = None,
        renderer: BaseRenderer | None = None,
        console: Console | None = None,
        theme: Theme = DEFAULT_THEME,
        working_dir: str | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.theme = theme
        self.store = MessageStore(self.config.ui.max_messages)
        self.context = SessionContext()
        self.jobs = JobRegistry(self.config.shell.max_output_chars)
        self.executor = ProcessExecutor(self.jobs, self.config.shell, working_dir)
        self.tools = ToolRegistry()
        register_default_tools(self.tools, self.executor)

        self.input = InputProcessor(
            key_source,
            queue_size=self.config.ui.key_queue_size,
            poll_interval=self.config.ui.key_poll_interval_ms / 1000,
        )
        self.input.on_submitted(self._on_submitted)
        self.input.on_changed(self._on_input_changed)
        self.input.on_interrupt(self.request_exit)

        self.renderer = renderer or create_renderer(self.store, self.config.ui, console=console, theme=theme)

        self._callbacks: list[SubmittedCallback] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._cancel_event: asyncio.Event | None = None
        self._closed = False

    # -- events ---------------------------------------------------------

    def subscribe_submitted(self, callback: SubmittedCallback) -> None:
        self._callbacks.append(callback)

    def _on_input_changed(self, text: str) -> None:
        self.renderer.on_input_changed(text)

    def _on_submitted(self, text: str) -> None:
        self.add_user_message(text)
        for callback in list(self._callbacks):
            try:
                result = callback(text)
            except Exception as e:
                logger.exception("Submit handler failed")
                self.add_error_message(f"Error: {e}")
                continue
            if inspect.isawaitable(result):
                self._track(result)

    def _track(self, awaitable: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Submit handler failed", exc_info=exc)
            self.add_error_message(f"Error: {exc}")

    # -- conversation -----------------------------------------------------

    def color_for_role(self, role: Role | str) -> str:
        return self.theme.color_for(role)

    def add_message(self, role: Role | str, content: str) -> int:
        role = Role.parse(role)
        return self.store.append(ChatTurn(role, content, color=self.color_for_role(role)))

    def add_user_message(self, content: str) -> int:
        self.context.record("user", content)
        return self.add_message(Role.USER, content)

    def add_system_message(self, content: str) -> int:
        return self.add_message(Role.SYSTEM, content)

    def add_info_message(self, content: str) -> int:
        return self.add_message(Role.INFO, content)

    def add_error_message(self, content: str) -> int:
        return self.add_message(Role.ERROR, content)

    def start_assistant_turn(self, content: str = "") -> int:
        return self.add_message(Role.ASSISTANT, content)

    def append_to_current_assistant_turn(self, text: str) -> bool:
        return self.store.append_to_current_assistant_turn(text)

    def update_current_assistant_turn(self, text: str) -> bool:
        return self.store.update_current_assistant_turn(text)

    def finish_assistant_turn(self) -> None:
        """Record the streamed reply in the conversation history."""
        content = self.store.current_assistant_content()
        if content is None:
            return
        self.context.record("assistant", content)

    def clear(self) -> None:
        self.store.clear()
        self.context.clear()

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        return await self.tools.call_tool(name, arguments, self.context)

    # -- lifecycle ------------------------------------------------------

    def request_exit(self) -> None:
        if self._cancel_event is not None:
            self._cancel_event.set()

    async def run(self, cancel_event: asyncio.Event | None = None) -> None:
        """Start input, greet, start rendering, then wait for cancellation."""
        self._cancel_event = cancel_event or asyncio.Event()
        await self.input.start()
        self.add_system_message(WELCOME_MESSAGE)
        self.add_info_message(f"cwd: {self.executor.working_dir}")
        try:
            await self.renderer.start()
            await self._cancel_event.wait()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.input.stop()
        await self.renderer.stop()
        await self.jobs.close()
        logger.debug("Session closed")
