"""Interactive entry point: terminal session plus the built-in command handler."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any, Awaitable, Callable

from ..config import AppConfig
from .input import TerminalKeySource
from .session import SessionCoordinator

logger = logging.getLogger(__name__)

_IS_WINDOWS = sys.platform == "win32"

# Called with the session and the submitted text; streams its reply through
# session.start_assistant_turn / session.append_to_current_assistant_turn.
Assistant = Callable[[SessionCoordinator, str], Awaitable[None]]

_EXIT_COMMANDS = frozenset({"/quit", "/exit"})

HELP_TEXT = """Commands:
  /help                 Show this help
  /clear                Clear the conversation
  /bashes               List background shell jobs
  /output <id> [regex]  Show output of a background job
  /kill <id>            Kill a background job
  /quit, /exit          Leave the session
  !<command>            Run a shell command"""

NO_ASSISTANT_TEXT = "No assistant is connected. Use !<command> to run a shell command or /help for commands."


def _add_signal_handler(loop: asyncio.AbstractEventLoop, sig: int, callback: Any) -> bool:
    """Add a signal handler, returning False on Windows where it's unsupported."""
    if _IS_WINDOWS:
        return False
    try:
        loop.add_signal_handler(sig, callback)
        return True
    except NotImplementedError:
        return False


def _remove_signal_handler(loop: asyncio.AbstractEventLoop, sig: int) -> None:
    if _IS_WINDOWS:
        return
    try:
        loop.remove_signal_handler(sig)
    except NotImplementedError:
        pass


def _format_jobs(session: SessionCoordinator) -> str:
    jobs = session.jobs.list_jobs()
    if not jobs:
        return "No background jobs."
    lines = ["Background jobs:"]
    for job in jobs:
        state = "running" if job.running else "completed"
        lines.append(f"  {job.token}  {state:<9}  {job.started_at:%H:%M:%S}  {job.description}")
    return "\n".join(lines)


def make_submission_handler(
    session: SessionCoordinator, assistant: Assistant | None = None
) -> Callable[[str], Awaitable[None]]:
    """Build the handler for submitted lines: slash commands, ``!`` shell, or the assistant."""

    async def handle(text: str) -> None:
        stripped = text.strip()

        if stripped.startswith("!"):
            command = stripped[1:].strip()
            if not command:
                session.add_error_message("Usage: !<command>")
                return
            result = await session.call_tool("Bash", {"command": command})
            session.add_info_message(result or "(no output)")
            return

        if stripped.startswith("/"):
            parts = stripped.split()
            cmd = parts[0].lower()
            if cmd in _EXIT_COMMANDS:
                session.request_exit()
            elif cmd == "/help":
                session.add_info_message(HELP_TEXT)
            elif cmd == "/clear":
                session.clear()
            elif cmd == "/bashes":
                session.add_info_message(_format_jobs(session))
            elif cmd == "/output":
                if len(parts) < 2:
                    session.add_error_message("Usage: /output <id> [regex]")
                    return
                args: dict[str, Any] = {"bash_id": parts[1]}
                if len(parts) > 2:
                    args["filter"] = stripped.split(maxsplit=2)[2]
                session.add_info_message(await session.call_tool("BashOutput", args))
            elif cmd == "/kill":
                if len(parts) < 2:
                    session.add_error_message("Usage: /kill <id>")
                    return
                session.add_info_message(await session.call_tool("KillBash", {"shell_id": parts[1]}))
            else:
                session.add_error_message(f"Unknown command: {cmd}. Type /help for commands.")
            return

        if assistant is None:
            session.add_info_message(NO_ASSISTANT_TEXT)
            return
        await assistant(session, text)

    return handle


async def run_cli(
    config: AppConfig,
    *,
    assistant: Assistant | None = None,
    cancel_event: asyncio.Event | None = None,
) -> None:
    """Run one interactive session on the controlling terminal until it is cancelled."""
    cancel_event = cancel_event or asyncio.Event()
    session = SessionCoordinator(config, key_source=TerminalKeySource())
    session.subscribe_submitted(make_submission_handler(session, assistant))

    loop = asyncio.get_running_loop()
    # Raw mode swallows Ctrl+C as a key, but SIGINT can still arrive via kill
    _add_signal_handler(loop, signal.SIGINT, cancel_event.set)
    _add_signal_handler(loop, signal.SIGTERM, cancel_event.set)
    try:
        await session.run(cancel_event)
    finally:
        _remove_signal_handler(loop, signal.SIGINT)
        _remove_signal_handler(loop, signal.SIGTERM)
