"""Shell command execution tool."""

from __future__ import annotations

from typing import Any

from ..services.context import SessionContext
from ..services.executor import ProcessExecutor
from . import ToolHandler

DEFINITION: dict[str, Any] = {
    "name": "Bash",
    "description": (
        "Execute a shell command in a fresh shell and return its output. "
        "Default timeout is 120000ms (2 minutes), max 600000ms. Output over 30000 characters is truncated. "
        "Set run_in_background to start a long-running command and read it later with BashOutput. "
        "Do not use find, grep, cat, head or tail here; use the dedicated tools."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "The command to execute"},
            "timeout": {
                "type": "integer",
                "description": "Optional timeout in milliseconds (max 600000)",
            },
            "description": {
                "type": "string",
                "description": "Clear, concise description of what this command does in 5-10 words",
            },
            "run_in_background": {
                "type": "boolean",
                "description": "Run the command in the background. Use BashOutput to read the output later.",
                "default": False,
            },
        },
        "required": ["command"],
    },
}


def _coerce_timeout(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def make_handler(executor: ProcessExecutor) -> ToolHandler:
    async def handle(
        context: SessionContext,
        command: str = "",
        timeout: Any = None,
        description: str | None = None,
        run_in_background: bool = False,
    ) -> str:
        return await executor.execute(
            command,
            timeout_ms=_coerce_timeout(timeout),
            description=description,
            run_in_background=_coerce_bool(run_in_background),
        )

    return handle
