"""Terminate a background shell job."""

from __future__ import annotations

import logging
from typing import Any

from ..services.context import SessionContext
from ..services.jobs import JobRegistry
from . import ToolHandler

logger = logging.getLogger(__name__)

DEFINITION: dict[str, Any] = {
    "name": "KillBash",
    "description": "Kill a running background shell by its ID and stop tracking it.",
    "parameters": {
        "type": "object",
        "properties": {
            "shell_id": {"type": "string", "description": "The ID of the background shell to kill"},
        },
        "required": ["shell_id"],
    },
}


def make_handler(jobs: JobRegistry) -> ToolHandler:
    async def handle(context: SessionContext, shell_id: str = "") -> str:
        try:
            killed = await jobs.kill(shell_id)
        except OSError as e:
            logger.warning("Failed to kill background job %s: %s", shell_id, e)
            killed = False
        if killed:
            return f"Successfully killed background process with ID '{shell_id}'."
        return f"Background process with ID '{shell_id}' not found or could not be killed."

    return handle
