"""Read output from a background shell job."""

from __future__ import annotations

import re
from typing import Any

from ..services.context import SessionContext
from ..services.jobs import JobRegistry
from . import ToolHandler

DEFINITION: dict[str, Any] = {
    "name": "BashOutput",
    "description": (
        "Retrieve output from a running or completed background shell. "
        "Returns stdout and stderr accumulated so far, followed by [Process completed] once it exits. "
        "Output is not consumed: polling again returns earlier lines too. "
        "The optional regex filter only hides non-matching lines from this result."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "bash_id": {"type": "string", "description": "The ID of the background shell to retrieve output from"},
            "filter": {
                "type": "string",
                "description": "Optional regular expression; only matching lines are included in the result",
            },
        },
        "required": ["bash_id"],
    },
}


def make_handler(jobs: JobRegistry) -> ToolHandler:
    async def handle(context: SessionContext, bash_id: str = "", filter: str | None = None) -> str:
        try:
            output = jobs.poll_output(bash_id, filter)
        except re.error as e:
            return f"Error: Invalid regex pattern: {e}"
        if output is None:
            return f"Background process with ID '{bash_id}' not found."
        return output

    return handle
