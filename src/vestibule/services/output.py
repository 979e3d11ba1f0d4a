"""Output accumulation and the truncation cap shared by every shell result."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 30_000


def truncate_output(output: str, limit: int = MAX_OUTPUT_CHARS) -> str:
    if not output:
        return ""
    if len(output) <= limit:
        return output
    return output[:limit] + f"\n\n[Output truncated - exceeded {limit} characters]"


def format_output(stdout: list[str], stderr: list[str], completed: bool = False) -> str:
    """Join accumulated lines: stdout, then ``Error:`` + stderr, then the completion marker."""
    result = "".join(stdout)
    err = "".join(stderr)
    if err:
        result += f"Error: {err}"
    if completed:
        result += "[Process completed]\n"
    return result


async def drain_lines(stream: asyncio.StreamReader | None, sink: list[str]) -> None:
    """Append each line read from ``stream`` to ``sink`` until EOF."""
    if stream is None:
        return
    while True:
        try:
            line = await stream.readline()
        except ValueError:
            # Line longer than the reader limit; asyncio has already discarded it.
            sink.append("[line too long, omitted]\n")
            continue
        if not line:
            return
        sink.append(line.decode("utf-8", errors="replace").rstrip("\r\n") + "\n")
