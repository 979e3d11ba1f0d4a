"""Background job registry: owns shell processes started with run_in_background."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import signal
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .output import MAX_OUTPUT_CHARS, format_output, truncate_output

logger = logging.getLogger(__name__)

_IS_WINDOWS = sys.platform == "win32"
_KILL_WAIT = 5.0
_EXIT_POLL = 0.02


async def wait_for_exit(proc: asyncio.subprocess.Process) -> int:
    """Wait until the shell itself has exited and return its exit code.

    ``Process.wait()`` also waits for the output pipes to close, which never
    happens while a child started with ``&`` still holds them. The return
    code is set as soon as the shell is reaped, so poll that instead.
    """
    while proc.returncode is None:
        await asyncio.sleep(_EXIT_POLL)
    return proc.returncode


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        pass


async def terminate_process(proc: asyncio.subprocess.Process) -> None:
    """Kill a shell process and everything it spawned, then reap it.

    Shells are started in their own session on POSIX so the whole process
    group can be signalled. The group is signalled even after the shell
    has exited, since a backgrounded child may still be running in it.
    """
    if _IS_WINDOWS:
        _kill(proc)
    else:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.warning("Failed to signal process group %s: %s", proc.pid, e)
            _kill(proc)
    try:
        await asyncio.wait_for(wait_for_exit(proc), timeout=_KILL_WAIT)
    except asyncio.TimeoutError:
        logger.warning("Process %s did not exit after kill", proc.pid)


@dataclass
class BackgroundJob:
    """A tracked shell process and the output it has produced so far."""

    token: str
    process: asyncio.subprocess.Process
    description: str = "Background command"
    started_at: datetime = field(default_factory=datetime.now)
    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)
    completed: bool = False
    tasks: list[asyncio.Task[Any]] = field(default_factory=list)
    _disposed: bool = False

    @property
    def running(self) -> bool:
        return not self.completed

    def mark_completed(self) -> None:
        if self.completed:
            return
        self.completed = True
        logger.info("Background job %s finished (exit code %s)", self.token, self.process.returncode)

    async def dispose(self) -> None:
        """Kill the process group and stop reading its output. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        await terminate_process(self.process)
        current = asyncio.current_task()
        for task in self.tasks:
            if task is not current and not task.done():
                task.cancel()


class JobRegistry:
    """Jobs keyed by short hex token.

    Owned by one session and injected where needed. All access happens on
    the event loop thread, so plain dict operations are atomic with respect
    to every task that touches the registry.

    Finished jobs stay queryable until ``kill`` or ``close`` removes them.
    """

    def __init__(self, max_output_chars: int = MAX_OUTPUT_CHARS) -> None:
        self._jobs: dict[str, BackgroundJob] = {}
        self._max_output_chars = max_output_chars

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, token: str) -> bool:
        return token in self._jobs

    def new_token(self) -> str:
        while True:
            token = uuid.uuid4().hex[:8]
            if token not in self._jobs:
                return token

    def add(self, job: BackgroundJob) -> None:
        if job.token in self._jobs:
            raise ValueError(f"Duplicate job token: {job.token}")
        for existing in self._jobs.values():
            if existing.process is job.process:
                raise ValueError(f"Process {job.process.pid} is already owned by job {existing.token}")
        self._jobs[job.token] = job

    def get(self, token: str) -> BackgroundJob | None:
        return self._jobs.get(token)

    def list_jobs(self) -> list[BackgroundJob]:
        return sorted(self._jobs.values(), key=lambda j: j.started_at)

    def poll_output(self, token: str, pattern: str | None = None) -> str | None:
        """Return everything the job has written so far, or None for an unknown token.

        Reading does not consume: a later poll returns the same lines again.
        With ``pattern``, lines that do not match are left out of the result
        but remain in the job's buffers. Raises ``re.error`` for a bad pattern.
        """
        job = self._jobs.get(token)
        if job is None:
            return None
        output = truncate_output(format_output(job.stdout, job.stderr, job.completed), self._max_output_chars)
        if pattern is None or not pattern.strip():
            return output
        regex = re.compile(pattern)
        return "\n".join(line for line in output.split("\n") if regex.search(line))

    async def kill(self, token: str) -> bool:
        """Remove the job and kill its process. False when the token is unknown."""
        job = self._jobs.pop(token, None)
        if job is None:
            return False
        await job.dispose()
        logger.info("Killed background job %s (%s)", token, job.description)
        return True

    async def close(self) -> None:
        """Kill and dispose every tracked job."""
        jobs = list(self._jobs.values())
        self._jobs.clear()
        for job in jobs:
            try:
                await job.dispose()
            except Exception:
                logger.exception("Failed to dispose background job %s", job.token)
