"""Shell command execution: foreground with timeout, or tracked background jobs."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import sys

from ..config import ShellConfig
from ..tools.security import sanitize_command
from .jobs import BackgroundJob, JobRegistry, terminate_process, wait_for_exit
from .output import drain_lines, format_output, truncate_output

logger = logging.getLogger(__name__)

_IS_WINDOWS = sys.platform == "win32"

TIMEOUT_MESSAGE = "Command timed out and was terminated."

_STREAM_LIMIT = 4 * 1024 * 1024
# How long to keep reading after the shell exits; a backgrounded
# grandchild can hold the pipes open indefinitely.
_DRAIN_GRACE = 1.0


def default_shell() -> list[str]:
    if _IS_WINDOWS:
        return ["powershell.exe", "-NoProfile", "-Command", "-"]
    if os.path.exists("/bin/bash"):
        return ["/bin/bash"]
    return ["/bin/sh"]


class ProcessExecutor:
    """Runs commands in a fresh shell per call.

    Background jobs go into the injected ``JobRegistry``; the registry's
    ``poll_output``/``kill`` are the read and control side.
    """

    def __init__(
        self,
        jobs: JobRegistry,
        config: ShellConfig | None = None,
        working_dir: str | None = None,
    ) -> None:
        self.jobs = jobs
        self._config = config or ShellConfig()
        self._working_dir = working_dir or os.getcwd()

    @property
    def working_dir(self) -> str:
        return self._working_dir

    def clamp_timeout(self, timeout_ms: int | None) -> int:
        if timeout_ms is None:
            return self._config.default_timeout_ms
        return max(self._config.min_timeout_ms, min(self._config.max_timeout_ms, int(timeout_ms)))

    def _shell_argv(self) -> list[str]:
        if self._config.shell:
            return shlex.split(self._config.shell)
        return default_shell()

    async def _spawn(self, command: str) -> asyncio.subprocess.Process:
        kwargs = {} if _IS_WINDOWS else {"start_new_session": True}
        proc = await asyncio.create_subprocess_exec(
            *self._shell_argv(),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self._working_dir,
            limit=_STREAM_LIMIT,
            **kwargs,
        )
        assert proc.stdin is not None
        try:
            proc.stdin.write(command.encode("utf-8") + b"\n")
            await proc.stdin.drain()
            proc.stdin.close()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Shell closed stdin before the command was written")
        return proc

    async def execute(
        self,
        command: str,
        timeout_ms: int | None = None,
        description: str | None = None,
        run_in_background: bool = False,
    ) -> str:
        """Run ``command`` and return its output as text.

        Never raises for command problems: validation errors, spawn
        failures and timeouts all come back as text.
        """
        timeout = self.clamp_timeout(timeout_ms)
        processed, error = sanitize_command(command, self._config.discouraged_prefixes, self._working_dir)
        if error:
            return f"Error: {error}"

        try:
            if run_in_background:
                return await self._run_background(processed, description)
            return await self._run_foreground(processed, timeout)
        except OSError as e:
            logger.warning("Failed to start shell for %r: %s", processed[:80], e)
            return f"Error executing command: {e}"

    async def _run_foreground(self, command: str, timeout_ms: int) -> str:
        proc = await self._spawn(command)
        stdout: list[str] = []
        stderr: list[str] = []
        drains = [
            asyncio.create_task(drain_lines(proc.stdout, stdout)),
            asyncio.create_task(drain_lines(proc.stderr, stderr)),
        ]
        try:
            try:
                await asyncio.wait_for(wait_for_exit(proc), timeout=timeout_ms / 1000)
            except asyncio.TimeoutError:
                logger.warning("Command timed out after %dms: %s", timeout_ms, command[:80])
                await terminate_process(proc)
                return TIMEOUT_MESSAGE
            await asyncio.wait(drains, timeout=_DRAIN_GRACE)
        except asyncio.CancelledError:
            await terminate_process(proc)
            raise
        finally:
            for task in drains:
                task.cancel()
            await asyncio.gather(*drains, return_exceptions=True)

        return truncate_output(format_output(stdout, stderr), self._config.max_output_chars)

    async def _run_background(self, command: str, description: str | None) -> str:
        proc = await self._spawn(command)
        job = BackgroundJob(
            token=self.jobs.new_token(),
            process=proc,
            description=description.strip() if description and description.strip() else "Background command",
        )
        self.jobs.add(job)
        drains = [
            asyncio.create_task(drain_lines(proc.stdout, job.stdout)),
            asyncio.create_task(drain_lines(proc.stderr, job.stderr)),
        ]
        job.tasks.extend(drains)
        job.tasks.append(asyncio.create_task(self._watch_exit(job, drains)))
        logger.info("Started background job %s: %s", job.token, command[:80])

        return (
            f"Command started in background (ID: {job.token}). Description: {job.description}\n"
            "Use BashOutput tool to monitor progress."
        )

    async def _watch_exit(self, job: BackgroundJob, drains: list[asyncio.Task[None]]) -> None:
        await wait_for_exit(job.process)
        await asyncio.wait(drains, timeout=_DRAIN_GRACE)
        job.mark_completed()
