"""Tests for the tool registry and built-in tools."""

from __future__ import annotations

import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

from vestibule.config import ShellConfig
from vestibule.services.context import SessionContext
from vestibule.services.executor import ProcessExecutor
from vestibule.services.jobs import BackgroundJob, JobRegistry
from vestibule.tools import ToolRegistry, register_default_tools
from vestibule.tools import bash, todo

_DEFN = {
    "name": "test_tool",
    "description": "test",
    "parameters": {"type": "object", "properties": {"x": {"type": "string"}}},
}


def _registry(tmp_path) -> tuple[ToolRegistry, ProcessExecutor]:
    reg = ToolRegistry()
    executor = ProcessExecutor(JobRegistry(), ShellConfig(), working_dir=str(tmp_path))
    register_default_tools(reg, executor)
    return reg, executor


def _fake_job(token: str, stdout: list[str]) -> BackgroundJob:
    proc = MagicMock()
    proc.returncode = 0
    proc.wait = AsyncMock(return_value=0)
    return BackgroundJob(token=token, process=proc, stdout=stdout)


class TestToolRegistry:
    def test_register_and_has_tool(self) -> None:
        reg = ToolRegistry()

        async def handler(context, **kwargs):
            return "ok"

        reg.register("test_tool", handler, _DEFN)
        assert reg.has_tool("test_tool")
        assert not reg.has_tool("nonexistent")

    def test_get_openai_tools(self) -> None:
        reg = ToolRegistry()

        async def handler(context, **kwargs):
            return "ok"

        reg.register("test_tool", handler, _DEFN)
        tools = reg.get_openai_tools()
        assert tools == [
            {
                "type": "function",
                "function": {"name": "test_tool", "description": "test", "parameters": _DEFN["parameters"]},
            }
        ]

    @pytest.mark.asyncio
    async def test_call_tool_passes_context_and_arguments(self) -> None:
        reg = ToolRegistry()
        seen = {}

        async def handler(context, x=""):
            seen["context"] = context
            return f"got {x}"

        reg.register("test_tool", handler, _DEFN)
        ctx = SessionContext()
        assert await reg.call_tool("test_tool", {"x": "1"}, ctx) == "got 1"
        assert seen["context"] is ctx

    @pytest.mark.asyncio
    async def test_unexpected_arguments_dropped(self) -> None:
        reg = ToolRegistry()

        async def handler(context, x=""):
            return f"got {x}"

        reg.register("test_tool", handler, _DEFN)
        assert await reg.call_tool("test_tool", {"x": "1", "bogus": 2}, SessionContext()) == "got 1"

    @pytest.mark.asyncio
    async def test_call_unknown_tool(self) -> None:
        result = await ToolRegistry().call_tool("nope", {}, SessionContext())
        assert result == "Error: Unknown tool: nope"

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_text(self) -> None:
        reg = ToolRegistry()

        async def handler(context, **kwargs):
            raise RuntimeError("boom")

        reg.register("test_tool", handler, _DEFN)
        assert await reg.call_tool("test_tool", {}, SessionContext()) == "Error: boom"

    @pytest.mark.asyncio
    async def test_bad_signature_becomes_text(self) -> None:
        reg = ToolRegistry()

        async def handler(context, y):
            return "never"

        reg.register("test_tool", handler, _DEFN)
        result = await reg.call_tool("test_tool", {"x": "1"}, SessionContext())
        assert result.startswith("Error: Invalid arguments for test_tool:")

    def test_register_default_tools(self, tmp_path) -> None:
        reg, _ = _registry(tmp_path)
        assert reg.list_tools() == ["Bash", "BashOutput", "KillBash", "TodoWrite"]
        names = [t["function"]["name"] for t in reg.get_openai_tools()]
        assert names == ["Bash", "BashOutput", "KillBash", "TodoWrite"]


class TestBashTool:
    def test_coerce_timeout(self) -> None:
        assert bash._coerce_timeout(None) is None
        assert bash._coerce_timeout("") is None
        assert bash._coerce_timeout("5000") == 5000
        assert bash._coerce_timeout("soon") is None

    def test_coerce_bool(self) -> None:
        assert bash._coerce_bool("true") is True
        assert bash._coerce_bool("no") is False
        assert bash._coerce_bool(1) is True

    @pytest.mark.asyncio
    async def test_arguments_forwarded(self) -> None:
        executor = MagicMock()
        executor.execute = AsyncMock(return_value="done")
        handler = bash.make_handler(executor)
        result = await handler(
            SessionContext(), command="make", timeout="3000", description="build", run_in_background="true"
        )
        assert result == "done"
        executor.execute.assert_awaited_once_with("make", timeout_ms=3000, description="build", run_in_background=True)

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell required")
    async def test_runs_through_registry(self, tmp_path) -> None:
        reg, _ = _registry(tmp_path)
        assert await reg.call_tool("Bash", {"command": "echo via tool"}, SessionContext()) == "via tool\n"

    @pytest.mark.asyncio
    async def test_validation_error_is_text(self, tmp_path) -> None:
        reg, _ = _registry(tmp_path)
        assert await reg.call_tool("Bash", {"command": ""}, SessionContext()) == "Error: Command cannot be empty"


class TestBashOutputTool:
    @pytest.mark.asyncio
    async def test_not_found(self, tmp_path) -> None:
        reg, _ = _registry(tmp_path)
        result = await reg.call_tool("BashOutput", {"bash_id": "zzz"}, SessionContext())
        assert result == "Background process with ID 'zzz' not found."

    @pytest.mark.asyncio
    async def test_output_and_filter(self, tmp_path) -> None:
        reg, executor = _registry(tmp_path)
        executor.jobs.add(_fake_job("abc12345", ["keep 1\n", "drop\n", "keep 2\n"]))
        ctx = SessionContext()
        assert await reg.call_tool("BashOutput", {"bash_id": "abc12345"}, ctx) == "keep 1\ndrop\nkeep 2\n"
        result = await reg.call_tool("BashOutput", {"bash_id": "abc12345", "filter": "^keep"}, ctx)
        assert result == "keep 1\nkeep 2"

    @pytest.mark.asyncio
    async def test_invalid_regex(self, tmp_path) -> None:
        reg, executor = _registry(tmp_path)
        executor.jobs.add(_fake_job("abc12345", []))
        result = await reg.call_tool("BashOutput", {"bash_id": "abc12345", "filter": "("}, SessionContext())
        assert result.startswith("Error: Invalid regex pattern:")


class TestKillBashTool:
    @pytest.mark.asyncio
    async def test_kill_success(self, tmp_path) -> None:
        reg, executor = _registry(tmp_path)
        executor.jobs.add(_fake_job("abc12345", []))
        result = await reg.call_tool("KillBash", {"shell_id": "abc12345"}, SessionContext())
        assert result == "Successfully killed background process with ID 'abc12345'."
        assert "abc12345" not in executor.jobs

    @pytest.mark.asyncio
    async def test_kill_unknown(self, tmp_path) -> None:
        reg, _ = _registry(tmp_path)
        result = await reg.call_tool("KillBash", {"shell_id": "nope"}, SessionContext())
        assert result == "Background process with ID 'nope' not found or could not be killed."


class TestTodoWrite:
    @pytest.mark.asyncio
    async def test_replaces_session_list(self) -> None:
        ctx = SessionContext()
        result = await todo.handle(
            ctx,
            todos=[
                {"content": "write tests", "status": "completed"},
                {"id": "b", "content": "ship", "status": "in_progress"},
                {"content": "celebrate"},
            ],
        )
        assert result == "Todo list updated (1/3 completed):\n[x] write tests\n[~] ship\n[ ] celebrate"
        assert [t.to_dict() for t in ctx.todos] == [
            {"id": "1", "content": "write tests", "status": "completed"},
            {"id": "b", "content": "ship", "status": "in_progress"},
            {"id": "3", "content": "celebrate", "status": "pending"},
        ]

    @pytest.mark.asyncio
    async def test_empty_list_clears(self) -> None:
        ctx = SessionContext()
        await todo.handle(ctx, todos=[{"content": "x", "status": "pending"}])
        assert await todo.handle(ctx, todos=[]) == "Todo list cleared."
        assert ctx.todos == []

    @pytest.mark.asyncio
    async def test_invalid_status(self) -> None:
        ctx = SessionContext()
        result = await todo.handle(ctx, todos=[{"content": "x", "status": "done"}])
        assert result == "Error: todo #1 has invalid status 'done'"
        assert ctx.todos == []

    @pytest.mark.asyncio
    async def test_not_a_list(self) -> None:
        assert await todo.handle(SessionContext(), todos="x") == "Error: todos must be a list"

    @pytest.mark.asyncio
    async def test_contexts_are_isolated(self, tmp_path) -> None:
        reg, _ = _registry(tmp_path)
        first, second = SessionContext(), SessionContext()
        await reg.call_tool("TodoWrite", {"todos": [{"content": "a", "status": "pending"}]}, first)
        assert len(first.todos) == 1
        assert second.todos == []
