"""Built-in tool registry for the agent session.

Every tool takes named arguments and returns one text blob. Faults inside
a tool are turned into ``Error: ...`` text here so a failing call never
escapes to the session loop.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Coroutine

if TYPE_CHECKING:
    from ..services.context import SessionContext
    from ..services.executor import ProcessExecutor

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Coroutine[Any, Any, str]]


class ToolRegistry:
    """Registry of built-in tools with OpenAI function-call format."""

    def __init__(self) -> None:
        self._handlers: dict[str, ToolHandler] = {}
        self._definitions: dict[str, dict[str, Any]] = {}

    def register(self, name: str, handler: ToolHandler, definition: dict[str, Any]) -> None:
        self._handlers[name] = handler
        self._definitions[name] = definition

    def has_tool(self, name: str) -> bool:
        return name in self._handlers

    def get_openai_tools(self) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": defn.get("description", ""),
                    "parameters": defn.get("parameters", {}),
                },
            }
            for name, defn in self._definitions.items()
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any], context: SessionContext) -> str:
        handler = self._handlers.get(name)
        if not handler:
            return f"Error: Unknown tool: {name}"

        allowed = set(self._definitions[name].get("parameters", {}).get("properties", {}))
        unexpected = sorted(set(arguments) - allowed)
        if unexpected:
            logger.debug("Dropping unexpected arguments for %s: %s", name, unexpected)
        kwargs = {k: v for k, v in arguments.items() if k in allowed}

        try:
            return await handler(context, **kwargs)
        except TypeError as e:
            return f"Error: Invalid arguments for {name}: {e}"
        except Exception as e:
            logger.exception("Tool %s failed", name)
            return f"Error: {e}"

    def list_tools(self) -> list[str]:
        return list(self._handlers.keys())


def register_default_tools(registry: ToolRegistry, executor: ProcessExecutor) -> None:
    """Register all built-in tools against one executor and its job registry."""
    from . import bash, bash_output, kill_bash, todo

    registry.register(bash.DEFINITION["name"], bash.make_handler(executor), bash.DEFINITION)
    registry.register(bash_output.DEFINITION["name"], bash_output.make_handler(executor.jobs), bash_output.DEFINITION)
    registry.register(kill_bash.DEFINITION["name"], kill_bash.make_handler(executor.jobs), kill_bash.DEFINITION)
    registry.register(todo.DEFINITION["name"], todo.handle, todo.DEFINITION)
