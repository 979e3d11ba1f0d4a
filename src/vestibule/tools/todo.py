"""Task list tool backed by the session context."""

from __future__ import annotations

from typing import Any

from ..services.context import TODO_STATUSES, SessionContext, TodoItem

DEFINITION: dict[str, Any] = {
    "name": "TodoWrite",
    "description": (
        "Replace the task list for the current session. Send the complete list every time; "
        "mark exactly one item in_progress while working on it."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "todos": {
                "type": "array",
                "description": "The updated task list",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "content": {"type": "string"},
                        "status": {"type": "string", "enum": list(TODO_STATUSES)},
                    },
                    "required": ["content", "status"],
                },
            },
        },
        "required": ["todos"],
    },
}

_MARKS = {"pending": "[ ]", "in_progress": "[~]", "completed": "[x]"}


async def handle(context: SessionContext, todos: list[dict[str, Any]] | None = None) -> str:
    if not isinstance(todos, list):
        return "Error: todos must be a list"

    items: list[TodoItem] = []
    for n, raw in enumerate(todos, start=1):
        if not isinstance(raw, dict):
            return f"Error: todo #{n} must be an object"
        content = str(raw.get("content", "")).strip()
        if not content:
            return f"Error: todo #{n} has empty content"
        status = str(raw.get("status", "pending"))
        if status not in TODO_STATUSES:
            return f"Error: todo #{n} has invalid status '{status}'"
        items.append(TodoItem(id=str(raw.get("id") or n), content=content, status=status))

    context.replace_todos(items)
    if not items:
        return "Todo list cleared."
    lines = [f"{_MARKS[item.status]} {item.content}" for item in items]
    done = sum(1 for item in items if item.status == "completed")
    return f"Todo list updated ({done}/{len(items)} completed):\n" + "\n".join(lines)
