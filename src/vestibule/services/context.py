"""Per-conversation state passed explicitly along the tool call chain."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

TODO_STATUSES = ("pending", "in_progress", "completed")


@dataclass
class TodoItem:
    id: str
    content: str
    status: str = "pending"

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "content": self.content, "status": self.status}


@dataclass
class SessionContext:
    """Running chat history and task list for one conversation.

    Each session coordinator creates its own instance and hands it to every
    tool call, so two conversations in one process never share state.
    """

    history: list[dict[str, Any]] = field(default_factory=list)
    todos: list[TodoItem] = field(default_factory=list)

    def record(self, role: str, content: str) -> None:
        self.history.append({"role": role, "content": content})

    def replace_todos(self, items: list[TodoItem]) -> None:
        self.todos = list(items)

    def clear(self) -> None:
        self.history.clear()
        self.todos.clear()
