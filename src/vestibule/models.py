"""Conversation data shared by the store, renderers and session."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    USER = "User"
    ASSISTANT = "Assistant"
    SYSTEM = "System"
    INFO = "Info"
    ERROR = "Error"

    @classmethod
    def parse(cls, value: str | Role) -> Role:
        """Resolve a role name case-insensitively ("you" is an alias for User)."""
        if isinstance(value, Role):
            return value
        lowered = value.strip().lower()
        if lowered == "you":
            return cls.USER
        for role in cls:
            if role.value.lower() == lowered:
                return role
        raise ValueError(f"Unknown role: {value}")


@dataclass
class ChatTurn:
    """One entry in the conversation.

    Only ``content`` is mutable; role, color and timestamp are fixed when
    the turn is created.
    """

    role: Role
    content: str = ""
    color: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    def __setattr__(self, name: str, value: object) -> None:
        if name in ("role", "color", "timestamp") and name in self.__dict__:
            raise AttributeError(f"ChatTurn.{name} is immutable")
        super().__setattr__(name, value)

    def copy(self) -> ChatTurn:
        return ChatTurn(self.role, self.content, self.color, self.timestamp)
