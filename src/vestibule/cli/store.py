"""Thread-safe conversation store with change notifications."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ..models import ChatTurn, Role

logger = logging.getLogger(__name__)


class StoreEventKind(Enum):
    ADDED = "added"
    UPDATED = "updated"
    CLEARED = "cleared"


@dataclass(frozen=True)
class StoreEvent:
    kind: StoreEventKind
    index: int = -1
    turn: ChatTurn | None = None
    content: str = ""


StoreListener = Callable[[StoreEvent], None]


class MessageStore:
    """Bounded, append-only list of chat turns.

    One mutable slot: the most recent Assistant turn, whose content is
    rewritten in place while a reply streams in. Mutations are serialized
    by a lock; listeners run after the lock is released, in the order the
    mutations happened on the calling thread.
    """

    def __init__(self, max_messages: int = 1000) -> None:
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self._lock = threading.Lock()
        self._turns: list[ChatTurn] = []
        self._current_assistant = -1
        self._max_messages = max_messages
        self._listeners: list[StoreListener] = []

    @property
    def max_messages(self) -> int:
        return self._max_messages

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, event: StoreEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Store listener failed on %s", event.kind.value)

    def snapshot(self) -> tuple[ChatTurn, ...]:
        with self._lock:
            return tuple(t.copy() for t in self._turns)

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)

    @property
    def current_assistant_index(self) -> int | None:
        with self._lock:
            return self._current_assistant if self._current_assistant >= 0 else None

    def current_assistant_content(self) -> str | None:
        with self._lock:
            index = self._current_assistant
            if not 0 <= index < len(self._turns):
                return None
            return self._turns[index].content

    def append(self, turn: ChatTurn) -> int:
        """Add a turn and return its index after any eviction."""
        with self._lock:
            self._turns.append(turn)
            if turn.role is Role.ASSISTANT:
                self._current_assistant = len(self._turns) - 1
            self._evict()
            index = len(self._turns) - 1
            added = turn.copy()
        self._notify(StoreEvent(StoreEventKind.ADDED, index=index, turn=added))
        return index

    def _evict(self) -> None:
        excess = len(self._turns) - self._max_messages
        if excess <= 0:
            return
        del self._turns[:excess]
        self._current_assistant -= excess
        if self._current_assistant < 0:
            self._current_assistant = -1

    def update(self, index: int, content: str) -> bool:
        with self._lock:
            if not 0 <= index < len(self._turns):
                return False
            self._turns[index].content = content
        self._notify(StoreEvent(StoreEventKind.UPDATED, index=index, content=content))
        return True

    def update_current_assistant_turn(self, content: str) -> bool:
        with self._lock:
            index = self._current_assistant
            if not 0 <= index < len(self._turns):
                return False
            self._turns[index].content = content
        self._notify(StoreEvent(StoreEventKind.UPDATED, index=index, content=content))
        return True

    def append_to_current_assistant_turn(self, fragment: str) -> bool:
        """Extend the current Assistant turn; read and write happen under one lock."""
        with self._lock:
            index = self._current_assistant
            if not 0 <= index < len(self._turns):
                return False
            turn = self._turns[index]
            turn.content += fragment
            content = turn.content
        self._notify(StoreEvent(StoreEventKind.UPDATED, index=index, content=content))
        return True

    def clear(self) -> None:
        with self._lock:
            self._turns.clear()
            self._current_assistant = -1
        self._notify(StoreEvent(StoreEventKind.CLEARED))
