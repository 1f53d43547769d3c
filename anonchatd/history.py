"""Bounded in-memory chat history."""

from __future__ import annotations

import threading
from collections import deque

from .constants import HISTORY_LIMIT
from .envelope import ChatMessage


class MessageStore:
    """
    Append-only log of the most recent chat messages.

    The deque drops from the oldest end once ``limit`` is reached, so an
    append and its trim happen together under the store lock. Snapshots are
    tuples and never change after they are returned.
    """

    def __init__(self, limit: int = HISTORY_LIMIT) -> None:
        limit = int(limit)
        if limit < 1:
            raise ValueError("history limit must be at least 1")
        self.limit = limit
        self._lock = threading.Lock()
        self._messages: deque[ChatMessage] = deque(maxlen=limit)

    def append(self, message: ChatMessage) -> None:
        with self._lock:
            self._messages.append(message)

    def snapshot(self) -> tuple[ChatMessage, ...]:
        with self._lock:
            return tuple(self._messages)

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
