"""A thread-safe first-in, first-out queue."""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Generic, TypeVar

T = TypeVar("T")


class Queue(Generic[T]):
    """Unbounded FIFO queue that can be shared between threads."""

    def __init__(self) -> None:
        self._items: Deque[T] = deque()
        self._lock = threading.Lock()

    def offer(self, item: T) -> None:
        """Append an item to the back of the queue."""
        with self._lock:
            self._items.append(item)

    def poll(self) -> T:
        """Remove and return the item at the front of the queue."""
        with self._lock:
            if not self._items:
                raise IndexError("poll from empty queue")
            return self._items.popleft()

    def first(self) -> T:
        """Return the item at the front of the queue without removing it."""
        with self._lock:
            if not self._items:
                raise IndexError("first from empty queue")
            return self._items[0]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def is_empty(self) -> bool:
        """Return True when the queue holds no items."""
        return len(self) == 0