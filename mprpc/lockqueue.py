"""A thread-safe FIFO queue whose pop blocks until an item is available."""

from __future__ import annotations

import threading
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class LockQueue(Generic[T]):
    """Unbounded queue shared between producer threads and a consumer."""

    def __init__(self) -> None:
        self._items: deque[T] = deque()
        self._ready = threading.Condition()

    def push(self, item: T) -> None:
        """Append ``item`` and wake one waiting consumer."""
        with self._ready:
            self._items.append(item)
            self._ready.notify()

    def pop(self) -> T:
        """Remove and return the oldest item, waiting while the queue is empty."""
        with self._ready:
            while not self._items:
                self._ready.wait()
            return self._items.popleft()

    def __len__(self) -> int:
        with self._ready:
            return len(self._items)