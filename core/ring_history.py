# -*- coding: utf-8 -*-
"""
Fixed-capacity circular sample buffer.
"""
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


class RingHistory(Generic[T]):
    """
    Keeps the last `capacity` items. Once full, each `add` overwrites the
    oldest slot; `snapshot` always returns items oldest first.
    """
    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._buffer: List[Optional[T]] = [None] * capacity
        self._head: int = 0
        self._count: int = 0

    @property
    def capacity(self) -> int:
        return len(self._buffer)

    def __len__(self) -> int:
        return self._count

    def add(self, item: T):
        self._buffer[self._head] = item
        self._head = (self._head + 1) % len(self._buffer)
        if self._count < len(self._buffer):
            self._count += 1

    def snapshot(self) -> List[T]:
        size = len(self._buffer)
        start = (self._head - self._count) % size
        return [self._buffer[(start + i) % size] for i in range(self._count)]  # type: ignore[misc]

    def clear(self):
        self._buffer = [None] * len(self._buffer)
        self._head = 0
        self._count = 0
