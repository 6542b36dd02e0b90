"""
Bounded execution history.

SRP: Only stores records; locking is the caller's concern.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterator, List

from .models import ExecutionRecord


class HistoryRing:
    """FIFO ring of execution records; the oldest record is evicted first."""

    DEFAULT_CAPACITY = 100

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self._records: Deque[ExecutionRecord] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._records.maxlen or 0

    def append(self, record: ExecutionRecord) -> None:
        self._records.append(record)

    def clear(self) -> None:
        self._records.clear()

    def snapshot(self) -> List[ExecutionRecord]:
        """Oldest first."""
        return list(self._records)

    def latest_for(self, task_id: str) -> List[ExecutionRecord]:
        """Records of one task, newest first."""
        return [r for r in reversed(self._records) if r.task_id == task_id]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ExecutionRecord]:
        return iter(list(self._records))
