from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from typing import Optional

from ..config import BATCH_CAPACITY
from .models import BatchAction


class BatchQueue:
    """
    Pending actions for one partition, handed out in bounded chunks.

    A queue is owned by a single worker for its whole lifetime and is
    not thread-safe.
    """

    def __init__(
        self,
        capacity: int = BATCH_CAPACITY,
        actions: Optional[Iterable[BatchAction]] = None,
    ) -> None:
        if not 1 <= capacity <= BATCH_CAPACITY:
            raise ValueError(f"capacity must be between 1 and {BATCH_CAPACITY}, got {capacity}")
        self.capacity = capacity
        self._actions: deque[BatchAction] = deque(actions or ())

    @property
    def items_left(self) -> int:
        return len(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    def add(self, action: BatchAction) -> None:
        self._actions.append(action)

    def pop_up_to(self, capacity: Optional[int] = None) -> list[BatchAction]:
        """
        Remove and return up to ``capacity`` actions in their original order.
        Returns an empty list when the queue is drained.
        """
        limit = self.capacity if capacity is None else min(capacity, self.capacity)
        chunk: list[BatchAction] = []
        while self._actions and len(chunk) < limit:
            chunk.append(self._actions.popleft())
        return chunk

    def clear(self) -> None:
        self._actions.clear()
