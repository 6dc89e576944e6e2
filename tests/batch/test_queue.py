from __future__ import annotations

import pytest

from tabletx.batch.models import BatchAction, OperationKind, RowEntity
from tabletx.batch.queue import BatchQueue
from tabletx.config import BATCH_CAPACITY


def _actions(count: int) -> list[BatchAction]:
    return [
        BatchAction(OperationKind.INSERT, RowEntity(PartitionKey="P", RowKey=str(i)))
        for i in range(count)
    ]


def test_pop_up_to_returns_bounded_chunks_in_order() -> None:
    """Test that pop_up_to returns bounded chunks in original order."""
    actions = _actions(250)
    queue = BatchQueue(actions=actions)

    chunks = []
    while queue.items_left:
        chunks.append(queue.pop_up_to())

    assert [len(c) for c in chunks] == [100, 100, 50]
    assert [a for c in chunks for a in c] == actions
    assert len(queue) == 0


def test_pop_up_to_on_empty_queue_returns_empty_list() -> None:
    """Test that pop_up_to on an empty queue returns an empty list."""
    assert BatchQueue().pop_up_to() == []


def test_pop_up_to_never_exceeds_queue_capacity() -> None:
    """Test that a larger requested size is capped at the queue capacity."""
    queue = BatchQueue(capacity=10, actions=_actions(30))

    assert len(queue.pop_up_to(50)) == 10
    assert len(queue.pop_up_to(3)) == 3
    assert queue.items_left == 17


def test_add_and_clear() -> None:
    """Test that add grows the queue and clear empties it."""
    queue = BatchQueue()
    for action in _actions(3):
        queue.add(action)
    assert queue.items_left == 3

    queue.clear()
    assert queue.items_left == 0


@pytest.mark.parametrize("capacity", [0, -1, BATCH_CAPACITY + 1])
def test_capacity_outside_store_limit_is_rejected(capacity: int) -> None:
    """Test that a capacity outside 1..100 raises ValueError."""
    with pytest.raises(ValueError):
        BatchQueue(capacity=capacity)
