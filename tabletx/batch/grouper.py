from __future__ import annotations

from collections.abc import Iterable

from ..config import BATCH_CAPACITY
from .encoder import encode_operation
from .models import Operation, RowEntity
from .queue import BatchQueue


def normalize_partition_key(partition_key: str) -> str:
    """Keys differing only by case share one batch queue."""
    return partition_key.upper()


def _check_partition_key(entity: RowEntity, position: int) -> None:
    key = entity.partition_key
    if not isinstance(key, str) or not key:
        raise ValueError(
            f"PartitionKey is required and must be a non-empty string "
            f"(item {position}, got {key!r})"
        )


def group_by_partition(
    items: Iterable[tuple[RowEntity, Operation]],
    capacity: int = BATCH_CAPACITY,
) -> dict[str, BatchQueue]:
    """
    Encode every (entity, operation) pair and queue it under its partition.

    Order within a partition follows the input; order across partitions is
    not significant. Empty input yields an empty mapping.

    Raises:
        ValueError: If any entity lacks a string PartitionKey. Nothing is
            encoded in that case.
    """
    items = list(items)
    for position, (entity, _) in enumerate(items):
        _check_partition_key(entity, position)

    queues: dict[str, BatchQueue] = {}
    for entity, op in items:
        key = normalize_partition_key(entity.partition_key)
        queue = queues.get(key)
        if queue is None:
            queue = queues[key] = BatchQueue(capacity)
        queue.add(encode_operation(op.kind, op.delete_mode, entity))
    return queues
