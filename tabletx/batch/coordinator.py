from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from ..config import BATCH_CAPACITY, BatchConfig
from ..store.base import AsyncTableStore, TableStore
from .executor import AsyncBatchExecutor, BatchExecutor
from .grouper import group_by_partition
from .metrics import observe_entities
from .models import DeleteMode, Operation, OperationKind, RowEntity
from .result import TransactionResult

logger = logging.getLogger(__name__)


def _combine(
    table: str,
    total: int,
    partials: Iterable[TransactionResult[RowEntity]],
) -> TransactionResult[RowEntity]:
    result: TransactionResult[RowEntity] = TransactionResult()
    for partial in partials:
        result = result.merge(partial)
    result.total_entities = total

    logger.info(
        "Batch transaction on %s complete: total=%d passed=%d failed=%d cancelled=%s",
        table, result.total_entities, result.passed, result.failed, result.cancelled,
    )
    try:
        observe_entities(table, result.passed, result.failed)
    except Exception:
        logger.debug("Failed to record entity metrics", exc_info=True)
    return result


def _pairs(
    entities: Iterable[RowEntity],
    kind: OperationKind,
    delete_mode: DeleteMode,
) -> list[tuple[RowEntity, Operation]]:
    op = Operation(kind, delete_mode)
    return [(entity, op) for entity in entities]


class TransactionCoordinator:
    """
    Runs a flat list of row operations as per-partition batches.

    Partitions are independent: a failing partition never stops its
    siblings. With ``max_workers > 1`` partitions are drained on a thread
    pool, each queue by exactly one worker, and the per-partition results
    are merged once every worker is done.

    Usage:
        coordinator = TransactionCoordinator(store)
        result = coordinator.execute_actions("orders", rows, OperationKind.INSERT)
        if result.failed:
            ...
    """

    def __init__(
        self,
        store: TableStore,
        config: Optional[BatchConfig] = None,
        capacity: int = BATCH_CAPACITY,
    ) -> None:
        self.store = store
        self.config = config or BatchConfig()
        self.capacity = capacity

    def execute(
        self,
        table: str,
        items: Sequence[tuple[RowEntity, Operation]],
        cancel_event: Optional[threading.Event] = None,
    ) -> TransactionResult[RowEntity]:
        """
        Execute every (entity, operation) pair against ``table``.

        Never raises for write failures; inspect the returned result.
        """
        items = list(items)
        queues = group_by_partition(items, self.capacity)
        if not queues:
            return TransactionResult(total_entities=len(items))

        executor = BatchExecutor(self.store, table)
        workers = min(self.config.max_workers, len(queues))

        logger.debug(
            "Executing %d entities on %s across %d partitions with %d workers",
            len(items), table, len(queues), workers,
        )

        if workers == 1:
            partials = [
                executor.drain(partition_key, queue, cancel_event)
                for partition_key, queue in queues.items()
            ]
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [
                    pool.submit(executor.drain, partition_key, queue, cancel_event)
                    for partition_key, queue in queues.items()
                ]
                partials = [f.result() for f in futures]

        return _combine(table, len(items), partials)

    def execute_actions(
        self,
        table: str,
        entities: Iterable[RowEntity],
        kind: OperationKind,
        delete_mode: DeleteMode = DeleteMode.NOT_APPLICABLE,
        cancel_event: Optional[threading.Event] = None,
    ) -> TransactionResult[RowEntity]:
        """Apply one operation to every entity."""
        return self.execute(table, _pairs(entities, kind, delete_mode), cancel_event)


class AsyncTransactionCoordinator:
    """
    Asynchronous mirror of TransactionCoordinator.

    Partitions run one after another unless ``max_concurrency`` allows
    several to be in flight at once.
    """

    def __init__(
        self,
        store: AsyncTableStore,
        max_concurrency: int = 1,
        capacity: int = BATCH_CAPACITY,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.store = store
        self.max_concurrency = max_concurrency
        self.capacity = capacity

    async def execute(
        self,
        table: str,
        items: Sequence[tuple[RowEntity, Operation]],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionResult[RowEntity]:
        items = list(items)
        queues = group_by_partition(items, self.capacity)
        if not queues:
            return TransactionResult(total_entities=len(items))

        executor = AsyncBatchExecutor(self.store, table)

        if self.max_concurrency == 1:
            partials = [
                await executor.drain(partition_key, queue, cancel_event)
                for partition_key, queue in queues.items()
            ]
        else:
            semaphore = asyncio.Semaphore(self.max_concurrency)

            async def _drain_one(partition_key, queue):
                async with semaphore:
                    return await executor.drain(partition_key, queue, cancel_event)

            partials = await asyncio.gather(
                *(_drain_one(pk, q) for pk, q in queues.items())
            )

        return _combine(table, len(items), partials)

    async def execute_actions(
        self,
        table: str,
        entities: Iterable[RowEntity],
        kind: OperationKind,
        delete_mode: DeleteMode = DeleteMode.NOT_APPLICABLE,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionResult[RowEntity]:
        return await self.execute(table, _pairs(entities, kind, delete_mode), cancel_event)
