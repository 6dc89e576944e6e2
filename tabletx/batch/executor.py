from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..errors import BatchRejectedError
from ..store.base import AsyncTableStore, TableStore
from .metrics import observe_batch_submit
from .models import BatchAction, RowEntity
from .queue import BatchQueue
from .result import TransactionResult

logger = logging.getLogger(__name__)


class ChunkState(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    ALL_OK = "all_ok"
    ONE_REMOVED = "one_removed"
    ALL_FAILED = "all_failed"


@dataclass(frozen=True)
class SubmitOutcome:
    """
    What one submit attempt reported.

    ``error`` is None on success. ``fatal`` marks failures unrelated to any
    single item (transport errors, unexpected exceptions).
    """
    error: Optional[BaseException] = None
    failed_index: Optional[int] = None
    fatal: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def text(self) -> str:
        if self.error is None:
            return ""
        return str(self.error) or type(self.error).__name__


@dataclass
class ChunkTransition:
    state: ChunkState
    passed: list[BatchAction] = field(default_factory=list)
    failed: list[BatchAction] = field(default_factory=list)
    remaining: list[BatchAction] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)


def _usable_index(outcome: SubmitOutcome, size: int) -> Optional[int]:
    if outcome.fatal or outcome.failed_index is None or size <= 1:
        return None
    # A stale index from an earlier chunk state cannot be trusted.
    if not 0 <= outcome.failed_index < size:
        return None
    return outcome.failed_index


def advance(
    partition_key: str,
    chunk: Sequence[BatchAction],
    outcome: SubmitOutcome,
) -> ChunkTransition:
    """
    Move a submitted chunk to its next state.

    Every failing transition either removes exactly one item or fails the
    whole chunk, so the remaining chunk is always strictly smaller than the
    submitted one and a chunk of K items needs at most K attempts.
    """
    if outcome.ok:
        return ChunkTransition(ChunkState.ALL_OK, passed=list(chunk))

    messages = [f"-> PartitionKey = '{partition_key}'", outcome.text]
    index = _usable_index(outcome, len(chunk))

    if index is None:
        messages.extend(f"--> RowKey = '{a.entity.row_key}'" for a in chunk)
        return ChunkTransition(
            ChunkState.ALL_FAILED,
            failed=list(chunk),
            messages=messages,
        )

    culprit = chunk[index]
    messages.append(f"--> RowKey = '{culprit.entity.row_key}'")
    return ChunkTransition(
        ChunkState.ONE_REMOVED,
        failed=[culprit],
        remaining=[a for i, a in enumerate(chunk) if i != index],
        messages=messages,
    )


class _DrainBase:
    def __init__(self, table: str) -> None:
        self.table = table

    @staticmethod
    def _classify(exc: Exception) -> SubmitOutcome:
        if isinstance(exc, BatchRejectedError):
            return SubmitOutcome(error=exc, failed_index=exc.failed_index)
        return SubmitOutcome(error=exc, fatal=True)

    def _apply(
        self,
        result: TransactionResult[RowEntity],
        partition_key: str,
        chunk: list[BatchAction],
        outcome: SubmitOutcome,
        latency_s: float,
    ) -> list[BatchAction]:
        transition = advance(partition_key, chunk, outcome)

        result.passed += len(transition.passed)
        result.failed += len(transition.failed)
        result.messages.extend(transition.messages)
        result.failed_entities.extend(a.entity for a in transition.failed)

        if transition.state == ChunkState.ALL_OK:
            logger.debug(
                "Batch of %d accepted for %s/%s",
                len(chunk), self.table, partition_key,
            )
        else:
            logger.warning(
                "Batch of %d rejected for %s/%s (%s, %d failed): %s",
                len(chunk),
                self.table,
                partition_key,
                transition.state.value,
                len(transition.failed),
                outcome.text,
            )

        try:
            observe_batch_submit(self.table, transition.state.value, latency_s)
        except Exception:
            # Metrics must never change engine behaviour
            logger.debug("Failed to record batch metrics", exc_info=True)

        return transition.remaining


class BatchExecutor(_DrainBase):
    """
    Drains one partition's queue against a TableStore.

    Each chunk is submitted until it is accepted or empty. When the store
    names a failing item, that item alone is failed and the rest of the
    chunk is resubmitted; otherwise the whole chunk fails. Retries within a
    partition are strictly sequential because each depends on the index
    reported by the previous attempt.
    """

    def __init__(self, store: TableStore, table: str) -> None:
        super().__init__(table)
        self.store = store

    def drain(
        self,
        partition_key: str,
        queue: BatchQueue,
        cancel_event: Optional[threading.Event] = None,
    ) -> TransactionResult[RowEntity]:
        """
        Submit everything in ``queue`` and return this partition's result.

        The cancellation event is checked before every submission. Once it
        is set, the result accumulated so far is returned with
        ``cancelled=True``.
        """
        result: TransactionResult[RowEntity] = TransactionResult(total_entities=queue.items_left)

        while queue.items_left > 0:
            chunk = queue.pop_up_to()
            while chunk:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(
                        "Cancelled %s/%s with %d entities unattempted",
                        self.table, partition_key, len(chunk) + queue.items_left,
                    )
                    result.cancelled = True
                    return result

                start_time = time.monotonic()
                try:
                    self.store.submit_batch(self.table, partition_key, chunk)
                    outcome = SubmitOutcome()
                except Exception as exc:
                    outcome = self._classify(exc)
                latency = time.monotonic() - start_time

                chunk = self._apply(result, partition_key, chunk, outcome, latency)

        return result


class AsyncBatchExecutor(_DrainBase):
    """Asynchronous mirror of BatchExecutor; suspends only while submitting."""

    def __init__(self, store: AsyncTableStore, table: str) -> None:
        super().__init__(table)
        self.store = store

    async def drain(
        self,
        partition_key: str,
        queue: BatchQueue,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionResult[RowEntity]:
        result: TransactionResult[RowEntity] = TransactionResult(total_entities=queue.items_left)

        while queue.items_left > 0:
            chunk = queue.pop_up_to()
            while chunk:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(
                        "Cancelled %s/%s with %d entities unattempted",
                        self.table, partition_key, len(chunk) + queue.items_left,
                    )
                    result.cancelled = True
                    return result

                start_time = time.monotonic()
                try:
                    await self.store.submit_batch(self.table, partition_key, chunk)
                    outcome = SubmitOutcome()
                except Exception as exc:
                    outcome = self._classify(exc)
                latency = time.monotonic() - start_time

                chunk = self._apply(result, partition_key, chunk, outcome, latency)

        return result
