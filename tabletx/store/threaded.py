from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable, Sequence
from typing import Optional

from ..batch.models import BatchAction, RowEntity
from .base import ReadScope, TableStore


class ThreadedAsyncStore:
    """
    AsyncTableStore over a blocking TableStore.

    Every call runs on the default executor via asyncio.to_thread, so the
    event loop is free while the underlying store does I/O.
    """

    def __init__(self, store: TableStore) -> None:
        self.store = store

    async def submit_batch(
        self,
        table: str,
        partition_key: str,
        actions: Sequence[BatchAction],
    ) -> None:
        await asyncio.to_thread(self.store.submit_batch, table, partition_key, list(actions))

    async def scoped_read(
        self,
        table: str,
        columns: Optional[Iterable[str]],
        scope: ReadScope,
    ) -> AsyncIterator[RowEntity]:
        cols = list(columns) if columns is not None else None
        rows = await asyncio.to_thread(lambda: list(self.store.scoped_read(table, cols, scope)))
        for row in rows:
            yield row

    async def create_table(self, table: str) -> None:
        await asyncio.to_thread(self.store.create_table, table)

    async def drop_table(self, table: str) -> None:
        await asyncio.to_thread(self.store.drop_table, table)

    async def table_exists(self, table: str) -> bool:
        return await asyncio.to_thread(self.store.table_exists, table)

    async def list_tables(self) -> list[str]:
        return await asyncio.to_thread(self.store.list_tables)
