from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any, Optional, Union

from .batch.coordinator import AsyncTransactionCoordinator, TransactionCoordinator
from .batch.models import (
    DeleteMode,
    OperationKind,
    ReservedNames,
    RowEntity,
    UpdateMode,
)
from .batch.result import TransactionResult
from .config import BATCH_CAPACITY, BatchConfig, ClearTableConfig
from .errors import SerializationError, TableClearTimeoutError
from .mapping import EntityMapper
from .store.base import AsyncTableStore, ReadScope, TableStore

logger = logging.getLogger(__name__)

Rows = Union[Mapping[str, Any], Iterable[Mapping[str, Any]], None]


@dataclass
class _RowBatch:
    """
    Row entities for one call, plus the caller's own mappings for rows that
    had to be wrapped, keyed by the id of their wrapper.
    """
    rows: list[RowEntity]
    callers: dict[int, Mapping[str, Any]]

    def restore(self, result: TransactionResult[RowEntity]) -> TransactionResult[Mapping[str, Any]]:
        """Copy the deleted flag back to caller rows and report failures as caller rows."""
        if not self.callers:
            return result
        for row in self.rows:
            caller = self.callers.get(id(row))
            if row.is_deleted is True and isinstance(caller, MutableMapping):
                caller[ReservedNames.IS_DELETED] = True
        return result.map_failed(lambda row: self.callers.get(id(row), row))


def _as_rows(rows: Rows) -> _RowBatch:
    if rows is None:
        return _RowBatch([], {})
    if isinstance(rows, Mapping):
        rows = [rows]

    entities: list[RowEntity] = []
    callers: dict[int, Mapping[str, Any]] = {}
    for row in rows:
        if isinstance(row, RowEntity):
            entities.append(row)
            continue
        entity = RowEntity(row)
        callers[id(entity)] = row
        entities.append(entity)
    return _RowBatch(entities, callers)


def _as_objects(objects: Any) -> list[Any]:
    if objects is None:
        return []
    if isinstance(objects, Iterable) and not isinstance(objects, (str, bytes, Mapping)):
        return [o for o in objects if o is not None]
    return [objects]


@dataclass
class _ObjectBatch:
    table: str
    obj_type: type
    rows: list[RowEntity]


def _require_mapper(mapper: Optional[EntityMapper]) -> EntityMapper:
    if mapper is None:
        raise TypeError("typed operations require an EntityMapper")
    return mapper


def _decode_rows(mapper: EntityMapper, rows: Iterable[RowEntity], obj_type: type) -> list[Any]:
    objects: list[Any] = []
    for row in rows:
        try:
            objects.append(mapper.decode(row, obj_type))
        except Exception as exc:
            raise SerializationError(
                f"Failed to decode row {row.identity()!r} into {obj_type.__name__}: {exc}"
            ) from exc
    return objects


def _encode_objects(mapper: Optional[EntityMapper], objects: list[Any]) -> _ObjectBatch:
    """
    Encode every object before anything is submitted, so a mapping failure
    leaves the store untouched.
    """
    mapper = _require_mapper(mapper)

    types = {type(o) for o in objects}
    if len(types) > 1:
        names = ", ".join(sorted(t.__name__ for t in types))
        raise TypeError(f"all objects in one call must share a type, got: {names}")
    obj_type = types.pop()

    rows: list[RowEntity] = []
    for obj in objects:
        try:
            row = mapper.encode(obj)
        except SerializationError:
            raise
        except Exception as exc:
            raise SerializationError(
                f"Failed to encode {obj_type.__name__} into a row entity: {exc}"
            ) from exc
        if row is None:
            raise SerializationError(f"Failed to encode {obj_type.__name__} into a row entity")
        rows.append(row if isinstance(row, RowEntity) else RowEntity(row))

    return _ObjectBatch(mapper.table_name(obj_type), obj_type, rows)


def _delete_scan(
    partition_key: Optional[str],
    row_key: Optional[str],
    filter: Optional[str],
    mode: DeleteMode,
) -> tuple[list[str], ReadScope]:
    """Identity columns and scope for a delete-by-query."""
    soft = mode == DeleteMode.SOFT
    columns = [ReservedNames.PARTITION_KEY, ReservedNames.ROW_KEY, ReservedNames.ETAG]
    if soft:
        columns.append(ReservedNames.IS_DELETED)
    # Rows already soft-deleted need no second soft delete.
    scope = ReadScope(partition_key, row_key, filter, include_soft_deleted=not soft)
    return columns, scope


def _require_partition_key(partition_key: Optional[str]) -> None:
    if partition_key is None or not str(partition_key).strip():
        raise ValueError("partition_key cannot be empty")


class TableContext:
    """
    Entry point for batched writes against one TableStore.

    Write failures never raise: every operation returns a TransactionResult
    whose ``failed``, ``failed_entities`` and ``messages`` describe what the
    store rejected. Only invalid arguments and objects the mapper cannot
    encode raise.

    Usage:
        ctx = TableContext(SqlTableStore(engine))
        result = ctx.insert("orders", rows)
        ctx.clear_partition("orders", "2024-01")
    """

    def __init__(
        self,
        store: TableStore,
        mapper: Optional[EntityMapper] = None,
        batch_config: Optional[BatchConfig] = None,
        clear_config: Optional[ClearTableConfig] = None,
    ) -> None:
        self.store = store
        self.mapper = mapper
        self.batch_config = batch_config or BatchConfig()
        self.clear_config = clear_config or ClearTableConfig()
        self.coordinator = TransactionCoordinator(store, self.batch_config)

    # ---- raw rows ------------------------------------------------------

    def insert(
        self,
        table: str,
        rows: Rows,
        cancel_event: Optional[threading.Event] = None,
    ) -> TransactionResult[Mapping[str, Any]]:
        batch = _as_rows(rows)
        return batch.restore(self.coordinator.execute_actions(
            table, batch.rows, OperationKind.INSERT, cancel_event=cancel_event
        ))

    def update(
        self,
        table: str,
        rows: Rows,
        mode: UpdateMode = UpdateMode.MERGE,
        cancel_event: Optional[threading.Event] = None,
    ) -> TransactionResult[Mapping[str, Any]]:
        batch = _as_rows(rows)
        return batch.restore(self.coordinator.execute_actions(
            table, batch.rows, mode.to_kind(), cancel_event=cancel_event
        ))

    def delete(
        self,
        table: str,
        rows: Rows,
        mode: DeleteMode = DeleteMode.SOFT,
        cancel_event: Optional[threading.Event] = None,
    ) -> TransactionResult[Mapping[str, Any]]:
        """
        Delete ``rows``. A soft delete flags each row as deleted, including
        plain mappings passed by the caller; ``failed_entities`` holds the
        caller's own row objects.
        """
        batch = _as_rows(rows)
        return batch.restore(self.coordinator.execute_actions(
            table, batch.rows, OperationKind.DELETE, mode, cancel_event
        ))

    # ---- typed objects -------------------------------------------------

    def _run_objects(
        self,
        objects: Any,
        kind: OperationKind,
        delete_mode: DeleteMode,
        cancel_event: Optional[threading.Event],
    ) -> TransactionResult[Any]:
        objs = _as_objects(objects)
        if not objs:
            return TransactionResult()
        batch = _encode_objects(self.mapper, objs)
        result = self.coordinator.execute_actions(
            batch.table, batch.rows, kind, delete_mode, cancel_event
        )
        # Only failures go back through the mapper; the caller already holds the rest.
        return result.map_failed(lambda row: self.mapper.decode(row, batch.obj_type))

    def insert_objects(
        self,
        objects: Any,
        cancel_event: Optional[threading.Event] = None,
    ) -> TransactionResult[Any]:
        return self._run_objects(objects, OperationKind.INSERT, DeleteMode.NOT_APPLICABLE, cancel_event)

    def update_objects(
        self,
        objects: Any,
        mode: UpdateMode = UpdateMode.MERGE,
        cancel_event: Optional[threading.Event] = None,
    ) -> TransactionResult[Any]:
        return self._run_objects(objects, mode.to_kind(), DeleteMode.NOT_APPLICABLE, cancel_event)

    def delete_objects(
        self,
        objects: Any,
        mode: DeleteMode = DeleteMode.SOFT,
        cancel_event: Optional[threading.Event] = None,
    ) -> TransactionResult[Any]:
        return self._run_objects(objects, OperationKind.DELETE, mode, cancel_event)

    # ---- queries -------------------------------------------------------

    def select(
        self,
        table: str,
        columns: Optional[Iterable[str]] = None,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
        filter: Optional[str] = None,
        include_soft_deleted: bool = False,
    ) -> list[RowEntity]:
        """
        Rows of ``table`` matching the keys and filter.

        ``columns=None`` returns every column. Soft-deleted rows are left
        out unless ``include_soft_deleted`` is set.
        """
        scope = ReadScope(partition_key, row_key, filter, include_soft_deleted)
        logger.debug("Selecting from %s where %s", table, scope.filter_expression)
        return list(self.store.scoped_read(table, columns, scope))

    def select_objects(
        self,
        obj_type: type,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
        filter: Optional[str] = None,
        include_soft_deleted: bool = False,
    ) -> list[Any]:
        """
        Matching rows of ``obj_type``'s table, decoded through the mapper.

        Raises:
            TypeError: If the context has no mapper
            SerializationError: If a row cannot be decoded
        """
        mapper = _require_mapper(self.mapper)
        rows = self.select(
            mapper.table_name(obj_type), None, partition_key, row_key, filter, include_soft_deleted
        )
        return _decode_rows(mapper, rows, obj_type)

    def select_one_or_none(
        self,
        obj_type: type,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
        filter: Optional[str] = None,
    ) -> Optional[Any]:
        objects = self.select_objects(obj_type, partition_key, row_key, filter)
        return objects[0] if objects else None

    # ---- bulk deletes --------------------------------------------------

    def delete_matching(
        self,
        table: str,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
        filter: Optional[str] = None,
        mode: DeleteMode = DeleteMode.SOFT,
        cancel_event: Optional[threading.Event] = None,
    ) -> TransactionResult[RowEntity]:
        """
        Delete every row matching the given keys and filter.

        Only identity columns are read. Matches are deleted one page of
        BATCH_CAPACITY rows at a time and the page results are summed.
        """
        columns, scope = _delete_scan(partition_key, row_key, filter, mode)
        logger.info("Deleting rows from %s where %s (%s)", table, scope.filter_expression, mode.value)

        result: TransactionResult[RowEntity] = TransactionResult()
        page: list[RowEntity] = []
        for row in self.store.scoped_read(table, columns, scope):
            page.append(row)
            if len(page) == BATCH_CAPACITY:
                result = result.merge(self.delete(table, page, mode, cancel_event))
                page = []
                if result.cancelled:
                    return result
        if page:
            result = result.merge(self.delete(table, page, mode, cancel_event))
        return result

    def clear_partition(
        self,
        table: str,
        partition_key: str,
        use_soft_delete: bool = True,
    ) -> TransactionResult[RowEntity]:
        """
        Delete every row of one partition.

        Raises:
            ValueError: If partition_key is None or blank
        """
        _require_partition_key(partition_key)
        mode = DeleteMode.SOFT if use_soft_delete else DeleteMode.HARD
        return self.delete_matching(table, partition_key=partition_key, mode=mode)

    def clear_table(self, table: str) -> None:
        """
        Remove every row by dropping and recreating the table.

        Nothing else may write to the table until this returns. A table that
        does not exist is left alone.

        Raises:
            TableClearTimeoutError: If ``max_polls`` is configured and the
                dropped table is still visible after that many polls
        """
        if not self.store.table_exists(table):
            logger.info("Table %s does not exist; nothing to clear", table)
            return

        self.store.drop_table(table)

        interval_s = self.clear_config.poll_interval_ms / 1000
        polls = 0
        # Dropping can take the store several seconds to complete.
        while self.store.table_exists(table):
            if self.clear_config.max_polls is not None and polls >= self.clear_config.max_polls:
                raise TableClearTimeoutError(
                    f"Table {table!r} still exists after {polls} polls"
                )
            time.sleep(interval_s)
            polls += 1

        self.store.create_table(table)
        logger.info("Cleared table %s after %d polls", table, polls)

    # ---- tables --------------------------------------------------------

    def create_table(self, table: str) -> None:
        self.store.create_table(table)

    def drop_table(self, table: str) -> None:
        self.store.drop_table(table)

    def table_exists(self, table: str) -> bool:
        return self.store.table_exists(table)

    def list_tables(self) -> list[str]:
        return self.store.list_tables()


class AsyncTableContext:
    """
    Asynchronous mirror of TableContext.

    ``BatchConfig.max_workers`` bounds how many partitions are in flight at
    once.

    Usage:
        ctx = AsyncTableContext(ThreadedAsyncStore(SqlTableStore(engine)))
        result = await ctx.insert("orders", rows)
    """

    def __init__(
        self,
        store: AsyncTableStore,
        mapper: Optional[EntityMapper] = None,
        batch_config: Optional[BatchConfig] = None,
        clear_config: Optional[ClearTableConfig] = None,
    ) -> None:
        self.store = store
        self.mapper = mapper
        self.batch_config = batch_config or BatchConfig()
        self.clear_config = clear_config or ClearTableConfig()
        self.coordinator = AsyncTransactionCoordinator(store, self.batch_config.max_workers)

    async def insert(
        self,
        table: str,
        rows: Rows,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionResult[Mapping[str, Any]]:
        batch = _as_rows(rows)
        return batch.restore(await self.coordinator.execute_actions(
            table, batch.rows, OperationKind.INSERT, cancel_event=cancel_event
        ))

    async def update(
        self,
        table: str,
        rows: Rows,
        mode: UpdateMode = UpdateMode.MERGE,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionResult[Mapping[str, Any]]:
        batch = _as_rows(rows)
        return batch.restore(await self.coordinator.execute_actions(
            table, batch.rows, mode.to_kind(), cancel_event=cancel_event
        ))

    async def delete(
        self,
        table: str,
        rows: Rows,
        mode: DeleteMode = DeleteMode.SOFT,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionResult[Mapping[str, Any]]:
        batch = _as_rows(rows)
        return batch.restore(await self.coordinator.execute_actions(
            table, batch.rows, OperationKind.DELETE, mode, cancel_event
        ))

    async def _run_objects(
        self,
        objects: Any,
        kind: OperationKind,
        delete_mode: DeleteMode,
        cancel_event: Optional[asyncio.Event],
    ) -> TransactionResult[Any]:
        objs = _as_objects(objects)
        if not objs:
            return TransactionResult()
        batch = _encode_objects(self.mapper, objs)
        result = await self.coordinator.execute_actions(
            batch.table, batch.rows, kind, delete_mode, cancel_event
        )
        return result.map_failed(lambda row: self.mapper.decode(row, batch.obj_type))

    async def insert_objects(
        self,
        objects: Any,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionResult[Any]:
        return await self._run_objects(objects, OperationKind.INSERT, DeleteMode.NOT_APPLICABLE, cancel_event)

    async def update_objects(
        self,
        objects: Any,
        mode: UpdateMode = UpdateMode.MERGE,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionResult[Any]:
        return await self._run_objects(objects, mode.to_kind(), DeleteMode.NOT_APPLICABLE, cancel_event)

    async def delete_objects(
        self,
        objects: Any,
        mode: DeleteMode = DeleteMode.SOFT,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionResult[Any]:
        return await self._run_objects(objects, OperationKind.DELETE, mode, cancel_event)

    async def select(
        self,
        table: str,
        columns: Optional[Iterable[str]] = None,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
        filter: Optional[str] = None,
        include_soft_deleted: bool = False,
    ) -> list[RowEntity]:
        scope = ReadScope(partition_key, row_key, filter, include_soft_deleted)
        logger.debug("Selecting from %s where %s", table, scope.filter_expression)
        return [row async for row in self.store.scoped_read(table, columns, scope)]

    async def select_objects(
        self,
        obj_type: type,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
        filter: Optional[str] = None,
        include_soft_deleted: bool = False,
    ) -> list[Any]:
        mapper = _require_mapper(self.mapper)
        rows = await self.select(
            mapper.table_name(obj_type), None, partition_key, row_key, filter, include_soft_deleted
        )
        return _decode_rows(mapper, rows, obj_type)

    async def select_one_or_none(
        self,
        obj_type: type,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
        filter: Optional[str] = None,
    ) -> Optional[Any]:
        objects = await self.select_objects(obj_type, partition_key, row_key, filter)
        return objects[0] if objects else None

    async def delete_matching(
        self,
        table: str,
        partition_key: Optional[str] = None,
        row_key: Optional[str] = None,
        filter: Optional[str] = None,
        mode: DeleteMode = DeleteMode.SOFT,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransactionResult[RowEntity]:
        columns, scope = _delete_scan(partition_key, row_key, filter, mode)
        logger.info("Deleting rows from %s where %s (%s)", table, scope.filter_expression, mode.value)

        result: TransactionResult[RowEntity] = TransactionResult()
        page: list[RowEntity] = []
        async for row in self.store.scoped_read(table, columns, scope):
            page.append(row)
            if len(page) == BATCH_CAPACITY:
                result = result.merge(await self.delete(table, page, mode, cancel_event))
                page = []
                if result.cancelled:
                    return result
        if page:
            result = result.merge(await self.delete(table, page, mode, cancel_event))
        return result

    async def clear_partition(
        self,
        table: str,
        partition_key: str,
        use_soft_delete: bool = True,
    ) -> TransactionResult[RowEntity]:
        _require_partition_key(partition_key)
        mode = DeleteMode.SOFT if use_soft_delete else DeleteMode.HARD
        return await self.delete_matching(table, partition_key=partition_key, mode=mode)

    async def clear_table(self, table: str) -> None:
        if not await self.store.table_exists(table):
            logger.info("Table %s does not exist; nothing to clear", table)
            return

        await self.store.drop_table(table)

        interval_s = self.clear_config.poll_interval_ms / 1000
        polls = 0
        while await self.store.table_exists(table):
            if self.clear_config.max_polls is not None and polls >= self.clear_config.max_polls:
                raise TableClearTimeoutError(
                    f"Table {table!r} still exists after {polls} polls"
                )
            await asyncio.sleep(interval_s)
            polls += 1

        await self.store.create_table(table)
        logger.info("Cleared table %s after %d polls", table, polls)

    async def create_table(self, table: str) -> None:
        await self.store.create_table(table)

    async def drop_table(self, table: str) -> None:
        await self.store.drop_table(table)

    async def table_exists(self, table: str) -> bool:
        return await self.store.table_exists(table)

    async def list_tables(self) -> list[str]:
        return await self.store.list_tables()
