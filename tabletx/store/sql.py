from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Iterable, Iterator, Sequence
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..batch.models import BatchAction, OperationKind, ReservedNames, RowEntity
from ..config import BATCH_CAPACITY
from ..errors import BatchRejectedError, TableStoreError
from .base import ReadScope
from .helpers import validate_table_name
from .session import StoreSession

logger = logging.getLogger(__name__)

_MERGE_KINDS = (OperationKind.UPDATE_MERGE, OperationKind.UPSERT_MERGE)
_UPSERT_KINDS = (OperationKind.UPSERT_MERGE, OperationKind.UPSERT_REPLACE)

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_PRECONDITION_FAILED = 412


class _Rejected(Exception):
    def __init__(self, reason: str, status: int) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status = status


def _new_etag() -> str:
    return uuid.uuid4().hex


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dump(properties: dict[str, Any]) -> str:
    return json.dumps(properties, sort_keys=True, default=str)


def _etag_matches(entity: RowEntity, current: str) -> bool:
    # No ETag, or the wildcard, means unconditional.
    return entity.etag in (None, "", "*") or entity.etag == current


class SqlTableStore:
    """
    TableStore backed by a relational database through SQLAlchemy.

    Each logical table is one SQL table keyed by (partition_key, row_key).
    Ordinary columns are kept as a JSON document; the deleted flag has its
    own column so reads can filter on it.

    Batches behave like the remote store's: actions run in order inside one
    transaction, the first failing action aborts the batch with its index,
    and nothing from a failed batch is kept.

    ⚠️ ``ReadScope.filter`` is appended to the WHERE clause as a raw SQL
    fragment. It MUST come from trusted code, never from user input.

    Usage:
        store = SqlTableStore(create_engine("sqlite:///tables.db"))
        store.create_table("orders")
        store.submit_batch("orders", "P1", [BatchAction(OperationKind.INSERT, row)])
    """

    def __init__(self, engine: Engine, capacity: int = BATCH_CAPACITY) -> None:
        self.engine = engine
        self.capacity = capacity

    def _quoted(self, table: str) -> str:
        validate_table_name(table)
        return self.engine.dialect.identifier_preparer.quote(table)

    # ---- batches -------------------------------------------------------

    def submit_batch(
        self,
        table: str,
        partition_key: str,
        actions: Sequence[BatchAction],
    ) -> None:
        """
        Apply ``actions`` atomically and in order.

        Raises:
            BatchRejectedError: With ``failed_index`` set when a single action
                failed, or without it when the batch as a whole is invalid
        """
        if not actions:
            return
        if len(actions) > self.capacity:
            raise BatchRejectedError(
                f"Batch of {len(actions)} exceeds the limit of {self.capacity} operations",
                status=STATUS_BAD_REQUEST,
            )

        quoted = self._quoted(table)
        index: Optional[int] = None
        try:
            with StoreSession(self.engine) as session:
                for index, action in enumerate(actions):
                    self._apply(session, quoted, action)
                # Failures past this point come from the commit, not an action.
                index = None
        except _Rejected as exc:
            raise BatchRejectedError(
                f"Operation {index} in batch for partition '{partition_key}' failed: {exc.reason}",
                failed_index=index,
                status=exc.status,
            ) from None
        except IntegrityError as exc:
            where = "at commit" if index is None else f"at operation {index}"
            raise BatchRejectedError(
                f"Batch for partition '{partition_key}' failed {where}: {exc.orig}",
                failed_index=index,
                status=STATUS_CONFLICT,
            ) from exc

    def _fetch(self, session: StoreSession, quoted: str, entity: RowEntity) -> Optional[dict[str, Any]]:
        return session.fetch_one(
            f"SELECT etag, is_deleted, properties FROM {quoted} "
            "WHERE partition_key = :pk AND row_key = :rk",
            {"pk": entity.partition_key, "rk": entity.row_key},
        )

    def _apply(self, session: StoreSession, quoted: str, action: BatchAction) -> None:
        entity = action.entity
        if not entity.partition_key or entity.row_key is None:
            raise _Rejected("PartitionKey and RowKey are required", STATUS_BAD_REQUEST)

        existing = self._fetch(session, quoted, entity)

        if action.kind == OperationKind.INSERT:
            if existing is not None:
                raise _Rejected("The specified entity already exists", STATUS_CONFLICT)
            self._insert(session, quoted, entity)
            return

        if existing is None:
            if action.kind in _UPSERT_KINDS:
                self._insert(session, quoted, entity)
                return
            raise _Rejected("The specified resource does not exist", STATUS_NOT_FOUND)

        if action.kind not in _UPSERT_KINDS and not _etag_matches(entity, existing["etag"]):
            raise _Rejected("The update condition specified in the request was not satisfied", STATUS_PRECONDITION_FAILED)

        if action.kind == OperationKind.DELETE:
            session.execute(
                f"DELETE FROM {quoted} WHERE partition_key = :pk AND row_key = :rk",
                {"pk": entity.partition_key, "rk": entity.row_key},
            )
            return

        if action.kind in _MERGE_KINDS:
            properties = json.loads(existing["properties"])
            properties.update(entity.properties())
            is_deleted = entity.get(ReservedNames.IS_DELETED, existing["is_deleted"])
        else:
            properties = entity.properties()
            is_deleted = entity.is_deleted

        session.execute(
            f"UPDATE {quoted} SET etag = :etag, updated_at = :ts, is_deleted = :deleted, "
            "properties = :props WHERE partition_key = :pk AND row_key = :rk",
            {
                "etag": _new_etag(),
                "ts": _now(),
                "deleted": is_deleted,
                "props": _dump(properties),
                "pk": entity.partition_key,
                "rk": entity.row_key,
            },
        )

    def _insert(self, session: StoreSession, quoted: str, entity: RowEntity) -> None:
        session.execute(
            f"INSERT INTO {quoted} (partition_key, row_key, etag, updated_at, is_deleted, properties) "
            "VALUES (:pk, :rk, :etag, :ts, :deleted, :props)",
            {
                "pk": entity.partition_key,
                "rk": entity.row_key,
                "etag": _new_etag(),
                "ts": _now(),
                "deleted": entity.is_deleted,
                "props": _dump(entity.properties()),
            },
        )

    # ---- reads ---------------------------------------------------------

    def scoped_read(
        self,
        table: str,
        columns: Optional[Iterable[str]],
        scope: ReadScope,
    ) -> Iterator[RowEntity]:
        """
        Rows matching ``scope``, restricted to ``columns`` when given.

        Rows are fetched in one round trip and then yielded, so the caller
        may write to the same table while iterating.
        """
        quoted = self._quoted(table)
        clauses: list[str] = []
        params: dict[str, Any] = {}

        if scope.partition_key:
            clauses.append("partition_key = :pk")
            params["pk"] = scope.partition_key
        if scope.row_key:
            clauses.append("row_key = :rk")
            params["rk"] = scope.row_key
        if scope.filter and scope.filter.strip():
            clauses.append(f"({scope.filter})")
        if not scope.include_soft_deleted:
            clauses.append("(is_deleted IS NULL OR is_deleted = :not_deleted)")
            params["not_deleted"] = False

        sql = f"SELECT partition_key, row_key, etag, updated_at, is_deleted, properties FROM {quoted}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY partition_key, row_key"

        with StoreSession(self.engine) as session:
            rows = session.fetch_all(sql, params)

        wanted = set(columns) if columns is not None else None
        for row in rows:
            yield self._to_entity(row, wanted)

    @staticmethod
    def _to_entity(row: dict[str, Any], wanted: Optional[set[str]]) -> RowEntity:
        entity = RowEntity(json.loads(row["properties"]))
        entity[ReservedNames.PARTITION_KEY] = row["partition_key"]
        entity[ReservedNames.ROW_KEY] = row["row_key"]
        entity[ReservedNames.ETAG] = row["etag"]
        entity[ReservedNames.TIMESTAMP] = row["updated_at"]
        if row["is_deleted"] is not None:
            entity[ReservedNames.IS_DELETED] = bool(row["is_deleted"])
        if wanted is None:
            return entity
        return RowEntity({k: v for k, v in entity.items() if k in wanted})

    # ---- tables --------------------------------------------------------

    def create_table(self, table: str) -> None:
        quoted = self._quoted(table)
        try:
            with StoreSession(self.engine) as session:
                session.execute_ddl(
                    f"CREATE TABLE IF NOT EXISTS {quoted} ("
                    "partition_key VARCHAR(255) NOT NULL, "
                    "row_key VARCHAR(255) NOT NULL, "
                    "etag VARCHAR(64) NOT NULL, "
                    "updated_at VARCHAR(40) NOT NULL, "
                    "is_deleted BOOLEAN NULL, "
                    "properties TEXT NOT NULL, "
                    "PRIMARY KEY (partition_key, row_key))"
                )
        except SQLAlchemyError as exc:
            raise TableStoreError(f"Failed to create table {table!r}: {exc}") from exc
        logger.info("Created table %s", table)

    def drop_table(self, table: str) -> None:
        quoted = self._quoted(table)
        try:
            with StoreSession(self.engine) as session:
                session.execute_ddl(f"DROP TABLE IF EXISTS {quoted}")
        except SQLAlchemyError as exc:
            raise TableStoreError(f"Failed to drop table {table!r}: {exc}") from exc
        logger.info("Dropped table %s", table)

    def table_exists(self, table: str) -> bool:
        validate_table_name(table)
        return inspect(self.engine).has_table(table)

    def list_tables(self) -> list[str]:
        return sorted(inspect(self.engine).get_table_names())
