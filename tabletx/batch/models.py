from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ReservedNames:
    PARTITION_KEY = "PartitionKey"
    ROW_KEY = "RowKey"
    ETAG = "ETag"
    TIMESTAMP = "Timestamp"
    IS_DELETED = "IsDeleted"

    # Columns every row carries; order is not significant.
    ALL = (PARTITION_KEY, ROW_KEY, ETAG, TIMESTAMP)


class OperationKind(str, Enum):
    INSERT = "insert"
    UPDATE_MERGE = "update_merge"
    UPDATE_REPLACE = "update_replace"
    UPSERT_MERGE = "upsert_merge"
    UPSERT_REPLACE = "upsert_replace"
    DELETE = "delete"


class DeleteMode(str, Enum):
    NOT_APPLICABLE = "not_applicable"
    SOFT = "soft"
    HARD = "hard"


class UpdateMode(str, Enum):
    MERGE = "merge"
    REPLACE = "replace"
    INSERT_OR_MERGE = "insert_or_merge"
    INSERT_OR_REPLACE = "insert_or_replace"

    def to_kind(self) -> OperationKind:
        return _UPDATE_MODE_KINDS[self]


_UPDATE_MODE_KINDS = {
    UpdateMode.MERGE: OperationKind.UPDATE_MERGE,
    UpdateMode.REPLACE: OperationKind.UPDATE_REPLACE,
    UpdateMode.INSERT_OR_MERGE: OperationKind.UPSERT_MERGE,
    UpdateMode.INSERT_OR_REPLACE: OperationKind.UPSERT_REPLACE,
}


class RowEntity(dict):
    """
    One record of a table: a bag of named fields.

    Identity and concurrency fields live under the keys in ReservedNames and
    are exposed as properties; every other key is an ordinary column.
    """

    @property
    def partition_key(self) -> str:
        return self.get(ReservedNames.PARTITION_KEY)

    @partition_key.setter
    def partition_key(self, value: str) -> None:
        self[ReservedNames.PARTITION_KEY] = value

    @property
    def row_key(self) -> str:
        return self.get(ReservedNames.ROW_KEY)

    @row_key.setter
    def row_key(self, value: str) -> None:
        self[ReservedNames.ROW_KEY] = value

    @property
    def etag(self) -> Optional[str]:
        return self.get(ReservedNames.ETAG)

    @etag.setter
    def etag(self, value: Optional[str]) -> None:
        self[ReservedNames.ETAG] = value

    @property
    def is_deleted(self) -> Optional[bool]:
        return self.get(ReservedNames.IS_DELETED)

    @is_deleted.setter
    def is_deleted(self, value: bool) -> None:
        self[ReservedNames.IS_DELETED] = value

    def identity(self) -> tuple[str, str]:
        return (self.partition_key, self.row_key)

    def properties(self) -> dict[str, Any]:
        """Ordinary columns, without identity, ETag, timestamp or deleted flag."""
        skip = set(ReservedNames.ALL) | {ReservedNames.IS_DELETED}
        return {k: v for k, v in self.items() if k not in skip}


@dataclass(frozen=True)
class Operation:
    """
    A logical write requested by a caller.
    """
    kind: OperationKind
    delete_mode: DeleteMode = DeleteMode.NOT_APPLICABLE


@dataclass
class BatchAction:
    """
    A single encoded item of a batch, as handed to the store.
    """
    kind: OperationKind
    entity: RowEntity
