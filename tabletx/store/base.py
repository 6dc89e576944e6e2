from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Optional, Protocol

from ..batch.models import BatchAction, ReservedNames, RowEntity


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


@dataclass(frozen=True)
class ReadScope:
    """
    Which rows a scoped read returns.

    Soft-deleted rows are excluded unless ``include_soft_deleted`` is set;
    rows with no deleted flag at all count as live.
    """
    partition_key: Optional[str] = None
    row_key: Optional[str] = None
    filter: Optional[str] = None
    include_soft_deleted: bool = False

    @property
    def filter_expression(self) -> str:
        """
        Render the scope as a store filter, e.g.
        ``PartitionKey eq 'X' and IsDeleted ne true``.
        """
        clauses: list[str] = []
        if self.partition_key:
            clauses.append(f"{ReservedNames.PARTITION_KEY} eq {_quote(self.partition_key)}")
        if self.row_key:
            clauses.append(f"{ReservedNames.ROW_KEY} eq {_quote(self.row_key)}")
        if self.filter and self.filter.strip():
            clauses.append(self.filter.strip())
        if not self.include_soft_deleted:
            clauses.append(f"{ReservedNames.IS_DELETED} ne true")
        return " and ".join(clauses)


class TableStore(Protocol):
    """
    Protocol for a remote tabular store.

    ``submit_batch`` must apply the actions in order, atomically: either all
    of them take effect, or none do and it raises BatchRejectedError naming
    the first failing index when it can. Any other exception is treated as a
    failure of the whole batch.
    """

    def submit_batch(
        self,
        table: str,
        partition_key: str,
        actions: Sequence[BatchAction],
    ) -> None:
        ...

    def scoped_read(
        self,
        table: str,
        columns: Optional[Iterable[str]],
        scope: ReadScope,
    ) -> Iterator[RowEntity]:
        """Rows matching ``scope``; ``columns=None`` selects every column."""
        ...

    def create_table(self, table: str) -> None:
        ...

    def drop_table(self, table: str) -> None:
        ...

    def table_exists(self, table: str) -> bool:
        ...

    def list_tables(self) -> list[str]:
        ...


class AsyncTableStore(Protocol):
    """Asynchronous mirror of TableStore."""

    async def submit_batch(
        self,
        table: str,
        partition_key: str,
        actions: Sequence[BatchAction],
    ) -> None:
        ...

    def scoped_read(
        self,
        table: str,
        columns: Optional[Iterable[str]],
        scope: ReadScope,
    ) -> AsyncIterator[RowEntity]:
        ...

    async def create_table(self, table: str) -> None:
        ...

    async def drop_table(self, table: str) -> None:
        ...

    async def table_exists(self, table: str) -> bool:
        ...

    async def list_tables(self) -> list[str]:
        ...
