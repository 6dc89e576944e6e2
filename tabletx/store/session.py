from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional, Union

from sqlalchemy import text
from sqlalchemy.engine import Connection, CursorResult, Engine, RootTransaction
from sqlalchemy.sql import TextClause

Statement = Union[str, TextClause]


class StoreSession:
    """
    One database transaction backing one store call.

    ``SqlTableStore`` opens a session per batch so that every action of the
    batch commits together, and a rejected action (raised out of the block)
    rolls all of them back.

    Use as:
        with StoreSession(engine) as session:
            existing = session.fetch_one(select_sql, {"pk": pk, "rk": rk})
            session.execute(update_sql, params)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._conn: Optional[Connection] = None
        self._tx: Optional[RootTransaction] = None

    def __enter__(self) -> "StoreSession":
        if self._conn is not None:
            raise RuntimeError("StoreSession is already active; nested sessions are not allowed")
        self._conn = self.engine.connect()
        self._tx = self._conn.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        conn, tx = self._conn, self._tx
        self._conn = self._tx = None
        if conn is None:
            return
        try:
            if exc_type is None:
                tx.commit()
            else:
                tx.rollback()
        finally:
            conn.close()

    def _run(self, sql: Statement, params: Optional[Mapping[str, Any]] = None) -> CursorResult:
        if self._conn is None:
            raise RuntimeError("StoreSession is not active; use within a context manager")
        stmt = text(sql) if isinstance(sql, str) else sql
        return self._conn.execute(stmt, dict(params or {}))

    def execute(self, sql: Statement, params: Optional[Mapping[str, Any]] = None) -> int:
        """Run an INSERT, UPDATE or DELETE and return the number of rows it touched."""
        rowcount = self._run(sql, params).rowcount
        if rowcount is None:
            raise RuntimeError("statement reported no row count; use execute_ddl() for DDL")
        return int(rowcount)

    def execute_ddl(self, sql: Statement) -> None:
        self._run(sql)

    def fetch_one(
        self,
        sql: Statement,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        """The single matching row as a dict, or None. More than one row raises."""
        row = self._run(sql, params).mappings().one_or_none()
        return dict(row) if row is not None else None

    def fetch_all(
        self,
        sql: Statement,
        params: Optional[Mapping[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        return [dict(row) for row in self._run(sql, params).mappings()]
