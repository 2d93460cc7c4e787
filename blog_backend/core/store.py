"""
Narrow store access used by the durability layer.

The backup and archive managers never touch sessions or models; they talk to
the live database through query / execute / transaction only.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Sequence

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from blog_backend.exceptions import StoreException
from blog_backend.shared.statements import quote_identifier

logger = logging.getLogger("blog.store")

Row = Dict[str, Any]


def _error_details(error: SQLAlchemyError) -> str:
    return str(getattr(error, "orig", None) or error)


class StoreSession:
    """query/execute bound to a single connection"""

    def __init__(self, conn: Connection):
        self._conn = conn

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Row]:
        result = self._run(sql, tuple(params))
        return [dict(row) for row in result.mappings()]

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a statement and return the number of changed rows"""
        result = self._run(sql, tuple(params))
        return max(result.rowcount, 0)

    def execute_many(self, sql: str, seq_of_params: Iterable[Sequence[Any]]) -> int:
        """Execute a statement once per parameter set and return the number of sets"""
        batch = [tuple(params) for params in seq_of_params]
        if not batch:
            return 0
        self._run(sql, batch)
        return len(batch)

    def _run(self, sql, params):
        logger.debug(f"SQL: {sql}")
        try:
            if params:
                return self._conn.exec_driver_sql(sql, params)
            return self._conn.exec_driver_sql(sql)
        except SQLAlchemyError as e:
            raise StoreException(sql, _error_details(e)) from e


class Store:
    """Access to the live relational store over a SQLAlchemy engine"""

    def __init__(self, engine: Engine):
        self.engine = engine

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Row]:
        with self._connect() as conn:
            return StoreSession(conn).query(sql, params)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self.transaction() as tx:
            return tx.execute(sql, params)

    def execute_many(self, sql: str, seq_of_params: Iterable[Sequence[Any]]) -> int:
        with self.transaction() as tx:
            return tx.execute_many(sql, seq_of_params)

    @contextmanager
    def transaction(self) -> Iterator[StoreSession]:
        """
        All statements executed through the yielded session commit together,
        or none of them do.
        """
        try:
            with self.engine.begin() as conn:
                yield StoreSession(conn)
        except SQLAlchemyError as e:
            raise StoreException("COMMIT", _error_details(e)) from e

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as e:
            raise StoreException("CONNECT", _error_details(e)) from e

    # ===== SCHEMA INTROSPECTION =====

    def list_tables(self) -> List[str]:
        """User tables in creation order (SQLite internal tables excluded)"""
        rows = self.query(
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY rowid"
        )
        return [row["name"] for row in rows]

    def table_exists(self, table_name: str) -> bool:
        rows = self.query(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table_name,)
        )
        return bool(rows)

    def table_columns(self, table_name: str) -> List[str]:
        """Column names of a table (empty when the table does not exist)"""
        rows = self.query(f"PRAGMA table_info({quote_identifier(table_name)})")
        return [row["name"] for row in rows]

    def table_schema(self, table_name: str) -> List[str]:
        """
        CREATE statements needed to rebuild a table.

        Returns:
            The CREATE TABLE statement followed by the table's explicit indexes
        """
        rows = self.query(
            "SELECT type, sql FROM sqlite_master "
            "WHERE tbl_name = ? AND sql IS NOT NULL AND type IN ('table', 'index') "
            "ORDER BY CASE type WHEN 'table' THEN 0 ELSE 1 END, rowid",
            (table_name,)
        )
        return [row["sql"] for row in rows]
