from __future__ import annotations

import logging
from typing import List, Optional, Tuple  # noqa: UP035

import duckdb

from recsys.data.schemas import InteractionRow
from recsys.errors import DatasetError
from recsys.store.database import Database

logger = logging.getLogger(__name__)


def quote_identifier(name: str) -> str:
    """Quote a SQL identifier for DuckDB (embedded quotes are doubled)."""
    return '"' + name.replace('"', '""') + '"'


class DuckDBDataset:
    """
    Read-only access to interaction tables living in DuckDB.

    Table and column names come from callers, so they are never pasted into
    SQL as given: each one is looked up in information_schema and only the
    catalog's own spelling is emitted, quoted. Values (user ids) are always
    bound parameters.

    Ids are returned as strings whatever the column type is.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    # --------------------------
    # Catalog resolution
    # --------------------------

    def resolve_table(self, table: str) -> Tuple[str, str]:
        if not table or not isinstance(table, str):
            raise DatasetError(f"Invalid dataset name: {table!r}")

        schema: Optional[str] = None  # noqa: UP045
        name = table
        if "." in table:
            schema, name = table.split(".", 1)

        if schema is None:
            sql = (
                "SELECT table_schema, table_name FROM information_schema.tables "
                "WHERE lower(table_name) = lower(?) "
                "ORDER BY table_schema = 'main' DESC, table_schema"
            )
            params: list = [name]
        else:
            sql = (
                "SELECT table_schema, table_name FROM information_schema.tables "
                "WHERE lower(table_name) = lower(?) AND lower(table_schema) = lower(?) "
                "ORDER BY table_schema"
            )
            params = [name, schema]

        try:
            rows = self.db.query(sql, params)
        except duckdb.Error as e:
            raise DatasetError(f"Catalog lookup failed for dataset {table!r}: {e}") from e

        if not rows:
            raise DatasetError(f"Dataset table {table!r} not found")
        return str(rows[0][0]), str(rows[0][1])

    def resolve_column(self, table_ref: Tuple[str, str], column: str) -> str:
        if not column or not isinstance(column, str):
            raise DatasetError(f"Invalid column name: {column!r}")

        schema, name = table_ref
        try:
            rows = self.db.query(
                "SELECT column_name FROM information_schema.columns "
                "WHERE table_schema = ? AND table_name = ? AND lower(column_name) = lower(?) "
                "ORDER BY column_name",
                [schema, name, column],
            )
        except duckdb.Error as e:
            raise DatasetError(f"Catalog lookup failed for column {column!r}: {e}") from e

        if not rows:
            raise DatasetError(f"Column {column!r} not found in dataset {schema}.{name}")
        return str(rows[0][0])

    def _qualified(self, table_ref: Tuple[str, str]) -> str:
        schema, name = table_ref
        return f"{quote_identifier(schema)}.{quote_identifier(name)}"

    def require_columns(self, table: str, *columns: str) -> None:
        ref = self.resolve_table(table)
        for col in columns:
            self.resolve_column(ref, col)

    # --------------------------
    # Queries
    # --------------------------

    def select_distinct(self, table: str, column: str, limit: Optional[int] = None) -> List[str]:  # noqa: UP045
        """
        Distinct non-null values of `column`, ascending.

        limit caps the result (used as the ranker's candidate pool).
        """
        if limit is not None and limit <= 0:
            return []

        ref = self.resolve_table(table)
        col = quote_identifier(self.resolve_column(ref, column))
        sql = (
            f"SELECT DISTINCT CAST({col} AS VARCHAR) AS v "
            f"FROM {self._qualified(ref)} WHERE {col} IS NOT NULL ORDER BY v"
        )

        try:
            with self.db.cursor() as cur:
                self.db.execute(cur, sql)
                rows = cur.fetchmany(limit) if limit is not None else cur.fetchall()
        except duckdb.Error as e:
            raise DatasetError(f"SELECT DISTINCT {column} FROM {table} failed: {e}") from e

        return [str(r[0]) for r in rows]

    def select_rows(
        self,
        table: str,
        user_column: str,
        item_column: str,
        user_id: Optional[str] = None,  # noqa: UP045
    ) -> List[InteractionRow]:
        """
        Interaction rows (user_id, item_id) with both ids present.

        When user_id is given only that user's rows are returned.
        """
        ref = self.resolve_table(table)
        ucol = quote_identifier(self.resolve_column(ref, user_column))
        icol = quote_identifier(self.resolve_column(ref, item_column))

        sql = (
            f"SELECT CAST({ucol} AS VARCHAR) AS u, CAST({icol} AS VARCHAR) AS i "
            f"FROM {self._qualified(ref)} "
            f"WHERE {ucol} IS NOT NULL AND {icol} IS NOT NULL"
        )
        params: list = []
        if user_id is not None:
            sql += f" AND CAST({ucol} AS VARCHAR) = ?"
            params.append(str(user_id))
        sql += " ORDER BY u, i"

        try:
            rows = self.db.query(sql, params)
        except duckdb.Error as e:
            raise DatasetError(
                f"Reading ({user_column}, {item_column}) from {table} failed: {e}"
            ) from e

        return [InteractionRow(user_id=str(u), item_id=str(i)) for u, i in rows]


__all__ = ["DuckDBDataset", "quote_identifier"]
