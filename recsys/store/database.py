from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Tuple  # noqa: UP035

import duckdb

logger = logging.getLogger(__name__)

# Schema holding the model registry and the item embeddings.
RECSYS_SCHEMA = "recsys"

MEMORY = ":memory:"


class Database:
    """
    Thin wrapper around one DuckDB database shared by the dataset reader,
    the VectorStore and the model registry.

    - Every operation runs on its own cursor (DuckDB connections are not
      thread-safe; cursors are).
    - Writes go through transaction(), which holds a process-wide write lock
      so writes to the same key never interleave.
    - Reads do not take the lock; each statement sees a consistent snapshot.
    - Statements run under an optional timeout: on expiry the cursor is
      interrupted and DuckDB raises duckdb.InterruptException, which callers
      translate into their own error type.
    """

    def __init__(self, path: str | Path = MEMORY, timeout_sec: Optional[float] = None) -> None:  # noqa: UP045
        self.path = str(path)
        self.timeout_sec = timeout_sec

        if self.path != MEMORY:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self._con = duckdb.connect(self.path)
        self._cursor_lock = threading.Lock()
        self._write_lock = threading.RLock()

        with self.cursor() as cur:
            cur.execute(f"CREATE SCHEMA IF NOT EXISTS {RECSYS_SCHEMA}")

        logger.debug("Opened DuckDB database at %s", self.path)

    # --------------------------
    # Cursors + transactions
    # --------------------------

    @contextmanager
    def cursor(self) -> Iterator[duckdb.DuckDBPyConnection]:
        with self._cursor_lock:
            cur = self._con.cursor()
        try:
            yield cur
        finally:
            cur.close()

    @contextmanager
    def transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        with self._write_lock:
            with self.cursor() as cur:
                cur.begin()
                try:
                    yield cur
                except BaseException:
                    cur.rollback()
                    raise
                cur.commit()

    # --------------------------
    # Statement helpers
    # --------------------------

    @contextmanager
    def _deadline(self, cur: duckdb.DuckDBPyConnection) -> Iterator[None]:
        if not self.timeout_sec:
            yield
            return

        timer = threading.Timer(self.timeout_sec, cur.interrupt)
        timer.daemon = True
        timer.start()
        try:
            yield
        finally:
            timer.cancel()

    def execute(
        self,
        cur: duckdb.DuckDBPyConnection,
        sql: str,
        params: Optional[Sequence[Any]] = None,  # noqa: UP045
    ) -> None:
        with self._deadline(cur):
            cur.execute(sql, list(params or []))

    def fetchall(
        self,
        cur: duckdb.DuckDBPyConnection,
        sql: str,
        params: Optional[Sequence[Any]] = None,  # noqa: UP045
    ) -> List[Tuple[Any, ...]]:
        with self._deadline(cur):
            cur.execute(sql, list(params or []))
            return cur.fetchall()

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Tuple[Any, ...]]:  # noqa: UP045
        """One-shot read on a fresh cursor."""
        with self.cursor() as cur:
            return self.fetchall(cur, sql, params)

    # --------------------------
    # Lifecycle
    # --------------------------

    def close(self) -> None:
        self._con.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


__all__ = ["Database", "RECSYS_SCHEMA", "MEMORY"]
