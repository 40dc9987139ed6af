from __future__ import annotations

import argparse
from pathlib import Path

import duckdb

from recsys.config.settings import settings
from recsys.data.dataset import quote_identifier
from recsys.errors import DatasetError
from recsys.store.database import Database

_READERS = {
    ".parquet": "read_parquet",
    ".csv": "read_csv_auto",
    ".tsv": "read_csv_auto",
}


def load_table(db: Database, table: str, source: str | Path) -> int:
    """
    Create (or replace) `table` from a Parquet/CSV file and return its row count.

    The file path is a bound parameter and the table name is quoted, so
    neither can change the shape of the statement.
    """
    src = Path(source)
    reader = _READERS.get(src.suffix.lower())
    if reader is None:
        raise DatasetError(f"Unsupported dataset file type: {src.suffix or src.name}")
    if not src.exists():
        raise DatasetError(f"Dataset file not found: {src}")

    name = quote_identifier(table)
    try:
        with db.transaction() as cur:
            db.execute(cur, f"CREATE OR REPLACE TABLE {name} AS SELECT * FROM {reader}(?)", [str(src)])
            rows = db.fetchall(cur, f"SELECT count(*) FROM {name}")
    except duckdb.Error as e:
        raise DatasetError(f"Loading {src} into {table!r} failed: {e}") from e

    return int(rows[0][0])


def main() -> None:
    ap = argparse.ArgumentParser(description="Load an interaction file into the recsys DuckDB database.")
    ap.add_argument("--input", required=True, help="Parquet or CSV file with user/item columns")
    ap.add_argument("--table", default="interactions", help="Target table name")
    ap.add_argument("--db", default=str(settings.DUCKDB_PATH), help="DuckDB file")
    args = ap.parse_args()

    with Database(args.db, timeout_sec=settings.QUERY_TIMEOUT_SEC) as db:
        n = load_table(db, args.table, args.input)

    print(f"[DONE] Loaded {n} rows into {args.table} at {args.db}")


if __name__ == "__main__":
    main()
