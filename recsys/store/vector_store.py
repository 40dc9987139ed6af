from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, Sequence  # noqa: UP035

import duckdb
import numpy as np

from recsys.data.schemas import EMBEDDING_DIM
from recsys.errors import NotFound, StorageError
from recsys.store.database import RECSYS_SCHEMA, Database

logger = logging.getLogger(__name__)

EMBEDDINGS_TABLE = f"{RECSYS_SCHEMA}.item_embeddings"


def as_embedding(vector: Iterable[float] | np.ndarray) -> np.ndarray:
    """
    Coerce `vector` into a float64 array of EMBEDDING_DIM finite components.

    Raises ValueError describing what is wrong with it.
    """
    try:
        arr = np.asarray(vector, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ValueError(f"vector is not numeric: {e}") from e

    if arr.ndim != 1 or arr.shape[0] != EMBEDDING_DIM:
        raise ValueError(f"vector must have {EMBEDDING_DIM} components, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ValueError("vector has non-finite components")
    return arr


class ItemIdSequence:
    """
    Lazy, restartable view of the item ids embedded for one model.

    Every iteration runs a fresh query (one snapshot) and streams ids in
    batches, ascending.
    """

    def __init__(self, store: VectorStore, model_id: int, batch_size: int = 1024) -> None:
        self.store = store
        self.model_id = int(model_id)
        self.batch_size = batch_size

    def __iter__(self) -> Iterator[str]:
        db = self.store.db
        with db.cursor() as cur:
            try:
                db.execute(
                    cur,
                    f"SELECT item_id FROM {EMBEDDINGS_TABLE} WHERE model_id = ? ORDER BY item_id",
                    [self.model_id],
                )
                while True:
                    batch = cur.fetchmany(self.batch_size)
                    if not batch:
                        break
                    for (item_id,) in batch:
                        yield str(item_id)
            except duckdb.Error as e:
                raise StorageError(f"Listing items of model {self.model_id} failed: {e}") from e

    def __repr__(self) -> str:
        return f"ItemIdSequence(model_id={self.model_id})"


class VectorStore:
    """
    Persisted item embeddings keyed by (model_id, item_id).

    Uniqueness of the key is kept by the write path: put() deletes and
    inserts inside one transaction under the database write lock, so two
    concurrent puts to the same key end as exactly one of them.
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self.ensure_schema()

    def ensure_schema(self) -> None:
        with self.db.transaction() as cur:
            self.db.execute(
                cur,
                f"""
                CREATE TABLE IF NOT EXISTS {EMBEDDINGS_TABLE} (
                    model_id INTEGER NOT NULL,
                    item_id VARCHAR NOT NULL,
                    embedding DOUBLE[] NOT NULL CHECK (array_length(embedding) = {EMBEDDING_DIM})
                )
                """,
            )

    # --------------------------
    # Writes
    # --------------------------

    def put(self, model_id: int, item_id: str, vector: Sequence[float] | np.ndarray) -> None:
        try:
            vec = as_embedding(vector)
        except ValueError as e:
            raise StorageError(f"Invalid embedding for model {model_id}, item {item_id!r}: {e}") from e

        try:
            with self.db.transaction() as cur:
                self.db.execute(
                    cur,
                    f"DELETE FROM {EMBEDDINGS_TABLE} WHERE model_id = ? AND item_id = ?",
                    [int(model_id), str(item_id)],
                )
                self.db.execute(
                    cur,
                    f"INSERT INTO {EMBEDDINGS_TABLE} (model_id, item_id, embedding) VALUES (?, ?, ?)",
                    [int(model_id), str(item_id), vec.tolist()],
                )
        except duckdb.Error as e:
            raise StorageError(f"Writing embedding for model {model_id}, item {item_id!r} failed: {e}") from e

    def delete_model(self, model_id: int) -> int:
        try:
            with self.db.transaction() as cur:
                n = self.db.fetchall(
                    cur, f"SELECT count(*) FROM {EMBEDDINGS_TABLE} WHERE model_id = ?", [int(model_id)]
                )[0][0]
                self.db.execute(cur, f"DELETE FROM {EMBEDDINGS_TABLE} WHERE model_id = ?", [int(model_id)])
        except duckdb.Error as e:
            raise StorageError(f"Deleting embeddings of model {model_id} failed: {e}") from e
        return int(n)

    # --------------------------
    # Reads
    # --------------------------

    def get(self, model_id: int, item_id: str) -> np.ndarray:
        try:
            rows = self.db.query(
                f"SELECT embedding FROM {EMBEDDINGS_TABLE} WHERE model_id = ? AND item_id = ?",
                [int(model_id), str(item_id)],
            )
        except duckdb.Error as e:
            raise StorageError(f"Reading embedding for model {model_id}, item {item_id!r} failed: {e}") from e

        if not rows:
            raise NotFound(f"No embedding for model {model_id}, item {item_id!r}")
        return np.asarray(rows[0][0], dtype=np.float64)

    def get_many(self, model_id: int, item_ids: Sequence[str]) -> Dict[str, np.ndarray]:
        """Embeddings for the requested ids; ids without one are left out."""
        ids = sorted({str(i) for i in item_ids})
        if not ids:
            return {}

        try:
            rows = self.db.query(
                f"SELECT item_id, embedding FROM {EMBEDDINGS_TABLE} "
                f"WHERE model_id = ? AND item_id IN (SELECT unnest(?::VARCHAR[]))",
                [int(model_id), ids],
            )
        except duckdb.Error as e:
            raise StorageError(f"Reading embeddings of model {model_id} failed: {e}") from e

        return {str(item_id): np.asarray(emb, dtype=np.float64) for item_id, emb in rows}

    def list_items(self, model_id: int) -> ItemIdSequence:
        return ItemIdSequence(self, model_id)

    def count(self, model_id: int) -> int:
        try:
            rows = self.db.query(
                f"SELECT count(*) FROM {EMBEDDINGS_TABLE} WHERE model_id = ?", [int(model_id)]
            )
        except duckdb.Error as e:
            raise StorageError(f"Counting embeddings of model {model_id} failed: {e}") from e
        return int(rows[0][0])


__all__ = ["VectorStore", "ItemIdSequence", "as_embedding", "EMBEDDINGS_TABLE"]
