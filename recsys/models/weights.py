from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Tuple  # noqa: UP035

import numpy as np
import polars as pl

from recsys.data.schemas import EMBEDDING_DIM
from recsys.errors import StorageError


def normalize_rows(matrix: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    L2-normalize each row.

    Returns (normalized, usable) where `usable` flags rows that had a finite,
    non-zero norm. Unusable rows are left as zeros.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    out = np.zeros_like(matrix)
    if matrix.size == 0:
        return out, np.zeros(matrix.shape[0], dtype=bool)

    finite = np.all(np.isfinite(matrix), axis=1)
    norms = np.linalg.norm(np.where(finite[:, None], matrix, 0.0), axis=1)
    usable = finite & (norms > 0)
    out[usable] = matrix[usable] / norms[usable, None]
    # Rounding can leave a component a hair outside [-1, 1]
    np.clip(out, -1.0, 1.0, out=out)
    return out, usable


def read_weights(path: str | Path) -> Dict[str, np.ndarray]:
    """
    Load externally trained item vectors from Parquet.

    Expected columns: item_id, embedding (list of EMBEDDING_DIM floats).
    Vectors are L2-normalized; zero rows are dropped so callers fall back
    to their own initializer for those items.
    """
    p = Path(path)
    if not p.exists():
        raise StorageError(f"Weights file not found: {p}")

    try:
        df = pl.read_parquet(p)
    except Exception as e:
        raise StorageError(f"Weights file {p} is not readable Parquet: {e}") from e

    missing = [c for c in ("item_id", "embedding") if c not in df.columns]
    if missing:
        raise StorageError(f"Weights file {p} missing columns: {missing}")

    if df.is_empty():
        return {}

    df = df.select(pl.col("item_id").cast(pl.Utf8), pl.col("embedding"))
    try:
        matrix = np.asarray(df["embedding"].to_list(), dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise StorageError(f"Weights file {p} has ragged or non-numeric embeddings: {e}") from e

    if matrix.ndim != 2 or matrix.shape[1] != EMBEDDING_DIM:
        raise StorageError(
            f"Weights file {p} embeddings must have {EMBEDDING_DIM} components, got shape {matrix.shape}"
        )

    normalized, usable = normalize_rows(matrix)
    ids = df["item_id"].to_list()
    return {str(ids[i]): normalized[i] for i in range(len(ids)) if usable[i]}


def write_weights(path: str | Path, rows: Iterable[Tuple[str, np.ndarray]]) -> int:
    item_ids = []
    embeddings = []
    for item_id, vec in rows:
        item_ids.append(str(item_id))
        embeddings.append(np.asarray(vec, dtype=np.float64).tolist())

    df = pl.DataFrame(
        {"item_id": item_ids, "embedding": embeddings},
        schema={"item_id": pl.Utf8, "embedding": pl.List(pl.Float64)},
    )

    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    df.write_parquet(out)
    return df.height


__all__ = ["normalize_rows", "read_weights", "write_weights"]
