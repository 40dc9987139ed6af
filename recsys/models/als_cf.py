from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Sequence  # noqa: UP035

import numpy as np
from implicit.als import AlternatingLeastSquares
from scipy.sparse import csr_matrix

from recsys.data.schemas import EMBEDDING_DIM, InteractionRow
from recsys.errors import StorageError
from recsys.models.policies import EmbeddingPolicy, RandomInitPolicy, TrainingContext
from recsys.models.weights import normalize_rows

logger = logging.getLogger(__name__)


class ALSEmbeddingPolicy(EmbeddingPolicy):
    """
    Implicit-feedback ALS item factors as embeddings.

    - USER-ITEM matrix built from every interaction row of the dataset,
      columns aligned with the distinct item list being trained.
    - Confidence scaling by alpha, as in the implicit paper.
    - factors = EMBEDDING_DIM; rows are L2-normalized afterwards, so every
      component lies in [-1, 1] and cosine equals dot product.
    - Items whose factor row is zero or non-finite (e.g. no usable
      interactions) fall back to random init.
    """

    name = "als"

    def __init__(
        self,
        fallback: RandomInitPolicy,
        regularization: float = 0.08,
        iterations: int = 20,
        alpha: float = 40.0,
        random_state: Optional[int] = 42,  # noqa: UP045
    ) -> None:
        self.fallback = fallback
        self.regularization = regularization
        self.iterations = iterations
        self.alpha = alpha
        self.random_state = random_state

    def _build_user_item_matrix(self, rows: List[InteractionRow], items: Sequence[str]) -> csr_matrix:
        item_index: Dict[str, int] = {item: i for i, item in enumerate(items)}
        user_index: Dict[str, int] = {}

        users: List[int] = []
        cols: List[int] = []
        for r in rows:
            j = item_index.get(r.item_id)
            if j is None:
                continue
            users.append(user_index.setdefault(r.user_id, len(user_index)))
            cols.append(j)

        # Repeated (user, item) rows add up to a larger confidence
        vals = np.ones(len(users), dtype=np.float32)
        return csr_matrix((vals, (users, cols)), shape=(len(user_index), len(items)), dtype=np.float32)

    def fit_item_factors(self, rows: List[InteractionRow], items: Sequence[str]) -> np.ndarray:
        n_items = len(items)
        user_item = self._build_user_item_matrix(rows, items)

        if user_item.shape[0] == 0 or user_item.nnz == 0:
            logger.warning("No usable interactions for ALS; every item falls back to random init")
            return np.zeros((n_items, EMBEDDING_DIM), dtype=np.float64)

        user_item = (user_item * self.alpha).astype(np.float32).tocsr()

        model = AlternatingLeastSquares(
            factors=EMBEDDING_DIM,
            regularization=self.regularization,
            iterations=self.iterations,
            random_state=self.random_state,
            use_gpu=False,
        )
        model.fit(user_item, show_progress=False)

        item_factors = np.asarray(model.item_factors, dtype=np.float64)
        if item_factors.shape != (n_items, EMBEDDING_DIM):
            raise StorageError(
                f"ALS produced item factors of shape {item_factors.shape}, "
                f"expected ({n_items}, {EMBEDDING_DIM})"
            )
        return item_factors

    def vectors(self, items: Sequence[str], ctx: TrainingContext) -> Iterator[np.ndarray]:
        rows = ctx.interactions()
        logger.info("Fitting ALS on %d interactions over %d items", len(rows), len(items))

        factors, usable = normalize_rows(self.fit_item_factors(rows, items))

        buf = np.empty(EMBEDDING_DIM, dtype=np.float64)
        for i in range(len(items)):
            if usable[i]:
                yield factors[i]
            else:
                yield self.fallback.fill(buf)


__all__ = ["ALSEmbeddingPolicy"]
