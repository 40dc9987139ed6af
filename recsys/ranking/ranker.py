from __future__ import annotations

import logging
import math
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union  # noqa: UP035

import numpy as np

from recsys.data.dataset import DuckDBDataset
from recsys.data.schemas import RecommendationResult
from recsys.errors import NoInteractions
from recsys.ranking.similarity import cosine_similarity, mean_vector
from recsys.store.model_registry import ModelRegistry
from recsys.store.vector_store import VectorStore, as_embedding

logger = logging.getLogger(__name__)

Scored = Union[Mapping[str, float], Iterable[Tuple[str, float]]]


def _check_preconditions(top_k: int, min_score: float) -> None:
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 0:
        raise ValueError(f"top_k must be a non-negative integer, got {top_k!r}")
    if not math.isfinite(float(min_score)):
        raise ValueError(f"min_score must be finite, got {min_score!r}")


def select_top_k(scored: Scored, top_k: int, min_score: float) -> List[RecommendationResult]:
    """
    Threshold, order and truncate (item_id, score) pairs.

    - keep score >= min_score
    - descending score, ties by ascending item_id
    - at most top_k results
    """
    _check_preconditions(top_k, min_score)
    if top_k == 0:
        return []

    pairs = scored.items() if isinstance(scored, Mapping) else scored
    kept = [(str(i), float(s)) for i, s in pairs if float(s) >= min_score]
    kept.sort(key=lambda x: (-x[1], x[0]))
    return [RecommendationResult(item_id=i, score=s) for i, s in kept[:top_k]]


class Ranker:
    """
    Top-k items for a user by cosine similarity of item embeddings.

    - Candidates: distinct items of the dataset (capped to candidate_pool).
    - User vector: mean embedding of the user's history, or supplied.
    - Candidates without an embedding are skipped (dataset/model drift).

    Read-only: never writes to the store or the registry.
    """

    def __init__(
        self,
        dataset: DuckDBDataset,
        store: VectorStore,
        registry: ModelRegistry,
        candidate_pool: int = 10_000,
    ) -> None:
        self.dataset = dataset
        self.store = store
        self.registry = registry
        self.candidate_pool = candidate_pool

    def history(self, user_id: str, dataset: str, user_column: str, item_column: str) -> List[str]:
        rows = self.dataset.select_rows(dataset, user_column, item_column, user_id=str(user_id))
        return sorted({r.item_id for r in rows})

    def user_vector(self, model_id: int, history: Sequence[str], user_id: str) -> np.ndarray:
        if not history:
            raise NoInteractions(f"User {user_id!r} has no interactions")

        embedded = self.store.get_many(model_id, history)
        if not embedded:
            raise NoInteractions(
                f"None of the {len(history)} items user {user_id!r} interacted with "
                f"has an embedding in model {model_id}"
            )
        return mean_vector([embedded[i] for i in sorted(embedded)])

    def recommend(
        self,
        model_id: int,
        user_id: str,
        dataset: str,
        user_column: str,
        item_column: str,
        top_k: int,
        min_score: float,
        user_vector: Optional[Sequence[float]] = None,  # noqa: UP045
        exclude_seen: bool = False,
    ) -> List[RecommendationResult]:
        _check_preconditions(top_k, min_score)
        self.registry.get(model_id)
        if top_k == 0:
            return []

        candidates = self.dataset.select_distinct(dataset, item_column, limit=self.candidate_pool)

        seen: List[str] = []
        if user_vector is not None:
            query = as_embedding(user_vector)
            if exclude_seen:
                seen = self.history(user_id, dataset, user_column, item_column)
        else:
            seen = self.history(user_id, dataset, user_column, item_column)
            query = self.user_vector(model_id, seen, user_id)

        if exclude_seen and seen:
            drop = set(seen)
            candidates = [c for c in candidates if c not in drop]

        embedded = self.store.get_many(model_id, candidates)
        skipped = len(candidates) - len(embedded)
        if skipped:
            logger.debug("[model %s] %d candidates without embedding skipped", model_id, skipped)
        if not embedded:
            return []

        item_ids = sorted(embedded)
        scores = cosine_similarity(query, np.vstack([embedded[i] for i in item_ids]))
        return select_top_k(zip(item_ids, scores.tolist()), top_k, min_score)


__all__ = ["Ranker", "select_top_k"]
