from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence  # noqa: UP035

import numpy as np

from recsys.data.dataset import DuckDBDataset
from recsys.data.schemas import EMBEDDING_DIM, InteractionRow, ModelRecord
from recsys.errors import ConfigError
from recsys.models.weights import read_weights

logger = logging.getLogger(__name__)


@dataclass
class TrainingContext:
    """
    What a policy may look at while embedding one model's items.

    Interaction rows are only read when a policy asks for them.
    """
    dataset: DuckDBDataset
    table: str
    user_column: str
    item_column: str
    model: ModelRecord

    def interactions(self) -> List[InteractionRow]:
        return self.dataset.select_rows(self.table, self.user_column, self.item_column)


class EmbeddingPolicy(ABC):
    """
    Produces exactly one EMBEDDING_DIM vector per item, in item order.

    Yielded arrays may be a reused buffer: they are only valid until the
    next vector is requested, so consumers must copy or persist them first.
    """

    name: str = ""

    @abstractmethod
    def vectors(self, items: Sequence[str], ctx: TrainingContext) -> Iterator[np.ndarray]:
        ...


class RandomInitPolicy(EmbeddingPolicy):
    """
    Baseline: i.i.d. uniform components in [-1, 1).

    The generator is passed in (or seeded) so runs are reproducible.
    """

    name = "random"

    def __init__(self, rng: Optional[np.random.Generator] = None, seed: Optional[int] = None) -> None:  # noqa: UP045
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def fill(self, out: np.ndarray) -> np.ndarray:
        self.rng.random(out=out)
        out *= 2.0
        out -= 1.0
        return out

    def vectors(self, items: Sequence[str], ctx: TrainingContext) -> Iterator[np.ndarray]:
        # One scratch buffer for the whole run
        buf = np.empty(EMBEDDING_DIM, dtype=np.float64)
        for _ in items:
            yield self.fill(buf)


class PretrainedPolicy(EmbeddingPolicy):
    """
    Item vectors from an externally trained weights file (Parquet).

    The file is the one named by the model's weights_path unless an explicit
    path is given. Items missing from the file get the fallback initializer.
    """

    name = "pretrained"

    def __init__(self, fallback: RandomInitPolicy, path: Optional[str] = None) -> None:  # noqa: UP045
        self.fallback = fallback
        self.path = path

    def vectors(self, items: Sequence[str], ctx: TrainingContext) -> Iterator[np.ndarray]:
        path = self.path or ctx.model.weights_path
        if not path:
            raise ConfigError(f"Model {ctx.model.model_id} has no weights_path to load embeddings from")

        weights: Dict[str, np.ndarray] = read_weights(path)
        logger.info("Loaded %d pretrained vectors from %s", len(weights), path)

        buf = np.empty(EMBEDDING_DIM, dtype=np.float64)
        missing = 0
        for item_id in items:
            vec = weights.get(item_id)
            if vec is None:
                missing += 1
                yield self.fallback.fill(buf)
            else:
                yield vec

        if missing:
            logger.warning("%d of %d items had no pretrained vector; used random init", missing, len(items))


def build_policy(
    name: str,
    seed: Optional[int] = None,  # noqa: UP045
    rng: Optional[np.random.Generator] = None,  # noqa: UP045
    als_regularization: float = 0.08,
    als_iterations: int = 20,
    als_alpha: float = 40.0,
) -> EmbeddingPolicy:
    name = (name or "random").lower().strip()
    base = RandomInitPolicy(rng=rng, seed=seed)

    if name == "random":
        return base
    if name == "pretrained":
        return PretrainedPolicy(fallback=base)
    if name == "als":
        from recsys.models.als_cf import ALSEmbeddingPolicy

        return ALSEmbeddingPolicy(
            fallback=base,
            regularization=als_regularization,
            iterations=als_iterations,
            alpha=als_alpha,
            random_state=seed,
        )

    raise ConfigError(f"Unknown training policy: {name!r} (expected random | als | pretrained)")


__all__ = [
    "TrainingContext",
    "EmbeddingPolicy",
    "RandomInitPolicy",
    "PretrainedPolicy",
    "build_policy",
]
