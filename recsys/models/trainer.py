from __future__ import annotations

import logging
import threading
from typing import Optional  # noqa: UP035

from tqdm import tqdm

from recsys.data.dataset import DuckDBDataset
from recsys.errors import RecsysError, StorageError, TrainingCancelled
from recsys.models.policies import EmbeddingPolicy, RandomInitPolicy, TrainingContext
from recsys.store.model_registry import ModelRegistry
from recsys.store.vector_store import VectorStore

logger = logging.getLogger(__name__)


class Trainer:
    """
    Builds the item embeddings of one model from an interaction dataset.

    Lifecycle per run:
    1) claim the model (ConflictError if another run holds it)
    2) read distinct items, embed each with the policy, put() each one
    3) READY on success; FAILED with the error message on any failure

    A run never leaves the model in TRAINING. Embeddings written before a
    failure stay in place: re-running train() overwrites them.
    """

    def __init__(
        self,
        dataset: DuckDBDataset,
        store: VectorStore,
        registry: ModelRegistry,
        policy: Optional[EmbeddingPolicy] = None,  # noqa: UP045
        show_progress: bool = False,
    ) -> None:
        self.dataset = dataset
        self.store = store
        self.registry = registry
        self.policy = policy or RandomInitPolicy()
        self.show_progress = show_progress

    def train(
        self,
        dataset: str,
        user_column: str,
        item_column: str,
        model_id: int,
        cancel_event: Optional[threading.Event] = None,  # noqa: UP045
    ) -> None:
        record = self.registry.begin_training(model_id)
        logger.info(
            "[model %s] training on %s(%s, %s) with policy=%s",
            model_id, dataset, user_column, item_column, self.policy.name,
        )

        try:
            self.dataset.require_columns(dataset, user_column, item_column)
            items = self.dataset.select_distinct(dataset, item_column)
            logger.info("[model %s] %d distinct items", model_id, len(items))

            ctx = TrainingContext(
                dataset=self.dataset,
                table=dataset,
                user_column=user_column,
                item_column=item_column,
                model=record,
            )
            vectors = iter(self.policy.vectors(items, ctx))

            written = 0
            for item_id in tqdm(items, desc=f"model {model_id}", disable=not self.show_progress):
                if cancel_event is not None and cancel_event.is_set():
                    raise TrainingCancelled(
                        f"Training of model {model_id} cancelled after {written} of {len(items)} items"
                    )
                vec = next(vectors, None)
                if vec is None:
                    raise StorageError(
                        f"Policy {self.policy.name!r} produced {written} vectors for {len(items)} items"
                    )
                self.store.put(model_id, item_id, vec)
                written += 1

            self.registry.mark_ready(model_id)
        except BaseException as e:
            self._fail(model_id, e)
            raise

        logger.info("[model %s] ready (%d embeddings)", model_id, written)

    def _fail(self, model_id: int, error: BaseException) -> None:
        message = f"{type(error).__name__}: {error}"
        logger.error("[model %s] training failed: %s", model_id, message)
        try:
            self.registry.mark_failed(model_id, message)
        except RecsysError:
            # the training error still propagates
            logger.exception("[model %s] could not record failed status", model_id)


__all__ = ["Trainer"]
