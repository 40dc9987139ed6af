from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union  # noqa: UP035

import numpy as np

from recsys.config.model_config import ModelConfig, format_config, parse_config
from recsys.config.settings import Settings, settings
from recsys.data.create_duckdb import load_table
from recsys.data.dataset import DuckDBDataset
from recsys.data.schemas import ModelRecord, RecommendationResult
from recsys.models.policies import EmbeddingPolicy, build_policy
from recsys.models.trainer import Trainer
from recsys.models.weights import write_weights
from recsys.ranking.ranker import Ranker
from recsys.store.database import Database
from recsys.store.model_registry import ModelRegistry
from recsys.store.vector_store import ItemIdSequence, VectorStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceConfig:
    duckdb_path: str = ":memory:"
    train_policy: str = "random"
    seed: Optional[int] = 42  # noqa: UP045
    candidate_pool: int = 10_000
    query_timeout_sec: Optional[float] = 30.0  # noqa: UP045
    als_regularization: float = 0.08
    als_iterations: int = 20
    als_alpha: float = 40.0
    show_progress: bool = False

    @classmethod
    def from_settings(cls, s: Optional[Settings] = None) -> ServiceConfig:  # noqa: UP045
        s = s or settings
        return cls(
            duckdb_path=str(s.DUCKDB_PATH),
            train_policy=s.TRAIN_POLICY,
            seed=s.RANDOM_SEED,
            candidate_pool=s.CANDIDATE_POOL,
            query_timeout_sec=s.QUERY_TIMEOUT_SEC,
            als_regularization=s.ALS_REGULARIZATION,
            als_iterations=s.ALS_ITERATIONS,
            als_alpha=s.ALS_ALPHA,
        )


class RecsysService:
    """
    In-process entry points a host (CLI, HTTP, notebook) wraps.

    - One DuckDB database holds datasets, the model registry and embeddings
    - One seeded generator per service instance feeds the training policies
    - train() / recommend() are synchronous and safe to call from threads
    """

    def __init__(self, cfg: Optional[ServiceConfig] = None) -> None:  # noqa: UP045
        self.cfg = cfg or ServiceConfig.from_settings()
        self.rng = np.random.default_rng(self.cfg.seed)

        self.db: Optional[Database] = None  # noqa: UP045
        self.dataset: Optional[DuckDBDataset] = None  # noqa: UP045
        self.store: Optional[VectorStore] = None  # noqa: UP045
        self.registry: Optional[ModelRegistry] = None  # noqa: UP045
        self.ranker: Optional[Ranker] = None  # noqa: UP045

        self._loaded = False

    # --------------------------
    # Lifecycle
    # --------------------------

    def load(self) -> RecsysService:
        if self._loaded:
            return self

        self.db = Database(self.cfg.duckdb_path, timeout_sec=self.cfg.query_timeout_sec)
        self.dataset = DuckDBDataset(self.db)
        self.store = VectorStore(self.db)
        self.registry = ModelRegistry(self.db)
        self.ranker = Ranker(self.dataset, self.store, self.registry, candidate_pool=self.cfg.candidate_pool)

        self._loaded = True
        logger.info("Recsys service loaded (db=%s, policy=%s)", self.cfg.duckdb_path, self.cfg.train_policy)
        return self

    def close(self) -> None:
        if self.db is not None:
            self.db.close()
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            raise RuntimeError("Service not loaded. Call service.load() first.")

    # --------------------------
    # Config codec
    # --------------------------

    @staticmethod
    def parse_config(text: str) -> ModelConfig:
        return parse_config(text)

    @staticmethod
    def format_config(config: ModelConfig) -> str:
        return format_config(config)

    # --------------------------
    # Models
    # --------------------------

    def register_model(
        self,
        model_id: int,
        config: Union[ModelConfig, str, None] = None,
    ) -> ModelRecord:
        self._ensure_loaded()
        if isinstance(config, str):
            config = parse_config(config)
        return self.registry.register(model_id, config)

    def get_model(self, model_id: int) -> ModelRecord:
        self._ensure_loaded()
        return self.registry.get(model_id)

    def list_models(self) -> List[ModelRecord]:
        self._ensure_loaded()
        return self.registry.list_models()

    def list_items(self, model_id: int) -> ItemIdSequence:
        self._ensure_loaded()
        return self.store.list_items(model_id)

    def build_policy(self, name: Optional[str] = None) -> EmbeddingPolicy:  # noqa: UP045
        return build_policy(
            name or self.cfg.train_policy,
            seed=self.cfg.seed,
            rng=self.rng,
            als_regularization=self.cfg.als_regularization,
            als_iterations=self.cfg.als_iterations,
            als_alpha=self.cfg.als_alpha,
        )

    def train(
        self,
        dataset: str,
        user_column: str,
        item_column: str,
        model_id: int,
        cancel_event: Optional[threading.Event] = None,  # noqa: UP045
        policy: Union[str, EmbeddingPolicy, None] = None,
    ) -> None:
        self._ensure_loaded()
        if not isinstance(policy, EmbeddingPolicy):
            policy = self.build_policy(policy)

        trainer = Trainer(
            self.dataset,
            self.store,
            self.registry,
            policy=policy,
            show_progress=self.cfg.show_progress,
        )
        trainer.train(dataset, user_column, item_column, model_id, cancel_event=cancel_event)

    # --------------------------
    # Ranking
    # --------------------------

    def recommend(
        self,
        model_id: int,
        user_id: str,
        dataset: str,
        user_column: str,
        item_column: str,
        top_k: int = 10,
        min_score: float = 0.0,
        user_vector: Optional[Sequence[float]] = None,  # noqa: UP045
        exclude_seen: bool = False,
    ) -> List[RecommendationResult]:
        self._ensure_loaded()
        return self.ranker.recommend(
            model_id=model_id,
            user_id=user_id,
            dataset=dataset,
            user_column=user_column,
            item_column=item_column,
            top_k=top_k,
            min_score=min_score,
            user_vector=user_vector,
            exclude_seen=exclude_seen,
        )

    # --------------------------
    # Data in / weights out
    # --------------------------

    def load_dataset(self, table: str, path: Union[str, Path]) -> int:
        self._ensure_loaded()
        return load_table(self.db, table, path)

    def export_weights(self, model_id: int, path: Union[str, Path], batch_size: int = 1024) -> int:
        """Write every embedding of a model to a Parquet weights file."""
        self._ensure_loaded()
        self.registry.get(model_id)

        def rows() -> Iterator[Tuple[str, np.ndarray]]:
            batch: List[str] = []
            for item_id in self.store.list_items(model_id):
                batch.append(item_id)
                if len(batch) >= batch_size:
                    yield from self._batch_vectors(model_id, batch)
                    batch = []
            if batch:
                yield from self._batch_vectors(model_id, batch)

        n = write_weights(path, rows())
        logger.info("Exported %d embeddings of model %s to %s", n, model_id, path)
        return n

    def _batch_vectors(self, model_id: int, item_ids: List[str]) -> Iterator[Tuple[str, np.ndarray]]:
        vectors = self.store.get_many(model_id, item_ids)
        for item_id in item_ids:
            if item_id in vectors:
                yield item_id, vectors[item_id]


__all__ = ["RecsysService", "ServiceConfig"]
