from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set  # noqa: UP035

import duckdb

from recsys.config.model_config import ModelConfig, format_config
from recsys.data.schemas import ModelRecord, ModelStatus
from recsys.errors import ConflictError, NotFound, StorageError
from recsys.store.database import RECSYS_SCHEMA, Database

logger = logging.getLogger(__name__)

MODELS_TABLE = f"{RECSYS_SCHEMA}.models"

# Legal predecessor -> successor moves. A new run always restarts at PENDING.
TRANSITIONS: Dict[ModelStatus, Set[ModelStatus]] = {
    ModelStatus.PENDING: {ModelStatus.TRAINING, ModelStatus.FAILED},
    ModelStatus.TRAINING: {ModelStatus.READY, ModelStatus.FAILED},
    ModelStatus.READY: {ModelStatus.PENDING},
    ModelStatus.FAILED: {ModelStatus.PENDING},
}


def check_transition(model_id: int, current: ModelStatus, target: ModelStatus) -> None:
    if target not in TRANSITIONS[current]:
        if current == ModelStatus.TRAINING:
            raise ConflictError(f"Model {model_id} is already training")
        raise ConflictError(
            f"Illegal status transition for model {model_id}: {current.value} -> {target.value}"
        )


def _now() -> datetime:
    # Stored as naive UTC (DuckDB TIMESTAMP)
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _record(row: tuple) -> ModelRecord:
    model_id, status, weights_path, updated_at, last_error = row
    return ModelRecord(
        model_id=int(model_id),
        status=ModelStatus(status),
        weights_path=weights_path or "",
        updated_at=updated_at,
        last_error=last_error,
    )


class ModelRegistry:
    """
    Model rows and their status state machine:

        pending -> training -> {ready, failed}
        ready | failed -> pending   (a new run)

    Every transition re-reads the current status inside the write
    transaction and validates it, which makes the row the serialization
    point for training: at most one run per model can hold TRAINING.
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self.ensure_schema()

    def ensure_schema(self) -> None:
        with self.db.transaction() as cur:
            self.db.execute(
                cur,
                f"""
                CREATE TABLE IF NOT EXISTS {MODELS_TABLE} (
                    model_id INTEGER PRIMARY KEY,
                    model_status VARCHAR NOT NULL,
                    weights_path VARCHAR NOT NULL DEFAULT '',
                    updated_at TIMESTAMP,
                    last_error VARCHAR
                )
                """,
            )

    # --------------------------
    # Internal helpers (caller holds a cursor)
    # --------------------------

    def _select(self, cur: duckdb.DuckDBPyConnection, model_id: int) -> Optional[ModelRecord]:  # noqa: UP045
        rows = self.db.fetchall(
            cur,
            f"SELECT model_id, model_status, weights_path, updated_at, last_error "
            f"FROM {MODELS_TABLE} WHERE model_id = ?",
            [int(model_id)],
        )
        return _record(rows[0]) if rows else None

    def _insert(
        self,
        cur: duckdb.DuckDBPyConnection,
        model_id: int,
        weights_path: str,
        status: ModelStatus = ModelStatus.PENDING,
    ) -> None:
        self.db.execute(
            cur,
            f"INSERT INTO {MODELS_TABLE} (model_id, model_status, weights_path, updated_at) "
            f"VALUES (?, ?, ?, ?)",
            [int(model_id), status.value, weights_path, _now()],
        )

    def _set_status(
        self,
        cur: duckdb.DuckDBPyConnection,
        model_id: int,
        status: ModelStatus,
        last_error: Optional[str],  # noqa: UP045
    ) -> None:
        self.db.execute(
            cur,
            f"UPDATE {MODELS_TABLE} SET model_status = ?, updated_at = ?, last_error = ? WHERE model_id = ?",
            [status.value, _now(), last_error, int(model_id)],
        )

    # --------------------------
    # Public API
    # --------------------------

    def register(self, model_id: int, config: Optional[ModelConfig] = None) -> ModelRecord:  # noqa: UP045
        """
        Create the model at PENDING, or update the weights path of an existing one.

        Changing the weights path of a model that is training is rejected.
        """
        weights_path = format_config(config) if config is not None else None
        try:
            with self.db.transaction() as cur:
                current = self._select(cur, model_id)
                if current is None:
                    self._insert(cur, model_id, weights_path or "")
                elif weights_path is not None:
                    if current.status == ModelStatus.TRAINING:
                        raise ConflictError(f"Model {model_id} is training; its config cannot change")
                    self.db.execute(
                        cur,
                        f"UPDATE {MODELS_TABLE} SET weights_path = ?, updated_at = ? WHERE model_id = ?",
                        [weights_path, _now(), int(model_id)],
                    )
                record = self._select(cur, model_id)
        except duckdb.Error as e:
            raise StorageError(f"Registering model {model_id} failed: {e}") from e

        logger.info("Registered model %s (status=%s)", model_id, record.status.value)
        return record

    def find(self, model_id: int) -> Optional[ModelRecord]:  # noqa: UP045
        try:
            with self.db.cursor() as cur:
                return self._select(cur, model_id)
        except duckdb.Error as e:
            raise StorageError(f"Reading model {model_id} failed: {e}") from e

    def get(self, model_id: int) -> ModelRecord:
        record = self.find(model_id)
        if record is None:
            raise NotFound(f"Unknown model_id {model_id}")
        return record

    def list_models(self) -> List[ModelRecord]:
        try:
            rows = self.db.query(
                f"SELECT model_id, model_status, weights_path, updated_at, last_error "
                f"FROM {MODELS_TABLE} ORDER BY model_id"
            )
        except duckdb.Error as e:
            raise StorageError(f"Listing models failed: {e}") from e
        return [_record(r) for r in rows]

    def transition(
        self,
        model_id: int,
        target: ModelStatus,
        last_error: Optional[str] = None,  # noqa: UP045
    ) -> ModelRecord:
        try:
            with self.db.transaction() as cur:
                current = self._select(cur, model_id)
                if current is None:
                    raise NotFound(f"Unknown model_id {model_id}")
                check_transition(model_id, current.status, target)

                if target == ModelStatus.READY:
                    error = None
                elif target == ModelStatus.FAILED:
                    error = last_error
                else:
                    error = current.last_error
                self._set_status(cur, model_id, target, error)
                record = self._select(cur, model_id)
        except duckdb.Error as e:
            raise StorageError(f"Updating status of model {model_id} failed: {e}") from e

        logger.info("Model %s: %s -> %s", model_id, current.status.value, target.value)
        return record

    def begin_training(self, model_id: int) -> ModelRecord:
        """
        Claim the model for a training run, atomically.

        Unknown ids are registered first. READY/FAILED models restart at
        PENDING; a model already TRAINING raises ConflictError and is left as is.
        """
        try:
            with self.db.transaction() as cur:
                current = self._select(cur, model_id)
                if current is None:
                    # New model: pending -> training within this transaction
                    check_transition(model_id, ModelStatus.PENDING, ModelStatus.TRAINING)
                    self._insert(cur, model_id, "", status=ModelStatus.TRAINING)
                    previous = ModelStatus.PENDING
                else:
                    previous = status = current.status
                    if status in (ModelStatus.READY, ModelStatus.FAILED):
                        check_transition(model_id, status, ModelStatus.PENDING)
                        status = ModelStatus.PENDING
                    check_transition(model_id, status, ModelStatus.TRAINING)
                    self._set_status(cur, model_id, ModelStatus.TRAINING, current.last_error)
                record = self._select(cur, model_id)
        except duckdb.Error as e:
            raise StorageError(f"Claiming model {model_id} for training failed: {e}") from e

        logger.info("Model %s: %s -> training", model_id, previous.value)
        return record

    def mark_ready(self, model_id: int) -> ModelRecord:
        return self.transition(model_id, ModelStatus.READY)

    def mark_failed(self, model_id: int, error: str) -> ModelRecord:
        return self.transition(model_id, ModelStatus.FAILED, last_error=error)


__all__ = ["ModelRegistry", "TRANSITIONS", "check_transition", "MODELS_TABLE"]
