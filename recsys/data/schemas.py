from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional  # noqa: UP035

# Every stored item vector has exactly this many components.
EMBEDDING_DIM = 128

# Range agreed by the training policies for vector components.
COMPONENT_MIN = -1.0
COMPONENT_MAX = 1.0


class ModelStatus(str, Enum):
    PENDING = "pending"
    TRAINING = "training"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class InteractionRow:
    user_id: str
    item_id: str


@dataclass(frozen=True)
class RecommendationResult:
    item_id: str
    score: float


@dataclass(frozen=True)
class ModelRecord:
    """
    One row of the model registry.

    weights_path is the formatted ModelConfig string (empty when the model is
    trained in-process rather than from an external weights file).
    """
    model_id: int
    status: ModelStatus
    weights_path: str = ""
    updated_at: Optional[datetime] = None  # noqa: UP045
    last_error: Optional[str] = None  # noqa: UP045


__all__ = [
    "EMBEDDING_DIM",
    "COMPONENT_MIN",
    "COMPONENT_MAX",
    "ModelStatus",
    "InteractionRow",
    "RecommendationResult",
    "ModelRecord",
]
