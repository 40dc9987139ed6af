# app/api/routes/models.py
from __future__ import annotations

from datetime import datetime
from typing import Optional  # noqa: UP035

from fastapi import APIRouter, Path
from pydantic import BaseModel, Field

from app.deps import get_service, http_error
from recsys.data.schemas import ModelRecord
from recsys.errors import RecsysError

router = APIRouter(prefix="/models", tags=["models"])


class ModelOut(BaseModel):
    model_id: int
    status: str
    weights_path: str
    updated_at: Optional[datetime] = None  # noqa: UP045
    last_error: Optional[str] = None  # noqa: UP045

    @classmethod
    def from_domain(cls, rec: ModelRecord) -> ModelOut:
        return cls(
            model_id=rec.model_id,
            status=rec.status.value,
            weights_path=rec.weights_path,
            updated_at=rec.updated_at,
            last_error=rec.last_error,
        )


class RegisterIn(BaseModel):
    weights_path: str = Field("", description="Parquet file with (item_id, embedding) rows.")


class TrainIn(BaseModel):
    dataset: str = Field(..., description="Interaction table name.")
    user_column: str = "user_id"
    item_column: str = "item_id"
    policy: Optional[str] = Field(None, description="random | als | pretrained")  # noqa: UP045


class TrainOut(BaseModel):
    model: ModelOut
    items: int


@router.put("/{model_id}")
def register_model(
    body: RegisterIn,
    model_id: int = Path(..., description="Model identifier."),
) -> ModelOut:
    """
    Register a model, or update its weights path.
    """
    service = get_service()
    try:
        rec = service.register_model(model_id, body.weights_path)
    except (RecsysError, ValueError) as e:
        raise http_error(e) from e
    return ModelOut.from_domain(rec)


@router.get("/{model_id}")
def get_model(model_id: int = Path(..., description="Model identifier.")) -> ModelOut:
    service = get_service()
    try:
        rec = service.get_model(model_id)
    except RecsysError as e:
        raise http_error(e) from e
    return ModelOut.from_domain(rec)


@router.post("/{model_id}/train")
def train_model(
    body: TrainIn,
    model_id: int = Path(..., description="Model identifier."),
) -> TrainOut:
    """
    Run training synchronously and return the final model record.
    - 409 if the model is already training
    - 400 on dataset/config errors (the model is left FAILED)
    """
    service = get_service()
    try:
        service.train(body.dataset, body.user_column, body.item_column, model_id, policy=body.policy)
        rec = service.get_model(model_id)
    except (RecsysError, ValueError) as e:
        raise http_error(e) from e
    return TrainOut(model=ModelOut.from_domain(rec), items=service.store.count(model_id))
