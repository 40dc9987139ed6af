# app/api/routes/recommend.py
from __future__ import annotations

from typing import List  # noqa: UP035

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel

from app.deps import get_service, http_error
from recsys.errors import RecsysError

router = APIRouter(prefix="/recommend", tags=["recommend"])


class RecommendItemOut(BaseModel):
    item_id: str
    score: float


class RecommendOut(BaseModel):
    model_id: int
    user_id: str
    items: List[RecommendItemOut]


@router.get("/{model_id}/user/{user_id}")
def recommend_for_user(
    model_id: int = Path(..., description="Trained model identifier."),
    user_id: str = Path(..., description="User id as stored in the interaction table."),
    dataset: str = Query(..., description="Interaction table name."),
    user_column: str = Query("user_id"),
    item_column: str = Query("item_id"),
    k: int = Query(10, ge=0, le=1000, description="Number of recommendations to return."),
    min_score: float = Query(0.0, ge=-1.0, le=1.0, description="Minimum cosine score."),
    exclude_seen: bool = Query(False, description="Drop items the user already interacted with."),
) -> RecommendOut:
    """
    Return top-k items for a user, best first (ties by item_id).
    """
    service = get_service()

    try:
        recs = service.recommend(
            model_id=model_id,
            user_id=user_id,
            dataset=dataset,
            user_column=user_column,
            item_column=item_column,
            top_k=k,
            min_score=min_score,
            exclude_seen=exclude_seen,
        )
    except (RecsysError, ValueError) as e:
        raise http_error(e) from e

    return RecommendOut(
        model_id=model_id,
        user_id=user_id,
        items=[RecommendItemOut(item_id=r.item_id, score=r.score) for r in recs],
    )
