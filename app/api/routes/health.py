# app/api/routes/health.py
from __future__ import annotations

from fastapi import APIRouter

from app.deps import get_service

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    """
    Health check; also reports how many models are registered.
    """
    service = get_service()
    return {"status": "ok", "models": len(service.list_models())}
