# app/deps.py
from __future__ import annotations

from typing import Optional

from fastapi import HTTPException

from recsys.errors import ConfigError, ConflictError, DatasetError, NoInteractions, NotFound
from recsys.service.recommender_service import RecsysService, ServiceConfig

_service: Optional[RecsysService] = None  # noqa: UP045


def init_service(cfg: Optional[ServiceConfig] = None) -> None:  # noqa: UP045
    """Build and load the process-wide RecsysService (no-op if already loaded)."""
    global _service
    if _service is None:
        _service = RecsysService(cfg).load()


def shutdown_service() -> None:
    global _service
    if _service is not None:
        _service.close()
        _service = None


def get_service() -> RecsysService:
    """RuntimeError until the startup hook has run."""
    if _service is None:
        raise RuntimeError("Recsys service not initialized. Startup may have failed.")
    return _service


def http_error(e: Exception) -> HTTPException:
    if isinstance(e, (NotFound, NoInteractions)):
        status = 404
    elif isinstance(e, ConflictError):
        status = 409
    elif isinstance(e, (DatasetError, ConfigError, ValueError)):
        status = 400
    else:
        status = 500
    return HTTPException(status_code=status, detail=f"{type(e).__name__}: {e}")
