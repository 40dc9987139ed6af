# app/main.py
from __future__ import annotations

from typing import Optional

import uvicorn
from fastapi import FastAPI

from app.api.routes.health import router as health_router
from app.api.routes.models import router as models_router
from app.api.routes.recommend import router as recommend_router
from app.deps import init_service, shutdown_service
from recsys.config.settings import settings
from recsys.service.recommender_service import ServiceConfig


def create_app(cfg: Optional[ServiceConfig] = None) -> FastAPI:  # noqa: UP045
    app = FastAPI(
        title="Recsys",
        version="0.1.0",
        description=(
            "Item-embedding recommendation service over DuckDB interaction tables.\n"
            "Trains one 128-dim embedding per item and ranks items for a user by cosine similarity."
        ),
    )

    # Routers
    app.include_router(health_router)
    app.include_router(models_router)
    app.include_router(recommend_router)

    @app.on_event("startup")
    async def on_startup() -> None:
        """
        Open the database and build the service once at startup.
        """
        init_service(cfg)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        shutdown_service()

    return app


app = create_app()


def serve() -> None:
    print(f"[START] Serving recsys API on http://{settings.API_HOST}:{settings.API_PORT}")
    uvicorn.run(
        "app.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    serve()
