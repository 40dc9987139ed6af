from __future__ import annotations

from pathlib import Path
from typing import Optional  # noqa: UP035

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Project root inferred from this file location:
    # repo/
    #   recsys/config/settings.py
    PROJECT_ROOT: Path = Path(__file__).resolve().parents[2]

    DATA_DIR: Path = PROJECT_ROOT / "data"

    # Interaction datasets, the model registry and item embeddings share one DuckDB file
    DUCKDB_PATH: Path = DATA_DIR / "recsys.duckdb"

    # Ranking
    CANDIDATE_POOL: int = 10_000

    # Training policy: random | als | pretrained
    TRAIN_POLICY: str = "random"
    RANDOM_SEED: Optional[int] = 42  # noqa: UP045

    # ALS knobs (implicit feedback)
    ALS_REGULARIZATION: float = 0.08
    ALS_ITERATIONS: int = 20
    ALS_ALPHA: float = 40.0

    # Per-query timeout; None disables it
    QUERY_TIMEOUT_SEC: Optional[float] = 30.0  # noqa: UP045

    LOG_LEVEL: str = "INFO"

    # HTTP host
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000


settings = Settings()
