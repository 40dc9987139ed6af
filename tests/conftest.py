from pathlib import Path
import sys

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from recsys.data.dataset import DuckDBDataset
from recsys.data.schemas import EMBEDDING_DIM
from recsys.store.database import Database
from recsys.store.model_registry import ModelRegistry
from recsys.store.vector_store import VectorStore


INTERACTIONS = [
    ("u1", "a"),
    ("u1", "b"),
    ("u2", "b"),
    ("u2", "c"),
    ("u3", "c"),
    ("u3", "d"),
    ("u3", "a"),
]


def unit(i: int) -> np.ndarray:
    v = np.zeros(EMBEDDING_DIM)
    v[i] = 1.0
    return v


def create_interactions(db: Database, table: str = "interactions", rows=INTERACTIONS) -> None:
    with db.transaction() as cur:
        cur.execute(f'CREATE OR REPLACE TABLE "{table}" (user_id VARCHAR, item_id VARCHAR)')
        if rows:
            cur.executemany(f'INSERT INTO "{table}" VALUES (?, ?)', [list(r) for r in rows])


@pytest.fixture
def db():
    database = Database(":memory:", timeout_sec=None)
    yield database
    database.close()


@pytest.fixture
def dataset(db):
    create_interactions(db)
    return DuckDBDataset(db)


@pytest.fixture
def store(db):
    return VectorStore(db)


@pytest.fixture
def registry(db):
    return ModelRegistry(db)
