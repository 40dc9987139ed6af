import numpy as np

from recsys.data.schemas import EMBEDDING_DIM, InteractionRow, ModelStatus
from recsys.models.als_cf import ALSEmbeddingPolicy
from recsys.models.policies import RandomInitPolicy
from recsys.models.trainer import Trainer


def test_als_policy_trains_unit_vectors(dataset, store, registry):
    policy = ALSEmbeddingPolicy(fallback=RandomInitPolicy(seed=0), iterations=3, random_state=0)
    Trainer(dataset, store, registry, policy=policy).train("interactions", "user_id", "item_id", 1)

    assert registry.get(1).status == ModelStatus.READY
    assert list(store.list_items(1)) == ["a", "b", "c", "d"]
    for item in store.list_items(1):
        vec = store.get(1, item)
        assert vec.shape == (EMBEDDING_DIM,)
        assert np.all(np.abs(vec) <= 1.0)


def test_als_without_interactions_returns_zero_factors():
    policy = ALSEmbeddingPolicy(fallback=RandomInitPolicy(seed=0))
    factors = policy.fit_item_factors([], ["a", "b"])
    assert factors.shape == (2, EMBEDDING_DIM)
    assert not factors.any()


def test_als_square_matrix_returns_item_factors():
    rows = [InteractionRow("u1", "a"), InteractionRow("u2", "b"), InteractionRow("u2", "a")]
    policy = ALSEmbeddingPolicy(fallback=RandomInitPolicy(seed=0), iterations=2, random_state=0)
    factors = policy.fit_item_factors(rows, ["a", "b"])
    assert factors.shape == (2, EMBEDDING_DIM)
    assert np.all(np.isfinite(factors))
