import math

import numpy as np
import pytest

from recsys.data.schemas import RecommendationResult
from recsys.errors import DatasetError, NoInteractions, NotFound
from recsys.ranking.ranker import Ranker, select_top_k
from recsys.ranking.similarity import cosine_similarity, mean_vector

from conftest import create_interactions, unit


@pytest.fixture
def ranker(db, dataset, store, registry):
    # u1 saw a and b, u2 saw b and c, u3 saw a, c, d
    registry.register(1)
    store.put(1, "a", unit(0))
    store.put(1, "b", unit(1))
    store.put(1, "c", -unit(0))
    store.put(1, "d", unit(0) + unit(1))
    create_interactions(db, "solo", [("v", "a")] + [(f"w{i}", x) for i, x in enumerate("bcd")])
    return Ranker(dataset, store, registry)


def recommend(ranker, user_id, table="interactions", **kw):
    kw.setdefault("top_k", 10)
    kw.setdefault("min_score", -1.0)
    return ranker.recommend(1, user_id, table, "user_id", "item_id", **kw)


def test_select_top_k_example():
    out = select_top_k({"a": 0.9, "b": 0.4, "c": 0.95}, top_k=2, min_score=0.5)
    assert out == [RecommendationResult("c", 0.95), RecommendationResult("a", 0.9)]


def test_select_top_k_ties_break_by_item_id():
    out = select_top_k([("z", 0.5), ("m", 0.5), ("a", 0.1)], top_k=3, min_score=0.0)
    assert [r.item_id for r in out] == ["m", "z", "a"]


def test_select_top_k_zero():
    assert select_top_k({"a": 1.0}, top_k=0, min_score=0.0) == []


@pytest.mark.parametrize("top_k,min_score", [(-1, 0.0), (1.5, 0.0), (True, 0.0), (3, math.nan), (3, math.inf)])
def test_select_top_k_rejects_bad_arguments(top_k, min_score):
    with pytest.raises(ValueError):
        select_top_k({"a": 1.0}, top_k=top_k, min_score=min_score)


def test_cosine_zero_norm_scores_zero():
    scores = cosine_similarity(unit(0), np.vstack([np.zeros(128), unit(0)]))
    assert scores.tolist() == [0.0, 1.0]
    assert cosine_similarity(np.zeros(128), np.vstack([unit(0)])).tolist() == [0.0]


def test_mean_vector_needs_input():
    with pytest.raises(ValueError):
        mean_vector([])


def test_recommend_orders_by_cosine(ranker):
    out = recommend(ranker, "v", table="solo")
    assert [r.item_id for r in out] == ["a", "d", "b", "c"]
    assert out[0].score == pytest.approx(1.0)
    assert out[1].score == pytest.approx(1 / math.sqrt(2))
    assert out[2].score == pytest.approx(0.0)
    assert out[3].score == pytest.approx(-1.0)


def test_recommend_respects_threshold_and_bound(ranker):
    out = recommend(ranker, "v", table="solo", top_k=2, min_score=0.5)
    assert [r.item_id for r in out] == ["a", "d"]
    assert all(r.score >= 0.5 for r in out)

    out = recommend(ranker, "v", table="solo", top_k=1, min_score=0.0)
    assert len(out) == 1


def test_recommend_exclude_seen(ranker):
    out = recommend(ranker, "v", table="solo", exclude_seen=True)
    assert [r.item_id for r in out] == ["d", "b", "c"]


def test_user_vector_is_mean_of_history(ranker):
    # u1 history: a (e0) and b (e1) -> d (e0 + e1) is the closest item
    out = recommend(ranker, "u1")
    assert out[0].item_id == "d"
    assert out[0].score == pytest.approx(1.0)
    # a and b tie; ascending item id first
    assert [r.item_id for r in out[1:3]] == ["a", "b"]


def test_supplied_user_vector(ranker):
    out = recommend(ranker, "nobody", user_vector=unit(1).tolist(), min_score=0.0)
    # a and c are orthogonal to the query; 0.0 still passes the threshold
    assert [r.item_id for r in out] == ["b", "d", "a", "c"]

    out = recommend(ranker, "nobody", user_vector=unit(1).tolist(), min_score=0.1)
    assert [r.item_id for r in out] == ["b", "d"]


def test_supplied_user_vector_is_validated(ranker):
    with pytest.raises(ValueError):
        recommend(ranker, "v", user_vector=[1.0, 2.0])


def test_top_k_zero_returns_empty(ranker):
    assert recommend(ranker, "v", table="solo", top_k=0) == []


def test_unknown_model(ranker):
    with pytest.raises(NotFound):
        ranker.recommend(404, "v", "solo", "user_id", "item_id", top_k=5, min_score=0.0)


def test_user_without_history(ranker):
    with pytest.raises(NoInteractions):
        recommend(ranker, "stranger")


def test_history_without_embeddings(db, ranker):
    create_interactions(db, "fresh", [("n", "new-item")])
    with pytest.raises(NoInteractions):
        recommend(ranker, "n", table="fresh")


def test_candidates_without_embedding_are_skipped(db, ranker):
    create_interactions(db, "drift", [("v", "a"), ("w", "unseen")])
    out = recommend(ranker, "v", table="drift")
    assert [r.item_id for r in out] == ["a"]


def test_candidate_pool_caps_items(db, dataset, store, registry, ranker):
    capped = Ranker(dataset, store, registry, candidate_pool=2)
    out = capped.recommend(1, "v", "solo", "user_id", "item_id", top_k=10, min_score=-1.0)
    assert sorted(r.item_id for r in out) == ["a", "b"]


def test_missing_dataset_table(ranker):
    with pytest.raises(DatasetError):
        recommend(ranker, "v", table="no_such_table")


def test_missing_dataset_column(ranker):
    with pytest.raises(DatasetError):
        ranker.recommend(1, "v", "solo", "user_id", "sku", top_k=5, min_score=0.0)
    with pytest.raises(DatasetError):
        ranker.recommend(1, "v", "solo", "customer", "item_id", top_k=5, min_score=0.0)
