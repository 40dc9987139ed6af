import threading

import numpy as np
import pytest

from recsys.data.schemas import EMBEDDING_DIM, ModelStatus
from recsys.errors import ConflictError, DatasetError, StorageError, TrainingCancelled
from recsys.models.policies import EmbeddingPolicy, RandomInitPolicy
from recsys.models.trainer import Trainer

from conftest import create_interactions


class NaNAfterFirst(EmbeddingPolicy):
    name = "nan-after-first"

    def vectors(self, items, ctx):
        yield np.zeros(EMBEDDING_DIM) + 0.5
        bad = np.zeros(EMBEDDING_DIM)
        bad[3] = np.nan
        while True:
            yield bad


class ShortPolicy(EmbeddingPolicy):
    name = "short"

    def vectors(self, items, ctx):
        yield np.full(EMBEDDING_DIM, 0.1)


class BlockingPolicy(EmbeddingPolicy):
    name = "blocking"

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()

    def vectors(self, items, ctx):
        self.started.set()
        assert self.release.wait(timeout=10)
        for _ in items:
            yield np.full(EMBEDDING_DIM, 0.25)


def make_trainer(dataset, store, registry, policy=None):
    return Trainer(dataset, store, registry, policy=policy or RandomInitPolicy(seed=0))


def test_train_embeds_every_distinct_item(dataset, store, registry):
    make_trainer(dataset, store, registry).train("interactions", "user_id", "item_id", 1)

    assert list(store.list_items(1)) == ["a", "b", "c", "d"]
    for item in store.list_items(1):
        vec = store.get(1, item)
        assert vec.shape == (EMBEDDING_DIM,)
        assert np.all(np.isfinite(vec))
        assert np.all((vec >= -1.0) & (vec <= 1.0))
    assert registry.get(1).status == ModelStatus.READY


def test_retrain_keeps_item_set_and_shape(dataset, store, registry):
    trainer = make_trainer(dataset, store, registry)
    trainer.train("interactions", "user_id", "item_id", 1)
    first = {i: store.get(1, i) for i in store.list_items(1)}

    trainer.train("interactions", "user_id", "item_id", 1)
    second = {i: store.get(1, i) for i in store.list_items(1)}

    assert sorted(first) == sorted(second)
    assert store.count(1) == 4
    assert all(v.shape == (EMBEDDING_DIM,) for v in second.values())
    assert registry.get(1).status == ModelStatus.READY


def test_same_seed_same_vectors(db, dataset, store, registry):
    make_trainer(dataset, store, registry, RandomInitPolicy(seed=7)).train(
        "interactions", "user_id", "item_id", 1
    )
    make_trainer(dataset, store, registry, RandomInitPolicy(seed=7)).train(
        "interactions", "user_id", "item_id", 2
    )
    for item in ["a", "b", "c", "d"]:
        np.testing.assert_array_equal(store.get(1, item), store.get(2, item))


def test_empty_dataset_trains_nothing(db, store, registry, dataset):
    create_interactions(db, "empty", rows=[])
    make_trainer(dataset, store, registry).train("empty", "user_id", "item_id", 3)
    assert list(store.list_items(3)) == []
    assert registry.get(3).status == ModelStatus.READY


def test_missing_table_marks_failed(dataset, store, registry):
    with pytest.raises(DatasetError):
        make_trainer(dataset, store, registry).train("nope", "user_id", "item_id", 1)

    rec = registry.get(1)
    assert rec.status == ModelStatus.FAILED
    assert rec.last_error.startswith("DatasetError")
    assert store.count(1) == 0


def test_missing_user_column_marks_failed(dataset, store, registry):
    with pytest.raises(DatasetError):
        make_trainer(dataset, store, registry).train("interactions", "customer", "item_id", 1)
    assert registry.get(1).status == ModelStatus.FAILED


def test_bad_vector_fails_and_keeps_earlier_writes(dataset, store, registry):
    with pytest.raises(StorageError):
        make_trainer(dataset, store, registry, NaNAfterFirst()).train(
            "interactions", "user_id", "item_id", 1
        )

    assert list(store.list_items(1)) == ["a"]
    assert registry.get(1).status == ModelStatus.FAILED


def test_policy_with_too_few_vectors_fails(dataset, store, registry):
    with pytest.raises(StorageError):
        make_trainer(dataset, store, registry, ShortPolicy()).train("interactions", "user_id", "item_id", 1)
    assert registry.get(1).status == ModelStatus.FAILED


def test_failed_model_can_be_retrained(dataset, store, registry):
    trainer = make_trainer(dataset, store, registry)
    with pytest.raises(DatasetError):
        trainer.train("nope", "user_id", "item_id", 1)

    trainer.train("interactions", "user_id", "item_id", 1)
    rec = registry.get(1)
    assert rec.status == ModelStatus.READY
    assert rec.last_error is None


def test_cancellation_marks_failed(dataset, store, registry):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(TrainingCancelled):
        make_trainer(dataset, store, registry).train(
            "interactions", "user_id", "item_id", 1, cancel_event=cancel
        )

    rec = registry.get(1)
    assert rec.status == ModelStatus.FAILED
    assert "TrainingCancelled" in rec.last_error
    assert store.count(1) == 0


def test_concurrent_train_conflicts(dataset, store, registry):
    policy = BlockingPolicy()
    errors = []

    def run():
        try:
            make_trainer(dataset, store, registry, policy).train("interactions", "user_id", "item_id", 1)
        except Exception as e:
            errors.append(e)

    t = threading.Thread(target=run)
    t.start()
    assert policy.started.wait(timeout=10)

    with pytest.raises(ConflictError):
        make_trainer(dataset, store, registry).train("interactions", "user_id", "item_id", 1)
    assert registry.get(1).status == ModelStatus.TRAINING

    policy.release.set()
    t.join(timeout=10)

    assert errors == []
    assert registry.get(1).status == ModelStatus.READY
    assert list(store.list_items(1)) == ["a", "b", "c", "d"]
    np.testing.assert_allclose(store.get(1, "c"), np.full(EMBEDDING_DIM, 0.25))


def test_failed_ready_transition_marks_failed(dataset, store, registry, monkeypatch):
    def broken_mark_ready(model_id):
        raise StorageError(f"Updating status of model {model_id} failed: disk full")

    monkeypatch.setattr(registry, "mark_ready", broken_mark_ready)

    with pytest.raises(StorageError):
        make_trainer(dataset, store, registry).train("interactions", "user_id", "item_id", 1)

    rec = registry.get(1)
    assert rec.status == ModelStatus.FAILED
    assert "disk full" in rec.last_error

    monkeypatch.undo()
    make_trainer(dataset, store, registry).train("interactions", "user_id", "item_id", 1)
    assert registry.get(1).status == ModelStatus.READY
