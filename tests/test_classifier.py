# tests/test_classifier.py

import math

import numpy as np
import pytest
import torch

from stock_gru.errors import InsufficientDataError, ModelNotBuiltError, ModelNotFoundError
from stock_gru.models.classifier import SequenceClassifier
from stock_gru.storage.model_store import InMemoryModelStore, LocalModelStore
from stock_gru.training.trainer import CancellationToken

CPU = torch.device("cpu")


@pytest.fixture
def data():
    rng = np.random.default_rng(3)
    X = rng.uniform(0, 1, (16, 5, 4)).astype(np.float32)
    y = (rng.uniform(0, 1, (16, 6)) > 0.5).astype(np.float32)
    return X, y


@pytest.fixture
def classifier(tiny_model_config, tiny_training_config):
    torch.manual_seed(0)
    return SequenceClassifier(tiny_model_config, tiny_training_config, CPU)


def test_fit_builds_and_trains(classifier, data):
    X, y = data
    events = []
    run = classifier.fit(X, y, on_epoch_end=events.append)

    assert classifier.is_built
    assert (classifier.num_features, classifier.num_outputs) == (4, 6)
    assert run.epochs_completed == 3
    assert [e.epoch for e in events] == [1, 2, 3]
    # validation_split=0.25 of 16 rows
    assert len(run.history["val_acc"]) == 3


def test_predict_returns_probabilities(classifier, data):
    X, y = data
    classifier.fit(X, y)
    probs = classifier.predict(X)
    assert probs.shape == (16, 6)
    assert probs.min() >= 0.0 and probs.max() <= 1.0


def test_predict_on_empty_input(classifier, data):
    X, y = data
    classifier.fit(X, y)
    assert classifier.predict(np.zeros((0, 5, 4))).shape == (0, 6)


def test_evaluate_returns_loss_and_accuracy(classifier, data):
    X, y = data
    classifier.fit(X, y)
    result = classifier.evaluate(X, y)
    assert math.isfinite(result.loss)
    assert 0.0 <= result.accuracy <= 1.0


def test_evaluate_empty_set_is_nan(classifier, data):
    X, y = data
    classifier.fit(X, y)
    result = classifier.evaluate(X[:0], y[:0])
    assert math.isnan(result.loss) and math.isnan(result.accuracy)


def test_predict_before_build_raises(classifier, data):
    with pytest.raises(ModelNotBuiltError):
        classifier.predict(data[0])
    with pytest.raises(ModelNotBuiltError):
        classifier.evaluate(*data)


def test_fit_on_empty_set_raises(classifier):
    with pytest.raises(InsufficientDataError):
        classifier.fit(np.zeros((0, 5, 4)), np.zeros((0, 6)))


def test_shape_contract_violations(classifier, data):
    X, y = data
    with pytest.raises(ValueError):
        classifier.fit(X[0], y)
    with pytest.raises(ValueError):
        classifier.fit(X, y[:10])
    with pytest.raises(ValueError):
        classifier.fit(X, y[:, :, None])

    classifier.build(5, 4, 6)
    with pytest.raises(ValueError):
        classifier.predict(X[:, :, :3])
    with pytest.raises(ValueError):
        classifier.evaluate(X, y[:, :5])


def test_cancelled_fit_keeps_partial_model(classifier, data):
    X, y = data
    token = CancellationToken()
    run = classifier.fit(X, y, on_epoch_end=lambda _: token.cancel(), cancel_token=token)
    assert run.cancelled
    assert run.epochs_completed == 1
    assert classifier.predict(X).shape == (16, 6)


def test_save_and_load_round_trip(classifier, data):
    X, y = data
    classifier.fit(X, y)
    store = InMemoryModelStore()
    classifier.save(store, "unit", metadata={"symbols": ["A", "B"]})

    restored, metadata = SequenceClassifier.load(store, "unit", device=CPU)
    assert metadata == {"symbols": ["A", "B"]}
    assert restored.window_size == 5
    np.testing.assert_allclose(restored.predict(X), classifier.predict(X), atol=1e-6)


def test_load_missing_model_raises():
    with pytest.raises(ModelNotFoundError):
        SequenceClassifier.load(InMemoryModelStore(), "absent", device=CPU)


def test_round_trip_through_local_store(classifier, data, tmp_path):
    X, y = data
    classifier.fit(X, y)
    store = LocalModelStore(tmp_path)
    classifier.save(store, "gru-stock-model",
                    metadata={"symbols": ["A", "B"], "window_size": 5, "horizon": 3, "label_layout": "symbol_major"})

    restored, metadata = SequenceClassifier.load(store, "gru-stock-model", device=CPU)
    assert metadata["label_layout"] == "symbol_major"
    assert (restored.num_features, restored.num_outputs) == (4, 6)
    np.testing.assert_allclose(restored.predict(X), classifier.predict(X), atol=1e-6)
