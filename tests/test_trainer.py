# tests/test_trainer.py

from dataclasses import replace

import numpy as np
import pytest
import torch
from torch.utils.data import DataLoader

from stock_gru.config.config import TrainingConfig
from stock_gru.data.dataset import WindowDataset, tensor_scope
from stock_gru.models.gru import GRUNetwork
from stock_gru.training.losses import BinaryFocalLoss, LabelSmoothingBCE, build_criterion
from stock_gru.training.trainer import CancellationToken, GRUTrainer

CPU = torch.device("cpu")


def _loaders(n=16, window=5, features=4, outputs=6, seed=0):
    rng = np.random.default_rng(seed)
    X = rng.uniform(0, 1, (n, window, features)).astype(np.float32)
    y = (rng.uniform(0, 1, (n, outputs)) > 0.5).astype(np.float32)
    train = DataLoader(WindowDataset(X[:12], y[:12]), batch_size=4, shuffle=True)
    val = DataLoader(WindowDataset(X[12:], y[12:]), batch_size=4)
    return train, val


def _trainer(**overrides):
    torch.manual_seed(0)
    cfg = replace(TrainingConfig(epochs=3, batch_size=4), **overrides)
    return GRUTrainer(GRUNetwork(num_features=4, num_outputs=6, units=4), CPU, cfg)


def test_gru_network_output_shape():
    net = GRUNetwork(num_features=4, num_outputs=6, units=8)
    out = net(torch.zeros(3, 5, 4))
    assert out.shape == (3, 6)


def test_gru_network_rejects_too_few_units():
    with pytest.raises(ValueError):
        GRUNetwork(num_features=4, num_outputs=6, units=1)


def test_fit_records_history_and_reports_progress():
    train, val = _loaders()
    events = []
    run = _trainer().fit(train, val, on_epoch_end=events.append)

    assert run.epochs_completed == 3
    assert not run.cancelled
    assert [e.epoch for e in events] == [1, 2, 3]
    assert all(e.epochs == 3 for e in events)
    for key in ("train_loss", "train_acc", "val_loss", "val_acc", "lr"):
        assert len(run.history[key]) == 3
    assert all(np.isfinite(run.history["train_loss"]))
    assert run.best_epoch in (1, 2, 3)


def test_fit_without_validation():
    train, _ = _loaders()
    run = _trainer().fit(train)
    assert "val_acc" not in run.history
    assert run.best_val_acc is None


def test_cancel_from_progress_callback_stops_after_that_epoch():
    train, val = _loaders()
    token = CancellationToken()
    events = []

    def on_epoch_end(progress):
        events.append(progress.epoch)
        token.cancel()

    run = _trainer(epochs=5).fit(train, val, on_epoch_end=on_epoch_end, cancel_token=token)
    assert run.cancelled
    assert run.epochs_completed == 1
    assert events == [1]
    assert len(run.history["train_loss"]) == 1


def test_pre_cancelled_token_runs_no_epoch():
    train, val = _loaders()
    token = CancellationToken()
    token.cancel()
    run = _trainer().fit(train, val, cancel_token=token)
    assert run.cancelled
    assert run.epochs_completed == 0
    assert run.history == {}


def test_early_stopping_restores_best_epoch():
    train, val = _loaders()
    run = _trainer(epochs=20, learning_rate=0.0, early_stopping_patience=2).fit(train, val)
    # with a zero learning rate validation accuracy never improves after epoch 1
    assert run.stopped_early
    assert run.best_epoch == 1
    assert run.epochs_completed == 3


def test_evaluate_loader_returns_mean_loss_and_accuracy():
    _, val = _loaders()
    loss, acc = _trainer().evaluate_loader(val)
    assert loss > 0
    assert 0.0 <= acc <= 1.0


@pytest.mark.parametrize("optimizer", ["adam", "adamw", "sgd"])
def test_supported_optimizers(optimizer):
    assert _trainer(optimizer=optimizer).opt is not None


def test_unknown_optimizer_and_scheduler_raise():
    with pytest.raises(ValueError):
        _trainer(optimizer="rmsprop")
    with pytest.raises(ValueError):
        _trainer(scheduler="step")


@pytest.mark.parametrize("scheduler", ["cosine", "reduce_on_plateau"])
def test_schedulers_step_during_fit(scheduler):
    train, val = _loaders()
    run = _trainer(scheduler=scheduler).fit(train, val)
    assert len(run.history["lr"]) == 3


def test_build_criterion_selects_loss():
    assert isinstance(build_criterion(TrainingConfig(loss_type="bce")), torch.nn.BCEWithLogitsLoss)
    assert isinstance(build_criterion(TrainingConfig(loss_type="focal")), BinaryFocalLoss)
    assert isinstance(build_criterion(TrainingConfig(loss_type="label_smoothing")), LabelSmoothingBCE)
    with pytest.raises(ValueError):
        build_criterion(TrainingConfig(loss_type="hinge"))


def test_focal_loss_is_below_bce_for_confident_hits():
    logits = torch.tensor([[4.0, -4.0]])
    target = torch.tensor([[1.0, 0.0]])
    bce = torch.nn.BCEWithLogitsLoss()(logits, target)
    focal = BinaryFocalLoss(gamma=2.0)(logits, target)
    assert focal.item() < bce.item()


def test_tensor_scope_yields_tensors_on_device():
    X = np.zeros((2, 3, 4), dtype=np.float32)
    y = np.ones((2, 6), dtype=np.float32)
    with tensor_scope(X, y, CPU) as (xt, yt):
        assert xt.shape == (2, 3, 4)
        assert yt.device.type == "cpu"
        assert float(yt.sum()) == 12.0
