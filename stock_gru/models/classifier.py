# stock_gru/models/classifier.py

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np
import torch
from loguru import logger
from torch.utils.data import DataLoader

from ..config.config import ModelConfig, TrainingConfig
from ..data.dataset import WindowDataset, tensor_scope
from ..errors import InsufficientDataError, ModelNotBuiltError, ModelNotFoundError
from ..storage.model_store import ModelStore
from ..training.trainer import CancellationToken, GRUTrainer, ProgressCallback, TrainingRun
from ..training.validation import binary_accuracy
from ..utils.helpers import get_device
from .gru import GRUNetwork


@dataclass(frozen=True)
class EvaluationResult:
    loss: float
    accuracy: float


class SequenceClassifier:
    """
    Trainable multi-output sequence classifier.

    Input contract: features (N, window_size, num_features), labels
    (N, num_outputs) with matching N. predict() returns one probability in
    [0, 1] per label position; consumers threshold at 0.5.
    """

    def __init__(self, model_config: Optional[ModelConfig] = None,
                 training_config: Optional[TrainingConfig] = None,
                 device: Optional[torch.device] = None):
        self.model_cfg = model_config or ModelConfig()
        self.train_cfg = training_config or TrainingConfig()
        self.device = device if device is not None else get_device("auto")
        self.network: Optional[GRUNetwork] = None
        self.window_size: Optional[int] = None
        self._trainer: Optional[GRUTrainer] = None

    @property
    def is_built(self) -> bool:
        return self.network is not None

    @property
    def num_features(self) -> Optional[int]:
        return self.network.num_features if self.network is not None else None

    @property
    def num_outputs(self) -> Optional[int]:
        return self.network.num_outputs if self.network is not None else None

    def build(self, window_size: int, num_features: int, num_outputs: int) -> "SequenceClassifier":
        self.network = GRUNetwork(
            num_features=num_features,
            num_outputs=num_outputs,
            units=self.model_cfg.gru_units,
            dropout=self.model_cfg.dropout_rate,
        ).to(self.device)
        self.window_size = window_size
        self._trainer = None
        total_params = sum(p.numel() for p in self.network.parameters())
        logger.info(f"创建GRU模型: input ({window_size}, {num_features}) -> {num_outputs} outputs, "
                    f"参数 {total_params:,}")
        return self

    def _require_built(self) -> GRUNetwork:
        if self.network is None:
            raise ModelNotBuiltError("Model has not been built, trained or loaded yet")
        return self.network

    def _trainer_for(self) -> GRUTrainer:
        if self._trainer is None or self._trainer.model is not self.network:
            self._trainer = GRUTrainer(self._require_built(), self.device, self.train_cfg)
        return self._trainer

    def _check_features(self, features) -> np.ndarray:
        X = np.asarray(features, dtype=np.float32)
        if X.ndim != 3:
            raise ValueError(f"features must be 3-D (samples, window, features), got shape {X.shape}")
        if self.network is not None and X.shape[2] != self.network.num_features:
            raise ValueError(f"expected {self.network.num_features} features per step, got {X.shape[2]}")
        return X

    def _check_labels(self, X: np.ndarray, labels) -> np.ndarray:
        y = np.asarray(labels, dtype=np.float32)
        if y.ndim != 2:
            raise ValueError(f"labels must be 2-D (samples, outputs), got shape {y.shape}")
        if y.shape[0] != X.shape[0]:
            raise ValueError(f"features and labels disagree on sample count: {X.shape[0]} vs {y.shape[0]}")
        if self.network is not None and y.shape[1] != self.network.num_outputs:
            raise ValueError(f"expected {self.network.num_outputs} outputs, got {y.shape[1]}")
        return y

    def fit(self, features, labels,
            on_epoch_end: Optional[ProgressCallback] = None,
            cancel_token: Optional[CancellationToken] = None) -> TrainingRun:
        X = self._check_features(features)
        y = self._check_labels(X, labels)
        if len(X) == 0:
            raise InsufficientDataError("Cannot fit on an empty training set")
        if self.network is None:
            self.build(X.shape[1], X.shape[2], y.shape[1])

        # validation rows are the chronological tail of the training prefix
        n_val = int(len(X) * self.train_cfg.validation_split)
        if n_val >= len(X):
            n_val = 0
        n_train = len(X) - n_val

        train_loader = DataLoader(WindowDataset(X[:n_train], y[:n_train]),
                                  batch_size=self.train_cfg.batch_size, shuffle=self.train_cfg.shuffle)
        val_loader = None
        if n_val > 0:
            val_loader = DataLoader(WindowDataset(X[n_train:], y[n_train:]),
                                    batch_size=self.train_cfg.batch_size, shuffle=False)

        logger.info(f"开始训练: train {n_train}, val {n_val}, epochs {self.train_cfg.epochs}")
        return self._trainer_for().fit(train_loader, val_loader,
                                       on_epoch_end=on_epoch_end, cancel_token=cancel_token)

    @torch.no_grad()
    def _forward(self, xt: torch.Tensor) -> torch.Tensor:
        network = self._require_built()
        network.eval()
        batch = max(1, self.train_cfg.batch_size)
        chunks = [network(xb) for xb in torch.split(xt, batch)]
        if not chunks:
            return torch.zeros((0, network.num_outputs), device=xt.device)
        return torch.cat(chunks, dim=0)

    def predict(self, features) -> np.ndarray:
        self._require_built()
        X = self._check_features(features)
        if len(X) == 0:
            return np.zeros((0, self.num_outputs), dtype=np.float32)
        with tensor_scope(X, np.zeros((len(X), 0), dtype=np.float32), self.device) as (xt, _):
            probs = torch.sigmoid(self._forward(xt)).cpu().numpy()
        return probs

    def evaluate(self, features, labels) -> EvaluationResult:
        self._require_built()
        X = self._check_features(features)
        y = self._check_labels(X, labels)
        if len(X) == 0:
            return EvaluationResult(loss=float("nan"), accuracy=float("nan"))
        criterion = self._trainer_for().criterion
        with tensor_scope(X, y, self.device) as (xt, yt):
            with torch.no_grad():
                logits = self._forward(xt)
                loss = float(criterion(logits, yt).item())
                probs = torch.sigmoid(logits).cpu().numpy()
        return EvaluationResult(loss=loss, accuracy=binary_accuracy(y, probs, self.train_cfg.threshold))

    # ── 持久化 ──────────────────────────────────────────────────────────────
    def to_artifact(self, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        network = self._require_built()
        return {
            "model_state_dict": {k: v.detach().cpu() for k, v in network.state_dict().items()},
            "model_config": asdict(self.model_cfg),
            "input_shape": (self.window_size, network.num_features),
            "num_outputs": network.num_outputs,
            "metadata": dict(metadata or {}),
        }

    def save(self, store: ModelStore, name: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        store.save(name, self.to_artifact(metadata))

    @classmethod
    def load(cls, store: ModelStore, name: str,
             training_config: Optional[TrainingConfig] = None,
             device: Optional[torch.device] = None) -> Tuple["SequenceClassifier", Dict[str, Any]]:
        """Restore a stored model. Raises ModelNotFoundError when the slot is empty."""
        artifact = store.load(name)
        if artifact is None:
            raise ModelNotFoundError(name)
        clf = cls(ModelConfig(**artifact["model_config"]), training_config, device)
        window_size, num_features = artifact["input_shape"]
        clf.build(window_size, num_features, artifact["num_outputs"])
        clf.network.load_state_dict(artifact["model_state_dict"])
        return clf, artifact.get("metadata", {})
