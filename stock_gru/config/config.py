
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import yaml

from ..constants.columns import (
    DEFAULT_HORIZON,
    DEFAULT_MODEL_NAME,
    DEFAULT_TRAIN_RATIO,
    DEFAULT_WINDOW_SIZE,
    DECISION_THRESHOLD,
)


class LabelLayout(str, Enum):
    """Ordering of the symbol × horizon entries inside a label vector."""
    SYMBOL_MAJOR = "symbol_major"  # idx = symbol * horizon + (offset - 1)
    DAY_MAJOR = "day_major"        # idx = (offset - 1) * n_symbols + symbol


@dataclass
class DataConfig:
    csv_path: str = "data/stocks.csv"

    # 窗口配置
    window_size: int = DEFAULT_WINDOW_SIZE
    prediction_horizon: int = DEFAULT_HORIZON
    train_ratio: float = DEFAULT_TRAIN_RATIO

    # 标签布局，所有下游消费者统一读取这里
    label_layout: LabelLayout = LabelLayout.SYMBOL_MAJOR

    def __post_init__(self):
        if not isinstance(self.label_layout, LabelLayout):
            self.label_layout = LabelLayout(self.label_layout)


@dataclass
class ModelConfig:
    gru_units: int = 64             # second GRU layer uses gru_units // 2
    dropout_rate: float = 0.0


@dataclass
class TrainingConfig:
    """训练配置"""

    # 基本训练参数
    epochs: int = 30
    batch_size: int = 32
    learning_rate: float = 1e-3
    weight_decay: float = 0.0

    # 优化器配置
    optimizer: str = "adam"  # "adam", "adamw", "sgd"

    # 学习率调度器配置
    scheduler: str = "none"  # "cosine", "reduce_on_plateau", "none"
    min_lr: float = 1e-6

    # 验证集取训练集末尾，按时间顺序
    validation_split: float = 0.1
    shuffle: bool = True

    # 损失函数
    loss_type: str = "bce"  # "bce", "focal", "label_smoothing"
    focal_gamma: float = 2.0
    label_smoothing: float = 0.05

    # 早停配置，None 表示跑满 epochs
    early_stopping_patience: Optional[int] = None

    grad_clip: float = 0.0
    threshold: float = DECISION_THRESHOLD
    show_progress: bool = False


@dataclass
class ExperimentConfig:
    """实验配置"""

    # 设备配置
    device: str = "auto"  # "auto", "cuda", "cpu"

    # 随机种子
    seed: int = 42

    log_dir: str = "logs"
    results_dir: str = "results"

    # 模型存储
    model_dir: str = "models"
    model_name: str = DEFAULT_MODEL_NAME


@dataclass
class Config:
    data: DataConfig = field(default_factory=DataConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    experiment: ExperimentConfig = field(default_factory=ExperimentConfig)


_SECTIONS = {
    "data": DataConfig,
    "model": ModelConfig,
    "training": TrainingConfig,
    "experiment": ExperimentConfig,
}


def _build_section(cls, values: Optional[dict]):
    values = values or {}
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {unknown}")
    return cls(**values)


def load_config(path: Union[str, Path]) -> Config:
    """Read a YAML file with optional data/model/training/experiment sections."""
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    unknown = sorted(set(raw) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"Unknown config sections: {unknown}")

    return Config(**{name: _build_section(cls, raw.get(name)) for name, cls in _SECTIONS.items()})
