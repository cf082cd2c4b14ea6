# tests/conftest.py

from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import pytest

from stock_gru.config.config import ModelConfig, TrainingConfig
from stock_gru.data.normalizer import NormalizedMatrix


def csv_text(symbols: Sequence[str] = ("A", "B"), n_days: int = 20,
             skip: Iterable[Tuple[int, str]] = (), seed: int = 0) -> str:
    """
    Daily rows for every symbol, with strictly increasing closes so that
    every label that does not touch a gap is 1. `skip` drops (day, symbol) rows.
    """
    rng = np.random.default_rng(seed)
    skip = set(skip)
    dates = pd.date_range("2024-01-01", periods=n_days, freq="D").strftime("%Y-%m-%d")
    lines = ["Date,Symbol,Open,Close,Volume"]
    for s_idx, symbol in enumerate(symbols):
        close = 100.0 + 10 * s_idx + np.cumsum(rng.uniform(0.5, 1.5, n_days))
        opens = close - rng.uniform(0.1, 0.4, n_days)
        for d in range(n_days):
            if (d, symbol) in skip:
                continue
            lines.append(f"{dates[d]},{symbol},{opens[d]:.4f},{close[d]:.4f},{1000 + d}")
    return "\n".join(lines) + "\n"


def normalized_matrix(values: np.ndarray, observed: Optional[np.ndarray] = None,
                      symbols: Optional[Sequence[str]] = None) -> NormalizedMatrix:
    n_dates, n_symbols, _ = values.shape
    if observed is None:
        observed = np.ones_like(values, dtype=bool)
    return NormalizedMatrix(
        dates=tuple(f"2024-01-{d + 1:02d}" for d in range(n_dates)),
        symbols=tuple(symbols or [chr(ord("A") + i) for i in range(n_symbols)]),
        values=values,
        observed=observed,
    )


def random_normalized(n_dates: int, n_symbols: int = 2, seed: int = 0) -> NormalizedMatrix:
    rng = np.random.default_rng(seed)
    return normalized_matrix(rng.uniform(0, 1, (n_dates, n_symbols, 2)))


@pytest.fixture
def make_csv():
    return csv_text


@pytest.fixture
def tiny_model_config():
    return ModelConfig(gru_units=4)


@pytest.fixture
def tiny_training_config():
    return TrainingConfig(epochs=3, batch_size=4, validation_split=0.25)
