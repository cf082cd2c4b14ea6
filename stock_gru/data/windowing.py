# stock_gru/data/windowing.py

from dataclasses import dataclass
from typing import Tuple

import numpy as np
from loguru import logger

from ..config.config import LabelLayout
from ..constants.columns import (
    CLOSE_IDX,
    DEFAULT_HORIZON,
    DEFAULT_WINDOW_SIZE,
    FEATURES_PER_SYMBOL,
    FLOAT_DTYPE,
)
from .normalizer import NormalizedMatrix
from .pivot import _freeze


def label_index(layout: LabelLayout, symbol: int, offset: int, n_symbols: int, horizon: int) -> int:
    """Position of (symbol, offset) in a label vector; offset runs 1..horizon."""
    if not 1 <= offset <= horizon:
        raise ValueError(f"offset must be in 1..{horizon}, got {offset}")
    if layout == LabelLayout.SYMBOL_MAJOR:
        return symbol * horizon + (offset - 1)
    return (offset - 1) * n_symbols + symbol


def _layout_positions(layout: LabelLayout, n_symbols: int, horizon: int) -> np.ndarray:
    """(n_symbols, horizon) grid of label positions."""
    return np.array([[label_index(layout, s, t, n_symbols, horizon) for t in range(1, horizon + 1)]
                     for s in range(n_symbols)], dtype=np.int64).reshape(n_symbols, horizon)


def labels_by_symbol(labels: np.ndarray, n_symbols: int, horizon: int, layout: LabelLayout) -> np.ndarray:
    """Reshape (N, n_symbols * horizon) label-shaped data to (N, n_symbols, horizon)."""
    labels = np.asarray(labels)
    return labels[:, _layout_positions(layout, n_symbols, horizon)]


def _flatten_by_layout(grid: np.ndarray, layout: LabelLayout) -> np.ndarray:
    # grid: (N, n_symbols, horizon)
    n, n_symbols, horizon = grid.shape
    flat = np.empty((n, n_symbols * horizon), dtype=grid.dtype)
    flat[:, _layout_positions(layout, n_symbols, horizon)] = grid
    return flat


@dataclass(frozen=True)
class SampleSet:
    """Windowed samples in anchor-date order."""
    features: np.ndarray            # (N, window_size, 2 * n_symbols)
    labels: np.ndarray              # (N, n_symbols * horizon)
    anchor_dates: Tuple[str, ...]
    symbols: Tuple[str, ...]
    window_size: int
    horizon: int
    layout: LabelLayout

    def __len__(self) -> int:
        return len(self.anchor_dates)

    @property
    def n_symbols(self) -> int:
        return len(self.symbols)

    def subset(self, start: int, stop: int) -> "SampleSet":
        return SampleSet(
            features=self.features[start:stop],
            labels=self.labels[start:stop],
            anchor_dates=self.anchor_dates[start:stop],
            symbols=self.symbols,
            window_size=self.window_size,
            horizon=self.horizon,
            layout=self.layout,
        )


def sample_count(n_dates: int, window_size: int, horizon: int) -> int:
    return max(0, n_dates - window_size - horizon)


def build_samples(normalized: NormalizedMatrix,
                  window_size: int = DEFAULT_WINDOW_SIZE,
                  horizon: int = DEFAULT_HORIZON,
                  layout: LabelLayout = LabelLayout.SYMBOL_MAJOR) -> SampleSet:
    """
    Slide a window over the date axis.

    Sample i is anchored at date index d = window_size + i. Its features are
    the per-date vectors [open_1, close_1, ..., open_S, close_S] for dates
    [d - window_size, d). Its label for (symbol s, offset t) is 1 iff
    close(d - 1 + t) > close(d - 1), and 0 when either close is missing.
    """
    if window_size < 1 or horizon < 1:
        raise ValueError(f"window_size and horizon must be >= 1, got {window_size}, {horizon}")
    layout = LabelLayout(layout)

    n_dates, n_symbols = normalized.n_dates, normalized.n_symbols
    n_features = n_symbols * FEATURES_PER_SYMBOL
    n_samples = sample_count(n_dates, window_size, horizon)

    if n_samples == 0:
        logger.warning(f"日期数({n_dates})不足 window_size + horizon ({window_size + horizon}), 没有生成样本")
        return SampleSet(
            features=_freeze(np.zeros((0, window_size, n_features), dtype=FLOAT_DTYPE)),
            labels=_freeze(np.zeros((0, n_symbols * horizon), dtype=FLOAT_DTYPE)),
            anchor_dates=(),
            symbols=normalized.symbols,
            window_size=window_size,
            horizon=horizon,
            layout=layout,
        )

    # (n_dates, n_symbols, 2) -> (n_dates, 2 * n_symbols): open/close interleaved per symbol
    per_date = normalized.values.reshape(n_dates, n_features)
    anchors = np.arange(window_size, window_size + n_samples)

    window_offsets = np.arange(-window_size, 0)
    features = per_date[anchors[:, None] + window_offsets[None, :]]

    close = normalized.values[:, :, CLOSE_IDX]
    close_ok = normalized.observed[:, :, CLOSE_IDX]
    base_idx = anchors - 1
    future_idx = base_idx[:, None] + np.arange(1, horizon + 1)[None, :]   # (N, horizon)

    base_close = close[base_idx][:, :, None]                             # (N, S, 1)
    future_close = close[future_idx].transpose(0, 2, 1)                  # (N, S, horizon)
    valid = close_ok[base_idx][:, :, None] & close_ok[future_idx].transpose(0, 2, 1)
    up = valid & (future_close > base_close)

    labels = _flatten_by_layout(up.astype(FLOAT_DTYPE), layout)
    anchor_dates = tuple(normalized.dates[d] for d in anchors)

    logger.info(f"Created {n_samples} sequences: features {features.shape}, labels {labels.shape}, "
                f"上涨比例 {labels.mean():.2%}")
    return SampleSet(
        features=_freeze(np.ascontiguousarray(features, dtype=FLOAT_DTYPE)),
        labels=_freeze(np.ascontiguousarray(labels)),
        anchor_dates=anchor_dates,
        symbols=normalized.symbols,
        window_size=window_size,
        horizon=horizon,
        layout=layout,
    )
