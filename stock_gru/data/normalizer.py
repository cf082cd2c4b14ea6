# stock_gru/data/normalizer.py

import warnings
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from loguru import logger

from ..constants.columns import NEUTRAL_FALLBACK, PRICE_FEATURES
from ..errors import DegenerateRangeWarning
from .pivot import PriceMatrix, _freeze


@dataclass(frozen=True)
class NormalizationStats:
    """Per-symbol, per-feature min/max over observed dates. nan where a feature was never observed."""
    minimums: np.ndarray  # (n_symbols, 2)
    maximums: np.ndarray  # (n_symbols, 2)

    def usable(self) -> np.ndarray:
        """Boolean (n_symbols, 2): True where a linear rescale is defined."""
        finite = np.isfinite(self.minimums) & np.isfinite(self.maximums)
        with np.errstate(invalid="ignore"):
            return finite & (self.maximums > self.minimums)


@dataclass(frozen=True)
class NormalizedMatrix:
    dates: Tuple[str, ...]
    symbols: Tuple[str, ...]
    values: np.ndarray               # (n_dates, n_symbols, 2), all in [0, 1]
    observed: np.ndarray             # bool, same shape, False where the source cell was nan
    degenerate: Tuple[Tuple[str, str], ...] = ()

    @property
    def n_dates(self) -> int:
        return len(self.dates)

    @property
    def n_symbols(self) -> int:
        return len(self.symbols)


def compute_stats(matrix: PriceMatrix) -> NormalizationStats:
    values = matrix.values
    n_symbols = values.shape[1]
    mins = np.full((n_symbols, values.shape[2]), np.nan)
    maxs = np.full_like(mins, np.nan)

    observed = np.isfinite(values)
    has_obs = observed.any(axis=0)
    if has_obs.any():
        lo = np.where(observed, values, np.inf).min(axis=0)
        hi = np.where(observed, values, -np.inf).max(axis=0)
        mins[has_obs] = lo[has_obs]
        maxs[has_obs] = hi[has_obs]
    return NormalizationStats(_freeze(mins), _freeze(maxs))


def normalize(matrix: PriceMatrix, stats: Optional[NormalizationStats] = None) -> NormalizedMatrix:
    """
    Min-max scale every (symbol, feature) column to [0, 1].

    Missing cells, and every cell of a (symbol, feature) whose range is empty
    or zero, get the neutral fallback 0.5. The input matrix is not modified.
    """
    if stats is None:
        stats = compute_stats(matrix)

    values = matrix.values
    observed = np.isfinite(values)
    usable = stats.usable()

    degenerate = []
    for s_idx, f_idx in zip(*np.nonzero(~usable)):
        symbol, feature = matrix.symbols[s_idx], PRICE_FEATURES[f_idx]
        degenerate.append((symbol, feature))
        if np.isfinite(stats.minimums[s_idx, f_idx]):
            reason = f"constant range {stats.minimums[s_idx, f_idx]:g}"
        else:
            reason = "no observations"
        msg = f"{symbol} {feature}: {reason}, normalized to {NEUTRAL_FALLBACK}"
        logger.warning(msg)
        warnings.warn(msg, DegenerateRangeWarning, stacklevel=2)

    span = np.where(usable, stats.maximums - stats.minimums, 1.0)
    base = np.where(usable, stats.minimums, 0.0)
    with np.errstate(invalid="ignore"):
        scaled = (values - base[None, :, :]) / span[None, :, :]

    keep = observed & usable[None, :, :]
    out = np.where(keep, np.clip(scaled, 0.0, 1.0), NEUTRAL_FALLBACK)

    logger.info(f"归一化完成: {matrix.n_dates} dates × {matrix.n_symbols} symbols, "
                f"{len(degenerate)} 个退化特征")
    return NormalizedMatrix(
        dates=matrix.dates,
        symbols=matrix.symbols,
        values=_freeze(out.astype(np.float64)),
        observed=_freeze(observed),
        degenerate=tuple(degenerate),
    )
