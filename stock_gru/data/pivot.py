# stock_gru/data/pivot.py

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from ..constants.columns import FEATURES_PER_SYMBOL
from .csv_parser import Record


def _freeze(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class PriceMatrix:
    """
    Dense date × symbol grid of (open, close).

    values: float64 array (n_dates, n_symbols, 2); cells without a record are nan.
    """
    dates: Tuple[str, ...]
    symbols: Tuple[str, ...]
    values: np.ndarray

    @property
    def n_dates(self) -> int:
        return len(self.dates)

    @property
    def n_symbols(self) -> int:
        return len(self.symbols)

    def date_index(self) -> Dict[str, int]:
        return {d: i for i, d in enumerate(self.dates)}

    def symbol_index(self) -> Dict[str, int]:
        return {s: i for i, s in enumerate(self.symbols)}

    def coverage(self) -> float:
        """Fraction of (date, symbol, feature) cells holding an observation."""
        if self.values.size == 0:
            return 0.0
        return float(np.isfinite(self.values).mean())


def build_matrix(records: Sequence[Record]) -> PriceMatrix:
    """
    Pivot records into a PriceMatrix.

    Symbols and dates are sorted lexicographically and deduplicated. When the
    same (date, symbol) appears more than once the last row wins.
    """
    if not records:
        logger.warning("没有记录可用于构建矩阵")
        return PriceMatrix((), (), _freeze(np.full((0, 0, FEATURES_PER_SYMBOL), np.nan)))

    df = pd.DataFrame.from_records(
        [(r.date, r.symbol, r.open, r.close) for r in records],
        columns=["date", "symbol", "open", "close"],
    )

    symbols = tuple(sorted(df["symbol"].unique()))
    dates = tuple(sorted(df["date"].unique()))
    logger.info(f"Found symbols: {list(symbols)}")
    logger.info(f"Found dates: {len(dates)}")

    deduped = df.drop_duplicates(subset=["date", "symbol"], keep="last")
    overwritten = len(df) - len(deduped)
    if overwritten:
        logger.warning(f"{overwritten} 条重复的 (date, symbol) 记录被后出现的行覆盖")

    date_idx = {d: i for i, d in enumerate(dates)}
    symbol_idx = {s: i for i, s in enumerate(symbols)}
    rows = deduped["date"].map(date_idx).to_numpy(dtype=np.int64)
    cols = deduped["symbol"].map(symbol_idx).to_numpy(dtype=np.int64)

    values = np.full((len(dates), len(symbols), FEATURES_PER_SYMBOL), np.nan, dtype=np.float64)
    values[rows, cols, :] = deduped[["open", "close"]].to_numpy(dtype=np.float64)

    matrix = PriceMatrix(dates, symbols, _freeze(values))
    gaps = int(np.isnan(values[:, :, 1]).sum())
    if gaps:
        logger.warning(f"{gaps} 个 (date, symbol) 单元缺少收盘价, 覆盖率 {matrix.coverage():.2%}")
    return matrix
