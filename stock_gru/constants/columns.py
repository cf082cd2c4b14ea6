# stock_gru/constants/columns.py
from typing import Final

# ── 核心标识列 ───────────────────────────────────────────────────────────
COL_DATE: Final[str]   = "Date"
COL_SYMBOL: Final[str] = "Symbol"

# ── 原始行情列 ───────────────────────────────────────────────────────────
COL_OPEN: Final[str]  = "Open"
COL_CLOSE: Final[str] = "Close"

# Canonical order, also the order missing columns are reported in.
REQUIRED_COLUMNS: Final[tuple[str, ...]] = (COL_DATE, COL_SYMBOL, COL_OPEN, COL_CLOSE)

# ── 特征布局 ─────────────────────────────────────────────────────────────
# Last axis of the price matrix: (open, close) per symbol.
PRICE_FEATURES: Final[tuple[str, ...]] = (COL_OPEN, COL_CLOSE)
FEATURES_PER_SYMBOL: Final[int] = len(PRICE_FEATURES)
OPEN_IDX: Final[int]  = 0
CLOSE_IDX: Final[int] = 1

# ── 默认参数 ─────────────────────────────────────────────────────────────
DEFAULT_WINDOW_SIZE: Final[int] = 12
DEFAULT_HORIZON: Final[int] = 3
DEFAULT_TRAIN_RATIO: Final[float] = 0.8
NEUTRAL_FALLBACK: Final[float] = 0.5
DECISION_THRESHOLD: Final[float] = 0.5
DEFAULT_MODEL_NAME: Final[str] = "gru-stock-model"

# ── DType ────────────────────────────────────────────────────────────────
FLOAT_DTYPE: Final[str] = "float32"
