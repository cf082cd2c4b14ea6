# stock_gru/data/csv_parser.py

import io
from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

import numpy as np
import pandas as pd
from loguru import logger

from ..constants.columns import COL_CLOSE, COL_DATE, COL_OPEN, COL_SYMBOL, REQUIRED_COLUMNS
from ..errors import SchemaError


@dataclass(frozen=True)
class Record:
    """One parsed CSV row. Prices that are not numeric are nan."""
    date: str
    symbol: str
    open: float
    close: float


def _check_schema(columns) -> None:
    present = set(columns)
    missing = [col for col in REQUIRED_COLUMNS if col not in present]
    if missing:
        logger.error(f"CSV缺少必需列: {missing}")
        raise SchemaError(missing)


def parse_csv(text: str) -> List[Record]:
    """
    Parse CSV text into records.

    The header must contain Date, Symbol, Open and Close (case-sensitive, any
    order). Extra columns are ignored. Rows with an empty date or symbol are
    skipped; non-numeric prices become nan.
    """
    text = text.lstrip("\ufeff")
    if not text.strip():
        raise SchemaError(REQUIRED_COLUMNS)

    header = pd.read_csv(io.StringIO(text), nrows=0, dtype=str, index_col=False).columns
    _check_schema(str(c).strip() for c in header)

    # callable usecols: rows longer than the header keep their leading fields
    # instead of being rejected as bad lines
    df = pd.read_csv(
        io.StringIO(text),
        engine="python",
        usecols=lambda col: str(col).strip() in REQUIRED_COLUMNS,
        dtype=str,
        keep_default_na=False,
        index_col=False,
        skip_blank_lines=True,
    )
    df.columns = [str(c).strip() for c in df.columns]

    df = df[list(REQUIRED_COLUMNS)].fillna("")
    for col in REQUIRED_COLUMNS:
        df[col] = df[col].astype(str).str.strip()

    valid = (df[COL_DATE] != "") & (df[COL_SYMBOL] != "")
    skipped = int((~valid).sum())
    if skipped:
        logger.warning(f"跳过 {skipped} 行: 缺少 {COL_DATE} 或 {COL_SYMBOL}")
    df = df[valid]

    opens = pd.to_numeric(df[COL_OPEN], errors="coerce").astype(np.float64)
    closes = pd.to_numeric(df[COL_CLOSE], errors="coerce").astype(np.float64)

    records = [
        Record(date=d, symbol=s, open=float(o), close=float(c))
        for d, s, o, c in zip(df[COL_DATE], df[COL_SYMBOL], opens, closes)
    ]
    logger.info(f"Parsed {len(records)} records")
    return records


def load_csv(path: Union[str, Path]) -> List[Record]:
    """Read a UTF-8 CSV file and parse it."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"数据文件不存在: {path}")
    logger.info(f"读取CSV: {path}")
    return parse_csv(path.read_text(encoding="utf-8-sig"))
