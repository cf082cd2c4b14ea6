
from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np
from sklearn.metrics import accuracy_score, f1_score

from ..config.config import LabelLayout
from ..constants.columns import DECISION_THRESHOLD
from ..data.windowing import labels_by_symbol


@dataclass(frozen=True)
class SymbolAccuracy:
    symbol: str
    accuracy: float
    correct: int
    total: int


def to_binary(probs, threshold: float = DECISION_THRESHOLD) -> np.ndarray:
    return (np.asarray(probs) >= threshold).astype(np.int64)


def binary_accuracy(y_true, probs, threshold: float = DECISION_THRESHOLD) -> float:
    y_true = np.asarray(y_true).astype(np.int64).ravel()
    if y_true.size == 0:
        return float("nan")
    return float(accuracy_score(y_true, to_binary(probs, threshold).ravel()))


def compute_metrics(y_true, probs, threshold: float = DECISION_THRESHOLD) -> Dict[str, float]:
    y_true = np.asarray(y_true).astype(np.int64).ravel()
    y_pred = to_binary(probs, threshold).ravel()
    if y_true.size == 0:
        return {"accuracy": float("nan"), "f1_macro": float("nan")}
    return {
        "accuracy": float(accuracy_score(y_true, y_pred)),
        "f1_macro": float(f1_score(y_true, y_pred, average="macro", zero_division=0)),
    }


def accuracy_by_symbol(y_true, probs, symbols: Sequence[str], horizon: int,
                       layout: LabelLayout, threshold: float = DECISION_THRESHOLD) -> List[SymbolAccuracy]:
    """Binary accuracy per symbol over every sample and horizon offset, best first."""
    n_symbols = len(symbols)
    truth = labels_by_symbol(np.asarray(y_true).astype(np.int64), n_symbols, horizon, layout)
    pred = labels_by_symbol(to_binary(probs, threshold), n_symbols, horizon, layout)
    hits = truth == pred

    per_symbol = []
    for s, symbol in enumerate(symbols):
        total = int(hits[:, s, :].size)
        correct = int(hits[:, s, :].sum())
        per_symbol.append(SymbolAccuracy(
            symbol=symbol,
            accuracy=correct / total if total else float("nan"),
            correct=correct,
            total=total,
        ))
    # sorted() is stable, so ties keep symbol order
    return sorted(per_symbol, key=lambda a: -a.accuracy if a.total else float("inf"))


def correctness_timeline(y_true, probs, symbol_index: int, n_symbols: int, horizon: int,
                         layout: LabelLayout, threshold: float = DECISION_THRESHOLD) -> np.ndarray:
    """Boolean hits for one symbol, ordered by sample then horizon offset."""
    truth = labels_by_symbol(np.asarray(y_true).astype(np.int64), n_symbols, horizon, layout)
    pred = labels_by_symbol(to_binary(probs, threshold), n_symbols, horizon, layout)
    return (truth[:, symbol_index, :] == pred[:, symbol_index, :]).reshape(-1)
