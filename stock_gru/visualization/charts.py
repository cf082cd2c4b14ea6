# stock_gru/visualization/charts.py

from pathlib import Path
from typing import Dict, List, Sequence, Union

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
from loguru import logger
from matplotlib.colors import ListedColormap

from ..training.validation import SymbolAccuracy

HIT_COLOR = "#2fb631"
MISS_COLOR = "#d0303c"
BAR_COLOR = "#278a40"


def _prepare(path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def plot_symbol_accuracy(per_symbol: Sequence[SymbolAccuracy], save_path: Union[str, Path]) -> Path:
    """Horizontal bar per symbol, best first, annotated with the accuracy in percent."""
    save_path = _prepare(save_path)
    symbols = [a.symbol for a in per_symbol]
    accs = np.array([a.accuracy for a in per_symbol], dtype=float)

    fig, ax = plt.subplots(figsize=(8, max(2.0, 0.4 * len(symbols) + 1)))
    try:
        y = np.arange(len(symbols))
        ax.barh(y, np.nan_to_num(accs), color=BAR_COLOR)
        ax.set_yticks(y)
        ax.set_yticklabels(symbols)
        ax.invert_yaxis()
        ax.set_xlim(0, 1)
        ax.axvline(0.5, color="gray", linestyle="--", alpha=0.7, label="Random Baseline")
        for yi, acc in zip(y, accs):
            text = "n/a" if np.isnan(acc) else f"{acc * 100:.1f}%"
            ax.text(min(np.nan_to_num(acc), 1.0) + 0.01, yi, text, va="center", fontsize=9)
        ax.set_xlabel("Accuracy")
        ax.set_title("Test accuracy by symbol")
        ax.legend(loc="lower right")
        fig.tight_layout()
        fig.savefig(save_path, dpi=150, bbox_inches="tight", facecolor="white")
    finally:
        plt.close(fig)
    logger.info(f"Saved accuracy chart to {save_path}")
    return save_path


def plot_correctness_timeline(timelines: Dict[str, np.ndarray], order: Sequence[str],
                              save_path: Union[str, Path], horizon: int = 1) -> Path:
    """
    One row per symbol (in `order`), one cell per (sample, offset): green when
    the thresholded prediction matched the label, red otherwise.
    """
    save_path = _prepare(save_path)
    rows = [np.asarray(timelines[s], dtype=float) for s in order]
    width = max((len(r) for r in rows), default=0)
    grid = np.full((len(rows), width), np.nan)
    for i, r in enumerate(rows):
        grid[i, :len(r)] = r

    fig, ax = plt.subplots(figsize=(max(6.0, width * 0.08 + 2), max(2.0, 0.35 * len(rows) + 1)))
    try:
        if width and rows:
            ax.imshow(np.ma.masked_invalid(grid), aspect="auto", interpolation="nearest",
                      cmap=ListedColormap([MISS_COLOR, HIT_COLOR]), vmin=0, vmax=1)
        else:
            ax.text(0.5, 0.5, "no test samples", ha="center", va="center", transform=ax.transAxes)
        ax.set_yticks(np.arange(len(order)))
        ax.set_yticklabels(list(order))
        if horizon > 1 and width:
            for x in np.arange(horizon, width, horizon):
                ax.axvline(x - 0.5, color="white", linewidth=0.3)
        ax.set_xlabel(f"test sample × horizon offset ({horizon} per sample)")
        ax.set_title("Prediction correctness timeline")
        fig.tight_layout()
        fig.savefig(save_path, dpi=150, bbox_inches="tight", facecolor="white")
    finally:
        plt.close(fig)
    logger.info(f"Saved timeline chart to {save_path}")
    return save_path


def plot_training_history(history: Dict[str, List[float]], save_path: Union[str, Path]) -> Path:
    save_path = _prepare(save_path)
    fig, axes = plt.subplots(1, 2, figsize=(10, 4))
    try:
        axes[0].plot(history.get("train_loss", []), label="train_loss")
        if history.get("val_loss"):
            axes[0].plot(history["val_loss"], label="val_loss")
        axes[0].set_title("Loss"); axes[0].set_xlabel("epoch"); axes[0].legend()

        axes[1].plot(history.get("train_acc", []), label="train_acc")
        if history.get("val_acc"):
            axes[1].plot(history["val_acc"], label="val_acc")
        axes[1].axhline(y=0.5, color="red", linestyle="--", alpha=0.7)
        axes[1].set_title("Accuracy"); axes[1].set_xlabel("epoch"); axes[1].legend()
        fig.tight_layout()
        fig.savefig(save_path, dpi=150)
    finally:
        plt.close(fig)
    logger.info(f"Saved curves to {save_path}")
    return save_path
