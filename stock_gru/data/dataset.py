
from contextlib import contextmanager
from typing import Iterator, Tuple

import numpy as np
import torch
from torch.utils.data import Dataset


class WindowDataset(Dataset):
    """Serve (T, F) feature windows and multi-output binary targets."""
    def __init__(self, X: np.ndarray, y: np.ndarray):
        assert X.ndim == 3, "X must be 3D: (N, T, F)"
        assert y.ndim == 2, "y must be 2D: (N, outputs)"
        assert len(X) == len(y), "X and y must share the leading dimension"
        self.X = torch.as_tensor(np.array(X, dtype=np.float32))
        self.y = torch.as_tensor(np.array(y, dtype=np.float32))

    def __len__(self) -> int:
        return len(self.X)

    def __getitem__(self, i: int) -> Tuple[torch.Tensor, torch.Tensor]:
        return self.X[i], self.y[i]


@contextmanager
def tensor_scope(X: np.ndarray, y: np.ndarray, device: torch.device) -> Iterator[Tuple[torch.Tensor, torch.Tensor]]:
    """Put a feature/label pair on `device` for the duration of the block, then drop it."""
    xt = torch.as_tensor(np.array(X, dtype=np.float32), device=device)
    yt = torch.as_tensor(np.array(y, dtype=np.float32), device=device)
    try:
        yield xt, yt
    finally:
        del xt, yt
        if device.type == "cuda":
            torch.cuda.empty_cache()
