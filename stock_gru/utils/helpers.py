
import random, sys
from pathlib import Path
from typing import Union

import numpy as np
import torch
from loguru import logger

def set_seed(seed: int = 42):
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    torch.cuda.manual_seed_all(seed)
    torch.backends.cudnn.deterministic = True
    torch.backends.cudnn.benchmark = False

def get_device(pref: str = "auto") -> torch.device:
    if pref == "cpu":
        return torch.device("cpu")
    if torch.cuda.is_available() and pref in ("auto", "cuda"):
        return torch.device("cuda")
    if pref == "cuda":
        logger.warning("CUDA不可用，使用CPU")
    return torch.device("cpu")

def setup_logging(log_dir: Union[str, Path] = "logs", level: str = "INFO") -> Path:
    """Send loguru output to stderr and to a rotating file under log_dir."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    logger.remove()
    logger.add(sys.stderr, level=level)
    logger.add(
        log_dir / "stock_gru_{time}.log",
        rotation="10 MB",
        retention=10,
        level=level,
        encoding="utf-8",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
    )
    return log_dir
