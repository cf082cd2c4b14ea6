# stock_gru/data/splitter.py

import math
from dataclasses import dataclass

from loguru import logger

from ..constants.columns import DEFAULT_TRAIN_RATIO
from ..errors import InsufficientDataError
from .windowing import SampleSet


@dataclass(frozen=True)
class DatasetSplit:
    train: SampleSet
    test: SampleSet
    split_index: int


def chronological_split(samples: SampleSet, train_ratio: float = DEFAULT_TRAIN_RATIO) -> DatasetSplit:
    """
    Split in time order: the first floor(train_ratio * N) samples train, the rest test.

    No shuffling happens here; shuffling is only allowed inside the training
    prefix while fitting.
    """
    if not 0.0 <= train_ratio <= 1.0:
        raise ValueError(f"train_ratio must be in [0, 1], got {train_ratio}")

    n = len(samples)
    if n == 0:
        raise InsufficientDataError(
            f"No samples to split: need more than window_size + horizon "
            f"({samples.window_size + samples.horizon}) dates",
            required_dates=samples.window_size + samples.horizon + 1,
        )

    split_index = math.floor(train_ratio * n)
    split = DatasetSplit(
        train=samples.subset(0, split_index),
        test=samples.subset(split_index, n),
        split_index=split_index,
    )
    logger.info(f"数据分割完成 - 训练: {len(split.train)}, 测试: {len(split.test)} "
                f"(split index {split_index})")
    if split.train.anchor_dates and split.test.anchor_dates:
        logger.info(f"训练截止 {split.train.anchor_dates[-1]}, 测试起始 {split.test.anchor_dates[0]}")
    return split
