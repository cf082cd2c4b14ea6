# stock_gru/errors.py
"""
Exception taxonomy for the data pipeline and the classifier facade.

A (date, symbol) cell with no observation is NOT an error: it stays ``nan`` in
the price matrix and is resolved by the normalization / labeling fallbacks.
"""

from typing import Optional, Sequence


class StockGRUError(Exception):
    """Base class for every error raised by stock_gru."""


class SchemaError(StockGRUError):
    """Required CSV columns are missing. Aborts the load."""

    def __init__(self, missing_columns: Sequence[str]):
        self.missing_columns = list(missing_columns)
        super().__init__(f"CSV is missing required columns: {', '.join(self.missing_columns)}")


class InsufficientDataError(StockGRUError):
    """Not enough dates to build a single sample, so nothing can be split or fitted."""

    def __init__(self, message: str,
                 required_dates: Optional[int] = None,
                 available_dates: Optional[int] = None):
        self.required_dates = required_dates
        self.available_dates = available_dates
        super().__init__(message)


class ModelNotBuiltError(StockGRUError):
    """predict / evaluate called before a network exists."""


class ModelNotFoundError(StockGRUError):
    """No stored model under the requested name. Callers fall back to training."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No stored model named '{name}'")


class DegenerateRangeWarning(UserWarning):
    """A symbol feature has max == min (or no observations) and was normalized to the neutral value."""
