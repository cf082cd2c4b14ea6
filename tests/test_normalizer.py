# tests/test_normalizer.py

import warnings

import numpy as np
import pytest

from stock_gru.data.normalizer import compute_stats, normalize
from stock_gru.data.pivot import PriceMatrix
from stock_gru.errors import DegenerateRangeWarning


def _matrix(values):
    values = np.asarray(values, dtype=np.float64)
    return PriceMatrix(
        dates=tuple(f"2024-01-{d + 1:02d}" for d in range(values.shape[0])),
        symbols=tuple(chr(ord("A") + s) for s in range(values.shape[1])),
        values=values,
    )


def test_linear_rescale_per_symbol_and_feature():
    m = _matrix([[[1, 10], [100, 0]],
                 [[2, 20], [300, 5]],
                 [[3, 30], [200, 10]]])
    out = normalize(m)
    np.testing.assert_allclose(out.values[:, 0, 0], [0.0, 0.5, 1.0])
    np.testing.assert_allclose(out.values[:, 0, 1], [0.0, 0.5, 1.0])
    np.testing.assert_allclose(out.values[:, 1, 0], [0.0, 1.0, 0.5])
    np.testing.assert_allclose(out.values[:, 1, 1], [0.0, 0.5, 1.0])
    assert out.degenerate == ()


def test_stats_ignore_missing_cells():
    m = _matrix([[[1, np.nan]], [[np.nan, 4]], [[5, 2]]])
    stats = compute_stats(m)
    np.testing.assert_array_equal(stats.minimums, [[1, 2]])
    np.testing.assert_array_equal(stats.maximums, [[5, 4]])


def test_missing_cell_normalizes_to_neutral_value():
    m = _matrix([[[1, 1]], [[np.nan, np.nan]], [[3, 3]]])
    out = normalize(m)
    np.testing.assert_array_equal(out.values[1, 0], [0.5, 0.5])
    assert not out.observed[1, 0].any()
    assert out.observed[0, 0].all()


def test_constant_series_falls_back_and_warns():
    m = _matrix([[[1, 7]], [[2, 7]], [[3, 7]]])
    with pytest.warns(DegenerateRangeWarning):
        out = normalize(m)
    np.testing.assert_array_equal(out.values[:, 0, 1], [0.5, 0.5, 0.5])
    np.testing.assert_allclose(out.values[:, 0, 0], [0.0, 0.5, 1.0])
    assert out.degenerate == (("A", "Close"),)


def test_feature_without_observations_falls_back():
    m = _matrix([[[np.nan, 1]], [[np.nan, 2]]])
    with pytest.warns(DegenerateRangeWarning):
        out = normalize(m)
    np.testing.assert_array_equal(out.values[:, 0, 0], [0.5, 0.5])
    assert ("A", "Open") in out.degenerate


def test_values_stay_in_unit_interval(make_csv):
    from stock_gru.data.csv_parser import parse_csv
    from stock_gru.data.pivot import build_matrix

    out = normalize(build_matrix(parse_csv(make_csv(("A", "B", "C"), 30, skip=[(4, "B")]))))
    assert out.values.min() >= 0.0
    assert out.values.max() <= 1.0
    assert not np.isnan(out.values).any()


def test_normalize_does_not_touch_its_input():
    raw = np.array([[[1, 2]], [[np.nan, 4]], [[3, 6]]], dtype=np.float64)
    m = _matrix(raw.copy())
    normalize(m)
    np.testing.assert_array_equal(m.values, raw)


def test_normalize_is_deterministic():
    m = _matrix(np.random.default_rng(1).uniform(1, 50, (10, 3, 2)))
    np.testing.assert_array_equal(normalize(m).values, normalize(m).values)


def test_renormalizing_is_idempotent_for_non_fallback_cells():
    values = np.random.default_rng(2).uniform(10, 20, (15, 2, 2))
    values[3, 1, :] = np.nan
    first = normalize(_matrix(values))

    with warnings.catch_warnings():
        warnings.simplefilter("error", DegenerateRangeWarning)
        second = normalize(_matrix(first.values.copy()))

    mask = first.observed
    np.testing.assert_allclose(second.values[mask], first.values[mask], atol=1e-12)
