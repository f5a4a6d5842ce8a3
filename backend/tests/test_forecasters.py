r"""backend/tests/test_forecasters.py"""

from __future__ import annotations

import math
import sys
from datetime import date, timedelta
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.forecast_engine.core.errors import InsufficientDataError, NumericInstabilityError
from backend.forecast_engine.services.forecasters.arima import arima, is_stationary, select_orders
from backend.forecast_engine.services.forecasters.base import (
    LinearCongruentialGenerator,
    clamp_confidence,
    finalise,
    mean_absolute_percentage_error,
    median_step,
    pearson_correlation,
)
from backend.forecast_engine.services.forecasters.decomposition import centred_moving_average, seasonal_decomposition
from backend.forecast_engine.services.forecasters.prophet_like import prophet
from backend.forecast_engine.services.forecasters.random_forest import (
    FEATURE_NAMES,
    TreeNode,
    bootstrap_indices,
    engineer_features,
    grow_tree,
    random_forest,
)
from backend.forecast_engine.services.forecasters.registry import ENSEMBLE_ALGORITHMS, build_forecasters
from backend.forecast_engine.services.forecasters.regression import linear_regression
from backend.forecast_engine.services.forecasters.seasonality import (
    detect_seasonal_period,
    seasonal_strength,
    summarise_seasonality,
)
from backend.forecast_engine.services.forecasters.smoothing import exponential_smoothing, holt_winters

WEEK = [12.0, 14.0, 13.0, 15.0, 18.0, 25.0, 22.0]


def _dates(n: int, start: date = date(2024, 1, 1)) -> list[date]:
    return [start + timedelta(days=i) for i in range(n)]


def _weekly_series(weeks: int = 8, drift: float = 0.05) -> np.ndarray:
    base = np.tile(WEEK, weeks)
    return base + drift * np.arange(base.size)


# ------------------------------------------------------------------
# Shared helpers


def test_lcg_is_reproducible_and_in_unit_interval() -> None:
    first = LinearCongruentialGenerator(3)
    second = LinearCongruentialGenerator(3)
    draws = [first.random() for _ in range(50)]

    assert draws == [second.random() for _ in range(50)]
    assert all(0.0 <= value < 1.0 for value in draws)
    assert draws != [LinearCongruentialGenerator(4).random() for _ in range(50)]


def test_mape_skips_zero_actuals_but_counts_them() -> None:
    assert mean_absolute_percentage_error([0.0, 10.0], [5.0, 5.0]) == pytest.approx(25.0)
    assert mean_absolute_percentage_error([], []) == 0.0


def test_small_statistics_helpers() -> None:
    assert pearson_correlation([1, 1, 1], [1, 2, 3]) == 0.0
    assert pearson_correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
    assert median_step([1.0, 2.0]) == 0.0
    assert median_step([1.0, 3.0, 5.0, 6.0]) == pytest.approx(2.0)
    assert clamp_confidence(2.0) == 0.95
    assert clamp_confidence(-1.0) == 0.1
    assert clamp_confidence(float("nan")) == 0.1


def test_finalise_floors_negatives_and_rejects_non_finite() -> None:
    result = finalise("demo", [-3.0, 4.0], 0.5)
    assert result.forecast == [0.0, 4.0]

    with pytest.raises(NumericInstabilityError):
        finalise("demo", [1.0, math.inf], 0.5)


# ------------------------------------------------------------------
# Seasonality


def test_detects_weekly_period() -> None:
    series = np.tile(WEEK, 8)
    assert detect_seasonal_period(series) == 7
    assert seasonal_strength(series, 7) == pytest.approx(1.0)


def test_short_series_has_no_candidate_period() -> None:
    assert detect_seasonal_period([5.0] * 13) == 0
    assert seasonal_strength([1.0, 2.0, 3.0], 7) == 0.0


def test_series_without_seasonal_signal_defaults_to_weekly() -> None:
    # A constant series correlates at zero with every lag
    assert detect_seasonal_period([50.0] * 30) == 7


def test_summarise_seasonality() -> None:
    summary = summarise_seasonality(np.tile(WEEK, 8))
    assert summary.detected is True
    assert summary.dominant == "weekly"
    assert summary.weekly == pytest.approx(1.0)

    assert summarise_seasonality([3.0] * 10).detected is False


# ------------------------------------------------------------------
# Individual algorithms


@pytest.mark.parametrize("name", ENSEMBLE_ALGORITHMS + ("double_exponential_smoothing",))
def test_every_algorithm_honours_horizon_and_bounds(name: str) -> None:
    series = _weekly_series()
    forecaster = build_forecasters()[name]

    result = forecaster.forecast(series, _dates(series.size), 14)

    assert result.algorithm_name == name
    assert len(result.forecast) == 14
    assert all(v >= 0 and math.isfinite(v) for v in result.forecast)
    assert 0.1 <= result.confidence <= 0.95


def test_exponential_smoothing_on_flat_series() -> None:
    series = np.full(10, 10.0)
    result = exponential_smoothing(series, _dates(10), 5)

    assert result.forecast == pytest.approx([10.0] * 5)
    assert result.confidence == 0.95


def test_exponential_smoothing_confidence_scales_by_series_mean() -> None:
    # one prediction of 10 against an actual 20; the whole series averages 15
    result = exponential_smoothing(np.array([10.0, 20.0]), _dates(2), 1)

    assert result.confidence == pytest.approx(1.0 - 10.0 / 15.0)


def test_linear_regression_extrapolates_trend() -> None:
    series = np.arange(10, dtype=float) * 2.0 + 1.0
    result = linear_regression(series, _dates(10), 3)

    assert result.forecast == pytest.approx([21.0, 23.0, 25.0])
    assert result.confidence == 0.95
    assert result.metadata["slope"] == pytest.approx(2.0)


def test_linear_regression_flat_series_has_floor_confidence() -> None:
    result = linear_regression(np.full(10, 10.0), _dates(10), 3)
    assert result.forecast == pytest.approx([10.0] * 3)
    assert result.confidence == 0.1


def test_holt_winters_degrades_on_short_history() -> None:
    series = np.array([5.0, 6.0, 7.0, 6.0, 5.0, 6.0, 7.0, 6.0, 5.0, 6.0])
    result = holt_winters(series, _dates(series.size), 4)

    assert result.algorithm_name == "holt_winters"
    assert result.metadata["degraded_to"] == "double_exponential_smoothing"
    assert len(result.forecast) == 4


def test_holt_winters_uses_detected_period() -> None:
    series = np.tile(WEEK, 6)
    result = holt_winters(series, _dates(series.size), 7)

    assert "degraded_to" not in result.metadata
    assert result.metadata["period"] == 7
    assert len(result.metadata["seasonal_indices"]) == 7
    # The peak weekday stays the peak in the forecast
    assert int(np.argmax(result.forecast)) == int(np.argmax(WEEK))


def test_decomposition_requires_four_weeks() -> None:
    with pytest.raises(InsufficientDataError):
        seasonal_decomposition(np.ones(27), _dates(27), 7)


def test_decomposition_replays_seasonal_profile() -> None:
    series = np.tile(WEEK, 6)
    result = seasonal_decomposition(series, _dates(series.size), 7)

    assert result.metadata["period"] == 7
    assert int(np.argmax(result.forecast)) == int(np.argmax(WEEK))


def test_centred_moving_average_shrinks_at_edges() -> None:
    trend = centred_moving_average(np.array([1.0, 2.0, 3.0, 4.0, 5.0]), 3)
    assert trend[0] == pytest.approx(1.5)
    assert trend[2] == pytest.approx(3.0)
    assert trend[-1] == pytest.approx(4.5)


def test_random_forest_is_deterministic() -> None:
    series = _weekly_series()
    dates = _dates(series.size)

    first = random_forest(series, dates, 10)
    second = random_forest(series, dates, 10)

    assert first.forecast == second.forecast
    assert first.metadata["num_trees"] == 10
    assert first.metadata["features"] == list(FEATURE_NAMES)
    assert all(depth <= 6 for depth in first.metadata["tree_depths"])


def _leaves(node: TreeNode) -> list[TreeNode]:
    if node.is_leaf:
        return [node]
    return _leaves(node.left) + _leaves(node.right)


def test_split_between_adjacent_floats_keeps_both_children() -> None:
    upper = float(np.nextafter(5.05, 6.0))
    features = np.array([[5.05], [5.05], [upper], [upper]])
    target = np.array([1.0, 1.0, 9.0, 9.0])

    tree = grow_tree(features, target)

    assert tree.threshold == 5.05
    assert (tree.left.samples, tree.right.samples) == (2, 2)
    assert tree.predict(np.array([upper])) == 9.0
    assert tree.predict(np.array([5.05])) == 1.0


@pytest.mark.filterwarnings("error::RuntimeWarning")
@pytest.mark.parametrize("drift, weeks", [(0.05, 8), (0.03, 4)])
def test_random_forest_on_drifting_weekly_series(drift: float, weeks: int) -> None:
    series = _weekly_series(weeks=weeks, drift=drift)
    dates = _dates(series.size)
    features, target = engineer_features(series, dates)

    for seed in range(10):
        idx = bootstrap_indices(target.size, LinearCongruentialGenerator(seed))
        tree = grow_tree(features[idx], target[idx])
        assert all(leaf.samples > 0 and math.isfinite(leaf.value) for leaf in _leaves(tree))

    result = random_forest(series, dates, 30)
    assert len(result.forecast) == 30
    assert all(math.isfinite(v) for v in result.forecast)


def test_random_forest_respects_minimum_and_tree_count() -> None:
    with pytest.raises(InsufficientDataError):
        random_forest(np.ones(13), _dates(13), 3)

    series = _weekly_series(weeks=3)[:15]
    result = random_forest(series, _dates(15), 3)
    assert result.metadata["num_trees"] == 5


def test_feature_rows_start_after_warmup() -> None:
    series = _weekly_series(weeks=3)
    features, target = engineer_features(series, _dates(series.size))

    assert features.shape == (series.size - 7, len(FEATURE_NAMES))
    assert target[0] == series[7]
    # lag_1 of the first row is the value just before the target
    assert features[0, 0] == series[6]

    with pytest.raises(ValueError):
        engineer_features(series, _dates(series.size - 1))


def test_arima_orders_and_minimum_length() -> None:
    with pytest.raises(InsufficientDataError):
        arima(np.ones(19), _dates(19), 3)

    p, _, q = select_orders(_weekly_series())
    assert p == 3
    assert q == 2
    assert is_stationary(np.ones(9)) is False


def test_arima_differences_once_when_level_is_stable() -> None:
    series = np.tile([10.0, 12.0, 11.0, 13.0], 10)

    assert select_orders(series) == (3, 1, 2)
    result = arima(series, _dates(series.size), 5)
    assert result.metadata["d"] == 1
    assert result.metadata["stationary_length"] == series.size - 1


def test_arima_linear_trend_differences_twice_and_continues_the_line() -> None:
    series = np.arange(45, dtype=float) * 2.0

    assert select_orders(series) == (3, 2, 2)
    result = arima(series, _dates(series.size), 4)
    assert result.metadata["d"] == 2
    assert result.forecast == pytest.approx([90.0, 92.0, 94.0, 96.0])


def test_prophet_applies_holiday_effects() -> None:
    series = _weekly_series()
    dates = _dates(series.size)
    holiday = dates[-1] + timedelta(days=2)

    plain = prophet(series, dates, 5)
    festive = prophet(series, dates, 5, holidays={holiday: 40.0})

    assert festive.forecast[1] == pytest.approx(plain.forecast[1] + 40.0)
    assert festive.forecast[0] == pytest.approx(plain.forecast[0])
    assert festive.metadata["holiday_effects"] == 1
    assert all(lo <= hi for lo, hi in zip(plain.metadata["lower"], plain.metadata["upper"]))


def test_prophet_requires_three_weeks() -> None:
    with pytest.raises(InsufficientDataError):
        prophet(np.ones(20), _dates(20), 3)
