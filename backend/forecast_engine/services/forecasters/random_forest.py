r"""backend\forecast_engine\services\forecasters\random_forest.py

Small bagged regression-tree forecaster over engineered lag features.

Trees are grown on bootstrap samples drawn from an injectable
``RandomSource`` so runs are reproducible. Splits maximise the reduction in
population variance of the target.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, List, Optional

import numpy as np
import pandas as pd

from .base import (
    LinearCongruentialGenerator,
    RandomSource,
    finalise,
    least_squares_line,
    mean_absolute_percentage_error,
    population_std,
    require_points,
)
from ...models.schemas import AlgorithmForecast

RANDOM_FOREST_MIN_POINTS = 14
MAX_TREES = 10
MAX_DEPTH = 5
MIN_NODE_SIZE = 3
MIN_GAIN = 0.01
WARMUP = 7

FEATURE_NAMES = (
    "lag_1",
    "lag_2",
    "lag_3",
    "lag_7",
    "ma_3",
    "ma_7",
    "day_of_week",
    "day_of_month",
    "month",
    "trend_3",
    "trend_7",
    "volatility_3",
    "volatility_7",
)


def _window_features(history: np.ndarray) -> list[float]:
    """Lag, moving-average, slope and volatility features from values before the target."""

    last3 = history[-3:]
    last7 = history[-7:]
    return [
        float(history[-1]),
        float(history[-2]),
        float(history[-3]),
        float(history[-7]),
        float(last3.mean()),
        float(last7.mean()),
        least_squares_line(last3)[0],
        least_squares_line(last7)[0],
        population_std(last3),
        population_std(last7),
    ]


def _row(history: np.ndarray, day: pd.Timestamp) -> list[float]:
    lags = _window_features(history)
    # Keep the column order of FEATURE_NAMES
    return lags[:6] + [float(day.dayofweek), float(day.day), float(day.month)] + lags[6:]


def engineer_features(series: np.ndarray, dates: List[date]) -> tuple[np.ndarray, np.ndarray]:
    """Return the feature matrix and targets for every index from 7 onwards."""

    if len(dates) != series.size:
        raise ValueError("dates must align with the series")
    stamps = pd.DatetimeIndex(pd.to_datetime(list(dates)))
    rows = [_row(series[:i], stamps[i]) for i in range(WARMUP, series.size)]
    return np.asarray(rows, dtype=float), series[WARMUP:].astype(float)


# ---------------------------------------------------------------------------
# Regression tree


@dataclass
class TreeNode:
    value: float
    samples: int
    feature: Optional[int] = None
    threshold: float = 0.0
    left: Optional["TreeNode"] = None
    right: Optional["TreeNode"] = None

    @property
    def is_leaf(self) -> bool:
        return self.feature is None

    def depth(self) -> int:
        if self.is_leaf:
            return 1
        return 1 + max(self.left.depth(), self.right.depth())

    def predict(self, row: np.ndarray) -> float:
        node = self
        while not node.is_leaf:
            node = node.left if row[node.feature] <= node.threshold else node.right
        return node.value


def best_split(features: np.ndarray, target: np.ndarray) -> Optional[tuple[int, float, float]]:
    """Return ``(feature, threshold, gain)`` of the best variance-reducing split.

    Thresholds are the lower of two consecutive distinct values, so rows
    with a value ``<= threshold`` are exactly the left side of the cut. Ties
    keep the first candidate in feature order, then threshold order.
    """

    n = target.size
    total_var = float(target.var())
    best: Optional[tuple[int, float, float]] = None
    for col in range(features.shape[1]):
        values = features[:, col]
        order = np.argsort(values, kind="mergesort")
        xs = values[order]
        ys = target[order]
        cut = np.nonzero(xs[1:] > xs[:-1])[0] + 1
        if cut.size == 0:
            continue
        csum = np.cumsum(ys)
        csq = np.cumsum(ys**2)
        n_left = cut.astype(float)
        n_right = n - n_left
        s_left = csum[cut - 1]
        q_left = csq[cut - 1]
        s_right = csum[-1] - s_left
        q_right = csq[-1] - q_left
        var_left = q_left / n_left - (s_left / n_left) ** 2
        var_right = q_right / n_right - (s_right / n_right) ** 2
        gains = total_var - (n_left / n * var_left + n_right / n * var_right)
        pos = int(np.argmax(gains))
        gain = float(gains[pos])
        if best is None or gain > best[2]:
            k = int(cut[pos])
            best = (col, float(xs[k - 1]), gain)
    return best


def grow_tree(features: np.ndarray, target: np.ndarray, depth: int = 0, max_depth: int = MAX_DEPTH) -> TreeNode:
    leaf = TreeNode(value=float(target.mean()), samples=int(target.size))
    if depth >= max_depth or target.size < MIN_NODE_SIZE:
        return leaf
    split = best_split(features, target)
    if split is None or split[2] < MIN_GAIN:
        return leaf
    col, threshold, _ = split
    mask = features[:, col] <= threshold
    if mask.all() or not mask.any():
        return leaf
    leaf.feature = col
    leaf.threshold = threshold
    leaf.left = grow_tree(features[mask], target[mask], depth + 1, max_depth)
    leaf.right = grow_tree(features[~mask], target[~mask], depth + 1, max_depth)
    return leaf


def bootstrap_indices(size: int, rng: RandomSource) -> np.ndarray:
    return np.array([int(rng.random() * size) for _ in range(size)], dtype=int)


# ---------------------------------------------------------------------------


def random_forest(
    series: np.ndarray,
    dates: List[date],
    horizon: int,
    random_source_factory: Callable[[int], RandomSource] = LinearCongruentialGenerator,
) -> AlgorithmForecast:
    """Bagged regression trees; tree ``i`` bootstraps with ``random_source_factory(i)``."""

    require_points(series, RANDOM_FOREST_MIN_POINTS, "random_forest")
    features, target = engineer_features(series, dates)

    n_trees = min(MAX_TREES, series.size // 3)
    trees: list[TreeNode] = []
    for seed in range(n_trees):
        idx = bootstrap_indices(target.size, random_source_factory(seed))
        trees.append(grow_tree(features[idx], target[idx]))

    fitted = [float(np.mean([tree.predict(row) for tree in trees])) for row in features]
    mape = mean_absolute_percentage_error(target, fitted)

    # Forecast rows reuse the most recent observations; only the calendar moves
    last_day = pd.Timestamp(dates[-1])
    forecast = []
    for step in range(1, horizon + 1):
        row = np.asarray(_row(series, last_day + timedelta(days=step)), dtype=float)
        forecast.append(float(np.mean([tree.predict(row) for tree in trees])))

    return finalise(
        "random_forest",
        forecast,
        1.0 - mape / 100.0,
        {
            "num_trees": len(trees),
            "features": list(FEATURE_NAMES),
            "tree_depths": [tree.depth() for tree in trees],
        },
    )
