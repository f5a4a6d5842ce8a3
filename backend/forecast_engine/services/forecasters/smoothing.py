r"""backend\forecast_engine\services\forecasters\smoothing.py

Exponential smoothing family: simple, Holt (double) and multiplicative
Holt-Winters.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

import numpy as np

from .base import finalise, one_step_confidence, require_points
from .seasonality import detect_seasonal_period
from ...models.schemas import AlgorithmForecast

HOLT_WINTERS_MIN_POINTS = 14
_EPS = 1e-9


def exponential_smoothing(
    series: np.ndarray,
    dates: List[date],
    horizon: int,
    alpha: float = 0.3,
) -> AlgorithmForecast:
    """Flat forecast of the last smoothed level."""

    require_points(series, 1, "exponential_smoothing")

    level = float(series[0])
    predictions: list[float] = []
    for value in series[1:]:
        predictions.append(level)
        level = alpha * float(value) + (1.0 - alpha) * level

    confidence = one_step_confidence(series[1:], predictions, series)
    return finalise(
        "exponential_smoothing",
        [level] * horizon,
        confidence,
        {"alpha": alpha, "level": level},
    )


def double_exponential_smoothing(
    series: np.ndarray,
    dates: List[date],
    horizon: int,
    alpha: float = 0.3,
    beta: float = 0.3,
    algorithm_name: str = "double_exponential_smoothing",
) -> AlgorithmForecast:
    """Holt's linear trend method.

    Level and trend are initialised from the first two observations.
    """

    require_points(series, 2, algorithm_name)

    level = float(series[0])
    trend = float(series[1] - series[0])
    predictions: list[float] = []
    for value in series[1:]:
        predictions.append(level + trend)
        new_level = alpha * float(value) + (1.0 - alpha) * (level + trend)
        trend = beta * (new_level - level) + (1.0 - beta) * trend
        level = new_level

    forecast = [level + (step + 1) * trend for step in range(horizon)]
    confidence = one_step_confidence(series[1:], predictions, series)
    return finalise(
        algorithm_name,
        forecast,
        confidence,
        {"alpha": alpha, "beta": beta, "level": level, "trend": trend},
    )


def holt_winters(
    series: np.ndarray,
    dates: List[date],
    horizon: int,
    alpha: float = 0.3,
    beta: float = 0.3,
    gamma: float = 0.3,
    period: Optional[int] = None,
) -> AlgorithmForecast:
    """Triple exponential smoothing with multiplicative seasonality.

    Short series (fewer than 14 points) or series without a usable period
    degrade to Holt's method; the result then carries
    ``metadata["degraded_to"]``.
    """

    season = detect_seasonal_period(series) if period is None else int(period)
    if series.size < HOLT_WINTERS_MIN_POINTS or season < 2 or series.size < 2 * season:
        result = double_exponential_smoothing(series, dates, horizon, alpha, beta, algorithm_name="holt_winters")
        metadata = dict(result.metadata, degraded_to="double_exponential_smoothing", period=season)
        return result.model_copy(update={"metadata": metadata})

    first_cycle = series[:season]
    second_cycle = series[season : 2 * season]
    level = float(first_cycle.mean())
    trend = float((second_cycle.mean() - first_cycle.mean()) / season)

    if level > _EPS:
        seasonal = first_cycle / level
        seasonal_mean = float(seasonal.mean())
        seasonal = seasonal / seasonal_mean if seasonal_mean > _EPS else np.ones(season)
    else:
        seasonal = np.ones(season)
    seasonal = seasonal.astype(float)

    predictions: list[float] = []
    for t in range(season, series.size):
        value = float(series[t])
        idx = t % season
        factor = float(seasonal[idx])
        predictions.append((level + trend) * factor)

        deseasonalised = value / factor if factor > _EPS else value
        new_level = alpha * deseasonalised + (1.0 - alpha) * (level + trend)
        trend = beta * (new_level - level) + (1.0 - beta) * trend
        if new_level > _EPS:
            seasonal[idx] = gamma * (value / new_level) + (1.0 - gamma) * factor
        level = new_level

    n = series.size
    forecast = [(level + (step + 1) * trend) * float(seasonal[(n + step) % season]) for step in range(horizon)]
    confidence = one_step_confidence(series[season:], predictions, series)
    return finalise(
        "holt_winters",
        forecast,
        confidence,
        {
            "alpha": alpha,
            "beta": beta,
            "gamma": gamma,
            "period": season,
            "seasonal_indices": [float(v) for v in seasonal],
        },
    )
