r"""backend\forecast_engine\services\forecasters\decomposition.py

Additive seasonal decomposition forecaster.

The series is split into a centred moving-average trend, a per-phase
seasonal profile and a residual. The trend is extended with its median daily
step and the seasonal profile is replayed from the phase that follows the
last observation.
"""

from __future__ import annotations

import math
from datetime import date
from typing import List, Optional

import numpy as np

from .base import finalise, median_step, require_points
from .seasonality import detect_seasonal_period
from ...core.errors import InsufficientDataError
from ...models.schemas import AlgorithmForecast

DECOMPOSITION_MIN_POINTS = 28


def centred_moving_average(series: np.ndarray, window: int) -> np.ndarray:
    """Moving average centred on each point; the window shrinks at the edges."""

    n = series.size
    before = window // 2
    after = math.ceil(window / 2)
    trend = np.empty(n, dtype=float)
    for i in range(n):
        start = max(0, i - before)
        end = min(n, i + after)
        trend[i] = series[start:end].mean()
    return trend


def decompose(series: np.ndarray, period: int) -> dict:
    trend = centred_moving_average(series, period)
    detrended = series - trend
    seasonal = np.array([detrended[phase::period].mean() for phase in range(period)], dtype=float)
    residual = detrended - seasonal[np.arange(series.size) % period]
    return {"trend": trend, "seasonal": seasonal, "residual": residual}


def seasonal_decomposition(
    series: np.ndarray,
    dates: List[date],
    horizon: int,
    period: Optional[int] = None,
) -> AlgorithmForecast:
    require_points(series, DECOMPOSITION_MIN_POINTS, "seasonal_decomposition")

    season = detect_seasonal_period(series) if period is None else int(period)
    if season < 2:
        raise InsufficientDataError(
            "No usable seasonal period for decomposition",
            details={"algorithm": "seasonal_decomposition", "period": season},
        )

    components = decompose(series, season)
    trend = components["trend"]
    seasonal = components["seasonal"]
    step = median_step(trend)
    last_trend = float(trend[-1])
    n = series.size

    forecast = [
        last_trend + step * (i + 1) + float(seasonal[(n + i) % season])
        for i in range(horizon)
    ]

    mean_value = float(series.mean())
    if mean_value > 0:
        confidence = 1.0 - float(np.mean(np.abs(components["residual"]))) / mean_value
    else:
        confidence = 0.1

    return finalise(
        "seasonal_decomposition",
        forecast,
        confidence,
        {
            "period": season,
            "trend_step": step,
            "seasonal_profile": [float(v) for v in seasonal],
        },
    )
