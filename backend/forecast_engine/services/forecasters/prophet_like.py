r"""backend\forecast_engine\services\forecasters\prophet_like.py

Additive trend + weekly profile + holiday model in the spirit of Prophet.

This does not wrap the ``prophet`` package; it fits a linear trend and a
day-of-week profile of the detrended values. Holiday effects are an
extension point: a mapping of calendar date to additive effect, empty by
default.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import List, Mapping, Optional

import numpy as np
import pandas as pd

from .base import finalise, least_squares_line, population_variance, require_points
from ...models.schemas import AlgorithmForecast

PROPHET_MIN_POINTS = 21
Z_95 = 1.96


def weekly_profile(values: np.ndarray, weekdays: np.ndarray) -> np.ndarray:
    profile = np.zeros(7, dtype=float)
    for day in range(7):
        mask = weekdays == day
        if mask.any():
            profile[day] = float(values[mask].mean())
    return profile


def prophet(
    series: np.ndarray,
    dates: List[date],
    horizon: int,
    holidays: Optional[Mapping[date, float]] = None,
) -> AlgorithmForecast:
    require_points(series, PROPHET_MIN_POINTS, "prophet")
    if len(dates) != series.size:
        raise ValueError("dates must align with the series")

    holidays = holidays or {}
    n = series.size
    slope, intercept = least_squares_line(series)
    trend = intercept + slope * np.arange(n, dtype=float)
    detrended = series - trend

    weekdays = pd.DatetimeIndex(pd.to_datetime(list(dates))).dayofweek.to_numpy()
    profile = weekly_profile(detrended, weekdays)
    residual = detrended - profile[weekdays]

    last_day = dates[-1]
    forecast = []
    for step in range(horizon):
        day = last_day + timedelta(days=step + 1)
        value = intercept + slope * (n + step) + profile[day.weekday()] + float(holidays.get(day, 0.0))
        forecast.append(value)

    residual_var = population_variance(residual)
    snr = population_variance(trend) / (residual_var + 1e-8)
    spread = Z_95 * float(np.sqrt(residual_var))
    return finalise(
        "prophet",
        forecast,
        snr / (snr + 1.0),
        {
            "trend_slope": slope,
            "trend_intercept": intercept,
            "weekly_profile": [float(v) for v in profile],
            "holiday_effects": len(holidays),
            "lower": [max(0.0, v - spread) for v in forecast],
            "upper": [max(0.0, v + spread) for v in forecast],
        },
    )
