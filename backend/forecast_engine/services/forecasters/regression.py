"""Ordinary least squares trend line."""

from __future__ import annotations

from datetime import date
from typing import List

import numpy as np

from .base import finalise, least_squares_line, require_points
from ...models.schemas import AlgorithmForecast


def linear_regression(series: np.ndarray, dates: List[date], horizon: int) -> AlgorithmForecast:
    """Extrapolate an OLS line fitted against the day index.

    Confidence is the fit's R². A constant series has no variance to explain
    and scores R² = 0.
    """

    require_points(series, 2, "linear_regression")

    slope, intercept = least_squares_line(series)
    n = series.size
    fitted = intercept + slope * np.arange(n, dtype=float)
    sst = float(np.sum((series - series.mean()) ** 2))
    sse = float(np.sum((series - fitted) ** 2))
    r_squared = 1.0 - sse / sst if sst > 0 else 0.0

    forecast = [intercept + slope * (n + step) for step in range(horizon)]
    return finalise(
        "linear_regression",
        forecast,
        r_squared,
        {"slope": slope, "intercept": intercept, "r_squared": r_squared},
    )
