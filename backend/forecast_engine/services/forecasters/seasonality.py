"""Seasonal period detection shared by Holt-Winters, decomposition and the ensemble summary."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ...models.schemas import Seasonality
from .base import as_series, pearson_correlation

CANDIDATE_PERIODS = (7, 14, 30)
STRENGTH_THRESHOLD = 0.3
WEEKLY = 7
MONTHLY = 30


def seasonal_strength(series: Sequence[float], period: int) -> float:
    """Mean absolute autocorrelation at whole-cycle lags.

    The series is correlated with itself shifted by ``k * period`` for every
    ``k`` in ``1 .. cycles - 1``. Fewer than two full cycles gives ``0.0``.
    """

    arr = as_series(series)
    if period < 1:
        return 0.0
    cycles = arr.size // period
    if cycles < 2:
        return 0.0
    correlations = [
        abs(pearson_correlation(arr[: arr.size - lag * period], arr[lag * period :]))
        for lag in range(1, cycles)
    ]
    return float(np.mean(correlations))


def detect_seasonal_period(
    series: Sequence[float],
    candidates: Sequence[int] = CANDIDATE_PERIODS,
    threshold: float = STRENGTH_THRESHOLD,
) -> int:
    """Return the strongest candidate period.

    Only candidates with at least two full cycles are scored. When none
    qualifies the result is ``0``; when the best strength does not exceed
    ``threshold`` the weekly period is assumed.
    """

    arr = as_series(series)
    eligible = [period for period in candidates if arr.size >= 2 * period]
    if not eligible:
        return 0

    best_period = WEEKLY
    best_strength = 0.0
    for period in eligible:
        strength = seasonal_strength(arr, period)
        if strength > best_strength:
            best_strength = strength
            best_period = period
    return best_period if best_strength > threshold else WEEKLY


def summarise_seasonality(series: Sequence[float]) -> Seasonality:
    arr = as_series(series)
    if arr.size < 2 * WEEKLY:
        return Seasonality(detected=False)
    weekly = seasonal_strength(arr, WEEKLY)
    monthly = seasonal_strength(arr, MONTHLY)
    detected = weekly > STRENGTH_THRESHOLD or monthly > STRENGTH_THRESHOLD
    dominant = None
    if detected:
        dominant = "weekly" if weekly >= monthly else "monthly"
    return Seasonality(detected=detected, weekly=weekly, monthly=monthly, dominant=dominant)
