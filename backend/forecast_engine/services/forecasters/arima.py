r"""backend\forecast_engine\services\forecasters\arima.py

Simplified ARIMA(p, d, q).

Orders come from heuristics rather than an information-criterion search:
``d`` from a two-half variance test on the first difference, ``p`` and ``q``
from the series length. AR coefficients are fitted by least squares and MA
coefficients are taken from the autocorrelation of the AR residuals.
"""

from __future__ import annotations

from datetime import date
from typing import List

import numpy as np

from .base import finalise, pearson_correlation, population_variance, require_points
from ...core.errors import InsufficientDataError, NumericInstabilityError
from ...models.schemas import AlgorithmForecast

ARIMA_MIN_POINTS = 20
MIN_STATIONARY_POINTS = 10
MA_LIMIT = 0.9


def is_stationary(values: np.ndarray) -> bool:
    """Two-half variance stability check.

    Fewer than 10 values are never considered stationary.
    """

    if values.size < MIN_STATIONARY_POINTS:
        return False
    mid = values.size // 2
    var_first = population_variance(values[:mid])
    var_second = population_variance(values[mid:])
    return abs(var_first - var_second) < max(var_first, var_second) * 0.5


def select_orders(series: np.ndarray) -> tuple[int, int, int]:
    n = series.size
    d = 1 if is_stationary(np.diff(series)) else 2
    return min(3, n // 10), d, min(2, n // 15)


def fit_autoregressive(series: np.ndarray, order: int) -> np.ndarray:
    if order == 0 or series.size <= order:
        return np.zeros(0)
    design = np.column_stack([series[order - lag : series.size - lag] for lag in range(1, order + 1)])
    target = series[order:]
    coefficients, *_ = np.linalg.lstsq(design, target, rcond=None)
    if not np.all(np.isfinite(coefficients)):
        raise NumericInstabilityError("AR least squares produced non-finite coefficients")
    return coefficients


def ar_residuals(series: np.ndarray, coefficients: np.ndarray) -> np.ndarray:
    order = coefficients.size
    residuals = []
    for i in range(order, series.size):
        predicted = sum(coefficients[j] * series[i - j - 1] for j in range(order))
        residuals.append(series[i] - predicted)
    return np.asarray(residuals, dtype=float)


def fit_moving_average(residuals: np.ndarray, order: int) -> np.ndarray:
    coefficients = []
    for lag in range(1, order + 1):
        if residuals.size > lag + 1:
            rho = pearson_correlation(residuals[:-lag], residuals[lag:])
        else:
            rho = 0.0
        coefficients.append(float(np.clip(rho, -MA_LIMIT, MA_LIMIT)))
    return np.asarray(coefficients, dtype=float)


def integrate(forecast: np.ndarray, levels: List[np.ndarray], order: int) -> np.ndarray:
    """Undo ``order`` rounds of differencing starting from the last observed values."""

    out = forecast
    for level in range(order - 1, -1, -1):
        out = levels[level][-1] + np.cumsum(out)
    return out


def arima(series: np.ndarray, dates: List[date], horizon: int) -> AlgorithmForecast:
    require_points(series, ARIMA_MIN_POINTS, "arima")

    p, d, q = select_orders(series)
    levels = [series.astype(float)]
    for _ in range(d):
        levels.append(np.diff(levels[-1]))
    stationary = levels[d]
    if stationary.size < MIN_STATIONARY_POINTS:
        raise InsufficientDataError("Series too short after differencing", details={"algorithm": "arima"})

    ar = fit_autoregressive(stationary, p)
    residuals = ar_residuals(stationary, ar)
    ma = fit_moving_average(residuals, q)

    history = list(stationary)
    shocks = list(residuals)
    diff_forecast = []
    for _ in range(horizon):
        prediction = sum(ar[j] * history[-1 - j] for j in range(ar.size))
        prediction += sum(ma[k] * shocks[-1 - k] for k in range(ma.size) if k < len(shocks))
        diff_forecast.append(prediction)
        history.append(prediction)
        # Future shocks have zero expectation
        shocks.append(0.0)

    forecast = integrate(np.asarray(diff_forecast, dtype=float), levels, d)

    snr = population_variance(stationary) / (population_variance(residuals) + 1e-8)
    return finalise(
        "arima",
        forecast,
        snr / (snr + 1.0),
        {
            "p": p,
            "d": d,
            "q": q,
            "ar_coefficients": [float(c) for c in ar],
            "ma_coefficients": [float(c) for c in ma],
            "stationary_length": int(stationary.size),
        },
    )
