r"""backend\forecast_engine\services\forecasters\base.py

Shared plumbing for the forecasting algorithms: the ``Forecaster`` wrapper,
confidence clamping, the seeded random source used for bootstrapping and a
handful of small statistics helpers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

import numpy as np

from ...core.errors import InsufficientDataError, NumericInstabilityError
from ...models.schemas import AlgorithmForecast

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95

ForecastFn = Callable[..., AlgorithmForecast]


def clamp_confidence(value: float, lower: float = MIN_CONFIDENCE, upper: float = MAX_CONFIDENCE) -> float:
    if not math.isfinite(value):
        return lower
    return min(upper, max(lower, float(value)))


def as_series(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float)


def require_points(series: np.ndarray, minimum: int, algorithm: str) -> None:
    if series.size < minimum:
        raise InsufficientDataError(
            f"{algorithm} needs at least {minimum} points (got {series.size})",
            details={"algorithm": algorithm, "required": minimum, "available": int(series.size)},
        )


def finalise(
    algorithm_name: str,
    values: Sequence[float],
    confidence: float,
    metadata: Optional[Dict[str, Any]] = None,
) -> AlgorithmForecast:
    """Build the frozen result of one algorithm.

    Negative predictions are floored at zero and the confidence is clamped to
    ``[0.1, 0.95]``. Non-finite predictions mean the fit blew up and are
    reported as ``NumericInstabilityError``.
    """

    arr = np.asarray(values, dtype=float)
    if not np.all(np.isfinite(arr)):
        raise NumericInstabilityError(
            f"{algorithm_name} produced non-finite predictions",
            details={"algorithm": algorithm_name},
        )
    return AlgorithmForecast(
        algorithm_name=algorithm_name,
        forecast=[max(0.0, float(v)) for v in arr],
        confidence=clamp_confidence(confidence),
        metadata=metadata or {},
    )


def flat_mean_forecast(series: Sequence[float], horizon: int) -> list[float]:
    arr = as_series(series)
    if arr.size == 0:
        return [0.0] * horizon
    return [max(0.0, float(arr.mean()))] * horizon


@dataclass(frozen=True)
class Forecaster:
    """A named forecasting callable.

    ``params`` are bound keyword arguments (smoothing constants and the like)
    passed on every call, so algorithms stay plain functions.
    """

    name: str
    fn: ForecastFn
    params: Dict[str, Any] = field(default_factory=dict)

    def forecast(self, series: Sequence[float], dates: Sequence[date], horizon: int) -> AlgorithmForecast:
        return self.fn(as_series(series), list(dates), horizon, **self.params)


# ---------------------------------------------------------------------------
# Seeded randomness


class RandomSource(Protocol):
    def random(self) -> float:
        """Return a float in ``[0, 1)``."""


class LinearCongruentialGenerator:
    """Reproducible ``[0, 1)`` stream used for bootstrap sampling."""

    MODULUS = 2**31
    MULTIPLIER = 1103515245
    INCREMENT = 12345

    def __init__(self, seed: int) -> None:
        self._state = (seed * 12345) % self.MODULUS

    def random(self) -> float:
        self._state = (self._state * self.MULTIPLIER + self.INCREMENT) % self.MODULUS
        return self._state / self.MODULUS


# ---------------------------------------------------------------------------
# Statistics helpers


def mean_absolute_percentage_error(actual: Sequence[float], predicted: Sequence[float]) -> float:
    """MAPE in percent over the common prefix.

    Zero actuals contribute nothing to the numerator but still count in the
    denominator.
    """

    n = min(len(actual), len(predicted))
    if n == 0:
        return 0.0
    total = 0.0
    for a, p in zip(actual[:n], predicted[:n]):
        if a != 0:
            total += abs((a - p) / a)
    return total / n * 100.0


def root_mean_squared_error(actual: Sequence[float], predicted: Sequence[float]) -> float:
    n = min(len(actual), len(predicted))
    if n == 0:
        return 0.0
    diff = as_series(actual[:n]) - as_series(predicted[:n])
    return float(np.sqrt(np.mean(diff**2)))


def population_variance(values: Sequence[float]) -> float:
    arr = as_series(values)
    if arr.size == 0:
        return 0.0
    return float(arr.var())


def population_std(values: Sequence[float]) -> float:
    arr = as_series(values)
    if arr.size < 2:
        return 0.0
    return float(arr.std())


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    n = min(len(x), len(y))
    if n < 2:
        return 0.0
    xa = as_series(x[:n])
    ya = as_series(y[:n])
    xd = xa - xa.mean()
    yd = ya - ya.mean()
    denom = math.sqrt(float(np.sum(xd**2)) * float(np.sum(yd**2)))
    if denom == 0.0:
        return 0.0
    return float(np.sum(xd * yd) / denom)


def least_squares_line(values: Sequence[float]) -> tuple[float, float]:
    """Return ``(slope, intercept)`` of an OLS fit against the index."""

    arr = as_series(values)
    n = arr.size
    if n == 0:
        return 0.0, 0.0
    if n == 1:
        return 0.0, float(arr[0])
    x = np.arange(n, dtype=float)
    x_mean = x.mean()
    y_mean = arr.mean()
    sxx = float(np.sum((x - x_mean) ** 2))
    slope = float(np.sum((x - x_mean) * (arr - y_mean)) / sxx)
    return slope, float(y_mean - slope * x_mean)


def median_step(values: Sequence[float]) -> float:
    """Median of first differences; ``0.0`` for fewer than three values."""

    arr = as_series(values)
    if arr.size < 3:
        return 0.0
    return float(np.median(np.diff(arr)))


def one_step_confidence(
    actual: Sequence[float],
    predicted: Sequence[float],
    series: Optional[Sequence[float]] = None,
    default: float = 0.3,
) -> float:
    """``1 - MAE / mean(series)`` over one-step-ahead predictions.

    ``series`` is the full history the predictions were made from; the MAE is
    scaled by its mean, or by the mean of ``actual`` when it is omitted.
    """

    if len(actual) == 0:
        return default
    actual_arr = as_series(actual)
    mean_value = float(as_series(series if series is not None else actual).mean())
    if mean_value <= 0:
        return MIN_CONFIDENCE
    mae = float(np.mean(np.abs(actual_arr - as_series(predicted))))
    return 1.0 - mae / mean_value
