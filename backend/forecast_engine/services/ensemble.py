r"""backend\forecast_engine\services\ensemble.py

Weighted combination of the forecasting algorithms.

Each algorithm runs independently on the same series. An algorithm that
fails (too little data, numerical trouble, anything else) is replaced by a
flat-mean fallback so one weak model never sinks the whole forecast.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from .forecasters.base import (
    Forecaster,
    as_series,
    clamp_confidence,
    flat_mean_forecast,
    mean_absolute_percentage_error,
    median_step,
    population_std,
    root_mean_squared_error,
)
from .forecasters.registry import ENSEMBLE_ALGORITHMS, build_forecasters
from .forecasters.seasonality import summarise_seasonality
from .validation_service import ModelValidator
from ..core.config import EngineConfig
from ..core.errors import ValidationError
from ..models.schemas import (
    AlgorithmForecast,
    ConfidenceIntervals,
    EnsembleForecast,
    ModelMetrics,
)

LOGGER = logging.getLogger(__name__)

Z_95 = 1.96
METRIC_WINDOW = 7
EMPTY_HISTORY_CONFIDENCE = 0.1
DEFAULT_CONFIDENCE = 0.5


def weighted_average(forecasts: Mapping[str, AlgorithmForecast], weights: Mapping[str, float], horizon: int) -> List[float]:
    """Per-step weighted mean over the algorithms that produced a value at that step."""

    combined = []
    for step in range(horizon):
        weighted_sum = 0.0
        total_weight = 0.0
        for name, weight in weights.items():
            result = forecasts.get(name)
            if result is None or step >= len(result.forecast):
                continue
            weighted_sum += result.forecast[step] * weight
            total_weight += weight
        combined.append(weighted_sum / total_weight if total_weight > 0 else 0.0)
    return combined


def confidence_intervals(forecast: Sequence[float]) -> ConfidenceIntervals:
    values = as_series(forecast)
    std = float(values.std()) if values.size else 0.0
    return ConfidenceIntervals(
        lower=[max(0.0, float(v) - Z_95 * std) for v in values],
        upper=[float(v) + Z_95 * std for v in values],
        standard_deviation=std,
    )


class EnsembleCombiner:
    """Run the weighted algorithm ensemble over a daily demand series."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        forecasters: Optional[Dict[str, Forecaster]] = None,
        validator: Optional[ModelValidator] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.forecasters = forecasters or build_forecasters(self.config)
        self.validator = validator or ModelValidator()
        self.weights: Dict[str, float] = {
            name: self.config.ensemble.weights.get(name, 0.0) for name in ENSEMBLE_ALGORITHMS
        }

    # ------------------------------------------------------------------
    def _fallback(self, name: str, series: Sequence[float], horizon: int, exc: Exception) -> AlgorithmForecast:
        return AlgorithmForecast(
            algorithm_name=name,
            forecast=flat_mean_forecast(series, horizon),
            confidence=self.config.ensemble.fallback_confidence,
            metadata={"fallback": True, "error": str(exc), "error_type": type(exc).__name__},
        )

    def run_algorithms(self, series: Sequence[float], dates: Sequence[date], horizon: int) -> Dict[str, AlgorithmForecast]:
        results: Dict[str, AlgorithmForecast] = {}
        for name in ENSEMBLE_ALGORITHMS:
            forecaster = self.forecasters.get(name)
            try:
                if forecaster is None:
                    raise KeyError(f"no forecaster registered for {name}")
                results[name] = forecaster.forecast(series, dates, horizon)
            except Exception as exc:
                LOGGER.warning("Algorithm %s failed, using fallback: %s", name, exc)
                results[name] = self._fallback(name, series, horizon, exc)
        return results

    # ------------------------------------------------------------------
    def combine(
        self,
        series: Sequence[float],
        dates: Sequence[date],
        horizon: int,
        product_id: Optional[str] = None,
    ) -> EnsembleForecast:
        """Forecast ``horizon`` days from ``series`` with the full ensemble."""

        if horizon <= 0:
            raise ValidationError(f"horizon must be positive (got {horizon})")
        if len(series) != len(dates):
            raise ValidationError("series and dates must have the same length")

        values = list(as_series(series))
        per_algorithm = self.run_algorithms(values, dates, horizon)
        forecast = [max(0.0, v) for v in weighted_average(per_algorithm, self.weights, horizon)]

        weight_total = sum(self.weights.values())
        if weight_total > 0:
            confidence = sum(
                per_algorithm[name].confidence * weight for name, weight in self.weights.items()
            ) / weight_total
        else:
            confidence = DEFAULT_CONFIDENCE
        confidence = clamp_confidence(confidence)

        smoothing_forecast = per_algorithm["exponential_smoothing"].forecast
        recent = values[-METRIC_WINDOW:]
        report = self.validator.validate(per_algorithm, values)
        metrics = ModelMetrics(
            mape=mean_absolute_percentage_error(recent, smoothing_forecast[:METRIC_WINDOW]),
            rmse=root_mean_squared_error(recent, smoothing_forecast[:METRIC_WINDOW]),
            ensemble_accuracy=report.accuracy,
            algorithm_performance=report.algorithm_performance,
        )

        total = float(np.sum(forecast))
        return EnsembleForecast(
            product_id=product_id,
            horizon_days=horizon,
            forecast=forecast,
            trend=median_step(values),
            volatility=population_std(values),
            seasonality=summarise_seasonality(values),
            confidence=confidence,
            total_demand=total,
            average_daily_demand=total / horizon,
            per_algorithm=per_algorithm,
            model_metrics=metrics,
            confidence_intervals=confidence_intervals(forecast),
            weights=dict(self.weights),
            generated_from_points=len(values),
        )

    # ------------------------------------------------------------------
    def basic_forecast(
        self,
        series: Sequence[float],
        horizon: int,
        product_id: Optional[str] = None,
    ) -> EnsembleForecast:
        """Flat forecast for histories too short for the ensemble.

        An empty history forecasts zero demand with confidence 0.1; otherwise
        the history mean is repeated with the fallback confidence.
        """

        if horizon <= 0:
            raise ValidationError(f"horizon must be positive (got {horizon})")
        values = list(as_series(series))
        if values:
            confidence = self.config.ensemble.fallback_confidence
        else:
            confidence = EMPTY_HISTORY_CONFIDENCE
        forecast = flat_mean_forecast(values, horizon)
        total = float(np.sum(forecast))
        return EnsembleForecast(
            product_id=product_id,
            horizon_days=horizon,
            forecast=forecast,
            trend=median_step(values),
            volatility=population_std(values),
            seasonality=summarise_seasonality(values),
            confidence=clamp_confidence(confidence),
            total_demand=total,
            average_daily_demand=total / horizon,
            confidence_intervals=confidence_intervals(forecast),
            generated_from_points=len(values),
        )

