r"""backend\forecast_engine\services\validation_service.py

Accuracy diagnostics for forecasts.

``ModelValidator.validate`` is the cheap in-sample diagnostic attached to
every ensemble forecast: the first few forecast values of each algorithm are
compared with the last few observations. ``ModelValidator.backtest`` is the
honest variant: it refits on a truncated series and scores against the days
that were held out.
"""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import TYPE_CHECKING, Dict, Mapping, Sequence, Union

from .forecasters.base import mean_absolute_percentage_error, root_mean_squared_error
from ..core.errors import InsufficientDataError, ValidationError
from ..models.schemas import AlgorithmForecast, AlgorithmPerformance, BacktestResult, ValidationReport

if TYPE_CHECKING:  # pragma: no cover
    from .ensemble import EnsembleCombiner

LOGGER = logging.getLogger(__name__)

MAX_HOLDOUT = 7
HOLDOUT_FRACTION = 0.2
DEFAULT_ACCURACY = 0.5


def holdout_size(n_points: int) -> int:
    return min(MAX_HOLDOUT, int(math.floor(HOLDOUT_FRACTION * n_points)))


def score(actual: Sequence[float], predicted: Sequence[float]) -> AlgorithmPerformance:
    mape = mean_absolute_percentage_error(actual, predicted)
    rmse = root_mean_squared_error(actual, predicted)
    return AlgorithmPerformance(mape=mape, rmse=rmse, accuracy=max(0.0, 1.0 - mape / 100.0))


class ModelValidator:
    """Score per-algorithm forecasts against observed demand."""

    def validate(
        self,
        forecasts: Mapping[str, Union[AlgorithmForecast, Sequence[float]]],
        historical: Sequence[float],
    ) -> ValidationReport:
        """Compare each forecast's first ``k`` values with the last ``k`` observations.

        ``k = min(7, floor(0.2 * N))``. With ``k == 0`` nothing is scored and
        the accuracy defaults to 0.5.
        """

        size = holdout_size(len(historical))
        performance: Dict[str, AlgorithmPerformance] = {}
        if size > 0:
            actual = list(historical[-size:])
            for name, result in forecasts.items():
                values = result.forecast if isinstance(result, AlgorithmForecast) else list(result)
                if not values:
                    continue
                performance[name] = score(actual, values[:size])

        if performance:
            accuracy = sum(p.accuracy for p in performance.values()) / len(performance)
        else:
            accuracy = DEFAULT_ACCURACY
        return ValidationReport(accuracy=accuracy, algorithm_performance=performance)

    # ------------------------------------------------------------------
    def backtest(
        self,
        series: Sequence[float],
        dates: Sequence[date],
        holdout_days: int,
        combiner: "EnsembleCombiner",
    ) -> BacktestResult:
        """Refit the ensemble without the last ``holdout_days`` points and score it.

        Raises
        ------
        ValidationError
            If ``holdout_days`` is not positive.
        InsufficientDataError
            If fewer than ``holdout_days + 1`` points are available.
        """

        if holdout_days <= 0:
            raise ValidationError(f"holdout_days must be positive (got {holdout_days})")
        if len(series) != len(dates):
            raise ValidationError("series and dates must have the same length")
        if len(series) <= holdout_days:
            raise InsufficientDataError(
                f"Backtest needs more than {holdout_days} points (got {len(series)})",
                details={"required": holdout_days + 1, "available": len(series)},
            )

        cut = len(series) - holdout_days
        train, actual = list(series[:cut]), list(series[cut:])
        fitted = combiner.combine(train, list(dates[:cut]), holdout_days)

        overall = score(actual, fitted.forecast)
        per_algorithm = {
            name: score(actual, result.forecast) for name, result in fitted.per_algorithm.items()
        }
        LOGGER.info(
            "Backtest over %d held-out days: mape=%.2f rmse=%.3f",
            holdout_days,
            overall.mape,
            overall.rmse,
        )
        return BacktestResult(
            holdout_days=holdout_days,
            dates=list(dates[cut:]),
            actual=actual,
            predicted=list(fitted.forecast),
            mape=overall.mape,
            rmse=overall.rmse,
            accuracy=overall.accuracy,
            algorithm_performance=per_algorithm,
        )
