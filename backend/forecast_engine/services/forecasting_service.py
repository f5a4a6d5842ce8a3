r"""backend\forecast_engine\services\forecasting_service.py

Demand forecasting orchestration.

For each product the service fetches a trailing window of completed sales
(``history_days`` days ending the day before ``as_of``), folds it into a
daily series and hands it to the ensemble. Products are independent, so
batches fan out over a bounded thread pool.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
from typing import List, Optional, Sequence, Tuple

from .aggregation import TimeSeriesAggregator, window_start
from .ensemble import EnsembleCombiner
from .sales_repository import CsvSalesRepository, SalesRepository
from .validation_service import ModelValidator
from ..core.config import EngineConfig, Settings, get_settings, load_engine_config
from ..core.errors import ForecastEngineError, ValidationError
from ..models.schemas import (
    BacktestResult,
    BatchForecastResult,
    BatchSummary,
    EnsembleForecast,
    FailedItem,
    ProductForecast,
    TimeSeriesPoint,
)

LOGGER = logging.getLogger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class DemandForecastingService:
    """Forecast daily demand per product from its recent sales history."""

    def __init__(
        self,
        repository: Optional[SalesRepository] = None,
        config: Optional[EngineConfig] = None,
        settings: Optional[Settings] = None,
        combiner: Optional[EnsembleCombiner] = None,
        aggregator: Optional[TimeSeriesAggregator] = None,
        validator: Optional[ModelValidator] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.config = config or load_engine_config(self.settings.config_dir)
        self.repository: SalesRepository = repository or CsvSalesRepository(
            data_root=self.settings.data_dir, config_root=self.settings.config_dir
        )
        self.validator = validator or ModelValidator()
        self.combiner = combiner or EnsembleCombiner(self.config, validator=self.validator)
        self.aggregator = aggregator or TimeSeriesAggregator()

    # ------------------------------------------------------------------
    def _resolve_horizon(self, horizon_days: Optional[int]) -> int:
        bounds = self.config.forecast
        horizon = bounds.default_horizon_days if horizon_days is None else int(horizon_days)
        if horizon <= 0 or horizon > bounds.max_horizon_days:
            raise ValidationError(
                f"horizon_days must be between 1 and {bounds.max_horizon_days} (got {horizon})",
                details={"horizon_days": horizon},
            )
        return horizon

    def history(self, product_id: str, as_of: Optional[date] = None) -> Tuple[List[TimeSeriesPoint], int]:
        """Return the daily history window of ``product_id`` and the number of raw sale records in it."""

        as_of = as_of or utc_today()
        window = self.settings.history_days
        start = window_start(as_of, window)
        records = self.repository.fetch_sales(product_id, start, as_of)
        points = self.aggregator.aggregate(records, start, window)
        return points, len(records)

    # ------------------------------------------------------------------
    def forecast_series(
        self,
        series: Sequence[float],
        dates: Sequence[date],
        horizon_days: Optional[int] = None,
        product_id: Optional[str] = None,
    ) -> EnsembleForecast:
        """Forecast an already aggregated daily series.

        Series shorter than ``ensemble.min_history_points`` get the flat
        basic forecast instead of the full ensemble.
        """

        horizon = self._resolve_horizon(horizon_days)
        if len(series) < self.config.ensemble.min_history_points:
            LOGGER.info(
                "Only %d points for %s; using basic forecast", len(series), product_id or "<series>"
            )
            return self.combiner.basic_forecast(series, horizon, product_id=product_id)
        return self.combiner.combine(series, dates, horizon, product_id=product_id)

    def forecast_demand(
        self,
        product_id: str,
        horizon_days: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> EnsembleForecast:
        """Return the ensemble demand forecast for ``product_id``.

        Parameters
        ----------
        product_id:
            Identifier understood by the sales repository.
        horizon_days:
            Days to forecast; defaults to ``forecast.default_horizon_days``.
        as_of:
            First forecast day. History covers the ``history_days`` days
            before it. Defaults to today (UTC).

        Raises
        ------
        ValidationError
            For a horizon outside ``[1, max_horizon_days]``.
        UpstreamDataError
            When the sales history cannot be fetched.
        """

        horizon = self._resolve_horizon(horizon_days)
        LOGGER.info("Forecasting product %s horizon=%d", product_id, horizon)
        points, record_count = self.history(product_id, as_of)
        if record_count == 0:
            LOGGER.info("No completed sales for %s in the history window", product_id)
            return self.combiner.basic_forecast([], horizon, product_id=product_id)

        series = [point.quantity for point in points]
        dates = [point.date for point in points]
        return self.forecast_series(series, dates, horizon, product_id=product_id)

    # ------------------------------------------------------------------
    def batch_forecast_demand(
        self,
        product_ids: Sequence[str],
        horizon_days: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> BatchForecastResult:
        """Forecast many products concurrently.

        A failure for one product is captured in ``failed`` and never affects
        the others. Results keep the order of ``product_ids``.
        """

        horizon = self._resolve_horizon(horizon_days)
        ids = list(product_ids)
        successful: List[ProductForecast] = []
        failed: List[FailedItem] = []

        if ids:
            workers = max(1, min(self.settings.max_workers, len(ids)))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(self.forecast_demand, pid, horizon, as_of) for pid in ids]
                for pid, future in zip(ids, futures):
                    try:
                        successful.append(ProductForecast(product_id=pid, forecast=future.result()))
                    except ForecastEngineError as exc:
                        LOGGER.warning("Forecast failed for %s: %s", pid, exc)
                        failed.append(FailedItem(product_id=pid, error=exc.message, error_type=exc.code))
                    except Exception as exc:
                        LOGGER.warning("Forecast failed for %s: %s", pid, exc)
                        failed.append(FailedItem(product_id=pid, error=str(exc), error_type=type(exc).__name__))

        total = len(ids)
        success_rate = round(len(successful) / total * 100.0, 2) if total else 0.0
        LOGGER.info("Batch forecast: %d/%d products succeeded", len(successful), total)
        return BatchForecastResult(
            successful=successful,
            failed=failed,
            summary=BatchSummary(
                total_products=total,
                successful=len(successful),
                failed=len(failed),
                success_rate=success_rate,
            ),
        )

    # ------------------------------------------------------------------
    def backtest(
        self,
        product_id: str,
        holdout_days: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> BacktestResult:
        """Score the ensemble on the last ``holdout_days`` of real history."""

        holdout = self.config.forecast.default_backtest_days if holdout_days is None else int(holdout_days)
        points, _ = self.history(product_id, as_of)
        series = [point.quantity for point in points]
        dates = [point.date for point in points]
        result = self.validator.backtest(series, dates, holdout, self.combiner)
        result.product_id = product_id
        return result
