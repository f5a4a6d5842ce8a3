r"""backend\forecast_engine\api\v1\backtest.py

Hold-out backtest of the forecasting ensemble."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Query

from .forecasts import _raise_http
from ...core.errors import ForecastEngineError
from ...models import schemas
from ...services.forecasting_service import DemandForecastingService

router = APIRouter()

_forecast_service = DemandForecastingService()


@router.get("/backtest/{product_id}", response_model=schemas.BacktestResult)
def backtest(
    product_id: str,
    holdout_days: Optional[int] = Query(None, ge=1, le=60, description="Most recent days held out for scoring."),
    as_of: Optional[date] = Query(None, description="Day after the last observed day."),
) -> schemas.BacktestResult:
    """Refit without the last ``holdout_days`` days and score against them."""

    try:
        return _forecast_service.backtest(product_id, holdout_days, as_of)
    except ForecastEngineError as exc:
        _raise_http(exc, f"backtest for product_id={product_id}")
