"""Routes for demand forecasting."""

from __future__ import annotations

import logging
from datetime import date
from typing import NoReturn, Optional

from fastapi import APIRouter, HTTPException, Query, status

from ...core.errors import (
    ForecastEngineError,
    InsufficientDataError,
    ProductNotFoundError,
    UpstreamDataError,
    ValidationError,
)
from ...models import schemas
from ...services.forecasting_service import DemandForecastingService

LOGGER = logging.getLogger(__name__)

router = APIRouter()

_forecast_service = DemandForecastingService()

_STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InsufficientDataError, status.HTTP_400_BAD_REQUEST),
    (ProductNotFoundError, status.HTTP_404_NOT_FOUND),
    (UpstreamDataError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _error_payload(code: str, message: str) -> dict[str, str]:
    """Return a standardised error payload."""

    return {"error": code, "message": message}


def _raise_http(exc: ForecastEngineError, context: str) -> NoReturn:
    """Translate an engine error into the matching ``HTTPException``."""

    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            if status_code >= 500:
                LOGGER.error("%s failed: %s", context, exc)
            else:
                LOGGER.warning("%s rejected: %s", context, exc)
            raise HTTPException(status_code=status_code, detail=_error_payload(exc.code, exc.message)) from exc
    LOGGER.exception("Unexpected engine error during %s", context)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=_error_payload(exc.code, exc.message),
    ) from exc


@router.get("/forecasts/{product_id}", response_model=schemas.EnsembleForecast)
def get_forecast(
    product_id: str,
    horizon_days: Optional[int] = Query(None, description="Days to forecast. Defaults to the configured horizon."),
    as_of: Optional[date] = Query(None, description="First forecast day; history ends the day before."),
) -> schemas.EnsembleForecast:
    """Return the ensemble demand forecast for ``product_id``."""

    try:
        return _forecast_service.forecast_demand(product_id, horizon_days, as_of)
    except ForecastEngineError as exc:
        _raise_http(exc, f"forecast for product_id={product_id}")
    except Exception as exc:  # pragma: no cover
        LOGGER.exception("Unexpected error while forecasting product_id=%s", product_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error_payload("forecast_failed", "An unexpected error occurred while forecasting."),
        ) from exc


@router.post("/forecasts/batch", response_model=schemas.BatchForecastResult)
def batch_forecast(request: schemas.BatchForecastRequest) -> schemas.BatchForecastResult:
    """Forecast several products; per-product failures are reported in ``failed``."""

    try:
        return _forecast_service.batch_forecast_demand(request.product_ids, request.horizon_days, request.as_of)
    except ForecastEngineError as exc:
        _raise_http(exc, "batch forecast")
