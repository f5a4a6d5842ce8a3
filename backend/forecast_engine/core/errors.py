r"""backend\forecast_engine\core\errors.py

Error taxonomy shared by the forecasting engine and its HTTP routes.

Algorithm-level errors (``InsufficientDataError`` and
``NumericInstabilityError``) are recovered locally by the ensemble.
``UpstreamDataError`` propagates to the caller because no forecast can be
produced without sales data. ``ValidationError`` rejects malformed input
before any computation starts.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ForecastEngineError(Exception):
    """Base exception for the forecasting engine."""

    default_message = "An error occurred in the forecasting engine"
    default_code = "engine_error"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Return the error as a JSON-friendly payload."""

        payload: Dict[str, Any] = {
            "error": self.code,
            "type": self.__class__.__name__,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class InsufficientDataError(ForecastEngineError):
    """Raised when an algorithm cannot run on a series this short."""

    default_message = "Insufficient data for forecasting"
    default_code = "insufficient_data"


class NumericInstabilityError(ForecastEngineError):
    """Raised when a fit produces non-finite or degenerate values."""

    default_message = "Numerical instability while fitting the model"
    default_code = "numeric_instability"


class UpstreamDataError(ForecastEngineError):
    """Raised when sales or stock data cannot be fetched or is corrupted."""

    default_message = "Unable to fetch upstream sales data"
    default_code = "data_unavailable"


class ValidationError(ForecastEngineError):
    """Raised for malformed inputs such as a non-positive horizon."""

    default_message = "Invalid request"
    default_code = "invalid_request"


class ProductNotFoundError(ForecastEngineError):
    """Raised when the sales store has no record of the requested product."""

    default_message = "Product not found"
    default_code = "product_not_found"
