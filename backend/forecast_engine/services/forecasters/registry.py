"""Name -> ``Forecaster`` lookup built from the engine configuration."""

from __future__ import annotations

from typing import Dict, Optional

from .arima import arima
from .base import Forecaster
from .decomposition import seasonal_decomposition
from .prophet_like import prophet
from .random_forest import random_forest
from .regression import linear_regression
from .smoothing import double_exponential_smoothing, exponential_smoothing, holt_winters
from ...core.config import EngineConfig

# Order matters: the ensemble runs algorithms in this sequence
ENSEMBLE_ALGORITHMS = (
    "exponential_smoothing",
    "holt_winters",
    "linear_regression",
    "seasonal_decomposition",
    "random_forest",
    "arima",
    "prophet",
)


def build_forecasters(config: Optional[EngineConfig] = None) -> Dict[str, Forecaster]:
    """Return every available algorithm keyed by name.

    Double exponential smoothing is available on its own but carries no
    ensemble weight.
    """

    config = config or EngineConfig()
    smoothing = config.smoothing
    return {
        "exponential_smoothing": Forecaster(
            "exponential_smoothing", exponential_smoothing, {"alpha": smoothing.alpha}
        ),
        "double_exponential_smoothing": Forecaster(
            "double_exponential_smoothing",
            double_exponential_smoothing,
            {"alpha": smoothing.alpha, "beta": smoothing.beta},
        ),
        "holt_winters": Forecaster(
            "holt_winters",
            holt_winters,
            {"alpha": smoothing.alpha, "beta": smoothing.beta, "gamma": smoothing.gamma},
        ),
        "linear_regression": Forecaster("linear_regression", linear_regression),
        "seasonal_decomposition": Forecaster("seasonal_decomposition", seasonal_decomposition),
        "random_forest": Forecaster("random_forest", random_forest),
        "arima": Forecaster("arima", arima),
        "prophet": Forecaster("prophet", prophet),
    }
