r"""backend\forecast_engine\services\pricing_service.py

Lightweight price recommendations.

``PriceOptimizer`` applies a deterministic margin/elasticity formula and a
rule-based dynamic adjustment from stock level and demand trend. It does not
search the price space.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .forecasting_service import DemandForecastingService, utc_today
from .aggregation import window_start
from .forecasters.base import clamp_confidence
from .sales_repository import SalesRepository
from ..core.config import EngineConfig, PricingConfig
from ..core.errors import ValidationError
from ..models.schemas import (
    DynamicPriceRecommendation,
    ElasticityEstimate,
    MarketData,
    PriceOptimization,
    SalesRecord,
)

LOGGER = logging.getLogger(__name__)

INCREASING = "increasing"
DECREASING = "decreasing"
STABLE = "stable"


def classify_trend(trend: float, threshold: float) -> str:
    if trend > threshold:
        return INCREASING
    if trend < -threshold:
        return DECREASING
    return STABLE


def estimate_demand_elasticity(
    records: Iterable[SalesRecord],
    default_elasticity: float = -1.2,
    default_confidence: float = 0.7,
) -> ElasticityEstimate:
    """Log-log slope of daily quantity against the day's average unit price.

    Needs at least two distinct positive prices; otherwise the configured
    default is returned with zero observations.
    """

    default = ElasticityEstimate(elasticity=default_elasticity, confidence=default_confidence, observations=0)
    rows = [
        {"created_at": r.created_at, "quantity": r.quantity, "unit_price": r.unit_price}
        for r in records
        if r.status == "completed" and r.quantity > 0 and r.unit_price > 0
    ]
    if not rows:
        return default

    frame = pd.DataFrame(rows)
    stamps = pd.to_datetime(frame["created_at"].astype(str), errors="coerce", utc=True, format="mixed")
    frame["day"] = stamps.dt.normalize()
    frame = frame.dropna(subset=["day"])
    frame["revenue"] = frame["quantity"] * frame["unit_price"]
    daily = frame.groupby("day").agg(quantity=("quantity", "sum"), revenue=("revenue", "sum"))
    daily["price"] = daily["revenue"] / daily["quantity"]

    if daily["price"].round(6).nunique() < 2:
        return default

    log_price = np.log(daily["price"].to_numpy(dtype=float))
    log_quantity = np.log(daily["quantity"].to_numpy(dtype=float))
    slope, intercept = np.polyfit(log_price, log_quantity, 1)
    if not math.isfinite(slope):
        return default

    fitted = intercept + slope * log_price
    sst = float(np.sum((log_quantity - log_quantity.mean()) ** 2))
    r_squared = 1.0 - float(np.sum((log_quantity - fitted) ** 2)) / sst if sst > 0 else 0.0
    return ElasticityEstimate(
        elasticity=float(slope),
        confidence=clamp_confidence(r_squared),
        observations=int(len(daily)),
    )


class PriceOptimizer:
    def __init__(self, settings: Optional[PricingConfig] = None) -> None:
        self.settings = settings or PricingConfig()

    def optimize_price(
        self,
        current_price: float,
        target_margin: Optional[float] = None,
        elasticity: Optional[ElasticityEstimate] = None,
        market_data: Optional[MarketData] = None,
    ) -> PriceOptimization:
        """``current * (1 + margin) * (1 + elasticity * 0.1)`` rounded to cents.

        ``market_data`` is accepted for callers that collect competitor
        prices; it does not change the result.
        """

        if current_price <= 0:
            raise ValidationError(f"current_price must be positive (got {current_price})")
        margin = self.settings.default_target_margin if target_margin is None else target_margin
        estimate = elasticity or ElasticityEstimate(
            elasticity=self.settings.default_elasticity,
            confidence=self.settings.default_elasticity_confidence,
        )
        if market_data is not None and market_data.market_average is not None:
            LOGGER.debug("Market average %.2f supplied for price optimisation", market_data.market_average)

        optimal = current_price * (1.0 + margin) * (1.0 + estimate.elasticity * 0.1)
        return PriceOptimization(
            current_price=current_price,
            optimal_price=round(optimal, 2),
            expected_demand_change=estimate.elasticity * 0.1,
            confidence=estimate.confidence,
        )

    def calculate_dynamic_price(
        self,
        product_id: str,
        current_price: float,
        stock_level: float,
        demand_trend: str,
    ) -> DynamicPriceRecommendation:
        if current_price <= 0:
            raise ValidationError(f"current_price must be positive (got {current_price})")
        settings = self.settings
        multiplier = 1.0
        reasoning: List[str] = []

        if stock_level < settings.low_stock_threshold:
            multiplier *= 1.1
            reasoning.append("Low stock - increase price")
        elif stock_level > settings.high_stock_threshold:
            multiplier *= 0.95
            reasoning.append("High stock - reduce price")

        if demand_trend == INCREASING:
            multiplier *= 1.05
            reasoning.append("Increasing demand")
        elif demand_trend == DECREASING:
            multiplier *= 0.95
            reasoning.append("Decreasing demand")

        new_price = current_price * multiplier
        change = (new_price - current_price) / current_price * 100.0
        if change > 0:
            impact = "Expected increase in revenue"
        elif change < 0:
            impact = "Expected decrease in revenue"
        else:
            impact = "No change in revenue expected"

        return DynamicPriceRecommendation(
            product_id=product_id,
            current_price=current_price,
            recommended_price=round(new_price, 2),
            price_change=round(change, 2),
            reasoning=", ".join(reasoning) or "No adjustment needed",
            confidence=0.75,
            expected_impact=impact,
        )


class PricingService:
    """Product-level pricing on top of the sales repository and forecasts."""

    def __init__(
        self,
        forecasting_service: Optional[DemandForecastingService] = None,
        repository: Optional[SalesRepository] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.forecasting_service = forecasting_service or DemandForecastingService(
            repository=repository, config=config
        )
        self.repository = repository or self.forecasting_service.repository
        self.config = config or self.forecasting_service.config
        self.optimizer = PriceOptimizer(self.config.pricing)

    def demand_elasticity(self, product_id: str) -> ElasticityEstimate:
        today = utc_today()
        days = self.forecasting_service.settings.history_days
        records = self.repository.fetch_sales(product_id, window_start(today, days), today)
        pricing = self.config.pricing
        return estimate_demand_elasticity(
            records, pricing.default_elasticity, pricing.default_elasticity_confidence
        )

    def optimize_price(
        self,
        product_id: str,
        current_price: Optional[float] = None,
        target_margin: Optional[float] = None,
        market_data: Optional[MarketData] = None,
    ) -> PriceOptimization:
        LOGGER.info("Optimising price for product %s", product_id)
        if current_price is None:
            current_price = self.repository.get_product(product_id).price_per_piece
        elasticity = self.demand_elasticity(product_id)
        return self.optimizer.optimize_price(current_price, target_margin, elasticity, market_data)

    def generate_dynamic_pricing(
        self,
        product_ids: Sequence[str],
        market_conditions: Optional[Mapping[str, Any]] = None,
    ) -> List[DynamicPriceRecommendation]:
        """Recommend a price per product; products that fail are logged and skipped."""

        conditions: Dict[str, Any] = dict(market_conditions or {})
        LOGGER.info(
            "Dynamic pricing for %d products (competition=%s, market trend=%s)",
            len(product_ids),
            conditions.get("competition", "medium"),
            conditions.get("trend", STABLE),
        )
        threshold = self.config.pricing.trend_threshold
        recommendations: List[DynamicPriceRecommendation] = []
        for product_id in product_ids:
            try:
                product = self.repository.get_product(product_id)
                forecast = self.forecasting_service.forecast_demand(product_id)
                recommendations.append(
                    self.optimizer.calculate_dynamic_price(
                        product_id,
                        product.price_per_piece,
                        product.stock_in_pieces,
                        classify_trend(forecast.trend, threshold),
                    )
                )
            except Exception as exc:
                LOGGER.warning("Failed to generate pricing for product %s: %s", product_id, exc)
        return recommendations
