"""Inventory parameters (safety stock, reorder point, EOQ) derived from demand forecasts."""

from __future__ import annotations

import logging
import math
from typing import List, Optional

from .forecasters.base import clamp_confidence
from .forecasting_service import DemandForecastingService
from .sales_repository import SalesRepository
from ..core.config import EngineConfig, InventoryConfig
from ..core.errors import ForecastEngineError, ValidationError
from ..models.schemas import (
    CostImpact,
    CriticalItem,
    EnsembleForecast,
    FailedItem,
    InventoryAction,
    InventoryOptimization,
    InventoryRecommendations,
    InventorySummary,
    LeadTimeStats,
)

LOGGER = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
def calculate_safety_stock(average_daily_demand: float, lead_time_days: float, service_buffer: float) -> float:
    return max(average_daily_demand, 0.0) * max(lead_time_days, 0.0) * max(service_buffer, 0.0)


def calculate_reorder_point(average_daily_demand: float, lead_time_days: float, safety_stock: float) -> float:
    """Expected lead-time demand plus safety stock."""

    return max(average_daily_demand, 0.0) * max(lead_time_days, 0.0) + safety_stock


def calculate_eoq(total_demand: float, order_cost: float, holding_cost_per_unit: float) -> float:
    """Economic order quantity for the demand of the optimisation horizon.

    Raises
    ------
    ValidationError
        If ``holding_cost_per_unit`` is not positive.
    """

    if holding_cost_per_unit <= 0:
        raise ValidationError(
            f"holding_cost_per_unit must be positive (got {holding_cost_per_unit})",
            details={"holding_cost_per_unit": holding_cost_per_unit},
        )
    value = 2.0 * max(total_demand, 0.0) * max(order_cost, 0.0) / holding_cost_per_unit
    return math.sqrt(value) if value > 0 else 0.0


def lead_time_reliability(stats: LeadTimeStats) -> float:
    """``1 - min(0.5, sigma / mu)`` of the supplier lead time."""

    if stats.average_days <= 0:
        return 1.0
    return 1.0 - min(0.5, math.sqrt(stats.variance) / stats.average_days)


def calculate_cost_impact(
    total_demand: float,
    order_quantity: float,
    safety_stock: float,
    settings: InventoryConfig,
) -> CostImpact:
    """Compare ordering in EOQ lots against one order covering the whole horizon."""

    demand = max(total_demand, 0.0)
    holding = settings.holding_cost_per_unit
    ordering_cost = demand / order_quantity * settings.order_cost if order_quantity > 0 else 0.0
    holding_cost = (order_quantity / 2.0 + safety_stock) * holding
    total_cost = ordering_cost + holding_cost

    baseline_orders = settings.order_cost if demand > 0 else 0.0
    baseline_cost = baseline_orders + (demand / 2.0 + safety_stock) * holding
    return CostImpact(
        ordering_cost=round(ordering_cost, 2),
        holding_cost=round(holding_cost, 2),
        total_cost=round(total_cost, 2),
        baseline_cost=round(baseline_cost, 2),
        savings=round(max(0.0, baseline_cost - total_cost), 2),
    )


def recommend_action(current_stock: float, safety_stock: float, reorder_point: float) -> InventoryAction:
    if current_stock <= safety_stock:
        return InventoryAction.REORDER_NOW
    if current_stock <= reorder_point:
        return InventoryAction.REORDER_SOON
    return InventoryAction.MONITOR


class InventoryOptimizer:
    """Turn a demand forecast into reorder parameters for one product."""

    def __init__(self, settings: Optional[InventoryConfig] = None) -> None:
        self.settings = settings or InventoryConfig()

    def optimize(
        self,
        product_id: str,
        forecast: EnsembleForecast,
        lead_time: LeadTimeStats,
        current_stock: float,
    ) -> InventoryOptimization:
        settings = self.settings
        avg_daily = max(forecast.average_daily_demand, 0.0)

        safety = math.ceil(calculate_safety_stock(avg_daily, lead_time.average_days, settings.service_buffer))
        reorder_point = math.ceil(calculate_reorder_point(avg_daily, lead_time.average_days, safety))
        eoq = math.ceil(calculate_eoq(forecast.total_demand, settings.order_cost, settings.holding_cost_per_unit))

        confidence = clamp_confidence(forecast.confidence * lead_time_reliability(lead_time))
        action = recommend_action(current_stock, safety, reorder_point)
        LOGGER.debug(
            "Inventory %s: stock=%.1f safety=%d rop=%d eoq=%d action=%s",
            product_id,
            current_stock,
            safety,
            reorder_point,
            eoq,
            action.value,
        )
        return InventoryOptimization(
            product_id=product_id,
            current_stock=current_stock,
            reorder_point=reorder_point,
            optimal_order_quantity=eoq,
            safety_stock=safety,
            forecasted_demand=max(forecast.total_demand, 0.0),
            recommended_action=action,
            confidence=confidence,
            cost_impact=calculate_cost_impact(forecast.total_demand, eoq, safety, settings),
        )


# ---------------------------------------------------------------------------
class InventoryService:
    """Fetch forecasts, stock and lead times, then optimise per product."""

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
        self.optimizer = InventoryOptimizer(self.config.inventory)

    def optimize_inventory(self, product_id: str) -> InventoryOptimization:
        horizon = self.config.inventory.optimization_horizon_days
        forecast = self.forecasting_service.forecast_demand(product_id, horizon)
        lead_time = self.repository.get_lead_time_stats(product_id)
        current_stock = self.repository.get_current_stock(product_id)
        return self.optimizer.optimize(product_id, forecast, lead_time, current_stock)

    def generate_inventory_recommendations(self) -> InventoryRecommendations:
        """Optimise every active product.

        Failures are collected per product and never abort the run.
        """

        products = self.repository.list_active_products()
        recommendations: List[InventoryOptimization] = []
        failed: List[FailedItem] = []
        for product in products:
            try:
                recommendations.append(self.optimize_inventory(product.id))
            except ForecastEngineError as exc:
                LOGGER.warning("Inventory optimisation failed for %s: %s", product.id, exc)
                failed.append(FailedItem(product_id=product.id, error=exc.message, error_type=exc.code))
            except Exception as exc:
                LOGGER.warning("Inventory optimisation failed for %s: %s", product.id, exc)
                failed.append(FailedItem(product_id=product.id, error=str(exc), error_type=type(exc).__name__))

        critical = [
            CriticalItem(
                **rec.model_dump(),
                urgency="critical" if rec.current_stock <= rec.safety_stock else "high",
            )
            for rec in recommendations
            if rec.current_stock <= rec.reorder_point
        ]
        threshold = self.config.inventory.savings_threshold
        opportunities = [rec for rec in recommendations if rec.cost_impact.savings > threshold]

        summary = InventorySummary(
            total_products=len(products),
            processed_products=len(recommendations),
            failed_products=len(failed),
            critical_items=len(critical),
            optimization_opportunities=len(opportunities),
            total_potential_savings=round(sum(rec.cost_impact.savings for rec in opportunities), 2),
        )
        LOGGER.info(
            "Inventory recommendations: %d processed, %d critical, %d failed",
            summary.processed_products,
            summary.critical_items,
            summary.failed_products,
        )
        return InventoryRecommendations(
            recommendations=recommendations,
            critical_items=critical,
            optimization_opportunities=opportunities,
            failed=failed,
            summary=summary,
        )
