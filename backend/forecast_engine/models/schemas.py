r"""backend\forecast_engine\models\schemas.py

Pydantic models used throughout the engine and the API.

These models serve as both service return types and response serialisation
schemas. Algorithm outputs are frozen so one stage can never mutate the
result of another.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class TimeSeriesPoint(BaseModel):
    """One calendar day of aggregated sales."""

    date: date
    quantity: float = Field(0.0, ge=0.0, description="Units sold on the day")
    revenue: float = Field(0.0, ge=0.0, description="Sum of quantity x unit price")
    transaction_count: int = Field(0, ge=0, description="Number of sale lines folded into the day")


class SalesRecord(BaseModel):
    """A sale line as returned by the sales store."""

    product_id: str
    quantity: float = Field(..., ge=0.0)
    unit_price: float = Field(..., ge=0.0)
    # Raw strings are accepted; the aggregator drops the unparseable ones
    created_at: Union[datetime, str]
    status: str = "completed"


class Product(BaseModel):
    """Minimal product view needed by the inventory and pricing services."""

    id: str
    name: str = ""
    stock_in_pieces: float = Field(0.0, ge=0.0)
    price_per_piece: float = Field(0.0, ge=0.0)
    is_active: bool = True


class LeadTimeStats(BaseModel):
    """Supplier lead time statistics in days."""

    average_days: float = Field(7.0, ge=0.0)
    variance: float = Field(2.0, ge=0.0)


# ---------------------------------------------------------------------------
# Forecast results


class AlgorithmForecast(BaseModel):
    """Output of exactly one algorithm invocation."""

    model_config = ConfigDict(frozen=True)

    algorithm_name: str
    forecast: List[float]
    confidence: float = Field(..., ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Seasonality(BaseModel):
    detected: bool = False
    weekly: float = 0.0
    monthly: float = 0.0
    dominant: Optional[str] = None


class AlgorithmPerformance(BaseModel):
    mape: float
    rmse: float
    accuracy: float


class ModelMetrics(BaseModel):
    mape: float = 0.0
    rmse: float = 0.0
    ensemble_accuracy: float = 0.5
    algorithm_performance: Dict[str, AlgorithmPerformance] = Field(default_factory=dict)


class ConfidenceIntervals(BaseModel):
    lower: List[float] = Field(default_factory=list)
    upper: List[float] = Field(default_factory=list)
    standard_deviation: float = 0.0


class EnsembleForecast(BaseModel):
    """Combined demand forecast for one product."""

    product_id: Optional[str] = None
    horizon_days: int
    forecast: List[float]
    trend: float = 0.0
    volatility: float = 0.0
    seasonality: Seasonality = Field(default_factory=Seasonality)
    confidence: float = Field(..., ge=0.0, le=1.0)
    total_demand: float = 0.0
    average_daily_demand: float = 0.0
    per_algorithm: Dict[str, AlgorithmForecast] = Field(default_factory=dict)
    model_metrics: ModelMetrics = Field(default_factory=ModelMetrics)
    confidence_intervals: ConfidenceIntervals = Field(default_factory=ConfidenceIntervals)
    weights: Dict[str, float] = Field(default_factory=dict)
    generated_from_points: int = 0


class ValidationReport(BaseModel):
    accuracy: float
    algorithm_performance: Dict[str, AlgorithmPerformance] = Field(default_factory=dict)


class BacktestResult(BaseModel):
    """Scores of an ensemble refitted without the most recent days."""

    product_id: Optional[str] = None
    holdout_days: int
    dates: List[date]
    actual: List[float]
    predicted: List[float]
    mape: float
    rmse: float
    accuracy: float
    algorithm_performance: Dict[str, AlgorithmPerformance] = Field(default_factory=dict)


class ProductForecast(BaseModel):
    product_id: str
    forecast: EnsembleForecast


class FailedItem(BaseModel):
    product_id: str
    error: str
    error_type: str = "error"


class BatchSummary(BaseModel):
    total_products: int
    successful: int
    failed: int
    success_rate: float = Field(..., description="Percentage of products forecast successfully")


class BatchForecastResult(BaseModel):
    successful: List[ProductForecast] = Field(default_factory=list)
    failed: List[FailedItem] = Field(default_factory=list)
    summary: BatchSummary


# ---------------------------------------------------------------------------
# Inventory


class InventoryAction(str, Enum):
    REORDER_NOW = "reorder_now"
    REORDER_SOON = "reorder_soon"
    MONITOR = "monitor"


class CostImpact(BaseModel):
    ordering_cost: float = 0.0
    holding_cost: float = 0.0
    total_cost: float = 0.0
    baseline_cost: float = 0.0
    savings: float = 0.0


class InventoryOptimization(BaseModel):
    product_id: str
    current_stock: float
    reorder_point: int = Field(..., ge=0)
    optimal_order_quantity: int = Field(..., ge=0)
    safety_stock: int = Field(..., ge=0)
    forecasted_demand: float = Field(..., ge=0.0)
    recommended_action: InventoryAction
    confidence: float = Field(..., ge=0.0, le=1.0)
    cost_impact: CostImpact = Field(default_factory=CostImpact)


class CriticalItem(InventoryOptimization):
    urgency: str = Field(..., description="'critical' at or below safety stock, otherwise 'high'")


class InventorySummary(BaseModel):
    total_products: int
    processed_products: int
    failed_products: int
    critical_items: int
    optimization_opportunities: int
    total_potential_savings: float


class InventoryRecommendations(BaseModel):
    recommendations: List[InventoryOptimization] = Field(default_factory=list)
    critical_items: List[CriticalItem] = Field(default_factory=list)
    optimization_opportunities: List[InventoryOptimization] = Field(default_factory=list)
    failed: List[FailedItem] = Field(default_factory=list)
    summary: InventorySummary


# ---------------------------------------------------------------------------
# Pricing


class ElasticityEstimate(BaseModel):
    elasticity: float
    confidence: float = Field(..., ge=0.0, le=1.0)
    observations: int = 0


class MarketData(BaseModel):
    competitor_prices: List[float] = Field(default_factory=list)
    market_average: Optional[float] = None


class PriceOptimization(BaseModel):
    current_price: float
    optimal_price: float
    expected_demand_change: float
    confidence: float = Field(..., ge=0.0, le=1.0)


class DynamicPriceRecommendation(BaseModel):
    product_id: str
    current_price: float
    recommended_price: float
    price_change: float = Field(..., description="Percentage change from the current price")
    reasoning: str
    confidence: float
    expected_impact: str


# ---------------------------------------------------------------------------
# API request bodies


class BatchForecastRequest(BaseModel):
    product_ids: List[str] = Field(..., min_length=1)
    horizon_days: Optional[int] = None
    as_of: Optional[date] = None


class PriceOptimizationRequest(BaseModel):
    current_price: Optional[float] = Field(None, description="Defaults to the product's list price")
    target_margin: Optional[float] = None
    market_data: Optional[MarketData] = None


class DynamicPricingRequest(BaseModel):
    product_ids: List[str] = Field(..., min_length=1)
    market_conditions: Dict[str, Any] = Field(default_factory=dict)
