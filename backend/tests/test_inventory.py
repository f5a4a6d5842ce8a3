r"""backend/tests/test_inventory.py"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.forecast_engine.core.config import EngineConfig, InventoryConfig
from backend.forecast_engine.core.errors import UpstreamDataError, ValidationError
from backend.forecast_engine.models.schemas import EnsembleForecast, InventoryAction, LeadTimeStats, Product
from backend.forecast_engine.services.inventory_service import (
    InventoryOptimizer,
    InventoryService,
    calculate_cost_impact,
    calculate_eoq,
    calculate_reorder_point,
    calculate_safety_stock,
    lead_time_reliability,
    recommend_action,
)
from backend.forecast_engine.services.sales_repository import InMemorySalesRepository


def _forecast(daily: float, days: int = 30, confidence: float = 0.8) -> EnsembleForecast:
    return EnsembleForecast(
        horizon_days=days,
        forecast=[daily] * days,
        confidence=confidence,
        total_demand=daily * days,
        average_daily_demand=daily,
    )


class _StubForecasts:
    """Stands in for ``DemandForecastingService`` with fixed daily demand."""

    def __init__(self, daily: float = 10.0, failing: tuple = ()) -> None:
        self.daily = daily
        self.failing = failing
        self.calls = []

    def forecast_demand(self, product_id, horizon_days=None, as_of=None):
        self.calls.append((product_id, horizon_days))
        if product_id in self.failing:
            raise UpstreamDataError("sales store unavailable")
        return _forecast(self.daily, horizon_days or 30)


def test_formulas() -> None:
    assert calculate_safety_stock(10, 7, 1.5) == pytest.approx(105.0)
    assert calculate_reorder_point(10, 7, 105) == pytest.approx(175.0)
    assert calculate_eoq(300, 50, 2) == pytest.approx(122.474, rel=1e-4)
    assert calculate_eoq(0, 50, 2) == 0.0


def test_eoq_rejects_non_positive_holding_cost() -> None:
    with pytest.raises(ValidationError):
        calculate_eoq(300, 50, 0)


def test_lead_time_reliability() -> None:
    assert lead_time_reliability(LeadTimeStats(average_days=7, variance=4)) == pytest.approx(1 - 2 / 7)
    assert lead_time_reliability(LeadTimeStats(average_days=1, variance=9)) == pytest.approx(0.5)
    assert lead_time_reliability(LeadTimeStats(average_days=0, variance=1)) == 1.0


@pytest.mark.parametrize(
    "stock, expected",
    [
        (50, InventoryAction.REORDER_NOW),
        (105, InventoryAction.REORDER_NOW),
        (150, InventoryAction.REORDER_SOON),
        (175, InventoryAction.REORDER_SOON),
        (200, InventoryAction.MONITOR),
    ],
)
def test_recommend_action(stock: float, expected: InventoryAction) -> None:
    assert recommend_action(stock, 105, 175) == expected


def test_optimizer_rounds_up_and_prices_the_policy() -> None:
    optimizer = InventoryOptimizer(InventoryConfig())
    result = optimizer.optimize("P1", _forecast(10.0), LeadTimeStats(average_days=7, variance=4), 150)

    assert result.safety_stock == 105
    assert result.reorder_point == 175
    assert result.optimal_order_quantity == 123
    assert result.reorder_point >= result.safety_stock
    assert result.forecasted_demand == pytest.approx(300.0)
    assert result.recommended_action == InventoryAction.REORDER_SOON
    assert result.confidence == pytest.approx(0.8 * (1 - 2 / 7))

    cost = result.cost_impact
    assert cost.ordering_cost == pytest.approx(121.95)
    assert cost.holding_cost == pytest.approx(333.0)
    assert cost.baseline_cost == pytest.approx(560.0)
    assert cost.savings == pytest.approx(105.05)


def test_zero_demand_gives_zero_parameters() -> None:
    result = InventoryOptimizer().optimize("P1", _forecast(0.0), LeadTimeStats(), 3)

    assert result.safety_stock == 0
    assert result.reorder_point == 0
    assert result.optimal_order_quantity == 0
    assert result.cost_impact.savings == 0.0
    assert result.recommended_action == InventoryAction.MONITOR


def test_cost_impact_never_reports_negative_savings() -> None:
    cost = calculate_cost_impact(10, 100, 0, InventoryConfig())
    assert cost.savings == 0.0
    assert cost.total_cost > cost.baseline_cost


def _service(failing: tuple = ()) -> tuple[InventoryService, _StubForecasts]:
    repo = InMemorySalesRepository(
        products=[
            Product(id="A", stock_in_pieces=50),
            Product(id="B", stock_in_pieces=150),
            Product(id="C", stock_in_pieces=500),
            Product(id="D", stock_in_pieces=10),
            Product(id="OLD", stock_in_pieces=0, is_active=False),
        ],
        default_lead_time=LeadTimeStats(average_days=7, variance=4),
    )
    forecasts = _StubForecasts(failing=failing)
    service = InventoryService(forecasting_service=forecasts, repository=repo, config=EngineConfig())
    return service, forecasts


def test_optimize_inventory_uses_optimisation_horizon() -> None:
    service, forecasts = _service()

    result = service.optimize_inventory("A")

    assert forecasts.calls == [("A", 30)]
    assert result.recommended_action == InventoryAction.REORDER_NOW


def test_recommendations_flag_critical_items_and_failures() -> None:
    service, _ = _service(failing=("D",))

    report = service.generate_inventory_recommendations()

    assert [rec.product_id for rec in report.recommendations] == ["A", "B", "C"]
    assert {item.product_id: item.urgency for item in report.critical_items} == {"A": "critical", "B": "high"}
    assert [item.product_id for item in report.failed] == ["D"]
    assert report.failed[0].error_type == "data_unavailable"
    assert len(report.optimization_opportunities) == 3

    summary = report.summary
    assert summary.total_products == 4
    assert summary.processed_products == 3
    assert summary.failed_products == 1
    assert summary.critical_items == 2
    assert summary.total_potential_savings == pytest.approx(315.15)
