"""Inventory optimisation routes."""

from __future__ import annotations

from fastapi import APIRouter

from .forecasts import _raise_http
from ...core.errors import ForecastEngineError
from ...models import schemas
from ...services.inventory_service import InventoryService

router = APIRouter()

_inventory_service = InventoryService()


@router.get("/inventory/recommendations", response_model=schemas.InventoryRecommendations)
def inventory_recommendations() -> schemas.InventoryRecommendations:
    """Optimise every active product and flag critical items."""

    try:
        return _inventory_service.generate_inventory_recommendations()
    except ForecastEngineError as exc:
        _raise_http(exc, "inventory recommendations")


@router.get("/inventory/{product_id}/optimization", response_model=schemas.InventoryOptimization)
def optimize_inventory(product_id: str) -> schemas.InventoryOptimization:
    try:
        return _inventory_service.optimize_inventory(product_id)
    except ForecastEngineError as exc:
        _raise_http(exc, f"inventory optimisation for product_id={product_id}")
