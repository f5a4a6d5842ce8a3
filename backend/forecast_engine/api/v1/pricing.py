"""Pricing recommendation routes."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter

from .forecasts import _raise_http
from ...core.errors import ForecastEngineError
from ...models import schemas
from ...services.pricing_service import PricingService

router = APIRouter()

_pricing_service = PricingService()


@router.post("/pricing/dynamic", response_model=List[schemas.DynamicPriceRecommendation])
def dynamic_pricing(request: schemas.DynamicPricingRequest) -> List[schemas.DynamicPriceRecommendation]:
    """Rule-based price adjustments; products that fail are left out of the response."""

    return _pricing_service.generate_dynamic_pricing(request.product_ids, request.market_conditions)


@router.post("/pricing/{product_id}/optimize", response_model=schemas.PriceOptimization)
def optimize_price(
    product_id: str,
    request: Optional[schemas.PriceOptimizationRequest] = None,
) -> schemas.PriceOptimization:
    body = request or schemas.PriceOptimizationRequest()
    try:
        return _pricing_service.optimize_price(
            product_id,
            current_price=body.current_price,
            target_margin=body.target_margin,
            market_data=body.market_data,
        )
    except ForecastEngineError as exc:
        _raise_http(exc, f"price optimisation for product_id={product_id}")
