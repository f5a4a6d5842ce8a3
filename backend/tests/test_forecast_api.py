r"""backend/tests/test_forecast_api.py"""

from __future__ import annotations

import sys
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.forecast_engine.core import observability as obs
from backend.forecast_engine.core.config import EngineConfig, Settings
from backend.forecast_engine.core.errors import UpstreamDataError
from backend.forecast_engine.main import app
from backend.forecast_engine.models.schemas import SalesRecord
from backend.forecast_engine.services.forecasting_service import DemandForecastingService
from backend.forecast_engine.services.sales_repository import InMemorySalesRepository

client = TestClient(app)


class _FlakyRepository(InMemorySalesRepository):
    def fetch_sales(self, product_id, start, end):
        if product_id == "BROKEN":
            raise UpstreamDataError("sales store timed out")
        return super().fetch_sales(product_id, start, end)


def _sales(product_id: str, days: int) -> list[SalesRecord]:
    last = datetime(2024, 3, 31, 15, 0, tzinfo=timezone.utc)
    return [
        SalesRecord(
            product_id=product_id,
            quantity=8 + (i % 7),
            unit_price=4.5,
            created_at=last - timedelta(days=i),
        )
        for i in range(days)
    ]


@pytest.fixture(autouse=True)
def _open_middleware(monkeypatch):
    monkeypatch.setattr(obs.TokenAndRateLimitMiddleware, "_token", None, raising=False)
    monkeypatch.setattr(obs.TokenAndRateLimitMiddleware, "_buckets", defaultdict(deque), raising=False)


@pytest.fixture
def service(monkeypatch) -> DemandForecastingService:
    repo = _FlakyRepository(sales=_sales("P1", 45) + _sales("P2", 45))
    stub = DemandForecastingService(repository=repo, config=EngineConfig(), settings=Settings(max_workers=2))
    monkeypatch.setattr("backend.forecast_engine.api.v1.forecasts._forecast_service", stub)
    return stub


def test_forecast_api_returns_ensemble_payload(service) -> None:
    response = client.get("/api/v1/forecasts/P1", params={"horizon_days": 14, "as_of": "2024-04-01"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["product_id"] == "P1"
    assert payload["horizon_days"] == 14
    assert len(payload["forecast"]) == 14
    assert 0.1 <= payload["confidence"] <= 0.95
    assert set(payload["per_algorithm"]) == set(payload["weights"])
    assert len(payload["confidence_intervals"]["lower"]) == 14
    assert response.headers.get("x-request-id")


def test_forecast_api_defaults_horizon(service) -> None:
    response = client.get("/api/v1/forecasts/P1", params={"as_of": "2024-04-01"})

    assert response.status_code == 200
    assert len(response.json()["forecast"]) == 30


def test_forecast_api_rejects_invalid_horizon(service) -> None:
    response = client.get("/api/v1/forecasts/P1", params={"horizon_days": 0})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "invalid_request"


def test_forecast_api_maps_upstream_failures(service) -> None:
    response = client.get("/api/v1/forecasts/BROKEN", params={"horizon_days": 7})

    assert response.status_code == 503
    assert response.json()["detail"] == {"error": "data_unavailable", "message": "sales store timed out"}


def test_batch_forecast_api(service) -> None:
    response = client.post(
        "/api/v1/forecasts/batch",
        json={"product_ids": ["P1", "BROKEN", "P2"], "horizon_days": 5, "as_of": "2024-04-01"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert [item["product_id"] for item in payload["successful"]] == ["P1", "P2"]
    assert payload["failed"][0]["product_id"] == "BROKEN"
    assert payload["summary"]["success_rate"] == pytest.approx(66.67)


def test_batch_forecast_api_requires_products(service) -> None:
    response = client.post("/api/v1/forecasts/batch", json={"product_ids": []})
    assert response.status_code == 422
