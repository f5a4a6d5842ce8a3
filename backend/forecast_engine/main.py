r"""backend\forecast_engine\main.py

Main entrypoint for the FastAPI application.

The API exposes demand forecasts, hold-out backtests, inventory
optimisation and pricing recommendations per product. A health endpoint is
provided for readiness/liveness checks and `/metrics` serves Prometheus
metrics. Configuration is read from environment variables and
`configs/settings.yaml`.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

# Load .env from repo root before settings are first read
BASE_DIR = Path(__file__).resolve().parents[2]
load_dotenv(BASE_DIR / ".env")

from .api.v1 import backtest, forecasts, health, inventory, pricing  # noqa: E402
from .core.config import get_settings  # noqa: E402
from .core.observability import TokenAndRateLimitMiddleware, metrics_endpoint  # noqa: E402

settings = get_settings()
logging.getLogger(__name__).info(
    "Forecast engine starting: data_dir=%s config_dir=%s history_days=%d max_workers=%d",
    settings.data_dir,
    settings.config_dir,
    settings.history_days,
    settings.max_workers,
)

app = FastAPI(title="Demand Forecast Engine API", version="0.1.0")

origins_env = os.getenv("CORS_ORIGINS", "")
origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,  # In production specify the dashboard domain(s)
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TokenAndRateLimitMiddleware)

# Include versioned routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(forecasts.router, prefix="/api/v1")
app.include_router(backtest.router, prefix="/api/v1")
app.include_router(inventory.router, prefix="/api/v1")
app.include_router(pricing.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
def _root() -> RedirectResponse:
    """Redirect the root path to the interactive docs."""

    return RedirectResponse(url="/docs")


@app.get("/metrics", include_in_schema=False)
async def _metrics() -> Response:
    """Expose Prometheus metrics."""

    return metrics_endpoint()
