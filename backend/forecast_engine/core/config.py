"""
Application configuration utilities.

This module defines the ``Settings`` class used throughout the service for
environment variables and the ``EngineConfig`` model holding the business
parameters of the forecasting engine (smoothing constants, ensemble weights,
inventory costs, pricing defaults). Engine parameters are read from
``configs/settings.yaml``; anything missing falls back to the defaults below.
"""

from __future__ import annotations

import math
import os
from functools import lru_cache
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ENSEMBLE_WEIGHTS: Dict[str, float] = {
    "exponential_smoothing": 0.20,
    "holt_winters": 0.20,
    "linear_regression": 0.15,
    "seasonal_decomposition": 0.10,
    "random_forest": 0.15,
    "arima": 0.10,
    "prophet": 0.10,
}


class Settings(BaseSettings):
    """Configuration loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # API server configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Optional bearer token protecting the HTTP API
    api_token: Optional[str] = None
    rate_limit_per_min: int = 60

    data_dir: str = "data"
    config_dir: str = "configs"

    # Days of sales history fed into every forecast
    history_days: int = Field(90, ge=1)
    max_workers: int = Field(default_factory=lambda: min(8, os.cpu_count() or 1), ge=1)


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """Return a cached instance of ``Settings``.

    Using a cache ensures that environment variables are only read once.
    """
    return Settings()


def load_yaml(file_path: str) -> dict:
    """Load a YAML file from the given path and return its contents.

    If the file does not exist, an empty dictionary is returned.
    """
    if not os.path.exists(file_path):
        return {}
    with open(file_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


# ---------------------------------------------------------------------------
# Engine parameters


class SmoothingConfig(BaseModel):
    alpha: float = Field(0.3, gt=0.0, le=1.0)
    beta: float = Field(0.3, gt=0.0, le=1.0)
    gamma: float = Field(0.3, gt=0.0, le=1.0)


class EnsembleConfig(BaseModel):
    weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_ENSEMBLE_WEIGHTS))
    fallback_confidence: float = Field(0.3, ge=0.0, le=1.0)
    # Below this many daily points the full ensemble is skipped
    min_history_points: int = Field(7, ge=1)

    @field_validator("weights")
    @classmethod
    def _weights_sum_to_one(cls, value: Dict[str, float]) -> Dict[str, float]:
        unknown = set(value) - set(DEFAULT_ENSEMBLE_WEIGHTS)
        if unknown:
            raise ValueError(f"unknown ensemble algorithms: {sorted(unknown)}")
        if any(weight < 0 for weight in value.values()):
            raise ValueError("ensemble weights must be non-negative")
        total = math.fsum(value.values())
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"ensemble weights must sum to 1.0 (got {total})")
        return value


class InventoryConfig(BaseModel):
    # Placeholder business constants; override per deployment in settings.yaml
    order_cost: float = Field(50.0, ge=0.0)
    holding_cost_per_unit: float = Field(2.0, gt=0.0)
    service_buffer: float = Field(1.5, ge=0.0)
    lead_time_days: float = Field(7.0, ge=0.0)
    lead_time_variance: float = Field(2.0, ge=0.0)
    lead_time_overrides: Dict[str, float] = Field(default_factory=dict)
    savings_threshold: float = Field(100.0, ge=0.0)
    optimization_horizon_days: int = Field(30, ge=1)


class PricingConfig(BaseModel):
    default_elasticity: float = -1.2
    default_elasticity_confidence: float = Field(0.7, ge=0.0, le=1.0)
    default_target_margin: float = 0.3
    low_stock_threshold: float = 10.0
    high_stock_threshold: float = 100.0
    # Daily demand change (units/day) above which the trend counts as moving
    trend_threshold: float = Field(0.1, ge=0.0)


class ForecastConfig(BaseModel):
    default_horizon_days: int = Field(30, ge=1)
    max_horizon_days: int = Field(365, ge=1)
    default_backtest_days: int = Field(7, ge=1)


class EngineConfig(BaseModel):
    """All tunable parameters of the forecasting engine."""

    smoothing: SmoothingConfig = Field(default_factory=SmoothingConfig)
    ensemble: EnsembleConfig = Field(default_factory=EnsembleConfig)
    inventory: InventoryConfig = Field(default_factory=InventoryConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    forecast: ForecastConfig = Field(default_factory=ForecastConfig)


@lru_cache(maxsize=8)
def load_engine_config(config_root: str = "configs") -> EngineConfig:
    """Return the engine configuration stored under ``config_root``.

    Unknown top-level keys are ignored so the same ``settings.yaml`` can hold
    deployment notes alongside the engine parameters.
    """

    settings_path = os.path.join(config_root, "settings.yaml")
    raw = load_yaml(settings_path)
    if not isinstance(raw, dict):
        raise ValueError(f"Settings at {settings_path} are not a mapping")
    known = {key: value for key, value in raw.items() if key in EngineConfig.model_fields and value is not None}
    return EngineConfig.model_validate(known)
