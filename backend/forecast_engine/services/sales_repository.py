r"""backend\forecast_engine\services\sales_repository.py

Boundary between the engine and the store that holds sales and stock data.

The engine only needs a handful of queries, captured by the
``SalesRepository`` protocol. ``CsvSalesRepository`` reads ``sales.csv`` and
``products.csv`` from the data directory (Parquet siblings preferred) and
``InMemorySalesRepository`` backs tests and embedding callers.
"""

from __future__ import annotations

import logging
import os
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Union

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from .io_utils import prefer_parquet, table_exists
from ..core.config import InventoryConfig, load_engine_config
from ..core.errors import ProductNotFoundError, UpstreamDataError
from ..models.schemas import LeadTimeStats, Product, SalesRecord

LOGGER = logging.getLogger(__name__)

SALES_COLUMNS = ["product_id", "quantity", "unit_price", "created_at", "status"]
PRODUCT_COLUMNS = ["id", "name", "stock_in_pieces", "price_per_piece", "is_active"]


class SalesRepository(Protocol):
    def fetch_sales(self, product_id: str, start: date, end: date) -> List[SalesRecord]:
        """Completed sales of ``product_id`` dated in ``[start, end)``."""

    def get_current_stock(self, product_id: str) -> float: ...

    def get_lead_time_stats(self, product_id: str) -> LeadTimeStats: ...

    def list_active_products(self) -> List[Product]: ...

    def get_product(self, product_id: str) -> Product: ...


def utc_day(value: Union[datetime, str, pd.Timestamp]) -> Optional[date]:
    """Return the UTC calendar day of a timestamp, or ``None`` if unparseable."""

    stamp = pd.to_datetime(value, errors="coerce", utc=True)
    if pd.isna(stamp):
        return None
    return stamp.date()


def _in_window(value: Union[datetime, str], start: date, end: date) -> bool:
    day = utc_day(value)
    return day is not None and start <= day < end


def _lead_time_for(product_id: str, inventory: InventoryConfig) -> LeadTimeStats:
    days = inventory.lead_time_overrides.get(product_id, inventory.lead_time_days)
    return LeadTimeStats(average_days=float(days), variance=inventory.lead_time_variance)


# ---------------------------------------------------------------------------


class InMemorySalesRepository:
    """Repository over Python collections."""

    def __init__(
        self,
        sales: Iterable[SalesRecord] = (),
        products: Iterable[Product] = (),
        lead_times: Optional[Mapping[str, LeadTimeStats]] = None,
        default_lead_time: Optional[LeadTimeStats] = None,
    ) -> None:
        self._sales = list(sales)
        self._products: Dict[str, Product] = {product.id: product for product in products}
        self._lead_times = dict(lead_times or {})
        self._default_lead_time = default_lead_time or LeadTimeStats()

    def fetch_sales(self, product_id: str, start: date, end: date) -> List[SalesRecord]:
        return [
            record
            for record in self._sales
            if record.product_id == product_id
            and record.status == "completed"
            and _in_window(record.created_at, start, end)
        ]

    def get_product(self, product_id: str) -> Product:
        try:
            return self._products[product_id]
        except KeyError:
            raise ProductNotFoundError(f"Product '{product_id}' was not found") from None

    def get_current_stock(self, product_id: str) -> float:
        return self.get_product(product_id).stock_in_pieces

    def get_lead_time_stats(self, product_id: str) -> LeadTimeStats:
        return self._lead_times.get(product_id, self._default_lead_time)

    def list_active_products(self) -> List[Product]:
        return [product for product in self._products.values() if product.is_active]


class CsvSalesRepository:
    """Repository over ``sales.csv`` / ``products.csv`` tables.

    Tables are loaded once and cached. Any row violating the data model
    (negative quantity or price, missing id) makes the whole table unusable
    and surfaces as ``UpstreamDataError``.
    """

    def __init__(self, data_root: str = "data", config_root: str = "configs") -> None:
        self.data_root = Path(os.getenv("DATA_DIR", data_root))
        self.config_root = config_root
        self._sales_df: Optional[pd.DataFrame] = None
        self._products: Optional[Dict[str, Product]] = None

    # ------------------------------------------------------------------
    @property
    def sales_path(self) -> Path:
        return self.data_root / "sales.csv"

    @property
    def products_path(self) -> Path:
        return self.data_root / "products.csv"

    def data_files_present(self) -> bool:
        return table_exists(self.sales_path) and table_exists(self.products_path)

    # ------------------------------------------------------------------
    def _read(self, path: Path, columns: List[str], **kwargs: Any) -> pd.DataFrame:
        try:
            frame = prefer_parquet(path, **kwargs)
        except FileNotFoundError as exc:
            raise UpstreamDataError(str(exc), details={"path": str(path)}) from exc
        except (OSError, ValueError, pd.errors.ParserError) as exc:
            raise UpstreamDataError(f"Unable to read {path}: {exc}", details={"path": str(path)}) from exc
        missing = [col for col in columns if col not in frame.columns]
        if missing:
            raise UpstreamDataError(
                f"{path.name} is missing columns {missing}",
                details={"path": str(path), "missing": missing},
            )
        return frame

    def _load_sales(self) -> pd.DataFrame:
        if self._sales_df is None:
            frame = self._read(self.sales_path, SALES_COLUMNS, dtype={"product_id": "string", "status": "string"})
            frame = frame.copy()
            frame["product_id"] = frame["product_id"].astype(str)
            frame["status"] = frame["status"].fillna("").astype(str)
            stamps = pd.to_datetime(frame["created_at"].astype(str), errors="coerce", utc=True, format="mixed")
            frame["day"] = stamps.dt.tz_localize(None).dt.normalize()
            unparsed = int(frame["day"].isna().sum())
            if unparsed:
                LOGGER.debug("%d sales rows in %s have unparseable timestamps", unparsed, self.sales_path)
            self._sales_df = frame
        return self._sales_df

    def _load_products(self) -> Dict[str, Product]:
        if self._products is None:
            frame = self._read(self.products_path, ["id", "stock_in_pieces"], dtype={"id": "string"})
            products: Dict[str, Product] = {}
            for row in frame.to_dict(orient="records"):
                payload = {key: row[key] for key in PRODUCT_COLUMNS if key in row and not pd.isna(row[key])}
                payload["id"] = str(payload.get("id", ""))
                try:
                    product = Product.model_validate(payload)
                except PydanticValidationError as exc:
                    raise UpstreamDataError(
                        f"Corrupted product row for '{payload['id']}'",
                        details={"errors": exc.errors(include_url=False)},
                    ) from exc
                products[product.id] = product
            self._products = products
        return self._products

    # ------------------------------------------------------------------
    def fetch_sales(self, product_id: str, start: date, end: date) -> List[SalesRecord]:
        frame = self._load_sales()
        mask = (
            (frame["product_id"] == str(product_id))
            & (frame["status"] == "completed")
            & (frame["day"] >= pd.Timestamp(start))
            & (frame["day"] < pd.Timestamp(end))
        )
        records: List[SalesRecord] = []
        for row in frame.loc[mask, SALES_COLUMNS].to_dict(orient="records"):
            try:
                records.append(SalesRecord.model_validate(row))
            except PydanticValidationError as exc:
                raise UpstreamDataError(
                    f"Corrupted sales row for product '{product_id}'",
                    details={"errors": exc.errors(include_url=False)},
                ) from exc
        LOGGER.debug("Fetched %d sales rows for %s in [%s, %s)", len(records), product_id, start, end)
        return records

    def get_product(self, product_id: str) -> Product:
        products = self._load_products()
        try:
            return products[str(product_id)]
        except KeyError:
            raise ProductNotFoundError(f"Product '{product_id}' was not found") from None

    def get_current_stock(self, product_id: str) -> float:
        return self.get_product(product_id).stock_in_pieces

    def get_lead_time_stats(self, product_id: str) -> LeadTimeStats:
        return _lead_time_for(str(product_id), load_engine_config(self.config_root).inventory)

    def list_active_products(self) -> List[Product]:
        return [product for product in self._load_products().values() if product.is_active]
