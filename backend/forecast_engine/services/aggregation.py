r"""backend\forecast_engine\services\aggregation.py

Fold raw sale lines into a contiguous daily demand series.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Iterable, List

import pandas as pd

from ..core.errors import ValidationError
from ..models.schemas import SalesRecord, TimeSeriesPoint

LOGGER = logging.getLogger(__name__)

COMPLETED_STATUS = "completed"


class TimeSeriesAggregator:
    """Build one ``TimeSeriesPoint`` per calendar day of a window."""

    def aggregate(
        self,
        records: Iterable[SalesRecord],
        start_date: date,
        window_days: int,
    ) -> List[TimeSeriesPoint]:
        """Aggregate ``records`` over ``[start_date, start_date + window_days)``.

        Days without sales are present with zero quantity. Records with a
        status other than ``completed``, an unparseable ``created_at`` or a
        timestamp outside the window are ignored. Timestamps are bucketed by
        their UTC calendar day.
        """

        if window_days < 0:
            raise ValidationError(f"window_days must be non-negative (got {window_days})")
        if window_days == 0:
            return []

        days = pd.date_range(start=pd.Timestamp(start_date), periods=window_days, freq="D")
        rows = [
            {
                "created_at": record.created_at,
                "quantity": float(record.quantity),
                "unit_price": float(record.unit_price),
            }
            for record in records
            if record.status == COMPLETED_STATUS
        ]

        if rows:
            frame = pd.DataFrame(rows)
            stamps = pd.to_datetime(frame["created_at"].astype(str), errors="coerce", utc=True, format="mixed")
            dropped = int(stamps.isna().sum())
            if dropped:
                LOGGER.debug("Dropped %d sale records with unparseable timestamps", dropped)
            frame["day"] = stamps.dt.tz_localize(None).dt.normalize()
            frame = frame.dropna(subset=["day"])
            frame["revenue"] = frame["quantity"] * frame["unit_price"]
            daily = frame.groupby("day").agg(
                quantity=("quantity", "sum"),
                revenue=("revenue", "sum"),
                transaction_count=("quantity", "size"),
            )
            # Reindexing drops out-of-window days and fills the gaps with zeros
            daily = daily.reindex(days, fill_value=0)
        else:
            daily = pd.DataFrame(
                {"quantity": 0.0, "revenue": 0.0, "transaction_count": 0},
                index=days,
            )

        points = [
            TimeSeriesPoint(
                date=day.date(),
                quantity=float(row.quantity),
                revenue=float(row.revenue),
                transaction_count=int(row.transaction_count),
            )
            for day, row in zip(daily.index, daily.itertuples(index=False))
        ]

        days_with_sales = sum(1 for point in points if point.quantity > 0)
        LOGGER.debug(
            "Aggregated %d days starting %s: %d days with sales, total quantity %.2f",
            len(points),
            start_date.isoformat(),
            days_with_sales,
            sum(point.quantity for point in points),
        )
        return points


def window_start(as_of: date, window_days: int) -> date:
    """Return the first day of a ``window_days`` window ending before ``as_of``."""

    return as_of - timedelta(days=window_days)
