from __future__ import annotations

import sys
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.forecast_engine.core.errors import ValidationError
from backend.forecast_engine.models.schemas import SalesRecord
from backend.forecast_engine.services.aggregation import TimeSeriesAggregator, window_start


def _sale(created_at, quantity=1.0, price=2.0, status="completed", product_id="P1") -> SalesRecord:
    return SalesRecord(
        product_id=product_id,
        quantity=quantity,
        unit_price=price,
        created_at=created_at,
        status=status,
    )


def test_window_is_contiguous_and_zero_filled() -> None:
    points = TimeSeriesAggregator().aggregate([], date(2024, 3, 1), 5)

    assert [p.date for p in points] == [date(2024, 3, d) for d in range(1, 6)]
    assert all(p.quantity == 0 and p.revenue == 0 and p.transaction_count == 0 for p in points)


def test_records_fold_into_their_day() -> None:
    records = [
        _sale(datetime(2024, 3, 2, 9, 0, tzinfo=timezone.utc), quantity=2, price=5.0),
        _sale(datetime(2024, 3, 2, 17, 30, tzinfo=timezone.utc), quantity=3, price=4.0),
        _sale("2024-03-04T12:00:00Z", quantity=1, price=10.0),
    ]

    points = TimeSeriesAggregator().aggregate(records, date(2024, 3, 1), 5)
    by_day = {p.date: p for p in points}

    assert by_day[date(2024, 3, 2)].quantity == pytest.approx(5.0)
    assert by_day[date(2024, 3, 2)].revenue == pytest.approx(22.0)
    assert by_day[date(2024, 3, 2)].transaction_count == 2
    assert by_day[date(2024, 3, 4)].quantity == pytest.approx(1.0)
    assert by_day[date(2024, 3, 3)].quantity == 0


def test_ignores_out_of_window_non_completed_and_unparseable() -> None:
    records = [
        _sale("2024-02-28T10:00:00Z", quantity=7),
        _sale("2024-03-06T00:00:00Z", quantity=7),
        _sale("2024-03-02T10:00:00Z", quantity=4, status="refunded"),
        _sale("not a timestamp", quantity=9),
        _sale("2024-03-03T10:00:00Z", quantity=1),
    ]

    points = TimeSeriesAggregator().aggregate(records, date(2024, 3, 1), 5)

    assert sum(p.quantity for p in points) == pytest.approx(1.0)
    assert sum(p.transaction_count for p in points) == 1


def test_buckets_by_utc_calendar_day() -> None:
    # 23:30 at UTC-5 is already the next day in UTC
    records = [_sale("2024-03-01T23:30:00-05:00", quantity=3)]

    points = TimeSeriesAggregator().aggregate(records, date(2024, 3, 1), 3)

    assert points[0].quantity == 0
    assert points[1].quantity == pytest.approx(3.0)


def test_zero_window_and_negative_window() -> None:
    aggregator = TimeSeriesAggregator()
    assert aggregator.aggregate([_sale("2024-03-01T10:00:00Z")], date(2024, 3, 1), 0) == []
    with pytest.raises(ValidationError):
        aggregator.aggregate([], date(2024, 3, 1), -1)


def test_window_start_excludes_as_of_day() -> None:
    assert window_start(date(2024, 3, 31), 30) == date(2024, 3, 1)
