from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import pandas as pd


def parquet_sibling(csv_path: str | Path) -> Path:
    return Path(csv_path).with_suffix(".parquet")


def table_exists(csv_path: str | Path) -> bool:
    """Return ``True`` when either the CSV or its Parquet sibling is present."""

    csv_path = Path(csv_path)
    return csv_path.exists() or parquet_sibling(csv_path).exists()


def prefer_parquet(
    csv_path: str | Path,
    *,
    columns: Optional[Iterable[str]] = None,
    dtype: Optional[Dict[str, Any]] = None,
) -> pd.DataFrame:
    """Load a table preferring ``<name>.parquet`` over ``<name>.csv``.

    Parameters
    ----------
    csv_path:
        Location of the canonical CSV file. The Parquet sibling is looked up
        next to it.
    columns:
        Optional subset of columns. Forwarded to the Parquet reader and mapped
        to ``usecols`` for CSV reads.
    dtype:
        Optional dtype mapping applied to the CSV fallback.

    Raises
    ------
    FileNotFoundError
        If neither file exists.
    """

    csv_path = Path(csv_path)
    pq_path = parquet_sibling(csv_path)
    column_list = list(columns) if columns is not None else None

    if pq_path.exists():
        frame = pd.read_parquet(pq_path, columns=column_list)
    elif csv_path.exists():
        csv_kwargs: Dict[str, Any] = {"memory_map": True}
        if column_list is not None:
            csv_kwargs["usecols"] = column_list
        if dtype is not None:
            csv_kwargs["dtype"] = dtype
        frame = pd.read_csv(csv_path, **csv_kwargs)
    else:
        raise FileNotFoundError(f"Neither {csv_path} nor {pq_path} exists")
    return frame
