r"""backend\forecast_engine\api\v1\health.py

Health check endpoints.

Orchestrators and load balancers call `/api/v1/health` to verify that the
service is running. The payload also reports whether the sales tables are
present so a misconfigured data directory shows up before the first
forecast fails.
"""

from fastapi import APIRouter

from ...core.config import get_settings
from ...services.sales_repository import CsvSalesRepository

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, object]:
    """Return a basic health indicator."""

    settings = get_settings()
    repository = CsvSalesRepository(data_root=settings.data_dir, config_root=settings.config_dir)
    return {"status": "ok", "data_available": repository.data_files_present()}
