"""
Request Timing Middleware
Per-area latency windows for the marketplace API.
"""

import logging
import time
from collections import defaultdict, deque
from threading import Lock
from typing import Callable, Deque, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# First path segment after /api/v1 that names an area; anything else is "other"
AREAS = ("products", "ledger", "agents", "messages")


def request_area(path: str) -> str:
    """
    Classify a request path by marketplace area.

    /api/v1/products/x -> products, /health -> health, / -> other
    """
    parts = [p for p in path.split("/") if p]
    if parts[:2] == ["api", "v1"] and len(parts) > 2 and parts[2] in AREAS:
        return parts[2]
    if parts and parts[0] in ("health", "status"):
        return "health"
    return "other"


def _nearest_rank(values, percentile: int) -> float:
    rank = min(len(values) - 1, int(len(values) * percentile / 100))
    return values[rank]


class LatencyTracker:
    """
    Rolling latency windows, one per area.

    Agent negotiations and proof-of-work sealing are much slower than
    product reads, so each area keeps its own window.
    """

    def __init__(self, window_size: int = 500):
        self.window_size = window_size
        self._windows: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=window_size))
        self._lock = Lock()

    def record(self, latency_ms: float, area: str = "other") -> None:
        with self._lock:
            self._windows[area].append(latency_ms)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def get_stats(self, area: Optional[str] = None) -> Dict[str, float]:
        """
        Latency percentiles for one area, or all areas combined.

        Returns:
            Dict with count, p50, p95, p99 and max in milliseconds
        """
        with self._lock:
            if area is None:
                values = sorted(v for window in self._windows.values() for v in window)
            else:
                values = sorted(self._windows.get(area, ()))

        if not values:
            return {"count": 0, "p50": 0.0, "p95": 0.0, "p99": 0.0, "max": 0.0}
        return {
            "count": len(values),
            "p50": _nearest_rank(values, 50),
            "p95": _nearest_rank(values, 95),
            "p99": _nearest_rank(values, 99),
            "max": values[-1],
        }

    def by_area(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            areas = sorted(self._windows)
        return {area: self.get_stats(area) for area in areas}


_latency_tracker = LatencyTracker()


def get_latency_tracker() -> LatencyTracker:
    return _latency_tracker


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Records each request's latency under its area and sets X-Response-Time.

    Health checks never count as slow.
    """

    def __init__(
        self, app, tracker: Optional[LatencyTracker] = None, slow_request_ms: float = 300.0
    ):
        super().__init__(app)
        self.tracker = tracker or get_latency_tracker()
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        area = request_area(request.url.path)
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        self.tracker.record(elapsed_ms, area)
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"

        if area != "health" and elapsed_ms > self.slow_request_ms:
            logger.warning(
                f"Slow {area} request: {request.method} {request.url.path} ({elapsed_ms:.0f}ms)",
                extra={
                    "request_id": getattr(request.state, "request_id", None),
                    "area": area,
                    "duration_ms": elapsed_ms,
                },
            )

        return response
