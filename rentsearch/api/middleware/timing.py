"""
Request Timing Middleware
Rolling request latency window with percentile statistics.
"""

import logging
import time
from collections import deque
from threading import Lock
from typing import Callable, Dict

import numpy as np
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 300.0


class LatencyTracker:
    """
    Tracks latency of the most recent requests.

    Args:
        window_size: Number of recent requests kept
    """

    def __init__(self, window_size: int = 1000):
        self.window_size = window_size
        self.latencies: deque = deque(maxlen=window_size)
        self.lock = Lock()

    def record(self, latency_ms: float) -> None:
        with self.lock:
            self.latencies.append(latency_ms)

    def get_stats(self) -> Dict[str, float]:
        """
        Get latency statistics.

        Returns:
            Dict with count, p50, p95, p99, mean, min, max (ms)
        """
        with self.lock:
            values = np.fromiter(self.latencies, dtype=np.float64)

        if values.size == 0:
            return {"count": 0, "p50": 0.0, "p95": 0.0, "p99": 0.0, "mean": 0.0, "min": 0.0, "max": 0.0}

        p50, p95, p99 = np.percentile(values, [50, 95, 99])
        return {
            "count": int(values.size),
            "p50": float(p50),
            "p95": float(p95),
            "p99": float(p99),
            "mean": float(values.mean()),
            "min": float(values.min()),
            "max": float(values.max()),
        }

    def reset(self) -> None:
        with self.lock:
            self.latencies.clear()


# Global latency tracker
_latency_tracker = LatencyTracker()


def get_latency_tracker() -> LatencyTracker:
    """Get global latency tracker."""
    return _latency_tracker


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Records request latency and sets X-Response-Time.

    Requests slower than SLOW_REQUEST_MS are logged at WARNING.
    """

    def __init__(self, app, tracker: LatencyTracker = None):
        super().__init__(app)
        self.tracker = tracker or get_latency_tracker()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000

        self.tracker.record(duration_ms)
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        if duration_ms > SLOW_REQUEST_MS:
            logger.warning(f"Slow request: {request.method} {request.url.path} took {duration_ms:.1f}ms")

        return response
