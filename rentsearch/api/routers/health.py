"""
Health Check Endpoints
Endpoints for health checks and status monitoring.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from ...caching.cache_service import CacheService
from ...config import SearchSettings, get_settings
from ...search.service import SearchService
from ..dependencies import get_cache_service, get_search_service
from ..middleware.timing import get_latency_tracker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> Dict[str, str]:
    """
    Basic health check.

    Returns:
        Simple health status
    """
    return {"status": "healthy", "timestamp": _now()}


@router.get("/status", status_code=status.HTTP_200_OK)
async def status_check(
    settings: SearchSettings = Depends(get_settings),
    search_service: SearchService = Depends(get_search_service),
    cache_service: CacheService = Depends(get_cache_service),
) -> Dict[str, Any]:
    """
    Detailed status check.

    Checks status of:
    - Search backend (relational store or index)
    - Redis cache
    - Request latency

    Returns:
        Detailed status information
    """
    status_info: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": _now(),
        "version": settings.version,
        "components": {},
    }

    backend_healthy = await search_service.backend.ping()
    status_info["components"]["backend"] = {
        "mode": search_service.backend.mode.value,
        "status": "healthy" if backend_healthy else "unhealthy",
    }
    if not backend_healthy:
        status_info["status"] = "degraded"

    if cache_service.enabled:
        cache_healthy = await cache_service.ping()
        status_info["components"]["redis"] = {"status": "healthy" if cache_healthy else "unhealthy"}
        if not cache_healthy:
            status_info["status"] = "degraded"
    else:
        status_info["components"]["redis"] = {"status": "disabled"}

    latency_stats = get_latency_tracker().get_stats()
    status_info["performance"] = {
        "request_count": latency_stats["count"],
        "latency_p50_ms": round(latency_stats["p50"], 2),
        "latency_p95_ms": round(latency_stats["p95"], 2),
        "latency_p99_ms": round(latency_stats["p99"], 2),
    }

    status_info["cache"] = cache_service.get_statistics()

    return status_info
