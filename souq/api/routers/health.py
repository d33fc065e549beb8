"""
Health Check Endpoints
Liveness probe and a detailed marketplace status report.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from ...marketplace import Marketplace
from ..config import APISettings, get_settings
from ..dependencies import get_marketplace
from ..middleware.timing import LatencyTracker, get_latency_tracker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def ledger_component(market: Marketplace) -> Dict[str, Any]:
    verification = market.chain.verify()
    return {
        "status": "healthy" if verification.valid else "unhealthy",
        "height": verification.height,
        "pending": len(market.chain.pending),
        "products": market.registry.product_count,
        "error": verification.error,
    }


def agents_component(market: Marketplace) -> Dict[str, Any]:
    dead = [agent.name for agent in market.agents if not agent.is_alive]
    if dead:
        logger.warning(f"Agents not alive: {', '.join(dead)}")
    return {
        "status": "unhealthy" if dead else "healthy",
        "total": len(market.agents),
        "not_alive": dead,
    }


def performance_report(tracker: LatencyTracker, target_p95_ms: float) -> Dict[str, Any]:
    """Latency summary; the p95 target is checked against product requests only."""
    products = tracker.get_stats("products")
    return {
        "request_count": tracker.get_stats()["count"],
        "products_p95_ms": round(products["p95"], 2),
        "target_p95_ms": target_p95_ms,
        "meets_target": products["p95"] <= target_p95_ms,
        "areas": {
            area: {k: round(v, 2) for k, v in stats.items()}
            for area, stats in tracker.by_area().items()
        },
    }


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> Dict[str, str]:
    return {"status": "healthy", "timestamp": _now()}


@router.get("/status", status_code=status.HTTP_200_OK)
async def status_check(
    settings: APISettings = Depends(get_settings),
    market: Marketplace = Depends(get_marketplace),
) -> Dict[str, Any]:
    """
    Detailed status check.

    The overall status is "degraded" when any component (ledger integrity,
    agent liveness, Redis relay if configured) is unhealthy.
    """
    components = {
        "ledger": ledger_component(market),
        "agents": agents_component(market),
    }
    if market.relay is not None:
        components["relay"] = {"status": "healthy" if market.relay.ping() else "unhealthy"}

    degraded = any(c["status"] != "healthy" for c in components.values())

    return {
        "status": "degraded" if degraded else "healthy",
        "timestamp": _now(),
        "version": settings.version,
        "components": components,
        "performance": performance_report(get_latency_tracker(), settings.target_p95_latency_ms),
        "messaging": market.bus.stats(),
    }
