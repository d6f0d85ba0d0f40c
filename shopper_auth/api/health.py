"""Health and readiness endpoints.

  /health (liveness): the process answers; reports dependency status and
    the SLAS flow failure ratio as a quick signal.  Always 200, the status
    field says "degraded" when a dependency is impaired.

  /ready (readiness): 503 when a configured Redis is unreachable.  Host
    sessions live there, so an instance without it would mint sessions
    no other instance can see.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response
from prometheus_client import REGISTRY
from redis.exceptions import RedisError

from shopper_auth.api.dependencies import Components, get_components

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _sum_counter(metric_name: str, label_filter: dict | None = None) -> float:
    """Sum a labeled counter across every label combination matching the filter."""
    total = 0.0
    for metric in REGISTRY.collect():
        for sample in metric.samples:
            if sample.name != metric_name:
                continue
            if label_filter and not all(
                sample.labels.get(k) == v for k, v in label_filter.items()
            ):
                continue
            total += sample.value
    return total


async def _redis_status(components: Components) -> str:
    if components.redis is None:
        return "not_configured"
    try:
        await components.redis.ping()  # type: ignore[attr-defined]
    except (RedisError, OSError):
        logger.warning("Redis ping failed")
        return "degraded"
    return "ok"


@router.get("/health")
async def health(
    components: Annotated[Components, Depends(get_components)],
) -> dict:
    checks = {"redis": await _redis_status(components)}
    overall = "degraded" if "degraded" in checks.values() else "ok"

    total = _sum_counter("slas_login_total")
    failed = _sum_counter("slas_login_total", {"outcome": "failure"})
    return {
        "status": overall,
        "checks": checks,
        "login_flows": {
            "total": int(total),
            "failed": int(failed),
            "failure_ratio": round(failed / total, 4) if total else 0.0,
        },
    }


@router.get("/ready")
async def ready(
    components: Annotated[Components, Depends(get_components)],
) -> Response:
    if await _redis_status(components) == "degraded":
        return Response(status_code=503)
    return Response(status_code=200)
