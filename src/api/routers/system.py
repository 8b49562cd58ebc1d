"""
System Router - Health endpoint.

Reports per-backend health for the three stores and the last archival and
cleanup cycle outcomes stored by the tiering worker.
"""

import time
from datetime import datetime
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends

from src.api.dependencies import (
    get_cold_store,
    get_hot_store,
    get_redis_client,
    get_tier_state_store,
)
from src.api.models import CycleStatus, HealthResponse, ServiceHealth
from src.tiering.status import JOB_ARCHIVAL, JOB_CLEANUP, get_cycle_status
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["system"])


def probe_service(name: str, ping: Callable[[], bool]) -> ServiceHealth:
    """Run a ping and time it.

    Args:
        name: Service name for the report
        ping: Callable returning True when the service answers

    Returns:
        ServiceHealth with status and latency
    """
    start = time.time()
    try:
        healthy = bool(ping())
        latency_ms = (time.time() - start) * 1000
        return ServiceHealth(
            name=name,
            healthy=healthy,
            latency_ms=round(latency_ms, 2),
            error=None if healthy else "Ping failed",
        )
    except Exception as e:
        latency_ms = (time.time() - start) * 1000
        return ServiceHealth(
            name=name,
            healthy=False,
            latency_ms=round(latency_ms, 2),
            error=str(e),
        )


def determine_overall_status(*healthy: bool) -> str:
    """Return "healthy" if all services are up, "unhealthy" if all are down, else "degraded"."""
    healthy_count = sum(healthy)
    if healthy_count == len(healthy):
        return "healthy"
    elif healthy_count == 0:
        return "unhealthy"
    return "degraded"


def load_cycle_statuses(redis_client) -> List[CycleStatus]:
    cycles = []
    for job in (JOB_ARCHIVAL, JOB_CLEANUP):
        try:
            status: Optional[dict] = get_cycle_status(redis_client, job)
        except Exception as e:
            logger.warning(f"Could not read {job} cycle status: {e}")
            continue
        if status is not None:
            cycles.append(CycleStatus(**status))
    return cycles


@router.get("/health", response_model=HealthResponse)
def get_health(
    hot=Depends(get_hot_store),
    cold=Depends(get_cold_store),
    tier_state=Depends(get_tier_state_store),
    redis_client=Depends(get_redis_client),
) -> HealthResponse:
    """Get system health status.

    Returns:
        HealthResponse with overall status, individual service states and
        the last archival/cleanup cycle summaries
    """
    hot_health = probe_service("redis", hot.ping)
    cold_health = probe_service("minio", cold.ping)
    state_health = probe_service("postgres", tier_state.ping)

    return HealthResponse(
        status=determine_overall_status(
            hot_health.healthy, cold_health.healthy, state_health.healthy
        ),
        hot=hot_health.healthy,
        cold=cold_health.healthy,
        tier_state=state_health.healthy,
        timestamp=datetime.now(),
        services=[hot_health, cold_health, state_health],
        cycles=load_cycle_statuses(redis_client),
    )
