"""Persist the outcome of the last archival/cleanup cycle for health reporting."""

import json
from typing import Any, Dict, Optional, Union

from src.utils.logging import get_logger

from .models import ArchivalResult, CleanupResult, utcnow

logger = get_logger(__name__)

CYCLE_STATUS_KEY_PREFIX = "tiering:status"
CYCLE_STATUS_TTL = 86400 * 7  # 7 days

JOB_ARCHIVAL = "archival"
JOB_CLEANUP = "cleanup"


def _status_key(job: str) -> str:
    return f"{CYCLE_STATUS_KEY_PREFIX}:{job}"


def store_cycle_status(
    redis_client,
    job: str,
    result: Union[ArchivalResult, CleanupResult],
    error: Optional[str] = None,
) -> bool:
    """Store the cycle summary in Redis; returns False if it could not be stored."""
    status = {
        "job": job,
        "last_run": utcnow().isoformat(),
        "success": error is None and result.failed == 0,
        "result": result.to_dict(),
        "error": error,
    }
    try:
        redis_client.setex(_status_key(job), CYCLE_STATUS_TTL, json.dumps(status))
    except Exception as e:
        logger.error(f"Failed to store {job} cycle status: {e}")
        return False

    logger.info(f"Stored {job} cycle status: success={status['success']}")
    return True


def get_cycle_status(redis_client, job: str) -> Optional[Dict[str, Any]]:
    data = redis_client.get(_status_key(job))
    if not data:
        return None
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    return json.loads(data)
