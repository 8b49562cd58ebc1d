"""
Pydantic response models for FastAPI endpoints.

Record reads return raw payload bytes; these schemas cover health and errors.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


# ============================================================================
# System Response Models
# ============================================================================

class ServiceHealth(BaseModel):
    """Individual service health status."""
    name: str
    healthy: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None


class CycleStatus(BaseModel):
    """Outcome of the most recent archival or cleanup cycle."""
    job: str
    last_run: Optional[datetime] = None
    success: bool
    result: Dict[str, Any] = {}
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """System health status."""
    status: str  # healthy, degraded, unhealthy
    hot: bool
    cold: bool
    tier_state: bool
    timestamp: datetime
    services: List[ServiceHealth] = []
    cycles: List[CycleStatus] = []


# ============================================================================
# Error Response Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    message: str
    detail: Optional[Any] = None
