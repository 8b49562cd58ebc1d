"""
Storage backends for the record tiering service.

- Hot Path (Redis): record payloads for recent records, plus the dead-letter list
- Tier State (PostgreSQL): authoritative lifecycle flags, compare-and-set transitions
- Cold Path (MinIO): S3-compatible archive of migrated payloads

Components:
- RedisHotStore: Point reads/writes and time-ordered scans of hot records
- RedisDeadLetterSink: Bounded list of failed migrations/cleanups
- PostgresTierStateStore: TierState rows with atomic transitions
- MinioColdStore: Cold objects at deterministic locators
- build_services: Wires the stores into router, pipeline and reconciler
"""

from .redis import RedisHotStore, RedisDeadLetterSink, check_redis_health, connect_redis
from .postgres import PostgresTierStateStore, check_postgres_health
from .minio import MinioColdStore, check_minio_health
from .factory import TieringServices, build_services

__all__ = [
    # Redis (Hot Path)
    "RedisHotStore",
    "RedisDeadLetterSink",
    "connect_redis",
    # PostgreSQL (Tier State)
    "PostgresTierStateStore",
    # MinIO (Cold Path)
    "MinioColdStore",
    # Wiring
    "TieringServices",
    "build_services",
    # Health checks
    "check_redis_health",
    "check_postgres_health",
    "check_minio_health",
]
