"""
Dependency injection for FastAPI endpoints.

Provides singleton instances of the tiering services using @lru_cache
for connection reuse across requests.
"""

from functools import lru_cache

from src.storage.factory import TieringServices, build_services
from src.tiering.router import ReadRouter
from src.utils.config import Config


@lru_cache()
def get_config() -> Config:
    """Get configuration loaded once from the environment."""
    return Config.from_env()


@lru_cache()
def get_services() -> TieringServices:
    """Get singleton TieringServices wired from the environment.

    Environment variables: see src.utils.config (REDIS_*, POSTGRES_*,
    MINIO_*, HOT_READ_TIMEOUT_SECONDS, COLD_READ_TIMEOUT_SECONDS, ...)
    """
    return build_services(get_config())


def get_read_router() -> ReadRouter:
    return get_services().router


def get_redis_client():
    return get_services().redis_client


def get_hot_store():
    return get_services().hot


def get_cold_store():
    return get_services().cold


def get_tier_state_store():
    return get_services().tier_state_store
