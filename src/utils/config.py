"""
Configuration utilities for environment variable loading.

Provides type-safe environment variable loading with defaults and the
configuration dataclasses for every collaborator of the tiering service.

Utilities provided:
- get_env_str(): Get string from environment variable
- get_env_int(): Get integer from environment variable
- get_env_float(): Get float from environment variable
- get_env_bool(): Get boolean from environment variable
- get_env_list(): Get list from environment variable
- get_env_optional(): Get optional string from environment variable

Configuration Classes:
- RedisConfig: Hot record store and dead-letter list
- PostgresConfig: Tier state store
- MinioConfig: Cold object store
- TieringConfig: Archival, cleanup and read-routing policy
- Config: Main configuration container
"""

import os
from dataclasses import dataclass
from typing import List, Optional


def get_env_str(key: str, default: str = "") -> str:
    """
    Get string from environment variable.

    Example:
        host = get_env_str("POSTGRES_HOST", "localhost")
    """
    return os.getenv(key, default)


def get_env_int(key: str, default: int = 0) -> int:
    """
    Get integer from environment variable.

    Raises:
        ValueError: If the environment variable value cannot be parsed as int
    """
    value = os.getenv(key)
    if value is None:
        return default
    return int(value)


def get_env_float(key: str, default: float = 0.0) -> float:
    """
    Get float from environment variable.

    Raises:
        ValueError: If the environment variable value cannot be parsed as float
    """
    value = os.getenv(key)
    if value is None:
        return default
    return float(value)


def get_env_bool(key: str, default: bool = False) -> bool:
    """
    Get boolean from environment variable.

    Accepts: "true", "1", "yes" as true (case-insensitive); anything else is false.
    """
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def get_env_list(
    key: str,
    default: Optional[List[str]] = None,
    separator: str = ","
) -> List[str]:
    """
    Get list from environment variable.

    Splits by separator and strips whitespace from each item.
    Empty items are filtered out.

    Example:
        # With env TIERING_JOBS="archive, cleanup"
        # Returns: ["archive", "cleanup"]
        jobs = get_env_list("TIERING_JOBS", ["archive", "cleanup"])
    """
    if default is None:
        default = []

    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default

    return [item.strip() for item in value.split(separator) if item.strip()]


def get_env_optional(key: str) -> Optional[str]:
    """
    Get optional string from environment variable.

    Returns None if the environment variable is not set,
    unlike get_env_str which returns an empty string by default.
    """
    return os.getenv(key)


# ============================================================================
# CONFIGURATION CLASSES
# ============================================================================


@dataclass
class RedisConfig:
    """Redis connection configuration (hot record store, dead-letter list)."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None

    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0

    dead_letter_max_size: int = 10000

    @classmethod
    def from_env(cls) -> "RedisConfig":
        """Create configuration from environment variables."""
        return cls(
            host=get_env_str("REDIS_HOST", "localhost"),
            port=get_env_int("REDIS_PORT", 6379),
            db=get_env_int("REDIS_DB", 0),
            password=get_env_optional("REDIS_PASSWORD"),
            socket_timeout=get_env_float("REDIS_SOCKET_TIMEOUT", 5.0),
            socket_connect_timeout=get_env_float("REDIS_SOCKET_CONNECT_TIMEOUT", 5.0),
            dead_letter_max_size=get_env_int("DEAD_LETTER_MAX_SIZE", 10000),
        )


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration for the tier state store."""

    host: str = "localhost"
    port: int = 5432
    user: str = "tiering"
    password: str = "tiering"
    database: str = "tiering"

    min_connections: int = 1
    max_connections: int = 10

    @classmethod
    def from_env(cls) -> "PostgresConfig":
        """Create configuration from environment variables."""
        return cls(
            host=get_env_str("POSTGRES_HOST", "localhost"),
            port=get_env_int("POSTGRES_PORT", 5432),
            user=get_env_str("POSTGRES_USER", "tiering"),
            password=get_env_str("POSTGRES_PASSWORD", "tiering"),
            database=get_env_str("POSTGRES_DB", "tiering"),
            min_connections=get_env_int("POSTGRES_MIN_CONNECTIONS", 1),
            max_connections=get_env_int("POSTGRES_MAX_CONNECTIONS", 10),
        )


@dataclass
class MinioConfig:
    """MinIO/S3 connection configuration for the cold object store."""

    endpoint: str = "localhost:9000"
    access_key: str = "minioadmin"
    secret_key: str = "minioadmin"
    bucket: str = "record-archive"
    secure: bool = False

    @classmethod
    def from_env(cls) -> "MinioConfig":
        """Create configuration from environment variables."""
        return cls(
            endpoint=get_env_str("MINIO_ENDPOINT", "localhost:9000"),
            access_key=get_env_str("MINIO_ACCESS_KEY", "minioadmin"),
            secret_key=get_env_str("MINIO_SECRET_KEY", "minioadmin"),
            bucket=get_env_str("MINIO_BUCKET", "record-archive"),
            secure=get_env_bool("MINIO_SECURE", False),
        )


@dataclass
class TieringConfig:
    """Archival, cleanup and read-routing policy."""

    cutoff_days: int = 90
    scan_page_size: int = 500
    max_workers: int = 4
    max_payload_bytes: int = 5 * 1024 * 1024

    # Retry budget for per-record store operations in both jobs
    retry_max_attempts: int = 5
    retry_initial_delay_ms: int = 200
    retry_max_delay_ms: int = 10000

    hot_read_timeout_seconds: float = 0.25
    cold_read_timeout_seconds: float = 5.0

    cycle_interval_seconds: int = 300

    def __post_init__(self) -> None:
        if self.cutoff_days <= 0:
            raise ValueError("cutoff_days must be positive")
        if self.scan_page_size <= 0:
            raise ValueError("scan_page_size must be positive")
        if self.max_workers <= 0:
            raise ValueError("max_workers must be positive")
        if self.retry_max_attempts <= 0:
            raise ValueError("retry_max_attempts must be positive")
        if self.hot_read_timeout_seconds <= 0:
            raise ValueError("hot_read_timeout_seconds must be positive")
        if self.cold_read_timeout_seconds <= self.hot_read_timeout_seconds:
            raise ValueError(
                "cold_read_timeout_seconds must be larger than hot_read_timeout_seconds"
            )

    @classmethod
    def from_env(cls) -> "TieringConfig":
        """Create configuration from environment variables."""
        return cls(
            cutoff_days=get_env_int("ARCHIVE_CUTOFF_DAYS", 90),
            scan_page_size=get_env_int("SCAN_PAGE_SIZE", 500),
            max_workers=get_env_int("MAX_WORKERS", 4),
            max_payload_bytes=get_env_int("MAX_PAYLOAD_BYTES", 5 * 1024 * 1024),
            retry_max_attempts=get_env_int("RETRY_MAX_ATTEMPTS", 5),
            retry_initial_delay_ms=get_env_int("RETRY_INITIAL_DELAY_MS", 200),
            retry_max_delay_ms=get_env_int("RETRY_MAX_DELAY_MS", 10000),
            hot_read_timeout_seconds=get_env_float("HOT_READ_TIMEOUT_SECONDS", 0.25),
            cold_read_timeout_seconds=get_env_float("COLD_READ_TIMEOUT_SECONDS", 5.0),
            cycle_interval_seconds=get_env_int("CYCLE_INTERVAL_SECONDS", 300),
        )


@dataclass
class Config:
    """Main configuration container.

    Storage layout:
    - Hot records: Redis
    - Tier state: PostgreSQL
    - Cold archive: MinIO
    """

    redis: RedisConfig
    postgres: PostgresConfig
    minio: MinioConfig
    tiering: TieringConfig

    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "Config":
        """Create complete configuration from environment variables."""
        return cls(
            redis=RedisConfig.from_env(),
            postgres=PostgresConfig.from_env(),
            minio=MinioConfig.from_env(),
            tiering=TieringConfig.from_env(),
            log_level=get_env_str("LOG_LEVEL", "INFO"),
            log_json=get_env_bool("LOG_JSON", False),
        )
