"""
Shared utilities for the record tiering service.

Utilities provided:
-------------------

**Retry Utilities** (retry.py):
    - ExponentialBackoff: Calculator for backoff delays with jitter
    - RetryConfig: Configuration dataclass for retry behavior
    - retry_operation(): Function wrapper for retrying callables
    - @with_retry: Decorator for adding retry logic to functions

**Configuration Utilities** (config.py):
    - get_env_str(), get_env_int(), get_env_float(), get_env_bool(),
      get_env_list(), get_env_optional(): typed environment lookups
    - RedisConfig, PostgresConfig, MinioConfig, TieringConfig, Config

**Logging Utilities** (logging.py):
    - setup_logging(): Configure logging for the application
    - get_logger(): Get a configured logger by name

**Metrics Utilities** (metrics.py):
    - TIERING_EVENTS, DEAD_LETTERS, ERRORS_TOTAL, LATENCY_HISTOGRAM, RETRY_ATTEMPTS
    - record_event(), record_dead_letter(), record_error(), record_latency(), record_retry()
    - track_latency: Context manager for latency tracking

**Graceful Shutdown Utilities** (shutdown.py):
    - GracefulShutdown: Cooperative stop flag driven by SIGINT/SIGTERM
    - ShutdownState: Snapshot of the shutdown state
"""

from src.utils.retry import (
    ExponentialBackoff,
    RetryConfig,
    retry_operation,
    with_retry,
)

from src.utils.config import (
    get_env_str,
    get_env_int,
    get_env_float,
    get_env_bool,
    get_env_list,
    get_env_optional,
    RedisConfig,
    PostgresConfig,
    MinioConfig,
    TieringConfig,
    Config,
)

from src.utils.logging import (
    setup_logging,
    get_logger,
    JSONFormatter,
)

from src.utils.metrics import (
    TIERING_EVENTS,
    DEAD_LETTERS,
    ERRORS_TOTAL,
    LATENCY_HISTOGRAM,
    RETRY_ATTEMPTS,
    record_event,
    record_dead_letter,
    record_error,
    record_latency,
    record_retry,
    track_latency,
    track_latency_decorator,
)

from src.utils.shutdown import (
    GracefulShutdown,
    ShutdownState,
)

__all__ = [
    # Retry utilities
    "ExponentialBackoff",
    "RetryConfig",
    "retry_operation",
    "with_retry",
    # Config utilities
    "get_env_str",
    "get_env_int",
    "get_env_float",
    "get_env_bool",
    "get_env_list",
    "get_env_optional",
    "RedisConfig",
    "PostgresConfig",
    "MinioConfig",
    "TieringConfig",
    "Config",
    # Logging utilities
    "setup_logging",
    "get_logger",
    "JSONFormatter",
    # Metrics
    "TIERING_EVENTS",
    "DEAD_LETTERS",
    "ERRORS_TOTAL",
    "LATENCY_HISTOGRAM",
    "RETRY_ATTEMPTS",
    "record_event",
    "record_dead_letter",
    "record_error",
    "record_latency",
    "record_retry",
    "track_latency",
    "track_latency_decorator",
    # Shutdown utilities
    "GracefulShutdown",
    "ShutdownState",
]
