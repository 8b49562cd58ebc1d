"""Prometheus metrics utilities for production monitoring."""

from contextlib import contextmanager
from functools import wraps
import time
from typing import Optional, Callable, TypeVar, Any

from prometheus_client import Counter, Histogram


T = TypeVar("T")


TIERING_EVENTS = Counter(
    'tiering_events_total',
    'Tiering events emitted by the read router, archival pipeline and cleanup reconciler',
    ['event']
)

DEAD_LETTERS = Counter(
    'tiering_dead_letters_total',
    'Dead-letter entries produced, by stage and delivery result',
    ['stage', 'delivery']
)

ERRORS_TOTAL = Counter(
    'app_errors_total',
    'Total number of errors',
    ['service', 'error_type', 'severity']
)

LATENCY_HISTOGRAM = Histogram(
    'app_latency_seconds',
    'Operation latency in seconds',
    ['service', 'operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 30.0, 120.0]
)

RETRY_ATTEMPTS = Counter(
    'app_retry_attempts_total',
    'Total retry attempts',
    ['service', 'operation', 'result']
)


def record_event(event: str) -> None:
    TIERING_EVENTS.labels(event=event).inc()


def record_dead_letter(stage: str, delivery: str = "sent") -> None:
    DEAD_LETTERS.labels(stage=stage, delivery=delivery).inc()


def record_error(
    service: str,
    error_type: str,
    severity: str = "error"
) -> None:
    ERRORS_TOTAL.labels(
        service=service,
        error_type=error_type,
        severity=severity
    ).inc()


def record_latency(
    service: str,
    operation: str,
    latency_seconds: float
) -> None:
    LATENCY_HISTOGRAM.labels(
        service=service,
        operation=operation
    ).observe(latency_seconds)


def record_retry(
    service: str,
    operation: str,
    result: str
) -> None:
    RETRY_ATTEMPTS.labels(
        service=service,
        operation=operation,
        result=result
    ).inc()


@contextmanager
def track_latency(service: str, operation: str):
    start = time.perf_counter()
    try:
        yield
    finally:
        latency = time.perf_counter() - start
        record_latency(service, operation, latency)


def track_latency_decorator(
    service: str,
    operation: Optional[str] = None
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        op_name = operation if operation is not None else func.__name__

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with track_latency(service, op_name):
                return func(*args, **kwargs)

        return wrapper

    return decorator
