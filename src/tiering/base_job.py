"""Shared machinery for the archival and cleanup cycles."""

from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, List, Optional, Sequence, TypeVar

from src.utils.metrics import record_error, record_retry
from src.utils.retry import RetryConfig, retry_operation

from .errors import TransientStoreError
from .events import DeadLetterDispatcher
from .inflight import InFlightGuard
from .interfaces import DeadLetterSink, EventSink, NullEventSink
from .models import DeadLetterEntry, EventKind, Stage, TierEvent

T = TypeVar("T")
X = TypeVar("X")


class Outcome(str, Enum):
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


def store_retry_config(
    max_attempts: int = 5,
    initial_delay_ms: int = 200,
    max_delay_ms: int = 10000,
) -> RetryConfig:
    """Retry budget for per-record store calls: only transient errors retry."""
    return RetryConfig(
        max_retries=max_attempts,
        initial_delay_ms=initial_delay_ms,
        max_delay_ms=max_delay_ms,
        multiplier=2.0,
        jitter_factor=0.1,
        retryable_exceptions=(TransientStoreError,),
    )


class BaseCycleJob:
    """A paged, fan-out job whose per-record failures never abort the cycle."""

    SERVICE = "cycle_job"
    STAGE = Stage.ARCHIVE
    FAILURE_EVENT = EventKind.ARCHIVE_FAILURE

    def __init__(
        self,
        dead_letters: DeadLetterSink,
        events: Optional[EventSink] = None,
        retry_config: Optional[RetryConfig] = None,
        page_size: int = 500,
        max_workers: int = 4,
    ):
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self.dead_letters = dead_letters
        self.events = events or NullEventSink()
        self.retry_config = retry_config or store_retry_config()
        self.page_size = page_size
        self.max_workers = max_workers
        self._inflight = InFlightGuard()
        self._dead_letter_dispatcher = DeadLetterDispatcher(
            dead_letters, name=f"{self.SERVICE}-dead-letter"
        )

    def close(self) -> None:
        self._dead_letter_dispatcher.close()

    def flush_dead_letters(self, timeout: Optional[float] = None) -> bool:
        """Wait for dead letters queued by this job; cycles call this before returning."""
        return self._dead_letter_dispatcher.flush(timeout)

    def _retry(self, operation: Callable[[], T], name: str, record_id: str) -> T:
        def on_retry(attempt: int, delay_ms: int, error: Exception) -> None:
            record_retry(self.SERVICE, name, "failed")

        return retry_operation(
            operation,
            config=self.retry_config,
            operation_name=f"{self.SERVICE}.{name}({record_id})",
            on_retry=on_retry,
        )

    def _fail(self, record_id: str, error: Exception) -> Outcome:
        record_error(self.SERVICE, type(error).__name__, "error")
        self.events.emit(TierEvent(self.FAILURE_EVENT, record_id))
        self._dead_letter_dispatcher.dispatch(
            DeadLetterEntry.from_exception(record_id, self.STAGE, error)
        )
        return Outcome.FAILED

    def _fan_out(
        self,
        pool: ThreadPoolExecutor,
        items: Sequence[X],
        worker: Callable[[X], Outcome],
        should_stop: Optional[Callable[[], bool]],
    ) -> List[Outcome]:
        def guarded(item: X) -> Outcome:
            if should_stop and should_stop():
                return Outcome.CANCELLED
            return worker(item)

        return list(pool.map(guarded, items))

    def _new_pool(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix=self.SERVICE
        )
