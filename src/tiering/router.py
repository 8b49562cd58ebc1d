"""ReadRouter - point reads across the hot and cold tiers."""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, Optional, TypeVar

from src.utils.logging import get_logger
from src.utils.metrics import record_error, track_latency

from .errors import ConsistencyViolation, RecordNotFound, TransientStoreError
from .events import DeadLetterDispatcher
from .interfaces import (
    ColdObjectStore,
    DeadLetterSink,
    EventSink,
    HotRecordStore,
    NullEventSink,
)
from .locator import payload_checksum
from .models import (
    DeadLetterEntry,
    EventKind,
    ReadResult,
    ReadStatus,
    Record,
    Stage,
    TierEvent,
)
from .tier_state import TierStateAccess

logger = get_logger(__name__)

T = TypeVar("T")


class ReadRouter:
    """Serve ``read(id)`` from whichever tier holds the record.

    The cold leg runs only after the hot store definitively reports the
    record missing. Transient hot failures propagate; they never fall back.

    Hot and cold calls run on separate thread pools, so slow or stuck cold
    reads can only queue behind each other, never in front of a hot lookup.
    """

    DEFAULT_HOT_TIMEOUT_SECONDS = 0.25
    DEFAULT_COLD_TIMEOUT_SECONDS = 5.0

    def __init__(
        self,
        hot: HotRecordStore,
        cold: ColdObjectStore,
        tier_state: TierStateAccess,
        events: Optional[EventSink] = None,
        dead_letters: Optional[DeadLetterSink] = None,
        hot_timeout_seconds: float = DEFAULT_HOT_TIMEOUT_SECONDS,
        cold_timeout_seconds: float = DEFAULT_COLD_TIMEOUT_SECONDS,
        max_workers: int = 16,
        cold_max_workers: Optional[int] = None,
    ):
        if cold_timeout_seconds <= hot_timeout_seconds:
            raise ValueError("cold timeout must be larger than hot timeout")
        self.hot = hot
        self.cold = cold
        self.tier_state = tier_state
        self.events = events or NullEventSink()
        self.dead_letters = dead_letters
        self.hot_timeout_seconds = hot_timeout_seconds
        self.cold_timeout_seconds = cold_timeout_seconds
        self._hot_executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="read-router-hot"
        )
        self._cold_executor = ThreadPoolExecutor(
            max_workers=cold_max_workers or max_workers,
            thread_name_prefix="read-router-cold",
        )
        self._dead_letter_dispatcher = DeadLetterDispatcher(
            dead_letters, name="read-router-dead-letter"
        )

    def close(self) -> None:
        self._hot_executor.shutdown(wait=False)
        self._cold_executor.shutdown(wait=False)
        self._dead_letter_dispatcher.close()

    def flush_dead_letters(self, timeout: Optional[float] = None) -> bool:
        return self._dead_letter_dispatcher.flush(timeout)

    def _call(
        self,
        executor: ThreadPoolExecutor,
        operation: str,
        timeout: float,
        fn: Callable[..., T],
        *args,
    ) -> T:
        future = executor.submit(fn, *args)
        try:
            with track_latency("read_router", operation):
                return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            record_error("read_router", f"{operation}_timeout", "warning")
            raise TransientStoreError(
                f"{operation} timed out after {timeout}s"
            ) from None

    def read(self, record_id: str) -> ReadResult:
        """Return the record from the hot tier, or the cold tier via tier state.

        Raises:
            RecordNotFound: the record does not exist in either tier
            TransientStoreError: a store failed or timed out
            ConsistencyViolation: tier state points at a cold copy that is
                missing or does not match its recorded checksum
        """
        try:
            record = self._call(
                self._hot_executor, "hot_get", self.hot_timeout_seconds, self.hot.get, record_id
            )
        except RecordNotFound:
            logger.debug(f"Hot miss for {record_id}, consulting tier state")
        else:
            self.events.emit(TierEvent(EventKind.HOT_READ, record_id))
            return ReadResult(record=record, status=ReadStatus.HOT)

        self.events.emit(TierEvent(EventKind.FALLBACK, record_id))

        state = self._call(
            self._cold_executor,
            "tier_state_get",
            self.cold_timeout_seconds,
            self.tier_state.get,
            record_id,
        )
        if state is None or not state.archived:
            raise RecordNotFound(record_id)

        try:
            payload = self._call(
                self._cold_executor,
                "cold_get",
                self.cold_timeout_seconds,
                self.cold.get,
                state.cold_location,
            )
        except RecordNotFound:
            self._violation(
                record_id, f"archived but no cold object at {state.cold_location}"
            )

        if state.checksum and payload_checksum(payload) != state.checksum:
            self._violation(
                record_id, f"cold object at {state.cold_location} fails checksum"
            )

        self.events.emit(TierEvent(EventKind.COLD_READ, record_id))
        logger.debug(f"Served {record_id} from cold tier")
        record = Record(
            id=record_id,
            timestamp=state.record_timestamp or state.updated_at,
            payload=payload,
        )
        return ReadResult(record=record, status=ReadStatus.COLD)

    def _violation(self, record_id: str, message: str) -> None:
        error = ConsistencyViolation(record_id, message)
        record_error("read_router", "consistency_violation", "critical")
        self._dead_letter_dispatcher.dispatch(
            DeadLetterEntry.from_exception(record_id, Stage.READ, error)
        )
        raise error
