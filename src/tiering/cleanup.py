"""Cleanup reconciler - remove hot copies whose cold copies verify."""

import time
from typing import Callable, List, Optional

from src.utils.logging import get_logger
from src.utils.metrics import track_latency
from src.utils.retry import RetryConfig

from .base_job import BaseCycleJob, Outcome
from .errors import ConsistencyViolation, InvalidTransition, RecordNotFound, TieringError
from .interfaces import ColdObjectStore, DeadLetterSink, EventSink, HotRecordStore
from .locator import payload_checksum
from .models import CleanupResult, EventKind, Record, Stage, TierEvent, TierState
from .tier_state import TierStateAccess

logger = get_logger(__name__)


class CleanupReconciler(BaseCycleJob):
    """Delete hot payloads of archived records, one verified record at a time.

    Verification (cold object readable, checksum matches the recorded one and
    the hot payload) strictly precedes the physical delete. A record that
    fails verification keeps its hot payload and is retried next cycle.
    """

    SERVICE = "cleanup_reconciler"
    STAGE = Stage.CLEANUP
    FAILURE_EVENT = EventKind.CLEANUP_FAILURE

    def __init__(
        self,
        hot: HotRecordStore,
        cold: ColdObjectStore,
        tier_state: TierStateAccess,
        dead_letters: DeadLetterSink,
        events: Optional[EventSink] = None,
        retry_config: Optional[RetryConfig] = None,
        page_size: int = 500,
        max_workers: int = 4,
    ):
        super().__init__(
            dead_letters,
            events=events,
            retry_config=retry_config,
            page_size=page_size,
            max_workers=max_workers,
        )
        self.hot = hot
        self.cold = cold
        self.tier_state = tier_state

    def run_cleanup_cycle(
        self, should_stop: Optional[Callable[[], bool]] = None
    ) -> CleanupResult:
        result = CleanupResult()
        start_time = time.perf_counter()
        logger.info("Starting cleanup cycle")

        def stop_scanning() -> bool:
            if should_stop and should_stop():
                result.cancelled = True
                return True
            return False

        with track_latency(self.SERVICE, "cycle"), self._new_pool() as pool:
            for page in self.tier_state.iter_pending_cleanup(self.page_size, stop_scanning):
                result.scanned += len(page)
                self._tally(result, self._fan_out(pool, page, self.clean_record, should_stop))

        self.flush_dead_letters()
        result.duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Cleanup cycle finished: deleted={result.deleted}, failed={result.failed}, "
            f"skipped={result.skipped}, scanned={result.scanned}, "
            f"cancelled={result.cancelled} in {result.duration_ms:.2f}ms"
        )
        return result

    @staticmethod
    def _tally(result: CleanupResult, outcomes: List[Outcome]) -> None:
        for outcome in outcomes:
            if outcome is Outcome.DONE:
                result.deleted += 1
            elif outcome is Outcome.FAILED:
                result.failed += 1
            elif outcome is Outcome.SKIPPED:
                result.skipped += 1
            else:
                result.cancelled = True

    def clean_record(self, state: TierState) -> Outcome:
        record_id = state.record_id
        with self._inflight.claim(record_id) as acquired:
            if not acquired:
                logger.debug(f"{record_id} already in flight, skipping")
                return Outcome.SKIPPED
            try:
                return self._clean(state)
            except InvalidTransition:
                raise
            except TieringError as e:
                return self._fail(record_id, e)
            except Exception as e:
                logger.exception(f"Unexpected error cleaning up {record_id}")
                return self._fail(record_id, e)

    def _verify(self, state: TierState) -> Optional[Record]:
        """Raise ConsistencyViolation unless the cold copy is provably good.

        Returns the hot record when one is still present.
        """
        record_id = state.record_id
        try:
            cold_payload = self._retry(
                lambda: self.cold.get(state.cold_location), "cold_get", record_id
            )
        except RecordNotFound:
            raise ConsistencyViolation(
                record_id, f"cold object missing at {state.cold_location}"
            ) from None

        cold_checksum = payload_checksum(cold_payload)
        if state.checksum is not None and cold_checksum != state.checksum:
            raise ConsistencyViolation(
                record_id, f"cold object at {state.cold_location} fails checksum"
            )

        try:
            hot_record = self._retry(lambda: self.hot.get(record_id), "hot_get", record_id)
        except RecordNotFound:
            return None

        if payload_checksum(hot_record.payload) != cold_checksum:
            raise ConsistencyViolation(
                record_id, "cold object does not match the hot payload"
            )
        return hot_record

    def _clean(self, state: TierState) -> Outcome:
        record_id = state.record_id
        hot_record = self._verify(state)

        if hot_record is None:
            logger.info(f"Hot copy of {record_id} already gone, committing delete flag")
        else:
            self._retry(lambda: self.hot.delete(record_id), "hot_delete", record_id)

        won = self._retry(
            lambda: self.tier_state.mark_deleted(state), "tier_state_cas", record_id
        )
        if not won:
            return Outcome.SKIPPED

        self.events.emit(TierEvent(EventKind.CLEANUP_SUCCESS, record_id))
        logger.debug(f"Removed hot copy of {record_id}")
        return Outcome.DONE
