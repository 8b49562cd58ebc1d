"""Archival pipeline - copy aged records to the cold tier and flip tier state."""

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from src.utils.logging import get_logger
from src.utils.metrics import track_latency
from src.utils.retry import RetryConfig

from .base_job import BaseCycleJob, Outcome
from .errors import InvalidTransition, PermanentError, RecordNotFound, TieringError
from .interfaces import ColdObjectStore, DeadLetterSink, EventSink, HotRecordStore
from .locator import derive_cold_locator, payload_checksum, validate_record_id
from .models import ArchivalResult, EventKind, Stage, TierEvent, TierState, utcnow
from .tier_state import TierStateAccess

logger = get_logger(__name__)

Candidate = Tuple[str, Optional[TierState]]


class ArchivalPipeline(BaseCycleJob):
    """Migrate records older than a cutoff from the hot to the cold tier.

    Per record: upload the payload to its deterministic cold locator, then
    commit ``archived=True`` with a compare-and-set. The hot payload is never
    touched here; removing it is the cleanup reconciler's job.

    Re-running after a crash between upload and commit finds the object
    already at the locator (same checksum) and only completes the commit.
    """

    SERVICE = "archival_pipeline"
    STAGE = Stage.ARCHIVE
    FAILURE_EVENT = EventKind.ARCHIVE_FAILURE

    DEFAULT_MAX_PAYLOAD_BYTES = 5 * 1024 * 1024

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
        max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
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
        self.max_payload_bytes = max_payload_bytes

    def run_archival_cycle(
        self,
        cutoff_age: timedelta,
        now: Optional[datetime] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> ArchivalResult:
        """Archive every record with ``timestamp <= now - cutoff_age``.

        Errors while scanning are fatal to the cycle and propagate; errors on
        a single record are dead-lettered and counted in ``failed``.
        """
        if cutoff_age <= timedelta(0):
            raise ValueError("cutoff_age must be positive")

        cutoff = (now or utcnow()) - cutoff_age
        result = ArchivalResult()
        start_time = time.perf_counter()
        logger.info(f"Starting archival cycle, cutoff={cutoff.isoformat()}")

        cursor: Optional[str] = None
        with track_latency(self.SERVICE, "cycle"), self._new_pool() as pool:
            while True:
                if should_stop and should_stop():
                    result.cancelled = True
                    break

                page = self.hot.query_older_than(cutoff, after=cursor, limit=self.page_size)
                result.scanned += len(page.ids)

                candidates = self._select_candidates(page.ids)
                result.skipped += len(page.ids) - len(candidates)

                self._tally(result, self._migrate_page(pool, candidates, should_stop))

                if page.next_cursor is None:
                    break
                cursor = page.next_cursor

        self.flush_dead_letters()
        result.duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Archival cycle finished: migrated={result.migrated}, failed={result.failed}, "
            f"skipped={result.skipped}, scanned={result.scanned}, "
            f"cancelled={result.cancelled} in {result.duration_ms:.2f}ms"
        )
        return result

    def _select_candidates(self, record_ids: List[str]) -> List[Candidate]:
        states = self.tier_state.states_for(record_ids)
        candidates = []
        for record_id in record_ids:
            state = states.get(record_id)
            if state is not None and state.archived:
                continue
            candidates.append((record_id, state))
        return candidates

    def _migrate_page(
        self,
        pool: ThreadPoolExecutor,
        candidates: List[Candidate],
        should_stop: Optional[Callable[[], bool]],
    ) -> List[Outcome]:
        return self._fan_out(
            pool,
            candidates,
            lambda candidate: self.migrate_record(*candidate),
            should_stop,
        )

    @staticmethod
    def _tally(result: ArchivalResult, outcomes: List[Outcome]) -> None:
        for outcome in outcomes:
            if outcome is Outcome.DONE:
                result.migrated += 1
            elif outcome is Outcome.FAILED:
                result.failed += 1
            elif outcome is Outcome.SKIPPED:
                result.skipped += 1
            else:
                result.cancelled = True

    def migrate_record(self, record_id: str, prior: Optional[TierState] = None) -> Outcome:
        """Migrate one record; ``prior`` is its tier state as last observed."""
        with self._inflight.claim(record_id) as acquired:
            if not acquired:
                logger.debug(f"{record_id} already in flight, skipping")
                return Outcome.SKIPPED
            try:
                return self._migrate(record_id, prior)
            except InvalidTransition:
                raise
            except TieringError as e:
                return self._fail(record_id, e)
            except Exception as e:
                logger.exception(f"Unexpected error archiving {record_id}")
                return self._fail(record_id, e)

    def _migrate(self, record_id: str, prior: Optional[TierState]) -> Outcome:
        validate_record_id(record_id)

        try:
            record = self._retry(lambda: self.hot.get(record_id), "hot_get", record_id)
        except RecordNotFound:
            logger.warning(f"{record_id} vanished from the hot tier before archival")
            return Outcome.SKIPPED

        if len(record.payload) > self.max_payload_bytes:
            raise PermanentError(
                f"payload of {len(record.payload)} bytes exceeds "
                f"limit of {self.max_payload_bytes}"
            )

        locator = derive_cold_locator(record_id)
        checksum = payload_checksum(record.payload)

        existing = self._retry(lambda: self.cold.stat(locator), "cold_stat", record_id)
        if existing is not None and existing.checksum == checksum:
            logger.info(f"Cold copy of {record_id} already at {locator}, completing commit")
        else:
            self._retry(
                lambda: self.cold.put(locator, record.payload, checksum),
                "cold_put",
                record_id,
            )

        won = self._retry(
            lambda: self.tier_state.mark_archived(
                record_id, prior, locator, checksum, record_timestamp=record.timestamp
            ),
            "tier_state_cas",
            record_id,
        )
        if not won:
            return Outcome.SKIPPED

        self.events.emit(TierEvent(EventKind.ARCHIVE_SUCCESS, record_id))
        logger.debug(f"Archived {record_id} to {locator}")
        return Outcome.DONE
