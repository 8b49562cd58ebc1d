"""
Tiering worker - runs archival and cleanup cycles and records their outcome.

Used by both the CLI (``python -m src.tiering``) and the Airflow DAG.
"""

from datetime import timedelta
from typing import Callable, Optional

from src.utils.logging import get_logger
from src.utils.shutdown import GracefulShutdown

from .archival import ArchivalPipeline
from .cleanup import CleanupReconciler
from .models import ArchivalResult, CleanupResult
from .status import JOB_ARCHIVAL, JOB_CLEANUP, store_cycle_status

logger = get_logger(__name__)


class TieringWorker:

    def __init__(
        self,
        archival: ArchivalPipeline,
        cleanup: CleanupReconciler,
        cutoff_age: timedelta,
        status_client=None,
        shutdown: Optional[GracefulShutdown] = None,
    ):
        self.archival = archival
        self.cleanup = cleanup
        self.cutoff_age = cutoff_age
        self.status_client = status_client
        self.shutdown = shutdown or GracefulShutdown(logger)

    def _store(self, job: str, result, error: Optional[str] = None) -> None:
        if self.status_client is not None:
            store_cycle_status(self.status_client, job, result, error=error)

    def run_archival(self) -> ArchivalResult:
        self.shutdown.mark_cycle_start(JOB_ARCHIVAL)
        try:
            result = self.archival.run_archival_cycle(
                self.cutoff_age, should_stop=self.shutdown.should_stop
            )
        except Exception as e:
            logger.error(f"Archival cycle aborted: {e}", exc_info=True)
            self._store(JOB_ARCHIVAL, ArchivalResult(), error=str(e))
            raise
        finally:
            self.shutdown.mark_cycle_end(JOB_ARCHIVAL)
        self._store(JOB_ARCHIVAL, result)
        return result

    def run_cleanup(self) -> CleanupResult:
        self.shutdown.mark_cycle_start(JOB_CLEANUP)
        try:
            result = self.cleanup.run_cleanup_cycle(should_stop=self.shutdown.should_stop)
        except Exception as e:
            logger.error(f"Cleanup cycle aborted: {e}", exc_info=True)
            self._store(JOB_CLEANUP, CleanupResult(), error=str(e))
            raise
        finally:
            self.shutdown.mark_cycle_end(JOB_CLEANUP)
        self._store(JOB_CLEANUP, result)
        return result

    def run_all(self):
        archival = self.run_archival()
        if self.shutdown.should_stop():
            return archival, None
        return archival, self.run_cleanup()

    def run_loop(
        self,
        interval_seconds: float,
        max_cycles: Optional[int] = None,
        on_cycle: Optional[Callable[[int], None]] = None,
    ) -> int:
        """Repeat run_all until shutdown; returns the number of completed rounds.

        A round that aborts on a store outage is logged and retried after the
        interval rather than ending the loop.
        """
        rounds = 0
        while not self.shutdown.should_stop():
            try:
                self.run_all()
            except Exception as e:
                logger.warning(f"Tiering round failed, retrying in {interval_seconds}s: {e}")
            rounds += 1
            if on_cycle:
                on_cycle(rounds)
            if max_cycles is not None and rounds >= max_cycles:
                break
            if self.shutdown.wait(interval_seconds):
                break
        logger.info(f"Tiering loop stopped after {rounds} round(s)")
        return rounds
