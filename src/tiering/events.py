"""Event and dead-letter delivery helpers."""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Optional, Set

from src.utils.logging import get_logger
from src.utils.metrics import record_dead_letter, record_event

from .interfaces import DeadLetterSink, EventSink
from .models import DeadLetterEntry, TierEvent

logger = get_logger(__name__)


class PrometheusEventSink(EventSink):
    """Counts each event under ``tiering_events_total{event=<kind>}``."""

    def emit(self, event: TierEvent) -> None:
        record_event(event.kind.value)


def send_dead_letter(sink: DeadLetterSink, entry: DeadLetterEntry) -> None:
    """Deliver ``entry`` without letting sink failures reach the caller."""
    logger.error(
        f"Dead-lettering {entry.record_id} at stage={entry.stage.value}: "
        f"{entry.error_type}: {entry.error}"
    )
    try:
        sink.send(entry)
        record_dead_letter(entry.stage.value, "sent")
    except Exception as e:
        record_dead_letter(entry.stage.value, "failed")
        logger.error(f"Dead-letter delivery failed for {entry.record_id}: {e}")


class DeadLetterDispatcher:
    """Hands dead-letter entries to a background sender thread.

    ``dispatch`` returns immediately, so a slow sink never holds up a read
    or a record's retry budget. ``flush`` waits for everything dispatched
    so far.
    """

    def __init__(self, sink: Optional[DeadLetterSink], name: str = "dead-letter"):
        self.sink = sink
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def dispatch(self, entry: DeadLetterEntry) -> None:
        if self.sink is None:
            return
        future = self._executor.submit(send_dead_letter, self.sink, entry)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued entries; False if some were still in flight at ``timeout``."""
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} dead-letter entries still in flight")
        return not not_done

    def close(self) -> None:
        self._executor.shutdown(wait=True)
