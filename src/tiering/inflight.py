"""Per-record in-flight guard for jobs that fan out on a thread pool."""

import threading
from contextlib import contextmanager
from typing import Iterator, Set


class InFlightGuard:
    """Non-blocking claim on a record id within one process.

    Across processes the tier state compare-and-set is the gate; this only
    keeps two threads of the same process off the same id.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._held: Set[str] = set()

    @contextmanager
    def claim(self, record_id: str) -> Iterator[bool]:
        with self._lock:
            acquired = record_id not in self._held
            if acquired:
                self._held.add(record_id)
        try:
            yield acquired
        finally:
            if acquired:
                with self._lock:
                    self._held.discard(record_id)

    def __contains__(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._held
