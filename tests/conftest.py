"""
Shared fixtures: in-memory stores with call counters and failure injection.

The fakes honour the same contracts as the Redis/MinIO/PostgreSQL adapters,
so the tiering core can be exercised without any backing service.
"""

import threading
from collections import Counter
from types import SimpleNamespace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import pytest

from src.tiering.archival import ArchivalPipeline
from src.tiering.base_job import store_retry_config
from src.tiering.cleanup import CleanupReconciler
from src.tiering.errors import RecordNotFound
from src.tiering.interfaces import (
    ColdObjectInfo,
    ColdObjectStore,
    DeadLetterSink,
    EventSink,
    HotRecordStore,
    Page,
    TierStateStore,
)
from src.tiering.models import DeadLetterEntry, EventKind, Record, TierEvent, TierState
from src.tiering.router import ReadRouter
from src.tiering.tier_state import TierStateAccess


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FaultInjector:
    """Queue errors (or hooks) to be raised/run on the next calls of an operation."""

    def __init__(self):
        self._lock = threading.Lock()
        self.calls: Counter = Counter()
        self._errors: Dict[str, List[Exception]] = {}
        self._always: Dict[str, Exception] = {}
        self.hooks: Dict[str, Callable[..., None]] = {}

    def fail(self, operation: str, error: Exception, times: int = 1) -> None:
        with self._lock:
            self._errors.setdefault(operation, []).extend([error] * times)

    def fail_always(self, operation: str, error: Exception) -> None:
        self._always[operation] = error

    def heal(self, operation: str) -> None:
        with self._lock:
            self._errors.pop(operation, None)
            self._always.pop(operation, None)

    def heal_all(self) -> None:
        with self._lock:
            self._errors.clear()
            self._always.clear()

    def _enter(self, operation: str, *args) -> None:
        with self._lock:
            self.calls[operation] += 1
            queued = self._errors.get(operation)
            error = queued.pop(0) if queued else self._always.get(operation)
        hook = self.hooks.get(operation)
        if hook is not None:
            hook(*args)
        if error is not None:
            raise error


class FakeHotStore(HotRecordStore, FaultInjector):

    def __init__(self):
        FaultInjector.__init__(self)
        self.records: Dict[str, Record] = {}

    def get(self, record_id: str) -> Record:
        self._enter("get", record_id)
        try:
            return self.records[record_id]
        except KeyError:
            raise RecordNotFound(record_id) from None

    def put(self, record: Record) -> None:
        self._enter("put", record)
        self.records[record.id] = record

    def delete(self, record_id: str) -> bool:
        self._enter("delete", record_id)
        return self.records.pop(record_id, None) is not None

    @staticmethod
    def _member(record: Record) -> str:
        return f"{int(record.timestamp.timestamp() * 1000):015d}|{record.id}"

    def query_older_than(
        self, cutoff: datetime, after: Optional[str] = None, limit: int = 500
    ) -> Page:
        self._enter("query_older_than", cutoff, after, limit)
        members = sorted(
            self._member(r) for r in list(self.records.values()) if r.timestamp <= cutoff
        )
        if after is not None:
            members = [m for m in members if m > after]
        members = members[:limit]
        ids = [m.split("|", 1)[1] for m in members]
        next_cursor = members[-1] if len(members) == limit else None
        return Page(ids=ids, next_cursor=next_cursor)


class FakeColdStore(ColdObjectStore, FaultInjector):

    def __init__(self):
        FaultInjector.__init__(self)
        self.objects: Dict[str, Tuple[bytes, Optional[str]]] = {}

    def put(self, locator: str, payload: bytes, checksum: Optional[str] = None) -> None:
        self._enter("put", locator, payload)
        self.objects[locator] = (payload, checksum)

    def get(self, locator: str) -> bytes:
        self._enter("get", locator)
        try:
            return self.objects[locator][0]
        except KeyError:
            raise RecordNotFound(locator) from None

    def stat(self, locator: str) -> Optional[ColdObjectInfo]:
        self._enter("stat", locator)
        obj = self.objects.get(locator)
        if obj is None:
            return None
        return ColdObjectInfo(size=len(obj[0]), checksum=obj[1])

    def corrupt(self, locator: str, payload: bytes = b"corrupted") -> None:
        """Overwrite the bytes but keep the recorded checksum."""
        _, checksum = self.objects[locator]
        self.objects[locator] = (payload, checksum)


class FakeTierStateStore(TierStateStore, FaultInjector):

    def __init__(self):
        FaultInjector.__init__(self)
        self.states: Dict[str, TierState] = {}
        self._cas_lock = threading.Lock()
        self.history: List[Tuple[Optional[TierState], TierState]] = []

    def get_state(self, record_id: str) -> Optional[TierState]:
        self._enter("get_state", record_id)
        return self.states.get(record_id)

    def get_states(self, record_ids: Iterable[str]) -> Dict[str, TierState]:
        self._enter("get_states")
        return {i: self.states[i] for i in record_ids if i in self.states}

    def compare_and_set(
        self, record_id: str, expected: Optional[TierState], new: TierState
    ) -> bool:
        self._enter("compare_and_set", record_id, expected, new)
        with self._cas_lock:
            if self.states.get(record_id) != expected:
                return False
            self.states[record_id] = new
            self.history.append((expected, new))
            return True

    def list_pending_cleanup(
        self, after: Optional[str] = None, limit: int = 500
    ) -> List[TierState]:
        self._enter("list_pending_cleanup", after, limit)
        pending = sorted(
            (s for s in list(self.states.values()) if s.archived and not s.deleted),
            key=lambda s: s.record_id,
        )
        if after is not None:
            pending = [s for s in pending if s.record_id > after]
        return pending[:limit]


class RecordingDeadLetterSink(DeadLetterSink):

    def __init__(self):
        self.entries: List[DeadLetterEntry] = []
        self._lock = threading.Lock()

    def send(self, entry: DeadLetterEntry) -> None:
        with self._lock:
            self.entries.append(entry)

    def ids(self) -> List[str]:
        return [e.record_id for e in self.entries]


class BlockingDeadLetterSink(RecordingDeadLetterSink):
    """Holds every send until ``release`` is set, like a stalled Redis."""

    def __init__(self, timeout: float = 5.0):
        super().__init__()
        self.release = threading.Event()
        self.timeout = timeout

    def send(self, entry: DeadLetterEntry) -> None:
        self.release.wait(self.timeout)
        super().send(entry)


class RecordingEventSink(EventSink):

    def __init__(self):
        self.events: List[TierEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: TierEvent) -> None:
        with self._lock:
            self.events.append(event)

    def count(self, kind: EventKind, record_id: Optional[str] = None) -> int:
        return sum(
            1 for e in self.events
            if e.kind is kind and (record_id is None or e.record_id == record_id)
        )


def make_record(record_id: str, age_days: float, payload: bytes = b"payload") -> Record:
    return Record(id=record_id, timestamp=NOW - timedelta(days=age_days), payload=payload)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def hot():
    return FakeHotStore()


@pytest.fixture
def cold():
    return FakeColdStore()


@pytest.fixture
def state_store():
    return FakeTierStateStore()


@pytest.fixture
def tier_state(state_store):
    return TierStateAccess(state_store)


@pytest.fixture
def dead_letters():
    return RecordingDeadLetterSink()


@pytest.fixture
def blocking_dead_letters():
    sink = BlockingDeadLetterSink()
    yield sink
    sink.release.set()


@pytest.fixture
def events():
    return RecordingEventSink()


@pytest.fixture
def retry_config():
    return store_retry_config(max_attempts=5, initial_delay_ms=1, max_delay_ms=2)


@pytest.fixture
def archival(hot, cold, tier_state, dead_letters, events, retry_config):
    return ArchivalPipeline(
        hot, cold, tier_state, dead_letters,
        events=events, retry_config=retry_config, page_size=3, max_workers=4,
    )


@pytest.fixture
def cleanup(hot, cold, tier_state, dead_letters, events, retry_config):
    return CleanupReconciler(
        hot, cold, tier_state, dead_letters,
        events=events, retry_config=retry_config, page_size=3, max_workers=4,
    )


@pytest.fixture
def router(hot, cold, tier_state, events, dead_letters):
    read_router = ReadRouter(
        hot, cold, tier_state,
        events=events, dead_letters=dead_letters,
        hot_timeout_seconds=0.5, cold_timeout_seconds=2.0,
    )
    yield read_router
    read_router.close()


@pytest.fixture
def world_factory():
    """Build a fresh set of stores; for hypothesis tests that need one per example."""
    def build():
        return SimpleNamespace(
            hot=FakeHotStore(),
            cold=FakeColdStore(),
            state_store=FakeTierStateStore(),
            dead_letters=RecordingDeadLetterSink(),
            events=RecordingEventSink(),
        )
    return build
