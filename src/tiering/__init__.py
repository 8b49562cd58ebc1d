"""
Record tiering core.

Records start in the hot store. The archival pipeline copies aged records to
the cold store and flips their tier state to ARCHIVED; the cleanup reconciler
later verifies each cold copy and removes the hot payload (DELETED). The read
router serves ``read(id)`` from whichever tier holds the record, so the
lifecycle is invisible to clients.

Components:
- ReadRouter: hot-then-cold point reads
- ArchivalPipeline: UNARCHIVED -> ARCHIVED
- CleanupReconciler: ARCHIVED -> DELETED
- TierStateAccess: compare-and-set transitions over a TierStateStore
- TieringWorker: runs cycles and stores their status
"""

from .errors import (
    ConsistencyViolation,
    InvalidTransition,
    PermanentError,
    RecordNotFound,
    TieringError,
    TransientStoreError,
)
from .models import (
    ArchivalResult,
    CleanupResult,
    DeadLetterEntry,
    EventKind,
    ReadResult,
    ReadStatus,
    Record,
    Stage,
    TierEvent,
    TierState,
    TierStatus,
)
from .interfaces import (
    ColdObjectInfo,
    ColdObjectStore,
    DeadLetterSink,
    EventSink,
    HotRecordStore,
    NullEventSink,
    Page,
    TierStateStore,
)
from .locator import derive_cold_locator, payload_checksum, validate_record_id
from .events import DeadLetterDispatcher, PrometheusEventSink, send_dead_letter
from .tier_state import TierStateAccess
from .router import ReadRouter
from .archival import ArchivalPipeline
from .cleanup import CleanupReconciler
from .status import get_cycle_status, store_cycle_status
from .worker import TieringWorker

__all__ = [
    # Errors
    "TieringError",
    "RecordNotFound",
    "TransientStoreError",
    "PermanentError",
    "ConsistencyViolation",
    "InvalidTransition",
    # Models
    "Record",
    "TierState",
    "TierStatus",
    "ReadResult",
    "ReadStatus",
    "Stage",
    "EventKind",
    "TierEvent",
    "DeadLetterEntry",
    "ArchivalResult",
    "CleanupResult",
    # Collaborators
    "HotRecordStore",
    "ColdObjectStore",
    "ColdObjectInfo",
    "TierStateStore",
    "DeadLetterSink",
    "EventSink",
    "NullEventSink",
    "Page",
    "PrometheusEventSink",
    "send_dead_letter",
    "DeadLetterDispatcher",
    # Locators
    "derive_cold_locator",
    "payload_checksum",
    "validate_record_id",
    # Components
    "TierStateAccess",
    "ReadRouter",
    "ArchivalPipeline",
    "CleanupReconciler",
    "TieringWorker",
    "store_cycle_status",
    "get_cycle_status",
]
