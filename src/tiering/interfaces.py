"""Collaborator contracts consumed by the tiering core.

Implementations must raise only the types in ``src.tiering.errors``:
``RecordNotFound`` for absence, ``TransientStoreError`` for retryable
failures, ``PermanentError`` for rejections.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .models import DeadLetterEntry, Record, TierEvent, TierState


@dataclass(frozen=True)
class Page:
    """One page of a resumable scan; ``next_cursor`` is None on the last page."""
    ids: List[str] = field(default_factory=list)
    next_cursor: Optional[str] = None


@dataclass(frozen=True)
class ColdObjectInfo:
    size: int
    checksum: Optional[str] = None


class HotRecordStore(ABC):

    @abstractmethod
    def get(self, record_id: str) -> Record:
        """Return the record or raise RecordNotFound."""

    @abstractmethod
    def put(self, record: Record) -> None:
        pass

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        """Delete the record; returns False if it was already absent."""

    @abstractmethod
    def query_older_than(
        self, cutoff: datetime, after: Optional[str] = None, limit: int = 500
    ) -> Page:
        """Page through ids whose timestamp is <= cutoff, oldest first."""


class ColdObjectStore(ABC):

    @abstractmethod
    def put(self, locator: str, payload: bytes, checksum: Optional[str] = None) -> None:
        pass

    @abstractmethod
    def get(self, locator: str) -> bytes:
        """Return the object bytes or raise RecordNotFound."""

    @abstractmethod
    def stat(self, locator: str) -> Optional[ColdObjectInfo]:
        """Return object metadata, or None if no object exists at locator."""


class TierStateStore(ABC):

    @abstractmethod
    def get_state(self, record_id: str) -> Optional[TierState]:
        pass

    @abstractmethod
    def get_states(self, record_ids: Iterable[str]) -> Dict[str, TierState]:
        """Batch lookup; ids without a row are absent from the result."""

    @abstractmethod
    def compare_and_set(
        self, record_id: str, expected: Optional[TierState], new: TierState
    ) -> bool:
        """Atomically replace ``expected`` with ``new``.

        ``expected=None`` means "no row yet". Returns False (a conflict) when
        the stored state differs from ``expected``.
        """

    @abstractmethod
    def list_pending_cleanup(
        self, after: Optional[str] = None, limit: int = 500
    ) -> List[TierState]:
        """Archived, not yet deleted states ordered by record id."""


class DeadLetterSink(ABC):

    @abstractmethod
    def send(self, entry: DeadLetterEntry) -> None:
        """Fire-and-forget; must not raise."""


class EventSink(ABC):

    @abstractmethod
    def emit(self, event: TierEvent) -> None:
        pass


class NullEventSink(EventSink):
    def emit(self, event: TierEvent) -> None:
        pass
