"""Data model for record tiering: records, tier state, results and events."""

import json
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InvalidTransition


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TierStatus(str, Enum):
    UNARCHIVED = "unarchived"
    ARCHIVED = "archived"
    DELETED = "deleted"


class ReadStatus(str, Enum):
    HOT = "hot"
    COLD = "cold"


class Stage(str, Enum):
    READ = "read"
    ARCHIVE = "archive"
    CLEANUP = "cleanup"


class EventKind(str, Enum):
    HOT_READ = "hot_reads"
    COLD_READ = "cold_reads"
    FALLBACK = "fallback_count"
    ARCHIVE_SUCCESS = "archive_success"
    ARCHIVE_FAILURE = "archive_failure"
    CLEANUP_SUCCESS = "cleanup_success"
    CLEANUP_FAILURE = "cleanup_failure"


@dataclass(frozen=True)
class Record:
    """An immutable record. ``payload`` is opaque bytes."""
    id: str
    timestamp: datetime
    payload: bytes


@dataclass(frozen=True)
class TierState:
    """Lifecycle flags of one record.

    The only legal path is UNARCHIVED -> ARCHIVED -> DELETED. ``cold_location``
    and ``checksum`` are written once, together with ``archived``.
    """
    record_id: str
    archived: bool = False
    cold_location: Optional[str] = None
    checksum: Optional[str] = None
    deleted: bool = False
    record_timestamp: Optional[datetime] = field(default=None, compare=False)
    updated_at: Optional[datetime] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.archived != (self.cold_location is not None):
            raise ValueError(
                f"{self.record_id}: cold_location must be set iff archived"
            )
        if self.deleted and not self.archived:
            raise ValueError(f"{self.record_id}: deleted requires archived")

    @classmethod
    def unarchived(cls, record_id: str) -> "TierState":
        return cls(record_id=record_id)

    @property
    def status(self) -> TierStatus:
        if self.deleted:
            return TierStatus.DELETED
        if self.archived:
            return TierStatus.ARCHIVED
        return TierStatus.UNARCHIVED

    def archive(
        self,
        cold_location: str,
        checksum: str,
        record_timestamp: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> "TierState":
        if self.status is not TierStatus.UNARCHIVED:
            raise InvalidTransition(
                f"{self.record_id}: cannot archive from {self.status.value}"
            )
        return replace(
            self,
            archived=True,
            cold_location=cold_location,
            checksum=checksum,
            record_timestamp=record_timestamp,
            updated_at=now or utcnow(),
        )

    def mark_deleted(self, now: Optional[datetime] = None) -> "TierState":
        if self.status is not TierStatus.ARCHIVED:
            raise InvalidTransition(
                f"{self.record_id}: cannot mark deleted from {self.status.value}"
            )
        return replace(self, deleted=True, updated_at=now or utcnow())


@dataclass(frozen=True)
class ReadResult:
    record: Record
    status: ReadStatus


@dataclass(frozen=True)
class DeadLetterEntry:
    record_id: str
    stage: Stage
    error: str
    error_type: str
    timestamp: datetime

    @classmethod
    def from_exception(
        cls, record_id: str, stage: Stage, error: BaseException
    ) -> "DeadLetterEntry":
        return cls(
            record_id=record_id,
            stage=stage,
            error=str(error),
            error_type=type(error).__name__,
            timestamp=utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "stage": self.stage.value,
            "error": self.error,
            "error_type": self.error_type,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class TierEvent:
    """Immutable metric event; aggregation happens in the sink."""
    kind: EventKind
    record_id: str
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class ArchivalResult:
    migrated: int = 0
    failed: int = 0
    skipped: int = 0
    scanned: int = 0
    cancelled: bool = False
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CleanupResult:
    deleted: int = 0
    failed: int = 0
    skipped: int = 0
    scanned: int = 0
    cancelled: bool = False
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
