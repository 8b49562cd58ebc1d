"""Error taxonomy shared by the read router, the jobs and the store adapters.

Store adapters translate driver exceptions into these types at the boundary,
so the core only ever reasons about four outcomes: genuine absence, a
retryable store failure, a non-retryable rejection, and metadata that
physical inspection cannot confirm.
"""

from typing import Optional


class TieringError(Exception):
    """Base class for all tiering errors."""


class RecordNotFound(TieringError):
    """The record (or cold object) genuinely does not exist."""

    def __init__(self, key: str, message: Optional[str] = None):
        self.key = key
        super().__init__(message or f"Not found: {key}")


class TransientStoreError(TieringError):
    """Network failure, throttling or timeout. Safe to retry."""


class PermanentError(TieringError):
    """Malformed input or an unrecoverable store rejection. Never retried."""


class ConsistencyViolation(TieringError):
    """Tier state promises data that the stores cannot produce or verify."""

    def __init__(self, record_id: str, message: str):
        self.record_id = record_id
        super().__init__(f"{record_id}: {message}")


class InvalidTransition(TieringError):
    """A tier state transition would skip or reverse a lifecycle step."""
