"""Deterministic cold locators, record id validation and payload checksums."""

import hashlib
import re

from .errors import PermanentError

MAX_RECORD_ID_LENGTH = 256
COLD_PREFIX = "records"

_RECORD_ID_PATTERN = re.compile(r"[A-Za-z0-9._:@-]+")


def validate_record_id(record_id: str) -> str:
    if not isinstance(record_id, str) or not record_id:
        raise PermanentError("record id must be a non-empty string")
    if len(record_id) > MAX_RECORD_ID_LENGTH:
        raise PermanentError(
            f"record id longer than {MAX_RECORD_ID_LENGTH} characters"
        )
    if not _RECORD_ID_PATTERN.fullmatch(record_id) or record_id in (".", ".."):
        raise PermanentError(f"malformed record id: {record_id!r}")
    return record_id


def derive_cold_locator(record_id: str) -> str:
    """Map a record id onto its one and only cold object key.

    Two hex levels of the id digest fan the keys out across prefixes.
    """
    validate_record_id(record_id)
    digest = hashlib.sha256(record_id.encode("utf-8")).hexdigest()
    return f"{COLD_PREFIX}/{digest[:2]}/{digest[2:4]}/{record_id}"


def payload_checksum(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()
