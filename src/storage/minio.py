"""
MinIO storage module - cold object store for archived record payloads.

Objects live at the deterministic locator derived from the record id; the
payload SHA-256 is kept in object metadata so a re-run can recognise an
upload that completed before a crash.
"""

import io
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, Optional

import urllib3
from minio import Minio
from minio.error import InvalidResponseError, S3Error, ServerError

from src.tiering.errors import PermanentError, RecordNotFound, TransientStoreError
from src.tiering.interfaces import ColdObjectInfo, ColdObjectStore
from src.utils.logging import get_logger
from src.utils.metrics import record_error, record_retry, track_latency
from src.utils.retry import RetryConfig, retry_operation

logger = get_logger(__name__)

NOT_FOUND_CODES = frozenset({"NoSuchKey", "ResourceNotFound"})
PERMANENT_CODES = frozenset({
    "AccessDenied",
    "InvalidObjectName",
    "EntityTooLarge",
    "InvalidBucketName",
    "NoSuchBucket",
})


def check_minio_health(
    endpoint: str = "localhost:9000",
    access_key: str = "minioadmin",
    secret_key: str = "minioadmin",
    bucket: str = "record-archive",
    secure: bool = False,
    max_retries: int = 3,
    retry_delay: float = 1.0,
) -> Dict[str, Any]:
    """Check MinIO connection health (cold tier)."""
    def probe() -> bool:
        client = Minio(endpoint, access_key=access_key, secret_key=secret_key, secure=secure)
        return client.bucket_exists(bucket)

    bucket_exists = retry_operation(
        probe,
        config=RetryConfig(
            max_retries=max_retries,
            initial_delay_ms=int(retry_delay * 1000),
            retryable_exceptions=(S3Error, urllib3.exceptions.HTTPError),
        ),
        operation_name="MinIO health check",
    )
    return {
        "service": "minio",
        "tier": "cold",
        "status": "healthy",
        "endpoint": endpoint,
        "bucket": bucket,
        "bucket_exists": bucket_exists,
        "timestamp": datetime.now().isoformat(),
    }


@contextmanager
def _translate_errors(operation: str, locator: str) -> Iterator[None]:
    try:
        yield
    except S3Error as e:
        if e.code in NOT_FOUND_CODES:
            raise RecordNotFound(locator) from e
        if e.code in PERMANENT_CODES:
            record_error("minio_cold_store", f"{operation}_rejected", "error")
            raise PermanentError(f"MinIO {operation} {locator} rejected: {e.code}") from e
        record_error("minio_cold_store", f"{operation}_transient", "warning")
        raise TransientStoreError(f"MinIO {operation} {locator} failed: {e.code}") from e
    except (ServerError, InvalidResponseError, urllib3.exceptions.HTTPError) as e:
        record_error("minio_cold_store", f"{operation}_transient", "warning")
        raise TransientStoreError(f"MinIO {operation} {locator} failed: {e}") from e


class MinioColdStore(ColdObjectStore):
    """MinIO/S3 storage for archived payloads (cold tier)."""

    CONTENT_TYPE = "application/octet-stream"
    CHECKSUM_METADATA_KEY = "sha256"

    def __init__(
        self,
        endpoint: str = "localhost:9000",
        access_key: str = "minioadmin",
        secret_key: str = "minioadmin",
        bucket: str = "record-archive",
        secure: bool = False,
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        client: Optional[Minio] = None,
    ):
        self.endpoint = endpoint
        self.bucket = bucket
        self.secure = secure

        self._retry_config = RetryConfig(
            max_retries=max_retries,
            initial_delay_ms=int(retry_delay * 1000),
            max_delay_ms=60000,
            multiplier=2.0,
            jitter_factor=0.1,
            retryable_exceptions=(S3Error, urllib3.exceptions.HTTPError),
        )

        if client is None:
            # Retries belong to the tiering jobs; urllib3 fails fast on its own.
            http_client = urllib3.PoolManager(
                timeout=urllib3.Timeout(connect=timeout_seconds, read=timeout_seconds),
                retries=urllib3.Retry(total=0),
                maxsize=16,
            )
            client = Minio(
                endpoint,
                access_key=access_key,
                secret_key=secret_key,
                secure=secure,
                http_client=http_client,
            )
        self._client = client
        self._ensure_bucket()
        logger.info(f"MinioColdStore initialized at {endpoint}, bucket={bucket}")

    def _ensure_bucket(self) -> None:
        """Create bucket if it doesn't exist."""
        def ensure():
            if not self._client.bucket_exists(self.bucket):
                self._client.make_bucket(self.bucket)
                logger.info(f"Created bucket: {self.bucket}")

        def on_retry(attempt: int, delay_ms: int, error: Exception):
            record_retry("minio_cold_store", "ensure_bucket", "failed")

        retry_operation(
            ensure, config=self._retry_config,
            operation_name="MinIO bucket setup", on_retry=on_retry,
        )

    def ping(self) -> bool:
        try:
            return self._client.bucket_exists(self.bucket)
        except (S3Error, ServerError, InvalidResponseError, urllib3.exceptions.HTTPError):
            return False

    def put(self, locator: str, payload: bytes, checksum: Optional[str] = None) -> None:
        metadata = {self.CHECKSUM_METADATA_KEY: checksum} if checksum else None
        with _translate_errors("put", locator), track_latency("minio_cold_store", "put"):
            self._client.put_object(
                self.bucket,
                locator,
                io.BytesIO(payload),
                len(payload),
                content_type=self.CONTENT_TYPE,
                metadata=metadata,
            )
        logger.debug(f"Wrote {len(payload)} bytes to {locator}")

    def get(self, locator: str) -> bytes:
        with _translate_errors("get", locator), track_latency("minio_cold_store", "get"):
            response = self._client.get_object(self.bucket, locator)
            try:
                return response.read()
            finally:
                response.close()
                response.release_conn()

    def stat(self, locator: str) -> Optional[ColdObjectInfo]:
        try:
            with _translate_errors("stat", locator), track_latency("minio_cold_store", "stat"):
                obj = self._client.stat_object(self.bucket, locator)
        except RecordNotFound:
            return None

        checksum = None
        wanted = f"x-amz-meta-{self.CHECKSUM_METADATA_KEY}"
        for key, value in (obj.metadata or {}).items():
            if key.lower() == wanted:
                checksum = value
                break
        return ColdObjectInfo(size=obj.size, checksum=checksum)
