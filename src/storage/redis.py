"""Redis storage - hot record store and dead-letter list."""

import json
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from src.tiering.errors import PermanentError, RecordNotFound, TransientStoreError
from src.tiering.interfaces import DeadLetterSink, HotRecordStore, Page
from src.tiering.models import DeadLetterEntry, Record
from src.utils.logging import get_logger
from src.utils.metrics import record_error, track_latency
from src.utils.retry import RetryConfig, retry_operation

logger = get_logger(__name__)


def check_redis_health(
    host: str = "localhost",
    port: int = 6379,
    db: int = 0,
    max_retries: int = 3,
    retry_delay: float = 1.0,
) -> Dict[str, Any]:
    """Check Redis connection health with retry logic."""
    last_error = None

    for attempt in range(1, max_retries + 1):
        try:
            client = redis.Redis(
                host=host,
                port=port,
                db=db,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            client.ping()
            client.close()

            return {
                "service": "redis",
                "tier": "hot",
                "status": "healthy",
                "host": host,
                "port": port,
                "attempt": attempt,
                "timestamp": datetime.now().isoformat(),
            }
        except Exception as e:
            last_error = e
            if attempt < max_retries:
                time.sleep(retry_delay)

    raise Exception(f"Redis health check failed after {max_retries} attempts: {last_error}")


def connect_redis(
    host: str = "localhost",
    port: int = 6379,
    db: int = 0,
    password: Optional[str] = None,
    socket_timeout: float = 5.0,
    socket_connect_timeout: float = 5.0,
    max_retries: int = 3,
    retry_delay: float = 1.0,
) -> redis.Redis:
    """Create a binary-safe Redis client, retrying the initial ping."""
    def create_client() -> redis.Redis:
        client = redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
        )
        client.ping()
        return client

    client = retry_operation(
        create_client,
        config=RetryConfig(
            max_retries=max_retries,
            initial_delay_ms=int(retry_delay * 1000),
            retryable_exceptions=(RedisConnectionError, RedisTimeoutError),
        ),
        operation_name="Redis connection",
    )
    logger.info(f"Connected to Redis at {host}:{port}/{db}")
    return client


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        record_error("redis_hot_store", f"{operation}_transient", "warning")
        raise TransientStoreError(f"Redis {operation} failed: {e}") from e
    except RedisError as e:
        record_error("redis_hot_store", f"{operation}_rejected", "error")
        raise PermanentError(f"Redis {operation} rejected: {e}") from e


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _to_millis(value: datetime, round_up: bool = False) -> int:
    """Epoch milliseconds; sub-millisecond parts round down unless ``round_up``.

    Stored timestamps round up and query cutoffs round down, so a record is
    only selected when its true timestamp is at or before the true cutoff.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - EPOCH
    micros = (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds
    if round_up:
        return -(-micros // 1000)
    return micros // 1000


def _from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class RedisHotStore(HotRecordStore):
    """Hot records as Redis hashes plus a time-ordered lexicographic index.

    Index members are ``<epoch ms, zero-padded>|<id>`` under score 0, so
    ZRANGEBYLEX walks them oldest first and the last member seen is a stable
    cursor even while other workers delete entries behind it.
    """

    PREFIX_RECORD = "record"
    INDEX_KEY = "records:by_time"
    TIMESTAMP_WIDTH = 15

    def __init__(self, client: redis.Redis):
        self._client = client

    @property
    def client(self) -> redis.Redis:
        return self._client

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError:
            return False

    def _make_record_key(self, record_id: str) -> str:
        return f"{self.PREFIX_RECORD}:{record_id}"

    def _make_index_member(self, record_id: str, timestamp_ms: int) -> str:
        if timestamp_ms < 0:
            raise PermanentError(f"{record_id}: timestamps before the epoch are not indexable")
        return f"{timestamp_ms:0{self.TIMESTAMP_WIDTH}d}|{record_id}"

    def get(self, record_id: str) -> Record:
        with _translate_errors("get"), track_latency("redis_hot_store", "get"):
            data = self._client.hgetall(self._make_record_key(record_id))

        if not data:
            raise RecordNotFound(record_id)

        return Record(
            id=record_id,
            timestamp=_from_millis(int(data[b"timestamp"])),
            payload=data[b"payload"],
        )

    def put(self, record: Record) -> None:
        timestamp_ms = _to_millis(record.timestamp, round_up=True)
        member = self._make_index_member(record.id, timestamp_ms)

        with _translate_errors("put"), track_latency("redis_hot_store", "put"):
            pipe = self._client.pipeline(transaction=True)
            pipe.hset(
                self._make_record_key(record.id),
                mapping={"payload": record.payload, "timestamp": timestamp_ms},
            )
            pipe.zadd(self.INDEX_KEY, {member: 0})
            pipe.execute()

    def delete(self, record_id: str) -> bool:
        key = self._make_record_key(record_id)

        with _translate_errors("delete"), track_latency("redis_hot_store", "delete"):
            raw_timestamp = self._client.hget(key, "timestamp")
            if raw_timestamp is None:
                return False

            pipe = self._client.pipeline(transaction=True)
            pipe.delete(key)
            pipe.zrem(self.INDEX_KEY, self._make_index_member(record_id, int(raw_timestamp)))
            deleted, _ = pipe.execute()

        return deleted == 1

    def query_older_than(
        self, cutoff: datetime, after: Optional[str] = None, limit: int = 500
    ) -> Page:
        cutoff_ms = _to_millis(cutoff)
        if cutoff_ms < 0:
            return Page()

        upper = f"({cutoff_ms + 1:0{self.TIMESTAMP_WIDTH}d}|"
        lower = f"({after}" if after else "-"

        with _translate_errors("query"), track_latency("redis_hot_store", "query"):
            members = self._client.zrangebylex(self.INDEX_KEY, lower, upper, start=0, num=limit)

        decoded = [m.decode("utf-8") if isinstance(m, bytes) else m for m in members]
        ids = [member.split("|", 1)[1] for member in decoded]
        next_cursor = decoded[-1] if len(decoded) == limit else None
        return Page(ids=ids, next_cursor=next_cursor)


class RedisDeadLetterSink(DeadLetterSink):
    """Bounded Redis list of dead-letter entries, newest first."""

    DEFAULT_KEY = "tiering:dead_letter"

    def __init__(self, client: redis.Redis, key: str = DEFAULT_KEY, max_size: int = 10000):
        self._client = client
        self.key = key
        self.max_size = max_size

    def send(self, entry: DeadLetterEntry) -> None:
        try:
            pipe = self._client.pipeline()
            pipe.lpush(self.key, entry.to_json())
            pipe.ltrim(self.key, 0, self.max_size - 1)
            pipe.execute()
        except RedisError as e:
            record_error("dead_letter_sink", "send_failed", "error")
            logger.error(f"Failed to push dead-letter entry for {entry.record_id}: {e}")

    def get_recent(self, limit: int = 100) -> List[Dict[str, Any]]:
        raw_entries = self._client.lrange(self.key, 0, limit - 1)
        return [json.loads(raw) for raw in raw_entries]
