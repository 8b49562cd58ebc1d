"""PostgreSQL storage - authoritative tier state for every record."""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor

from src.tiering.errors import PermanentError, TransientStoreError
from src.tiering.interfaces import TierStateStore
from src.tiering.models import TierState
from src.utils.logging import get_logger
from src.utils.metrics import record_error, record_retry, track_latency
from src.utils.retry import RetryConfig, retry_operation

logger = get_logger(__name__)


def check_postgres_health(
    host: str = "localhost",
    port: int = 5432,
    user: str = "tiering",
    password: str = "tiering",
    database: str = "tiering",
    max_retries: int = 3,
    retry_delay: float = 1.0,
) -> Dict[str, Any]:
    """Check PostgreSQL connection health (tier state store)."""
    def probe() -> int:
        conn = psycopg2.connect(
            host=host, port=port, user=user, password=password,
            database=database, connect_timeout=5,
        )
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        finally:
            conn.close()
        return 1

    attempts = []

    def on_retry(attempt: int, delay_ms: int, error: Exception) -> None:
        attempts.append(attempt)

    retry_operation(
        probe,
        config=RetryConfig(
            max_retries=max_retries,
            initial_delay_ms=int(retry_delay * 1000),
            retryable_exceptions=(psycopg2.OperationalError,),
        ),
        operation_name="PostgreSQL health check",
        on_retry=on_retry,
    )
    return {
        "service": "postgresql",
        "tier": "state",
        "status": "healthy",
        "host": host,
        "port": port,
        "attempt": len(attempts) + 1,
        "timestamp": datetime.now().isoformat(),
    }


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (psycopg2.OperationalError, psycopg2.InterfaceError, pool.PoolError) as e:
        record_error("postgres_tier_state", f"{operation}_transient", "warning")
        raise TransientStoreError(f"PostgreSQL {operation} failed: {e}") from e
    except psycopg2.Error as e:
        record_error("postgres_tier_state", f"{operation}_rejected", "error")
        raise PermanentError(f"PostgreSQL {operation} rejected: {e}") from e


class PostgresTierStateStore(TierStateStore):
    """Tier state rows with compare-and-set transitions.

    Every transition is one statement whose WHERE clause pins the full prior
    state, so a concurrent writer turns a second transition into a zero-row
    update instead of a lost write.
    """

    COLUMNS = (
        "record_id, archived, cold_location, checksum, deleted, "
        "record_timestamp, updated_at"
    )

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        user: str = "tiering",
        password: str = "tiering",
        database: str = "tiering",
        min_connections: int = 1,
        max_connections: int = 10,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        connection_pool: Optional[pool.AbstractConnectionPool] = None,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.min_connections = min_connections
        self.max_connections = max_connections

        self._retry_config = RetryConfig(
            max_retries=max_retries,
            initial_delay_ms=int(retry_delay * 1000),
            max_delay_ms=60000,
            multiplier=2.0,
            jitter_factor=0.1,
            retryable_exceptions=(psycopg2.OperationalError, psycopg2.InterfaceError),
        )

        self._pool = connection_pool
        if self._pool is None:
            self._connect_with_retry()
        self._init_tables()
        logger.info(f"PostgresTierStateStore initialized at {host}:{port}/{database}")

    def _connect_with_retry(self) -> None:
        def create_pool():
            self._pool = pool.ThreadedConnectionPool(
                self.min_connections,
                self.max_connections,
                host=self.host,
                port=self.port,
                user=self.user,
                password=self.password,
                database=self.database
            )
            return self._pool

        def on_retry(attempt: int, delay_ms: int, error: Exception):
            record_retry("postgres_tier_state", "connect", "failed")

        try:
            retry_operation(
                create_pool,
                config=self._retry_config,
                operation_name="PostgreSQL connection",
                on_retry=on_retry,
            )
            record_retry("postgres_tier_state", "connect", "success")
        except Exception:
            record_error("postgres_tier_state", "connection_error", "critical")
            raise

    @contextmanager
    def _get_connection(self):
        conn = None
        try:
            conn = self._pool.getconn()
            yield conn
            conn.commit()
        except Exception:
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                self._pool.putconn(conn)

    def _execute(
        self,
        operation: str,
        query: str,
        params: Optional[tuple] = None,
        fetch: bool = False,
    ) -> Tuple[List[Dict[str, Any]], int]:
        with _translate_errors(operation), track_latency("postgres_tier_state", operation):
            with self._get_connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(query, params)
                    rows = [dict(row) for row in cur.fetchall()] if fetch else []
                    return rows, cur.rowcount

    def _init_tables(self) -> None:
        with _translate_errors("init"), self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS tier_state (
                        record_id VARCHAR(256) PRIMARY KEY,
                        archived BOOLEAN NOT NULL DEFAULT FALSE,
                        cold_location TEXT,
                        checksum TEXT,
                        deleted BOOLEAN NOT NULL DEFAULT FALSE,
                        record_timestamp TIMESTAMPTZ,
                        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                        CHECK (archived = (cold_location IS NOT NULL)),
                        CHECK (NOT deleted OR archived)
                    )
                """)
                cur.execute("""
                    CREATE INDEX IF NOT EXISTS idx_tier_state_pending_cleanup
                    ON tier_state(record_id) WHERE archived AND NOT deleted
                """)
        logger.debug("PostgreSQL tier_state table initialized")

    def close(self) -> None:
        if self._pool:
            self._pool.closeall()
            logger.info("PostgreSQL connection pool closed")

    def ping(self) -> bool:
        try:
            self._execute("ping", "SELECT 1", fetch=True)
            return True
        except (TransientStoreError, PermanentError):
            return False

    @staticmethod
    def _row_to_state(row: Dict[str, Any]) -> TierState:
        return TierState(
            record_id=row["record_id"],
            archived=row["archived"],
            cold_location=row["cold_location"],
            checksum=row["checksum"],
            deleted=row["deleted"],
            record_timestamp=row["record_timestamp"],
            updated_at=row["updated_at"],
        )

    def get_state(self, record_id: str) -> Optional[TierState]:
        rows, _ = self._execute(
            "get_state",
            f"SELECT {self.COLUMNS} FROM tier_state WHERE record_id = %s",
            (record_id,),
            fetch=True,
        )
        return self._row_to_state(rows[0]) if rows else None

    def get_states(self, record_ids: Iterable[str]) -> Dict[str, TierState]:
        ids = list(record_ids)
        if not ids:
            return {}
        rows, _ = self._execute(
            "get_states",
            f"SELECT {self.COLUMNS} FROM tier_state WHERE record_id = ANY(%s)",
            (ids,),
            fetch=True,
        )
        return {row["record_id"]: self._row_to_state(row) for row in rows}

    def compare_and_set(
        self, record_id: str, expected: Optional[TierState], new: TierState
    ) -> bool:
        if new.record_id != record_id:
            raise ValueError(f"state for {new.record_id} passed for {record_id}")

        if expected is None:
            query = """
                INSERT INTO tier_state
                (record_id, archived, cold_location, checksum, deleted, record_timestamp, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, COALESCE(%s, NOW()))
                ON CONFLICT (record_id) DO NOTHING
            """
            params = (
                record_id, new.archived, new.cold_location, new.checksum,
                new.deleted, new.record_timestamp, new.updated_at,
            )
        else:
            query = """
                UPDATE tier_state SET
                    archived = %s, cold_location = %s, checksum = %s, deleted = %s,
                    record_timestamp = COALESCE(%s, record_timestamp),
                    updated_at = COALESCE(%s, NOW())
                WHERE record_id = %s
                  AND archived = %s
                  AND deleted = %s
                  AND cold_location IS NOT DISTINCT FROM %s
                  AND checksum IS NOT DISTINCT FROM %s
            """
            params = (
                new.archived, new.cold_location, new.checksum, new.deleted,
                new.record_timestamp, new.updated_at,
                record_id, expected.archived, expected.deleted,
                expected.cold_location, expected.checksum,
            )

        _, rowcount = self._execute("compare_and_set", query, params)
        return rowcount == 1

    def list_pending_cleanup(
        self, after: Optional[str] = None, limit: int = 500
    ) -> List[TierState]:
        rows, _ = self._execute(
            "list_pending_cleanup",
            f"""
                SELECT {self.COLUMNS} FROM tier_state
                WHERE archived AND NOT deleted AND record_id > %s
                ORDER BY record_id
                LIMIT %s
            """,
            (after or "", limit),
            fetch=True,
        )
        return [self._row_to_state(row) for row in rows]
