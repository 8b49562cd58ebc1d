"""
Tests for PostgresTierStateStore against a mocked connection pool.

The SQL itself is exercised by the compare-and-set contract: a row count of
one means the transition won, zero means another writer got there first.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from src.storage.postgres import PostgresTierStateStore, check_postgres_health
from src.tiering.errors import PermanentError, TransientStoreError
from src.tiering.models import TierState

TS = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def cursor():
    cur = MagicMock()
    cur.fetchall.return_value = []
    cur.rowcount = 0
    return cur


@pytest.fixture
def conn(cursor):
    connection = MagicMock()
    connection.cursor.return_value.__enter__.return_value = cursor
    return connection


@pytest.fixture
def connection_pool(conn):
    pool = MagicMock()
    pool.getconn.return_value = conn
    return pool


@pytest.fixture
def store(connection_pool, cursor):
    state_store = PostgresTierStateStore(connection_pool=connection_pool)
    cursor.execute.reset_mock()
    return state_store


def row(record_id, archived=False, cold_location=None, checksum=None, deleted=False):
    return {
        "record_id": record_id,
        "archived": archived,
        "cold_location": cold_location,
        "checksum": checksum,
        "deleted": deleted,
        "record_timestamp": TS,
        "updated_at": TS,
    }


def executed_sql(cursor):
    return " ".join(cursor.execute.call_args.args[0].split())


class TestSchema:

    def test_init_creates_table_and_index(self, connection_pool, cursor, conn):
        PostgresTierStateStore(connection_pool=connection_pool)

        statements = " ".join(" ".join(c.args[0].split()) for c in cursor.execute.call_args_list)
        assert "CREATE TABLE IF NOT EXISTS tier_state" in statements
        assert "CHECK (NOT deleted OR archived)" in statements
        assert "idx_tier_state_pending_cleanup" in statements
        conn.commit.assert_called()
        connection_pool.putconn.assert_called_with(conn)


class TestReads:

    def test_get_state_maps_row(self, store, cursor):
        cursor.fetchall.return_value = [row("r-1", True, "records/aa/bb/r-1", "abc")]

        state = store.get_state("r-1")

        assert state == TierState("r-1", archived=True, cold_location="records/aa/bb/r-1", checksum="abc")
        assert state.record_timestamp == TS
        assert cursor.execute.call_args.args[1] == ("r-1",)

    def test_get_state_missing(self, store, cursor):
        assert store.get_state("r-1") is None

    def test_get_states_batches(self, store, cursor):
        cursor.fetchall.return_value = [row("a"), row("b")]

        states = store.get_states(["a", "b", "c"])

        assert set(states) == {"a", "b"}
        assert "= ANY(%s)" in executed_sql(cursor)
        assert cursor.execute.call_args.args[1] == (["a", "b", "c"],)

    def test_get_states_empty_skips_query(self, store, cursor):
        assert store.get_states([]) == {}
        cursor.execute.assert_not_called()

    def test_list_pending_cleanup_keyset(self, store, cursor):
        cursor.fetchall.return_value = [row("b", True, "loc-b", "x")]

        states = store.list_pending_cleanup(after="a", limit=10)

        sql = executed_sql(cursor)
        assert "archived AND NOT deleted AND record_id > %s" in sql
        assert "ORDER BY record_id" in sql
        assert cursor.execute.call_args.args[1] == ("a", 10)
        assert [s.record_id for s in states] == ["b"]

    def test_list_pending_cleanup_first_page(self, store, cursor):
        store.list_pending_cleanup(limit=5)
        assert cursor.execute.call_args.args[1] == ("", 5)


class TestCompareAndSet:

    def test_insert_when_no_prior_row(self, store, cursor):
        cursor.rowcount = 1
        new = TierState.unarchived("r-1").archive("loc", "abc", record_timestamp=TS)

        assert store.compare_and_set("r-1", None, new) is True
        sql = executed_sql(cursor)
        assert sql.startswith("INSERT INTO tier_state")
        assert "ON CONFLICT (record_id) DO NOTHING" in sql

    def test_insert_conflict(self, store, cursor):
        cursor.rowcount = 0
        new = TierState.unarchived("r-1").archive("loc", "abc")
        assert store.compare_and_set("r-1", None, new) is False

    def test_update_pins_full_prior_state(self, store, cursor):
        cursor.rowcount = 1
        prior = TierState.unarchived("r-1").archive("loc", "abc")

        assert store.compare_and_set("r-1", prior, prior.mark_deleted()) is True

        sql = executed_sql(cursor)
        params = cursor.execute.call_args.args[1]
        assert sql.startswith("UPDATE tier_state SET")
        assert "cold_location IS NOT DISTINCT FROM %s" in sql
        assert "checksum IS NOT DISTINCT FROM %s" in sql
        # new values ... record_id, expected archived/deleted/location/checksum
        assert params[0:4] == (True, "loc", "abc", True)
        assert params[-5:] == ("r-1", True, False, "loc", "abc")

    def test_update_lost_race(self, store, cursor):
        cursor.rowcount = 0
        prior = TierState.unarchived("r-1").archive("loc", "abc")
        assert store.compare_and_set("r-1", prior, prior.mark_deleted()) is False

    def test_mismatched_ids_rejected(self, store):
        with pytest.raises(ValueError):
            store.compare_and_set("r-1", None, TierState.unarchived("r-2"))


class TestErrorTranslation:

    def test_operational_error_is_transient(self, store, cursor, conn):
        cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")

        with pytest.raises(TransientStoreError):
            store.get_state("r-1")
        conn.rollback.assert_called()

    def test_pool_exhaustion_is_transient(self, store, connection_pool):
        connection_pool.getconn.side_effect = psycopg2.pool.PoolError("connection pool exhausted")
        with pytest.raises(TransientStoreError):
            store.get_state("r-1")

    def test_integrity_error_is_permanent(self, store, cursor):
        cursor.execute.side_effect = psycopg2.IntegrityError("check constraint")
        new = TierState.unarchived("r-1").archive("loc", "abc")
        with pytest.raises(PermanentError):
            store.compare_and_set("r-1", None, new)

    def test_ping(self, store, cursor):
        assert store.ping() is True
        cursor.execute.side_effect = psycopg2.OperationalError("down")
        assert store.ping() is False


class TestPostgresHealthCheck:

    def test_healthy_after_retry(self):
        conn = MagicMock()
        with patch("src.storage.postgres.psycopg2.connect",
                   side_effect=[psycopg2.OperationalError("starting up"), conn]) as connect:
            result = check_postgres_health(database="tiering", max_retries=3, retry_delay=0.001)

        assert result["status"] == "healthy"
        assert result["attempt"] == 2
        assert connect.call_count == 2
        conn.close.assert_called_once()

    def test_unhealthy(self):
        with patch("src.storage.postgres.psycopg2.connect",
                   side_effect=psycopg2.OperationalError("refused")):
            with pytest.raises(psycopg2.OperationalError):
                check_postgres_health(max_retries=2, retry_delay=0.001)
