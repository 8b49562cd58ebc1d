"""
Tests for the tier state model, its access layer, locators and the in-flight guard.
"""

import json
from datetime import datetime, timezone

import pytest
from hypothesis import given, settings, strategies as st

from src.tiering.errors import ConsistencyViolation, InvalidTransition, PermanentError
from src.tiering.inflight import InFlightGuard
from src.tiering.locator import (
    MAX_RECORD_ID_LENGTH,
    derive_cold_locator,
    payload_checksum,
    validate_record_id,
)
from src.tiering.models import (
    ArchivalResult,
    CleanupResult,
    DeadLetterEntry,
    Stage,
    TierState,
    TierStatus,
)

record_ids = st.text(
    alphabet="abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._:@-",
    min_size=1,
    max_size=MAX_RECORD_ID_LENGTH,
).filter(lambda s: s not in (".", ".."))


class TestTierStateModel:

    def test_new_state_is_unarchived(self):
        state = TierState.unarchived("r-1")
        assert state.status is TierStatus.UNARCHIVED
        assert state.cold_location is None

    def test_full_lifecycle(self):
        ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
        archived = TierState.unarchived("r-1").archive("records/aa/bb/r-1", "abc", record_timestamp=ts)
        deleted = archived.mark_deleted()

        assert archived.status is TierStatus.ARCHIVED
        assert archived.record_timestamp == ts
        assert deleted.status is TierStatus.DELETED
        assert deleted.cold_location == archived.cold_location
        assert deleted.checksum == "abc"

    def test_cannot_delete_unarchived(self):
        with pytest.raises(InvalidTransition):
            TierState.unarchived("r-1").mark_deleted()

    def test_cannot_archive_twice(self):
        archived = TierState.unarchived("r-1").archive("loc", "abc")
        with pytest.raises(InvalidTransition):
            archived.archive("other-loc", "def")

    def test_cannot_archive_deleted(self):
        deleted = TierState.unarchived("r-1").archive("loc", "abc").mark_deleted()
        with pytest.raises(InvalidTransition):
            deleted.archive("loc", "abc")
        with pytest.raises(InvalidTransition):
            deleted.mark_deleted()

    def test_deleted_requires_archived(self):
        with pytest.raises(ValueError):
            TierState("r-1", deleted=True)

    def test_cold_location_iff_archived(self):
        with pytest.raises(ValueError):
            TierState("r-1", archived=True)
        with pytest.raises(ValueError):
            TierState("r-1", cold_location="loc")

    def test_equality_ignores_timestamps(self):
        a = TierState.unarchived("r-1").archive("loc", "abc")
        b = TierState("r-1", archived=True, cold_location="loc", checksum="abc")
        assert a == b


class TestTierStateAccess:

    def test_mark_archived_from_no_row(self, tier_state, state_store):
        assert tier_state.mark_archived("r-1", None, "loc", "abc")
        assert state_store.states["r-1"].archived

    def test_mark_archived_conflict(self, tier_state, state_store):
        state_store.states["r-1"] = TierState.unarchived("r-1").archive("loc", "abc")
        assert not tier_state.mark_archived("r-1", None, "loc", "abc")

    def test_mark_archived_from_existing_unarchived_row(self, tier_state, state_store):
        prior = TierState.unarchived("r-1")
        state_store.states["r-1"] = prior
        assert tier_state.mark_archived("r-1", prior, "loc", "abc")

    def test_mark_deleted_conflict_after_concurrent_delete(self, tier_state, state_store):
        archived = TierState.unarchived("r-1").archive("loc", "abc")
        state_store.states["r-1"] = archived.mark_deleted()
        assert not tier_state.mark_deleted(archived)

    def test_states_for_empty_skips_store(self, tier_state, state_store):
        assert tier_state.states_for([]) == {}
        assert state_store.calls["get_states"] == 0

    def test_iter_pending_cleanup_pages(self, tier_state, state_store):
        for i in range(5):
            state_store.states[f"r-{i}"] = TierState.unarchived(f"r-{i}").archive(f"loc-{i}", "x")
        state_store.states["u"] = TierState.unarchived("u")

        pages = list(tier_state.iter_pending_cleanup(page_size=2))

        assert [[s.record_id for s in page] for page in pages] == [
            ["r-0", "r-1"], ["r-2", "r-3"], ["r-4"]
        ]

    def test_iter_pending_cleanup_stops(self, tier_state, state_store):
        state_store.states["r-0"] = TierState.unarchived("r-0").archive("loc", "x")
        assert list(tier_state.iter_pending_cleanup(2, should_stop=lambda: True)) == []


class TestLocator:

    @given(record_id=record_ids)
    def test_locator_is_deterministic(self, record_id):
        assert derive_cold_locator(record_id) == derive_cold_locator(record_id)
        assert derive_cold_locator(record_id).endswith("/" + record_id)

    @given(a=record_ids, b=record_ids)
    def test_distinct_ids_have_distinct_locators(self, a, b):
        if a != b:
            assert derive_cold_locator(a) != derive_cold_locator(b)

    def test_locator_layout(self):
        locator = derive_cold_locator("R1")
        prefix, first, second, tail = locator.split("/")
        assert prefix == "records"
        assert len(first) == len(second) == 2
        assert tail == "R1"

    @pytest.mark.parametrize("bad", ["", "a/b", "a b", "x\n", "..", "é", "a" * (MAX_RECORD_ID_LENGTH + 1)])
    def test_malformed_ids_rejected(self, bad):
        with pytest.raises(PermanentError):
            validate_record_id(bad)

    def test_checksum_is_sha256(self):
        assert payload_checksum(b"") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )


class TestResults:

    def test_dead_letter_entry_json(self):
        error = ConsistencyViolation("r-1", "cold object missing")
        entry = DeadLetterEntry.from_exception("r-1", Stage.CLEANUP, error)

        data = json.loads(entry.to_json())

        assert data["record_id"] == "r-1"
        assert data["stage"] == "cleanup"
        assert data["error"] == "r-1: cold object missing"
        assert data["error_type"] == "ConsistencyViolation"
        assert datetime.fromisoformat(data["timestamp"])

    def test_result_dicts(self):
        assert ArchivalResult(migrated=2, failed=1).to_dict()["migrated"] == 2
        assert CleanupResult(deleted=3).to_dict()["deleted"] == 3


class TestInFlightGuard:

    def test_second_claim_is_refused(self):
        guard = InFlightGuard()
        with guard.claim("r-1") as first:
            with guard.claim("r-1") as second:
                assert first and not second
            assert "r-1" in guard
        assert "r-1" not in guard

    def test_claims_are_per_id(self):
        guard = InFlightGuard()
        with guard.claim("r-1") as a, guard.claim("r-2") as b:
            assert a and b

    @settings(max_examples=20)
    @given(ids=st.lists(st.sampled_from(["a", "b", "c"]), max_size=10))
    def test_released_after_exception(self, ids):
        guard = InFlightGuard()
        for record_id in ids:
            with pytest.raises(RuntimeError):
                with guard.claim(record_id):
                    raise RuntimeError("boom")
            assert record_id not in guard
