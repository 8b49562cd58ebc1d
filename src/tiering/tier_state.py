"""Tier state access layer.

All lifecycle transitions go through here. Each one is a single
compare-and-set keyed on the prior state, so two workers racing on the same
record cannot both win: the loser sees a conflict and treats it as a no-op.
"""

from datetime import datetime
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from src.utils.logging import get_logger

from .interfaces import TierStateStore
from .models import TierState

logger = get_logger(__name__)


class TierStateAccess:

    def __init__(self, store: TierStateStore):
        self.store = store

    def get(self, record_id: str) -> Optional[TierState]:
        return self.store.get_state(record_id)

    def states_for(self, record_ids: Iterable[str]) -> Dict[str, TierState]:
        ids = list(record_ids)
        if not ids:
            return {}
        return self.store.get_states(ids)

    def mark_archived(
        self,
        record_id: str,
        prior: Optional[TierState],
        cold_location: str,
        checksum: str,
        record_timestamp: Optional[datetime] = None,
    ) -> bool:
        """UNARCHIVED -> ARCHIVED. ``prior`` is None when no row exists yet."""
        base = prior if prior is not None else TierState.unarchived(record_id)
        new = base.archive(cold_location, checksum, record_timestamp=record_timestamp)
        won = self.store.compare_and_set(record_id, prior, new)
        if not won:
            logger.info(f"Archive transition for {record_id} lost a race, skipping")
        return won

    def mark_deleted(self, prior: TierState) -> bool:
        """ARCHIVED -> DELETED."""
        new = prior.mark_deleted()
        won = self.store.compare_and_set(prior.record_id, prior, new)
        if not won:
            logger.info(
                f"Delete transition for {prior.record_id} lost a race, skipping"
            )
        return won

    def iter_pending_cleanup(
        self,
        page_size: int,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> Iterator[List[TierState]]:
        """Yield pages of archived-but-not-deleted states, keyset-paginated."""
        after: Optional[str] = None
        while True:
            if should_stop and should_stop():
                return
            page = self.store.list_pending_cleanup(after=after, limit=page_size)
            if not page:
                return
            yield page
            if len(page) < page_size:
                return
            after = page[-1].record_id
