"""
Remote change reconciliation.

Applies batches of remote change notifications to the record store, then
prunes any local record the remote no longer reports. Incremental events are
an optimization; the snapshot id set accompanying each batch is the ground
truth.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from .errors import DecodeFailed, SubscriptionFailed
from .models import VideoRecord
from .store import RecordStore

logger = logging.getLogger("video_uploader")


class ChangeType(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class ChangeEvent:
    """One remote change; payload is None for removals"""
    type: ChangeType
    record_id: str
    payload: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ChangeBatch:
    """
    Changes delivered together by the remote subscription.

    ``complete`` is False when the adapter cannot vouch that
    ``snapshot_ids`` lists every remote document (e.g. a partial snapshot
    while reconnecting); the pruning pass is skipped for such batches.
    """
    events: List[ChangeEvent]
    snapshot_ids: FrozenSet[str]
    complete: bool = True


@dataclass
class ReconcileResult:
    applied: int = 0
    skipped: int = 0
    pruned: List[str] = field(default_factory=list)


class RemoteChangeReconciler:
    """Merges remote change batches into the record store"""

    def __init__(self, store: RecordStore):
        self.store = store
        self.apply_lock = threading.RLock()
        self._error_listeners: List[Callable[[SubscriptionFailed], None]] = []
        self._last_error: Optional[SubscriptionFailed] = None
        self.batches_applied = 0

    @property
    def last_error(self) -> Optional[SubscriptionFailed]:
        return self._last_error

    def reset(self) -> None:
        """Forget the last subscription error (a fresh subscription started)"""
        self._last_error = None

    def add_error_listener(self, callback: Callable[[SubscriptionFailed], None]) -> None:
        self._error_listeners.append(callback)

    def apply_batch(self, batch: ChangeBatch) -> ReconcileResult:
        """
        Apply one batch of remote changes.

        Args:
            batch: Events in arrival order plus the remote id snapshot

        Returns:
            ReconcileResult with counts of applied and skipped events and
            the ids pruned by the snapshot pass
        """
        result = ReconcileResult()

        with self.apply_lock, self.store.batch():
            for event in batch.events:
                if event.type == ChangeType.REMOVED:
                    self.store.remove(event.record_id)
                    result.applied += 1
                    continue

                try:
                    record = VideoRecord.from_document(event.record_id, event.payload)
                except DecodeFailed as e:
                    logger.warning(f"Skipping {event.type.value} event: {e}")
                    result.skipped += 1
                    continue

                # added and modified are both last-write-wins upserts: a
                # duplicate "added" replaces, a "modified" for an unknown id
                # inserts.
                self.store.upsert(record)
                result.applied += 1

            if batch.complete:
                stale = self.store.ids() - set(batch.snapshot_ids)
                for record_id in sorted(stale):
                    self.store.remove(record_id)
                    result.pruned.append(record_id)
                if stale:
                    logger.info(f"Removed records no longer present remotely: {sorted(stale)}")
            else:
                logger.debug("Snapshot not known to be complete, skipping prune pass")

            self.batches_applied += 1

        logger.debug(
            f"Reconciled batch: {result.applied} applied, {result.skipped} skipped, "
            f"{len(result.pruned)} pruned, {len(self.store)} records"
        )
        return result

    def handle_error(self, error: Exception) -> None:
        """
        Report a change stream failure.

        Existing records are kept: stale data is preferred over none during
        an outage.
        """
        if not isinstance(error, SubscriptionFailed):
            wrapped = SubscriptionFailed(str(error))
            wrapped.__cause__ = error
            error = wrapped

        self._last_error = error
        logger.error(f"Remote change stream failed: {error}")

        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception as e:
                logger.error(f"Subscription error listener failed: {e}")
