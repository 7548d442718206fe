"""
In-memory record store.

Pure bookkeeping keyed by record id; every mutation is serialized through one
re-entrant lock and announced through the change notifier.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Set

from .models import VideoRecord
from .notifications import ChangeNotifier


class RecordStore:
    """Mapping of record id to VideoRecord with coalesced change signals"""

    def __init__(self, notifier: Optional[ChangeNotifier] = None):
        self.notifier = notifier or ChangeNotifier()
        self._records: Dict[str, VideoRecord] = {}
        self._lock = threading.RLock()
        self._batch_depth = 0
        self._dirty = False

    @contextmanager
    def batch(self) -> Iterator['RecordStore']:
        """
        Group mutations so they publish a single trailing signal.

        The store lock is held for the whole batch, so readers never observe
        a partially applied batch.
        """
        publish = False
        with self._lock:
            self._batch_depth += 1
            try:
                yield self
            finally:
                self._batch_depth -= 1
                if self._batch_depth == 0:
                    publish = self._dirty
                    self._dirty = False
        if publish:
            self.notifier.publish()

    def _note_change(self) -> bool:
        """Record a mutation; returns True if the caller should publish now"""
        if self._batch_depth > 0:
            self._dirty = True
            return False
        return True

    def upsert(self, record: VideoRecord) -> None:
        """Insert or wholly replace the record with the same id"""
        with self._lock:
            if self._records.get(record.id) == record:
                return
            self._records[record.id] = record
            publish = self._note_change()
        if publish:
            self.notifier.publish()

    def remove(self, record_id: str) -> bool:
        """Remove a record; absent ids are a no-op. Returns True if removed."""
        with self._lock:
            if self._records.pop(record_id, None) is None:
                return False
            publish = self._note_change()
        if publish:
            self.notifier.publish()
        return True

    def clear(self) -> None:
        with self._lock:
            if not self._records:
                return
            self._records.clear()
            publish = self._note_change()
        if publish:
            self.notifier.publish()

    def get(self, record_id: str) -> Optional[VideoRecord]:
        with self._lock:
            return self._records.get(record_id)

    def all(self) -> List[VideoRecord]:
        """Records sorted newest first"""
        with self._lock:
            records = list(self._records.values())
        records.sort(key=lambda r: r.id)
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def ids(self) -> Set[str]:
        with self._lock:
            return set(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        with self._lock:
            return record_id in self._records
