"""
In-process document store and object store.

Used for local runs without cloud credentials and for tests. Subscriptions
are delivered synchronously in the writing thread, one batch per write, in
write order.
"""

import copy
import logging
import threading
from typing import Optional, Dict, Any, List, Iterable

from .base import (
    DocumentStoreAdapter,
    ObjectStoreAdapter,
    SubscriptionHandle,
    TransferHandle,
    BatchCallback,
    ErrorCallback,
    ProgressCallback,
    snapshot_changes,
)
from ..errors import (
    RemoteWriteFailed,
    SubscriptionFailed,
    TransferFailed,
    URLResolutionFailed,
)

logger = logging.getLogger("video_uploader")


class MemorySubscription(SubscriptionHandle):
    """Subscription to a MemoryDocumentStore collection"""

    def __init__(self, store: 'MemoryDocumentStore', user_id: str,
                 on_batch: BatchCallback, on_error: ErrorCallback):
        self.store = store
        self.user_id = user_id
        self.on_batch = on_batch
        self.on_error = on_error
        self.delivered: Dict[str, Dict[str, Any]] = {}
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, current: Dict[str, Dict[str, Any]]) -> None:
        if not self._active:
            return
        batch = snapshot_changes(self.delivered, current)
        self.delivered = current
        self.on_batch(batch)

    def fail(self, error: SubscriptionFailed) -> None:
        """Simulate a stream failure; the subscription stops delivering"""
        if not self._active:
            return
        self._active = False
        self.on_error(error)
        self.store._detach(self)

    def close(self) -> None:
        if self._active:
            self._active = False
            self.store._detach(self)


class MemoryDocumentStore(DocumentStoreAdapter):
    """Document store kept in a dict of user id -> record id -> document"""

    def __init__(self):
        self._documents: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subscriptions: List[MemorySubscription] = []
        self._lock = threading.RLock()

    def _collection(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        return self._documents.setdefault(user_id, {})

    def _snapshot(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._documents.get(user_id, {}))

    def _notify(self, user_id: str) -> None:
        # Caller holds the lock; delivery order therefore follows write order
        for subscription in list(self._subscriptions):
            if subscription.user_id == user_id:
                subscription.deliver(self._snapshot(user_id))

    def _detach(self, subscription: MemorySubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def set(self, user_id: str, record_id: str, document: Dict[str, Any]) -> None:
        with self._lock:
            self._collection(user_id)[record_id] = copy.deepcopy(document)
            self._notify(user_id)

    def update(self, user_id: str, record_id: str, fields: Dict[str, Any],
               delete_fields: Iterable[str] = ()) -> None:
        with self._lock:
            document = self._collection(user_id).get(record_id)
            if document is None:
                raise RemoteWriteFailed(f"No document {record_id} to update")
            document.update(copy.deepcopy(fields))
            for name in delete_fields:
                document.pop(name, None)
            self._notify(user_id)

    def delete(self, user_id: str, record_id: str) -> None:
        with self._lock:
            if self._collection(user_id).pop(record_id, None) is not None:
                self._notify(user_id)

    def get(self, user_id: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._documents.get(user_id, {}).get(record_id)
            return copy.deepcopy(document) if document is not None else None

    def subscribe(self, user_id: str, on_batch: BatchCallback,
                  on_error: ErrorCallback) -> MemorySubscription:
        with self._lock:
            subscription = MemorySubscription(self, user_id, on_batch, on_error)
            self._subscriptions.append(subscription)
            subscription.deliver(self._snapshot(user_id))
        logger.info(f"Memory subscription started for user {user_id}")
        return subscription

    def subscriptions_for(self, user_id: str) -> List[MemorySubscription]:
        with self._lock:
            return [s for s in self._subscriptions if s.user_id == user_id]


class MemoryTransfer(TransferHandle):
    """A transfer that ran synchronously when it was started"""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error

    def await_completion(self) -> None:
        if self.error is not None:
            raise self.error


class MemoryObjectStore(ObjectStoreAdapter):
    """Object store holding blob bytes in memory"""

    def __init__(self, base_url: str = "memory://videos"):
        self.base_url = base_url.rstrip("/")
        self.objects: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put_file(self, local_path: str, remote_path: str,
                 progress: Optional[ProgressCallback] = None) -> MemoryTransfer:
        try:
            with open(local_path, "rb") as f:
                data = f.read()
        except OSError as e:
            return MemoryTransfer(TransferFailed(f"Could not read {local_path}: {e}"))

        with self._lock:
            self.objects[remote_path] = data
        if progress:
            progress(len(data), len(data))
        return MemoryTransfer()

    def get_download_url(self, remote_path: str) -> str:
        with self._lock:
            if remote_path not in self.objects:
                raise URLResolutionFailed(f"Object does not exist: {remote_path}")
        return f"{self.base_url}/{remote_path}"

    def exists(self, remote_path: str) -> bool:
        with self._lock:
            return remote_path in self.objects

    def delete(self, remote_path: str) -> None:
        with self._lock:
            self.objects.pop(remote_path, None)
