"""
Abstract base classes for the remote document store and object store.

Defines the interface that all adapters must implement, enabling
easy swapping between backends (Postgres, S3, in-memory).
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List, Callable, Iterable

from ..reconciler import ChangeBatch, ChangeEvent, ChangeType
from ..errors import SubscriptionFailed

BatchCallback = Callable[[ChangeBatch], None]
ErrorCallback = Callable[[SubscriptionFailed], None]
ProgressCallback = Callable[[int, Optional[int]], None]


def snapshot_changes(previous: Dict[str, Dict[str, Any]],
                     current: Dict[str, Dict[str, Any]],
                     complete: bool = True) -> ChangeBatch:
    """
    Diff two full snapshots of a user's documents into a change batch.

    Args:
        previous: Documents last delivered to the subscriber, keyed by id
        current: Documents now present remotely, keyed by id
        complete: Whether ``current`` is known to list every document

    Returns:
        ChangeBatch with added/modified/removed events and the id snapshot
    """
    events: List[ChangeEvent] = []

    for record_id in sorted(current):
        document = current[record_id]
        if record_id not in previous:
            events.append(ChangeEvent(ChangeType.ADDED, record_id, document))
        elif previous[record_id] != document:
            events.append(ChangeEvent(ChangeType.MODIFIED, record_id, document))

    for record_id in sorted(set(previous) - set(current)):
        events.append(ChangeEvent(ChangeType.REMOVED, record_id))

    return ChangeBatch(events=events, snapshot_ids=frozenset(current), complete=complete)


class SubscriptionHandle(ABC):
    """A live change-stream subscription"""

    @abstractmethod
    def close(self) -> None:
        """Stop delivering batches. Idempotent."""
        pass

    @property
    @abstractmethod
    def active(self) -> bool:
        pass


class TransferHandle(ABC):
    """An in-flight object store upload"""

    @abstractmethod
    def await_completion(self) -> None:
        """
        Block until the transfer finishes.

        Raises:
            TransferFailed: if the bytes could not be written
        """
        pass


class DocumentStoreAdapter(ABC):
    """Abstract base class for per-user video document collections"""

    def connect(self) -> None:
        """Open connections; default is a no-op"""

    def close(self) -> None:
        """Release connections; default is a no-op"""

    @abstractmethod
    def set(self, user_id: str, record_id: str, document: Dict[str, Any]) -> None:
        """
        Create or overwrite a document.

        Args:
            user_id: Owner of the collection
            record_id: Document id
            document: Full document body

        Raises:
            RemoteWriteFailed: if the write is rejected
        """
        pass

    @abstractmethod
    def update(self, user_id: str, record_id: str, fields: Dict[str, Any],
               delete_fields: Iterable[str] = ()) -> None:
        """
        Patch fields of an existing document.

        Args:
            user_id: Owner of the collection
            record_id: Document id
            fields: Fields to set
            delete_fields: Fields to remove from the document entirely

        Raises:
            RemoteWriteFailed: if the document does not exist or the write fails
        """
        pass

    @abstractmethod
    def delete(self, user_id: str, record_id: str) -> None:
        """
        Delete a document; deleting a missing document is not an error.

        Raises:
            RemoteWriteFailed: if the delete is rejected
        """
        pass

    @abstractmethod
    def get(self, user_id: str, record_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a document.

        Returns:
            Document body if found, None otherwise
        """
        pass

    @abstractmethod
    def subscribe(self, user_id: str, on_batch: BatchCallback,
                  on_error: ErrorCallback) -> SubscriptionHandle:
        """
        Start delivering change batches for a user's collection.

        The first batch lists every existing document as added. Batches are
        delivered one at a time, in order, each with the full id snapshot.

        Args:
            user_id: Owner of the collection
            on_batch: Called with each ChangeBatch
            on_error: Called with SubscriptionFailed when the stream errors

        Returns:
            Handle used to tear the subscription down
        """
        pass


class ObjectStoreAdapter(ABC):
    """Abstract base class for blob storage"""

    def connect(self) -> None:
        """Create clients; default is a no-op"""

    def close(self) -> None:
        """Release clients; default is a no-op"""

    @abstractmethod
    def put_file(self, local_path: str, remote_path: str,
                 progress: Optional[ProgressCallback] = None) -> TransferHandle:
        """
        Start streaming a local file to the given remote path.

        Args:
            local_path: Source file on disk
            remote_path: Destination key; an existing object is overwritten
            progress: Optional callback(bytes_sent, total_bytes)

        Returns:
            TransferHandle to await
        """
        pass

    @abstractmethod
    def get_download_url(self, remote_path: str) -> str:
        """
        Resolve a durable download URL for an uploaded object.

        Raises:
            URLResolutionFailed: if the object is missing or no URL can be made
        """
        pass

    @abstractmethod
    def exists(self, remote_path: str) -> bool:
        """Return True if a complete object is stored at remote_path"""
        pass

    @abstractmethod
    def delete(self, remote_path: str) -> None:
        """
        Delete an object.

        Raises:
            BlobDeleteFailed: if the store refuses the delete
        """
        pass
