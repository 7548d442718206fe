"""
Upload lifecycle controller.

Drives one record through pending -> uploading -> uploaded -> completed,
capturing operational failures into the record (status ``failed`` plus an
``error`` string) instead of raising them. Every transition is written to the
remote document store first and then mirrored into the local record store;
the remote change stream later delivers the same write back through the
reconciler.

The controller does not lock per record: callers must not overlap two
operations on the same id, and ``retry`` on anything but a failed record is a
no-op.
"""

import os
import uuid
import logging
from typing import Optional

from .adapters.base import DocumentStoreAdapter, ObjectStoreAdapter
from .auth import AuthProvider, AuthUser
from .errors import (
    RecordNotFound,
    TransferFailed,
    UploaderError,
    URLResolutionFailed,
)
from .logging_setup import log_exception
from .models import UploadStatus, VideoRecord, check_transition, utc_now
from .store import RecordStore

logger = logging.getLogger("video_uploader")


def _readable(path: Optional[str]) -> bool:
    return bool(path) and os.path.isfile(path) and os.access(path, os.R_OK)


class UploadLifecycleController:
    """Creates, uploads, retries and deletes video records"""

    def __init__(self, auth: AuthProvider, documents: DocumentStoreAdapter,
                 objects: ObjectStoreAdapter, store: RecordStore):
        self.auth = auth
        self.documents = documents
        self.objects = objects
        self.store = store

    @staticmethod
    def remote_path(user_id: str, record_id: str) -> str:
        """Object key for a record; retries overwrite the same object"""
        return f"users/{user_id}/videos/{record_id}.mp4"

    def _require_record(self, record_id: str) -> VideoRecord:
        record = self.store.get(record_id)
        if record is None:
            raise RecordNotFound(f"Unknown video record {record_id}")
        return record

    def create(self, local_path: str, title: str) -> str:
        """
        Write a new pending record for a local video file.

        Args:
            local_path: Path of the finished recording on disk
            title: User-chosen, non-empty title

        Returns:
            The new record id

        Raises:
            NotAuthenticated: if nobody is signed in
            ValueError: if the title is empty
            RemoteWriteFailed: if the record could not be written
        """
        user = self.auth.require_user()
        title = (title or "").strip()
        if not title:
            raise ValueError("Title must not be empty")

        record = VideoRecord(
            id=str(uuid.uuid4()),
            title=title,
            video_url="",
            created_at=utc_now(),
            user_id=user.uid,
            user_email=user.email or "unknown",
            status=UploadStatus.PENDING,
            local_url=local_path,
        )

        self.documents.set(user.uid, record.id, record.to_document())
        self.store.upsert(record)
        logger.info(f"Created record {record.id} for {local_path}")
        return record.id

    def upload(self, local_path: str, title: str) -> str:
        """Create a record and run its upload; returns the record id"""
        record_id = self.create(local_path, title)
        self.start_upload(record_id)
        return record_id

    def start_upload(self, record_id: str) -> VideoRecord:
        """
        Run the upload of a pending record.

        Returns:
            The record's final local state (completed or failed)
        """
        user = self.auth.require_user()
        record = self._require_record(record_id)
        if record.status != UploadStatus.PENDING:
            logger.warning(f"Record {record_id} is {record.status.value}, not pending; not uploading")
            return record
        return self._run(user, record, skip_transfer=False)

    def retry(self, record_id: str) -> Optional[VideoRecord]:
        """
        Retry a failed upload.

        If the object already exists at the record's remote path (bytes
        landed but the download URL could not be resolved), only URL
        resolution is repeated.

        Returns:
            The record's final local state, or None if the record was not
            failed and nothing was done
        """
        user = self.auth.require_user()
        record = self._require_record(record_id)

        if record.status != UploadStatus.FAILED:
            logger.info(f"Ignoring retry of {record_id}: status is {record.status.value}")
            return None

        if not _readable(record.local_url):
            return self._fail(
                user, record,
                TransferFailed(f"Local file is no longer available: {record.local_url}"),
            )

        remote_path = self.remote_path(user.uid, record.id)
        skip_transfer = self._object_stored(remote_path)
        logger.info(f"Retrying upload of {record_id}")
        return self._run(user, record, skip_transfer=skip_transfer)

    def _object_stored(self, remote_path: str) -> bool:
        """Whether the blob is known to exist; an unanswered check means upload again"""
        try:
            return self.objects.exists(remote_path)
        except Exception as e:
            logger.warning(f"Could not check for {remote_path}, uploading again: {e}")
            return False

    def _run(self, user: AuthUser, record: VideoRecord, skip_transfer: bool) -> VideoRecord:
        remote_path = self.remote_path(user.uid, record.id)

        try:
            # Persisted before any bytes move so an interrupted upload shows
            # up as uploading rather than vanishing.
            record = self._transition(user, record, UploadStatus.UPLOADING)

            if skip_transfer:
                logger.info(f"Object for {record.id} already stored, resolving URL only")
            else:
                self._transfer(record, remote_path)

            record = self._transition(user, record, UploadStatus.UPLOADED)

            try:
                video_url = self.objects.get_download_url(remote_path)
            except URLResolutionFailed:
                raise
            except Exception as e:
                raise URLResolutionFailed(str(e)) from e

            record = self._transition(user, record, UploadStatus.COMPLETED, video_url=video_url)
            logger.info(f"Upload of {record.id} completed: {video_url}")
            return record

        except Exception as e:
            if not isinstance(e, UploaderError):
                log_exception(logger, f"Unexpected error uploading {record.id}: {e}")
            return self._fail(user, record, e)

    def _transfer(self, record: VideoRecord, remote_path: str) -> None:
        if not record.local_url or not os.path.isfile(record.local_url):
            raise TransferFailed(f"Local file not found: {record.local_url}")

        def progress(sent: int, total: Optional[int]) -> None:
            logger.debug(f"Upload progress {record.id}: {sent}/{total if total is not None else '?'}")

        try:
            handle = self.objects.put_file(record.local_url, remote_path, progress)
            handle.await_completion()
        except TransferFailed:
            raise
        except Exception as e:
            raise TransferFailed(str(e)) from e

    def _transition(self, user: AuthUser, record: VideoRecord, status: UploadStatus,
                    **fields) -> VideoRecord:
        """Persist a status change, then mirror it locally"""
        check_transition(record.status, status)

        # error only accompanies failed; leaving failed removes the field
        updated = record.replace(status=status, error=None, **fields)
        remote_fields = {"status": status.value}
        if "video_url" in fields:
            remote_fields["videoURL"] = fields["video_url"]

        self.documents.update(user.uid, record.id, remote_fields, delete_fields=("error",))
        self.store.upsert(updated)
        logger.debug(f"Record {record.id}: {record.status.value} -> {status.value}")
        return updated

    def _fail(self, user: AuthUser, record: VideoRecord, error: Exception) -> VideoRecord:
        """Move a record to failed; local_url is kept for retry"""
        message = str(error) or error.__class__.__name__
        failed = record.replace(status=UploadStatus.FAILED, error=message)

        try:
            self.documents.update(
                user.uid, record.id,
                {"status": UploadStatus.FAILED.value, "error": message},
            )
        except Exception as e:
            logger.error(f"Could not persist failure of {record.id}: {e}")

        self.store.upsert(failed)
        logger.warning(f"Upload of {record.id} failed: {message}")
        return failed

    def delete(self, record_id: str) -> None:
        """
        Delete a record, then best-effort delete its blob.

        Raises:
            NotAuthenticated: if nobody is signed in
            RemoteWriteFailed: if the document could not be deleted
        """
        user = self.auth.require_user()

        self.documents.delete(user.uid, record_id)
        self.store.remove(record_id)
        logger.info(f"Deleted record {record_id}")

        remote_path = self.remote_path(user.uid, record_id)
        try:
            self.objects.delete(remote_path)
        except Exception as e:
            # An orphaned blob is accepted
            logger.warning(f"Could not delete {remote_path}: {e}")

    def mark_processed(self, record_id: str) -> VideoRecord:
        """
        Record that the webhook accepted the video.

        Raises:
            NotAuthenticated: if nobody is signed in
            RecordNotFound: if the record is unknown
            InvalidTransition: if the record has not finished uploading
            RemoteWriteFailed: if the status could not be written
        """
        user = self.auth.require_user()
        record = self._require_record(record_id)
        check_transition(record.status, UploadStatus.PROCESSED_BY_THUNK)

        self.documents.update(user.uid, record.id, {"status": UploadStatus.PROCESSED_BY_THUNK.value})
        updated = record.replace(status=UploadStatus.PROCESSED_BY_THUNK)
        self.store.upsert(updated)
        logger.info(f"Record {record_id} marked processedByThunk")
        return updated
